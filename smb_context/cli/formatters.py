"""
Rich formatters for displaying context engine responses
"""

from rich.box import ROUNDED
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from smb_context.data_models import Level
from smb_context.models.responses import AIContextResponse

_LEVEL_STYLES = {
    Level.HIGH: "[red]High[/red]",
    Level.MEDIUM: "[yellow]Medium[/yellow]",
    Level.LOW: "[green]Low[/green]",
}


def _section(console: Console, title: str):
    console.print()
    console.print("━" * 79)
    console.print(f"[bold blue]{title:^79}[/bold blue]")
    console.print("━" * 79)
    console.print()


def format_response(console: Console, business_id: str, query: str, response: AIContextResponse, elapsed: float):
    """
    Display a full engine response: answer first, then every derived list.

    Args:
        console: Rich console instance
        business_id: Business the query was answered for
        query: The query as asked
        response: Engine response
        elapsed: Seconds spent in process_query
    """
    console.print(Panel(response.contextual_answer, title=f"💬 {query}", subtitle=business_id, expand=True))

    _section(console, "📊 BUSINESS INSIGHTS")
    if response.business_insights:
        table = Table(box=ROUNDED, show_header=True, header_style="bold blue")
        table.add_column("Type", style="cyan", width=12)
        table.add_column("Insight", width=44)
        table.add_column("Impact", width=8)
        table.add_column("Confidence", justify="right", width=10)
        for insight in response.business_insights:
            text = insight.insight
            if insight.evidence:
                text += "\n[dim]" + "; ".join(insight.evidence[:3]) + "[/dim]"
            table.add_row(insight.type, text, _LEVEL_STYLES[insight.impact], f"{insight.confidence:.0%}")
        console.print(table)
    else:
        console.print("[yellow]No insights available[/yellow]")

    _section(console, "✅ RECOMMENDED ACTIONS")
    if response.recommended_actions:
        table = Table(box=ROUNDED, show_header=True, header_style="bold blue")
        table.add_column("#", style="bold", width=3)
        table.add_column("Action", width=40)
        table.add_column("Priority", width=8)
        table.add_column("Effort", width=8)
        table.add_column("Deadline", width=12)
        for i, rec in enumerate(response.recommended_actions, 1):
            action = rec.action + (" 🤖" if rec.automatable else "")
            if rec.expected_impact:
                action += f"\n[dim]{rec.expected_impact}[/dim]"
            table.add_row(str(i), action, _LEVEL_STYLES[rec.priority], _LEVEL_STYLES[rec.effort], rec.deadline or "-")
        console.print(table)
    else:
        console.print("[yellow]No recommendations available[/yellow]")

    if response.automation_suggestions:
        _section(console, "⚙️  AUTOMATION SUGGESTIONS")
        table = Table(box=ROUNDED, show_header=True, header_style="bold blue")
        table.add_column("Workflow", style="cyan", width=22)
        table.add_column("Trigger", width=20)
        table.add_column("Steps", width=28)
        table.add_column("Saves", justify="right", width=8)
        for suggestion in response.automation_suggestions:
            table.add_row(
                suggestion.workflow,
                suggestion.trigger,
                "\n".join(f"• {a}" for a in suggestion.actions),
                f"{suggestion.estimated_time_saved:g}h/mo",
            )
        console.print(table)

    if response.related_data:
        _section(console, "🔗 RELATED DATA")
        for item in response.related_data:
            counts = ", ".join(
                f"{len(v)} {k}" if isinstance(v, list) else f"{k}: {v}" for k, v in item.data.items()
            )
            console.print(f"  • [cyan]{item.type}[/cyan] (relevance {item.relevance:.0%}) - {counts}")

    console.print()
    console.print(f"[dim]Answered in {elapsed:.1f}s[/dim]")


def format_error_message(console: Console, error: str, suggestion: str = None):
    """Display an error with an optional hint for fixing it"""
    console.print(f"❌ [red]Error: {error}[/red]")
    if suggestion:
        console.print(f"💡 [yellow]Suggestion: {suggestion}[/yellow]")
