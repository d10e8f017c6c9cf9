#!/usr/bin/env python3
"""
SMB Context CLI - ask the context engine questions from the terminal
"""

import asyncio
import sys
import time
from typing import Optional

import click
from rich.console import Console
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.text import Text
from sqlalchemy.exc import SQLAlchemyError

from smb_context import __version__
from smb_context.cli.api_client import APIError, ContextAPIClient
from smb_context.cli.formatters import format_error_message, format_response
from smb_context.config import EngineSettings, configure_logging
from smb_context.data_models import QueryType
from smb_context.db_models import DatabaseManager
from smb_context.engine.context_engine import ContextEngine
from smb_context.errors import BusinessNotFoundError, DataSourceError, ValidationError
from smb_context.models.responses import AIContextResponse

console = Console()


def _load_settings(database_url: Optional[str], no_llm: bool = False) -> EngineSettings:
    settings = EngineSettings.from_env()
    updates = {}
    if database_url:
        updates["database_url"] = database_url
    if no_llm:
        updates["gemini_api_key"] = None
    return settings.model_copy(update=updates) if updates else settings


@click.group()
@click.version_option(version=__version__)
def cli():
    """SMB Context CLI - context-grounded answers for your business"""


@cli.command()
@click.argument("business_id", type=str)
@click.argument("query", type=str)
@click.option(
    "--query-type", "-t",
    type=click.Choice([q.value for q in QueryType]),
    default=QueryType.CUSTOMER_INQUIRY.value,
    help="Kind of query (default: customer_inquiry)",
)
@click.option("--customer-id", type=str, help="Customer the query is about")
@click.option("--timeframe", type=str, help="Timeframe hint, e.g. 'last 30 days'")
@click.option("--format", "output_format", type=click.Choice(["table", "json"]), default="table", help="Output format")
@click.option("--database-url", type=str, help="SQLAlchemy URL of the business database")
@click.option("--no-llm", is_flag=True, help="Run without the LLM (fallback answers only)")
@click.option("--api-url", type=str, help="Query a running API server instead of the local engine")
@click.option("--timeout", type=int, default=120, help="API request timeout in seconds (with --api-url)")
def ask(
    business_id: str,
    query: str,
    query_type: str,
    customer_id: Optional[str],
    timeframe: Optional[str],
    output_format: str,
    database_url: Optional[str],
    no_llm: bool,
    api_url: Optional[str],
    timeout: int,
):
    """
    Answer QUERY for BUSINESS_ID using the business's own data

    BUSINESS_ID: Business to answer for
    QUERY: Free-text question, e.g. "How is my business performing?"
    """
    overrides = {}
    if customer_id:
        overrides["customerId"] = customer_id
    if timeframe:
        overrides["timeframe"] = timeframe
    request = {
        "businessId": business_id,
        "queryType": query_type,
        "query": query,
        "context": overrides or None,
    }

    if output_format == "table":
        console.print()
        console.print(Panel(Text("SMB CONTEXT ENGINE", style="bold blue"), expand=False))

    start_time = time.time()
    if api_url:
        response = _ask_remote(request, api_url, timeout, output_format)
    else:
        response = _ask_local(request, database_url, no_llm, output_format)
    elapsed = time.time() - start_time

    if output_format == "json":
        click.echo(response.model_dump_json(by_alias=True, indent=2))
    else:
        format_response(console, business_id, query, response, elapsed)


def _run_with_spinner(output_format: str, fn):
    if output_format != "table":
        return fn()
    with Progress(SpinnerColumn(), TextColumn("[progress.description]{task.description}"), console=console) as progress:
        task = progress.add_task("Assembling business context and answering...", total=None)
        result = fn()
        progress.update(task, description="Done!")
    return result


def _ask_local(request: dict, database_url: Optional[str], no_llm: bool, output_format: str) -> AIContextResponse:
    settings = _load_settings(database_url, no_llm)
    configure_logging(settings.log_level)
    engine = ContextEngine.from_settings(settings)
    if engine.degraded and output_format == "table":
        console.print("⚠️  [yellow]LLM not configured: showing fallback answers only[/yellow]")

    try:
        return _run_with_spinner(output_format, lambda: asyncio.run(engine.process_query(request)))
    except ValidationError as e:
        format_error_message(console, str(e))
        sys.exit(1)
    except BusinessNotFoundError as e:
        format_error_message(console, str(e), "Check the business id, or point --database-url at the right database")
        sys.exit(1)
    except DataSourceError as e:
        format_error_message(console, str(e), "The data source is unavailable; try again shortly")
        sys.exit(1)
    finally:
        engine.close()


def _ask_remote(request: dict, api_url: str, timeout: int, output_format: str) -> AIContextResponse:
    client = ContextAPIClient(base_url=api_url, timeout=timeout)
    try:
        return _run_with_spinner(output_format, lambda: client.query(request))
    except APIError as e:
        suggestion = None
        if e.status_code is None:
            suggestion = f"Check if the API server is running on {api_url}"
        elif e.retryable:
            suggestion = "The server's data source is unavailable; try again shortly"
        format_error_message(console, str(e), suggestion)
        sys.exit(1)


@cli.command("init-db")
@click.option("--database-url", type=str, help="SQLAlchemy URL of the business database")
def init_db(database_url: Optional[str]):
    """Create the business data tables"""
    settings = _load_settings(database_url)
    db = DatabaseManager(settings.database_url)
    try:
        db.create_tables()
    except SQLAlchemyError as e:
        format_error_message(console, f"Could not create tables: {e}")
        sys.exit(1)
    finally:
        db.dispose()
    console.print(f"✅ [green]Tables created in {settings.database_url}[/green]")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", type=int, default=8000, help="Port")
@click.option("--reload", is_flag=True, help="Reload on code changes")
def serve(host: str, port: int, reload: bool):
    """Run the HTTP API"""
    from smb_context.api.main import run

    console.print(f"🚀 Starting API on [cyan]http://{host}:{port}[/cyan]")
    run(host=host, port=port, reload=reload)


if __name__ == "__main__":
    cli()
