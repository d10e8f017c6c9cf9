"""
SMB Business Context Engine

Assembles a snapshot of a small business's operational, financial and
customer state and turns free-text questions about it into structured,
context-aware answers.
"""

__version__ = "1.0.0"
