"""
Error taxonomy for the Business Context Engine.

Only ValidationError, BusinessNotFoundError and DataSourceError ever escape
ContextEngine.process_query. The LLM errors are raised inside derivation
steps and always absorbed into fallback values there.
"""

from typing import Any, Dict, List, Optional


class ContextEngineError(Exception):
    """Base class for all engine errors."""


class ValidationError(ContextEngineError):
    """Malformed request: missing fields, empty text or unknown queryType."""

    def __init__(self, message: str, errors: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.errors = errors or []


class BusinessNotFoundError(ContextEngineError):
    """The businessId does not resolve to a business profile."""

    def __init__(self, business_id: str):
        super().__init__(f"Business not found: {business_id}")
        self.business_id = business_id


class DataSourceError(ContextEngineError):
    """An underlying read failed. Callers may retry the whole request."""

    retryable = True

    def __init__(self, message: str, source: Optional[str] = None):
        super().__init__(message)
        self.source = source


class LLMError(ContextEngineError):
    """The LLM call failed (transport, quota, empty completion)."""


class LLMNotConfiguredError(LLMError):
    """No LLM client is configured; the engine runs in degraded mode."""


class LLMOutputError(LLMError):
    """The LLM returned output that does not match the requested shape."""
