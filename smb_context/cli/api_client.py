"""
API client for querying a running context engine server
"""

import json
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests

from smb_context.models.responses import AIContextResponse


class APIError(Exception):
    """Request to the API server failed"""

    def __init__(self, message: str, status_code: Optional[int] = None, retryable: bool = False):
        super().__init__(message)
        self.status_code = status_code
        self.retryable = retryable


class ContextAPIClient:
    """Client for the context engine's HTTP endpoints"""

    def __init__(self, base_url: str = "http://localhost:8000", timeout: int = 120):
        """
        Args:
            base_url: Base URL of the FastAPI server
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip('/')
        self.timeout = timeout
        self.session = requests.Session()
        self.session.headers.update({
            'Content-Type': 'application/json',
            'Accept': 'application/json'
        })

    def _make_request(self, method: str, endpoint: str, **kwargs) -> Dict[str, Any]:
        url = urljoin(self.base_url + '/', endpoint.lstrip('/'))

        try:
            response = self.session.request(method=method, url=url, timeout=self.timeout, **kwargs)
        except requests.exceptions.Timeout as e:
            raise APIError(f"Request timed out after {self.timeout} seconds", retryable=True) from e
        except requests.exceptions.ConnectionError as e:
            raise APIError(f"Could not connect to API server at {self.base_url}", retryable=True) from e
        except requests.exceptions.RequestException as e:
            raise APIError(f"Request failed: {e}") from e

        try:
            data = response.json()
        except (json.JSONDecodeError, ValueError) as e:
            raise APIError("Invalid JSON response from server", status_code=response.status_code) from e

        if response.status_code >= 400:
            message = data.get('error') if isinstance(data, dict) else None
            raise APIError(
                message or f"HTTP {response.status_code}",
                status_code=response.status_code,
                retryable=bool(isinstance(data, dict) and data.get('retryable')),
            )
        return data

    def health_check(self) -> Dict[str, Any]:
        return self._make_request('GET', '/health')

    def query(self, request: Dict[str, Any]) -> AIContextResponse:
        """POST a camelCase AIContextRequest payload and parse the response."""
        data = self._make_request('POST', '/context/query', json=request)
        return AIContextResponse.model_validate(data)
