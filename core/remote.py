"""HTTP plumbing shared by the remote collaborators (DB proxy, TUID verifier)."""

from typing import Any, Dict, Optional
import httpx
from core.errors import CollaboratorFailure
from core.logging import log
from core.utils import generate_trace_id


class RemoteClient:
    """Thin JSON-over-HTTP client used by remote collaborators.

    Every request carries a fresh trace id in the ``TUID`` header, which the
    upstream services use for request correlation. Transport errors, HTTP
    error statuses and undecodable bodies are all raised as
    CollaboratorFailure so callers never see httpx exceptions.
    """

    def __init__(self,
                 name: str,
                 timeout: float = 10.0,
                 transport: Optional[httpx.BaseTransport] = None):
        """Initialize remote client.

        Args:
            name: Collaborator name used in logs and errors
            timeout: Request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        self.name = name
        self._client = httpx.Client(timeout=timeout, transport=transport)

    def post_json(self, url: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """POST a JSON payload and return the decoded JSON body.

        Args:
            url: Target URL
            payload: JSON-serializable request body

        Returns:
            dict: Decoded response body

        Raises:
            CollaboratorFailure: On missing URL, timeout, transport error,
                HTTP error status, or a non-object body
        """
        if not url:
            raise CollaboratorFailure(self.name, "endpoint URL is not configured", reason="not_configured")

        headers = {
            "Content-Type": "application/json",
            "TUID": generate_trace_id(),
        }
        try:
            response = self._client.post(url, json=payload, headers=headers)
            response.raise_for_status()
            body = response.json()
        except httpx.TimeoutException as e:
            log.error(f"{self.name} request timed out: {str(e)}")
            raise CollaboratorFailure(self.name, "request timed out", reason="timeout") from e
        except httpx.HTTPStatusError as e:
            log.error(f"{self.name} returned HTTP {e.response.status_code}")
            raise CollaboratorFailure(
                self.name, f"HTTP {e.response.status_code}", reason="http_error"
            ) from e
        except httpx.HTTPError as e:
            log.error(f"{self.name} request failed: {str(e)}")
            raise CollaboratorFailure(self.name, str(e), reason="transport_error") from e
        except ValueError as e:
            log.error(f"{self.name} returned a non-JSON body")
            raise CollaboratorFailure(self.name, "invalid JSON response", reason="bad_response") from e

        if not isinstance(body, dict):
            raise CollaboratorFailure(self.name, "unexpected response shape", reason="bad_response")
        return body

    def close(self) -> None:
        """Close the underlying connection pool."""
        self._client.close()
