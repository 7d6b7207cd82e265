"""
Pipedrive REST API client.

Uses Pipedrive's v1 API with the tenant's API token passed as the
api_token query parameter. Every response is wrapped as
{"success": bool, "data": ..., "error": ...}.

SECURITY: request URLs carry the API token, so transport errors are logged by
type only, never with str(error) or the URL.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import httpx

from taskifye.config.settings import (
    DEFAULT_INTEGRATION_TIMEOUT_SECONDS,
    DEFAULT_PIPEDRIVE_API_BASE_URL,
)
from taskifye.field_mapping.catalog import DEAL, ORGANIZATION, PERSON

logger = logging.getLogger(__name__)

# Entity type -> fields endpoint
FIELD_ENDPOINTS = {
    DEAL: "/dealFields",
    PERSON: "/personFields",
    ORGANIZATION: "/organizationFields",
}


class PipedriveAPIError(Exception):
    """Error from the Pipedrive API."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        status_code: Optional[int] = None,
        details: Optional[Dict] = None,
    ):
        super().__init__(message)
        self.code = code
        self.status_code = status_code
        self.details = details or {}

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    @property
    def is_unauthorized(self) -> bool:
        return self.status_code == 401


class PipedriveClient:
    """
    Async client for the Pipedrive API, bound to one tenant's API token.

    Handles:
    - Listing and creating custom fields per entity type
    - Creating and reading deals
    - Creating persons
    """

    def __init__(
        self,
        api_token: str,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_INTEGRATION_TIMEOUT_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Initialize Pipedrive client.

        Args:
            api_token: Tenant's Pipedrive API token
            base_url: API root (defaults to https://api.pipedrive.com/v1)
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (tests use httpx.MockTransport)
        """
        if not api_token:
            raise ValueError("api_token is required")
        self.base_url = (base_url or DEFAULT_PIPEDRIVE_API_BASE_URL).rstrip("/")

        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            params={"api_token": api_token},
            headers={"Accept": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    def __repr__(self) -> str:
        return f"PipedriveClient(base_url={self.base_url!r})"

    async def close(self):
        """Close the HTTP client."""
        await self._client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def _request(
        self,
        method: str,
        path: str,
        json: Optional[Dict[str, Any]] = None,
    ) -> Any:
        """
        Execute a request and unwrap the "data" member.

        Raises:
            PipedriveAPIError: On HTTP errors, transport errors or success=false
        """
        try:
            response = await self._client.request(method, path, json=json)
            response.raise_for_status()
            body = response.json()
        except httpx.HTTPStatusError as e:
            status_code = e.response.status_code
            logger.warning("Pipedrive API HTTP error", extra={
                "path": path,
                "status_code": status_code,
            })
            raise PipedriveAPIError(
                f"Pipedrive API error: {status_code}",
                code=str(status_code),
                status_code=status_code,
            ) from e
        except httpx.TimeoutException as e:
            logger.warning("Pipedrive API timeout", extra={"path": path})
            raise PipedriveAPIError("Pipedrive request timed out", code="timeout") from e
        except httpx.RequestError as e:
            logger.warning("Pipedrive API request error", extra={
                "path": path,
                "error_type": type(e).__name__,
            })
            raise PipedriveAPIError("Pipedrive request failed", code="request_error") from e
        except ValueError as e:
            raise PipedriveAPIError("Pipedrive returned invalid JSON", code="invalid_response") from e

        if not isinstance(body, dict) or not body.get("success", False):
            error = body.get("error") if isinstance(body, dict) else None
            raise PipedriveAPIError(
                error or "Pipedrive request was not successful",
                code="unsuccessful",
                details={"error": error} if error else None,
            )
        return body.get("data")

    # ------------------------------------------------------------------
    # Fields
    # ------------------------------------------------------------------

    @staticmethod
    def _fields_path(entity_type: str) -> str:
        try:
            return FIELD_ENDPOINTS[entity_type]
        except KeyError:
            raise ValueError(f"Unsupported entity type: {entity_type}")

    async def list_fields(self, entity_type: str) -> List[Dict[str, Any]]:
        """All fields (standard and custom) for an entity type."""
        data = await self._request("GET", self._fields_path(entity_type))
        return list(data or [])

    async def create_field(
        self,
        entity_type: str,
        name: str,
        field_type: str,
        options: Optional[Sequence[str]] = None,
    ) -> Dict[str, Any]:
        """Create a custom field; returns the created field (with its key)."""
        payload: Dict[str, Any] = {"name": name, "field_type": field_type}
        if options:
            payload["options"] = [{"label": label} for label in options]
        return await self._request("POST", self._fields_path(entity_type), json=payload)

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def create_deal(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/deals", json=payload)

    async def get_deal(self, deal_id: int) -> Dict[str, Any]:
        return await self._request("GET", f"/deals/{int(deal_id)}")

    async def create_person(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return await self._request("POST", "/persons", json=payload)
