"""
HTTP collaborators built on httpx.

Provides:
- HttpAnnotationSource: POSTs an annotation request to a remote service
- HttpReadinessProbe: GETs a URL to verify a dependency is reachable

Transport failures and HTTP error statuses surface as DependencyCallError.
"""

from __future__ import annotations

from contextlib import suppress
from importlib.metadata import PackageNotFoundError, version
from typing import TYPE_CHECKING, Any

import httpx
from pydantic import ValidationError

from hintflow.errors import DependencyCallError
from hintflow.telemetry.logger import get_logger
from hintflow.types.annotation import Annotation

if TYPE_CHECKING:
    from hintflow.types.annotation import AnnotationRequest
    from hintflow.types.service import ServiceId

logger = get_logger("hintflow.collaborators.http")

# Default timeouts
_DEFAULT_TIMEOUT = 30.0
_DEFAULT_CONNECT_TIMEOUT = 10.0

_UA_VERSION: str | None = None


def _get_ua_version() -> str:
    """Get package version for User-Agent (cached)."""
    global _UA_VERSION
    if _UA_VERSION is None:
        try:
            _UA_VERSION = version("hintflow")
        except PackageNotFoundError:
            _UA_VERSION = "0.1.0"
    return _UA_VERSION


class HttpCollaborator:
    """Shared client handling for HTTP collaborators.

    A client passed in by the caller is used as-is and never closed here;
    otherwise one is created lazily and closed by ``close()``.
    """

    def __init__(
        self,
        service: ServiceId,
        base_url: str = "",
        *,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize the collaborator.

        Args:
            service: Dependency this collaborator talks to
            base_url: Base URL for relative request paths
            api_key: Optional bearer token
            timeout: Request timeout in seconds
            client: Externally owned client to use
        """
        self._service = service
        self._base_url = base_url
        self._api_key = api_key
        self._timeout = timeout if timeout is not None else _DEFAULT_TIMEOUT
        self._client = client
        self._owns_client = client is None

    @property
    def service(self) -> ServiceId:
        """Dependency this collaborator talks to."""
        return self._service

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                timeout=httpx.Timeout(self._timeout, connect=_DEFAULT_CONNECT_TIMEOUT),
            )
        return self._client

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Accept": "application/json",
            "User-Agent": f"hintflow/{_get_ua_version()}",
        }
        if self._api_key:
            headers["Authorization"] = f"Bearer {self._api_key}"
        return headers

    async def _request(
        self,
        method: str,
        url: str,
        *,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Make an HTTP request.

        Raises:
            DependencyCallError: On network errors or a status >= 400
        """
        client = self._get_client()
        try:
            response = await client.request(
                method, url, json=json, headers=self._build_headers()
            )
        except httpx.ConnectError as e:
            raise DependencyCallError(
                f"Connection failed: {e}", service=self._service, cause=e
            ) from e
        except httpx.TimeoutException as e:
            raise DependencyCallError(
                f"Request timed out: {e}", service=self._service, cause=e
            ) from e
        except httpx.HTTPError as e:
            raise DependencyCallError(
                f"HTTP error: {e}", service=self._service, cause=e
            ) from e

        if response.status_code >= 400:
            detail = response.reason_phrase
            with suppress(ValueError):
                body = response.json()
                if isinstance(body, dict) and "error" in body:
                    detail = str(body["error"])
            raise DependencyCallError(
                f"{self._service.value} returned {response.status_code}: {detail}",
                service=self._service,
                status_code=response.status_code,
            )

        return response

    async def close(self) -> None:
        """Close the HTTP client if this collaborator created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> HttpCollaborator:
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        """Async context manager exit."""
        await self.close()


class HttpAnnotationSource(HttpCollaborator):
    """Annotation source backed by a remote HTTP service.

    The request is sent as JSON. The response may be a JSON list of
    annotations or an object with an ``annotations`` list.

    Example:
        >>> source = HttpAnnotationSource(
        ...     ServiceId.COMPLETION, "https://hints.example.com", api_key=key
        ... )
        >>> annotations = await source(AnnotationRequest(code=code))
    """

    def __init__(
        self,
        service: ServiceId,
        base_url: str,
        path: str = "/annotations",
        *,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(
            service, base_url, api_key=api_key, timeout=timeout, client=client
        )
        self._path = path

    async def __call__(self, request: AnnotationRequest) -> list[Annotation]:
        response = await self._request(
            "POST", self._path, json=request.model_dump(mode="json")
        )

        try:
            body = response.json()
        except ValueError as e:
            raise DependencyCallError(
                "Response is not valid JSON", service=self._service, cause=e
            ) from e

        items = body.get("annotations") if isinstance(body, dict) else body
        if not isinstance(items, list):
            raise DependencyCallError(
                "Response does not contain an annotation list", service=self._service
            )

        try:
            annotations = [Annotation.model_validate(item) for item in items]
        except ValidationError as e:
            raise DependencyCallError(
                f"Malformed annotation in response: {e.error_count()} error(s)",
                service=self._service,
                cause=e,
            ) from e

        logger.debug(
            "Received annotations", service=self._service.value, count=len(annotations)
        )
        return annotations


class HttpReadinessProbe(HttpCollaborator):
    """Init collaborator that verifies a dependency answers over HTTP.

    Any 2xx/3xx response counts as ready. Repeated calls are harmless, so
    the probe can be re-run on every recovery attempt.

    Example:
        >>> probe = HttpReadinessProbe(
        ...     ServiceId.COMPLETION, "https://api.openai.com/v1/models", api_key=key
        ... )
        >>> manager.register(ServiceId.COMPLETION, probe)
    """

    def __init__(
        self,
        service: ServiceId,
        url: str,
        *,
        api_key: str | None = None,
        timeout: float | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        super().__init__(service, api_key=api_key, timeout=timeout, client=client)
        self._url = url

    @property
    def url(self) -> str:
        """Probed URL."""
        return self._url

    async def __call__(self) -> bool:
        await self._request("GET", self._url)
        logger.debug("Readiness probe succeeded", service=self._service.value)
        return True
