"""
Integration test fixtures.

Builds orchestration contexts whose dependencies are HTTP services mocked
with pytest-httpx.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

import pytest
import pytest_asyncio

from hintflow import HintFlowSettings, OrchestrationContext
from hintflow.collaborators import HttpAnnotationSource, HttpReadinessProbe
from hintflow.types import ServiceId

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

BASE_URLS: dict[ServiceId, str] = {
    ServiceId.COMPLETION: "https://completion.test",
    ServiceId.VECTOR_SEARCH: "https://search.test",
    ServiceId.DOCUMENTATION: "https://docs.test",
}


def health_url(service: ServiceId) -> str:
    """Readiness endpoint of a mocked dependency."""
    return f"{BASE_URLS[service]}/health"


def annotations_url(service: ServiceId) -> str:
    """Annotation endpoint of a mocked dependency."""
    return f"{BASE_URLS[service]}/annotations"


def mock_annotation(title: str, line: int = 1, start: int = 0, end: int = 5) -> dict[str, Any]:
    """Create an annotation as a remote service would return it."""
    return {
        "span": {"start": start, "end": end, "line": line},
        "payload": {"title": title, "docs": f"{title} explained"},
    }


@pytest.fixture
def settings() -> HintFlowSettings:
    """Settings with a small recovery budget."""
    return HintFlowSettings.from_dict({"lifecycle": {"max_retries": 2, "retry_delay_ms": 100}})


@pytest_asyncio.fixture
async def context(settings, clock, sleep) -> AsyncIterator[OrchestrationContext]:
    """Context with an HTTP readiness probe per dependency."""
    probes = [
        HttpReadinessProbe(service, health_url(service), api_key="sk-test")
        for service in ServiceId
    ]
    ctx = OrchestrationContext(settings, clock=clock, sleep=sleep)
    for probe in probes:
        ctx.register_dependency(probe.service, probe)

    yield ctx

    await ctx.shutdown()
    for probe in probes:
        await probe.close()


@pytest_asyncio.fixture
async def sources() -> AsyncIterator[dict[ServiceId, HttpAnnotationSource]]:
    """HTTP annotation sources for the completion and vector search services."""
    created = {
        service: HttpAnnotationSource(service, BASE_URLS[service], api_key="sk-test")
        for service in (ServiceId.COMPLETION, ServiceId.VECTOR_SEARCH)
    }
    yield created
    for source in created.values():
        await source.close()


class MockServices:
    """Registers pytest-httpx responses for the mocked dependencies."""

    def __init__(self, httpx_mock: Any) -> None:
        self._httpx_mock = httpx_mock

    def ready(self, service: ServiceId, status_code: int = 200) -> None:
        """Answer one readiness probe."""
        self._httpx_mock.add_response(
            url=health_url(service), method="GET", status_code=status_code
        )

    def all_ready(self) -> None:
        """Answer one readiness probe for every dependency."""
        for service in ServiceId:
            self.ready(service)

    def annotations(self, service: ServiceId, items: list[dict[str, Any]]) -> None:
        """Answer one annotation request."""
        self._httpx_mock.add_response(
            url=annotations_url(service), method="POST", json={"annotations": items}
        )

    def failure(self, service: ServiceId, status_code: int = 503) -> None:
        """Fail one annotation request."""
        self._httpx_mock.add_response(
            url=annotations_url(service),
            method="POST",
            status_code=status_code,
            json={"error": "unavailable"},
        )

    def requests(self, service: ServiceId, method: str) -> list[Any]:
        """Requests sent to a dependency with the given method."""
        return [
            r
            for r in self._httpx_mock.get_requests()
            if r.url.host == BASE_URLS[service].removeprefix("https://")
            and r.method == method
        ]


@pytest.fixture
def mock_services(httpx_mock) -> MockServices:
    """Helper for registering mocked dependency responses."""
    return MockServices(httpx_mock)
