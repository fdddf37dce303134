from __future__ import annotations

import asyncio
import time
from datetime import datetime, timezone
from typing import List, Optional, Set, Tuple

import httpx

from ..observability.logging_utils import elapsed_ms, log_event, log_warning
from ..schemas.models import HealthSummary, ServerHealth, ToolServer
from .catalog_store import CatalogStore
from .config import EndpointConfig


DEFAULT_HEALTH_TIMEOUT = 10.0


def _now() -> datetime:
    return datetime.now(timezone.utc)


class HealthMonitor:
    """Probe `<endpoint>/health` of deployed tool servers."""

    def __init__(
        self,
        store: CatalogStore,
        endpoints: EndpointConfig,
        *,
        timeout: float = DEFAULT_HEALTH_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._store = store
        self._endpoints = endpoints
        self._timeout = timeout
        self._transport = transport
        self._pending: Set[asyncio.Task] = set()

    async def check_server(self, server: ToolServer) -> ServerHealth:
        if not server.endpoint_key:
            return ServerHealth(
                slug=server.slug,
                name=server.name,
                status="unavailable",
                error="No endpoint configured",
                last_check=_now(),
            )
        endpoint = self._endpoints.resolve_endpoint(server)
        if not endpoint:
            return ServerHealth(
                slug=server.slug,
                name=server.name,
                status="unavailable",
                error="Endpoint not set",
                last_check=_now(),
            )

        started = time.perf_counter()
        try:
            async with httpx.AsyncClient(
                timeout=self._timeout, trust_env=False, transport=self._transport
            ) as client:
                response = await asyncio.wait_for(
                    client.get(
                        f"{endpoint}/health", headers={"Accept": "application/json"}
                    ),
                    timeout=self._timeout,
                )
        except (asyncio.TimeoutError, httpx.TimeoutException):
            return ServerHealth(
                slug=server.slug,
                name=server.name,
                status="unhealthy",
                error="Timeout",
                last_check=_now(),
            )
        except Exception as exc:
            return ServerHealth(
                slug=server.slug,
                name=server.name,
                status="unhealthy",
                error=str(exc) or type(exc).__name__,
                last_check=_now(),
            )

        response_time = elapsed_ms(started)
        if response.is_success:
            return ServerHealth(
                slug=server.slug,
                name=server.name,
                status="healthy",
                response_time_ms=response_time,
                last_check=_now(),
            )
        return ServerHealth(
            slug=server.slug,
            name=server.name,
            status="unhealthy",
            response_time_ms=response_time,
            error=f"HTTP {response.status_code}",
            last_check=_now(),
        )

    async def check_slug(self, slug: str) -> Optional[ServerHealth]:
        server = await self._store.get_server(slug)
        if server is None:
            return None
        result = await self.check_server(server)
        self._persist(result)
        return result

    async def check_all(self) -> Tuple[List[ServerHealth], HealthSummary]:
        servers = [s for s in await self._store.list_servers() if s.is_deployed]
        results = list(
            await asyncio.gather(*(self.check_server(server) for server in servers))
        )
        for result in results:
            self._persist(result)
        summary = HealthSummary.from_results(results)
        log_event(
            "health_check_done",
            total=summary.total,
            healthy=summary.healthy,
            unhealthy=summary.unhealthy,
            unavailable=summary.unavailable,
        )
        return results, summary

    def _persist(self, result: ServerHealth) -> None:
        task = asyncio.create_task(self._write_status(result))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write_status(self, result: ServerHealth) -> None:
        try:
            await self._store.update_health_status(
                result.slug, result.status, result.last_check
            )
        except Exception as exc:
            log_warning("health_status_write_failed", slug=result.slug, error=str(exc))

    async def drain(self) -> None:
        """Wait for pending status writes."""
        if self._pending:
            await asyncio.gather(*list(self._pending))
