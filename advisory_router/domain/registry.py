from __future__ import annotations

from typing import List, Optional

from ..infra.catalog_store import CatalogStore
from ..infra.config import EndpointConfig
from ..observability.logging_utils import log_event, log_warning
from ..schemas.models import (
    DetectedRegion,
    ResolvedServer,
    ServersForLocation,
    ToolServer,
)
from .regions import RegionHierarchyError, RegionResolver


class ServerRegistry:
    """Select the tool servers reachable from a location."""

    def __init__(
        self,
        store: CatalogStore,
        endpoints: EndpointConfig,
        *,
        resolver: Optional[RegionResolver] = None,
        max_depth: int = 32,
    ) -> None:
        self._store = store
        self._endpoints = endpoints
        self._resolver = resolver or RegionResolver(store, max_depth=max_depth)

    @property
    def resolver(self) -> RegionResolver:
        return self._resolver

    @property
    def endpoints(self) -> EndpointConfig:
        return self._endpoints

    def _resolve(
        self, server: ToolServer, *, source_region: Optional[str] = None
    ) -> Optional[ResolvedServer]:
        endpoint = self._endpoints.resolve_endpoint(server)
        if not endpoint:
            return None
        return ResolvedServer(
            slug=server.slug,
            name=server.name,
            category=server.category,
            tools=list(server.tools),
            capabilities=list(server.capabilities),
            endpoint=endpoint,
            source_region=source_region,
        )

    async def get_active_servers_for_location(
        self, lat: Optional[float], lon: Optional[float]
    ) -> ServersForLocation:
        try:
            return await self._servers_for_location(lat, lon)
        except Exception as exc:
            log_warning("registry_lookup_failed", lat=lat, lon=lon, error=str(exc))
            return ServersForLocation()

    async def _servers_for_location(
        self, lat: Optional[float], lon: Optional[float]
    ) -> ServersForLocation:
        global_servers = [
            resolved
            for resolved in (
                self._resolve(server) for server in await self._store.find_global_servers()
            )
            if resolved is not None
        ]

        regional: List[ResolvedServer] = []
        detected: List[DetectedRegion] = []
        if lat is not None and lon is not None:
            regions = await self._resolver.find_regions_for_point(lat, lon)
            detected = [DetectedRegion.from_region(region) for region in regions]
            if regions:
                region_ids = [region.id for region in regions]
                try:
                    hierarchy = await self._resolver.build_hierarchy(region_ids)
                except RegionHierarchyError as exc:
                    log_warning(
                        "region_hierarchy_invalid",
                        region_id=exc.region_id,
                        chain=exc.chain,
                        error=str(exc),
                    )
                    hierarchy = set(region_ids)
                regional = await self._regional_servers(hierarchy)

        log_event(
            "servers_for_location",
            lat=lat,
            lon=lon,
            regions=[region.code for region in detected],
            global_count=len(global_servers),
            regional=[server.slug for server in regional],
        )
        return ServersForLocation(
            global_servers=global_servers,
            regional=regional,
            detected_regions=detected,
        )

    async def _regional_servers(self, region_ids) -> List[ResolvedServer]:
        records = await self._store.find_region_mappings(region_ids)
        records = sorted(records, key=lambda record: record.mapping.priority)
        seen_slugs = set()
        regional = []
        for record in records:
            server = record.server
            if server.slug in seen_slugs:
                continue
            if not (server.is_active and server.is_deployed):
                continue
            seen_slugs.add(server.slug)
            resolved = self._resolve(server, source_region=record.region.name)
            if resolved is not None:
                regional.append(resolved)
        return regional

    async def list_servers(
        self,
        *,
        category: Optional[str] = None,
        is_global: Optional[bool] = None,
        is_active: Optional[bool] = None,
        is_deployed: Optional[bool] = None,
    ) -> List[ToolServer]:
        servers = await self._store.list_servers()
        if category is not None:
            servers = [s for s in servers if s.category == category]
        if is_global is not None:
            servers = [s for s in servers if s.is_global == is_global]
        if is_active is not None:
            servers = [s for s in servers if s.is_active == is_active]
        if is_deployed is not None:
            servers = [s for s in servers if s.is_deployed == is_deployed]
        return sorted(servers, key=lambda s: (not s.is_global, s.category, s.name))

    async def get_server(self, slug: str) -> Optional[ToolServer]:
        return await self._store.get_server(slug)
