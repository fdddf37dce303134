from __future__ import annotations

from typing import Iterable, List, Set

from ..infra.catalog_store import CatalogStore
from ..schemas.models import Region


class RegionHierarchyError(ValueError):
    """Parent chain is cyclic or deeper than allowed."""

    def __init__(self, message: str, *, region_id: str, chain: List[str]) -> None:
        super().__init__(message)
        self.region_id = region_id
        self.chain = chain


class RegionResolver:
    def __init__(self, store: CatalogStore, *, max_depth: int = 32) -> None:
        self._store = store
        self._max_depth = max(1, int(max_depth))

    async def find_regions_for_point(self, lat: float, lon: float) -> List[Region]:
        """Active regions containing the point, most specific first."""
        regions = await self._store.find_regions_containing(lat, lon)
        matches = [r for r in regions if r.is_active and r.contains(lat, lon)]
        return sorted(matches, key=lambda region: region.level, reverse=True)

    async def build_hierarchy(self, region_ids: Iterable[str]) -> Set[str]:
        """
        Expand region ids with every ancestor reachable via parent pointers.

        Raises:
            RegionHierarchyError: if a chain revisits a region or exceeds the
                configured depth.
        """
        start = [region_id for region_id in region_ids if region_id]
        all_ids: Set[str] = set(start)
        for region_id in start:
            chain = [region_id]
            seen = {region_id}
            current = region_id
            while True:
                parent = await self._store.find_parent_region(current)
                if parent is None:
                    break
                if parent.id in seen:
                    raise RegionHierarchyError(
                        f"cycle in region hierarchy at {parent.id!r}",
                        region_id=region_id,
                        chain=chain + [parent.id],
                    )
                if len(chain) > self._max_depth:
                    raise RegionHierarchyError(
                        f"region hierarchy deeper than {self._max_depth}",
                        region_id=region_id,
                        chain=chain,
                    )
                chain.append(parent.id)
                seen.add(parent.id)
                all_ids.add(parent.id)
                current = parent.id
        return all_ids
