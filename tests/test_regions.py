import sys
import unittest
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from advisory_router.domain.regions import RegionHierarchyError, RegionResolver
from advisory_router.infra.catalog_store import MemoryCatalogStore, load_catalog_seed
from advisory_router.schemas.models import Region


def _region(region_id: str, level: int = 1, parent=None, bounds=(0.0, 10.0, 0.0, 10.0), **kwargs):
    min_lat, max_lat, min_lon, max_lon = bounds if bounds else (None,) * 4
    return Region(
        id=region_id,
        name=region_id.title(),
        code=region_id,
        level=level,
        min_lat=min_lat,
        max_lat=max_lat,
        min_lon=min_lon,
        max_lon=max_lon,
        parent_region_id=parent,
        **kwargs,
    )


class RegionContainmentTests(unittest.TestCase):
    def test_bounds_are_inclusive(self) -> None:
        region = _region("box")
        self.assertTrue(region.contains(0.0, 0.0))
        self.assertTrue(region.contains(10.0, 10.0))
        self.assertTrue(region.contains(5.0, 10.0))
        self.assertFalse(region.contains(10.0001, 5.0))
        self.assertFalse(region.contains(5.0, -0.0001))

    def test_region_without_bounds_never_matches(self) -> None:
        region = _region("global", level=0, bounds=None)
        self.assertFalse(region.has_bounds)
        self.assertFalse(region.contains(0.0, 0.0))


class RegionResolverTests(unittest.IsolatedAsyncioTestCase):
    async def test_addis_ababa_resolves_most_specific_first(self) -> None:
        store = MemoryCatalogStore.from_seed(load_catalog_seed())
        resolver = RegionResolver(store)

        regions = await resolver.find_regions_for_point(9.03, 38.74)

        codes = [region.code for region in regions]
        self.assertEqual(codes[0], "ETH")
        self.assertIn("EAST_AFRICA", codes)
        self.assertIn("AFRICA", codes)
        self.assertNotIn("GLOBAL", codes)
        levels = [region.level for region in regions]
        self.assertEqual(levels, sorted(levels, reverse=True))

    async def test_point_in_ocean_returns_nothing(self) -> None:
        store = MemoryCatalogStore.from_seed(load_catalog_seed())
        resolver = RegionResolver(store)
        self.assertEqual(await resolver.find_regions_for_point(-60.0, -140.0), [])

    async def test_inactive_region_is_skipped(self) -> None:
        store = MemoryCatalogStore([_region("a"), _region("b", is_active=False)])
        resolver = RegionResolver(store)
        regions = await resolver.find_regions_for_point(5.0, 5.0)
        self.assertEqual([region.id for region in regions], ["a"])

    async def test_build_hierarchy_adds_ancestors(self) -> None:
        store = MemoryCatalogStore.from_seed(load_catalog_seed())
        resolver = RegionResolver(store)

        hierarchy = await resolver.build_hierarchy(["ETH"])

        self.assertEqual(hierarchy, {"ETH", "EAST_AFRICA", "AFRICA"})

    async def test_build_hierarchy_is_idempotent(self) -> None:
        store = MemoryCatalogStore.from_seed(load_catalog_seed())
        resolver = RegionResolver(store)

        once = await resolver.build_hierarchy(["KEN", "VNM"])
        twice = await resolver.build_hierarchy(sorted(once))

        self.assertEqual(once, twice)
        self.assertTrue({"KEN", "VNM"} <= once)

    async def test_empty_input_gives_empty_set(self) -> None:
        resolver = RegionResolver(MemoryCatalogStore())
        self.assertEqual(await resolver.build_hierarchy([]), set())

    async def test_cycle_raises_hierarchy_error(self) -> None:
        store = MemoryCatalogStore(
            [
                _region("a", parent="b"),
                _region("b", parent="c"),
                _region("c", parent="a"),
            ]
        )
        resolver = RegionResolver(store)

        with self.assertRaises(RegionHierarchyError) as ctx:
            await resolver.build_hierarchy(["a"])

        self.assertEqual(ctx.exception.region_id, "a")
        self.assertEqual(ctx.exception.chain[-1], "a")

    async def test_self_parent_is_a_cycle(self) -> None:
        store = MemoryCatalogStore([_region("loop", parent="loop")])
        resolver = RegionResolver(store)
        with self.assertRaises(RegionHierarchyError):
            await resolver.build_hierarchy(["loop"])

    async def test_chain_deeper_than_limit_raises(self) -> None:
        chain = [_region(f"r{i}", parent=f"r{i + 1}") for i in range(6)]
        chain.append(_region("r6"))
        resolver = RegionResolver(MemoryCatalogStore(chain), max_depth=3)

        with self.assertRaises(RegionHierarchyError):
            await resolver.build_hierarchy(["r0"])

        deep_enough = RegionResolver(MemoryCatalogStore(chain), max_depth=10)
        self.assertEqual(len(await deep_enough.build_hierarchy(["r0"])), 7)

    async def test_dangling_parent_pointer_ends_chain(self) -> None:
        store = MemoryCatalogStore([_region("orphan", parent="missing")])
        resolver = RegionResolver(store)
        self.assertEqual(await resolver.build_hierarchy(["orphan"]), {"orphan"})


if __name__ == "__main__":
    unittest.main()
