import sqlite3
import sys
import tempfile
import unittest
from datetime import datetime, timezone
from pathlib import Path
from unittest.mock import patch

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from advisory_router.domain.registry import ServerRegistry
from advisory_router.infra.catalog_store import (
    MemoryCatalogStore,
    SqliteCatalogStore,
    load_catalog_seed,
)
from advisory_router.infra.config import AppConfig, EndpointConfig
from advisory_router.schemas.models import Region, RegionToolMapping, ToolServer


ALL_ENDPOINTS = {
    "MCP_ACCUWEATHER_URL": "http://accuweather.test/",
    "MCP_AGRIVISION_URL": "http://agrivision.test",
    "MCP_SSFR_URL": "http://ssfr.test",
    "MCP_FEED_FORMULATION_URL": "http://feed.test",
    "MCP_ISDA_URL": "http://isda.test",
    "MCP_GAP_URL": "http://gap.test",
    "MCP_DECISION_TREE_URL": "http://decision-tree.test",
    "MCP_EDACAP_URL": "http://edacap.test",
    "MCP_WEATHERAPI_URL": "http://weatherapi.test",
}

ADDIS = (9.03, 38.74)


def _seeded_registry(endpoints=None) -> ServerRegistry:
    store = MemoryCatalogStore.from_seed(load_catalog_seed())
    return ServerRegistry(store, EndpointConfig(ALL_ENDPOINTS if endpoints is None else endpoints))


class EndpointConfigTests(unittest.TestCase):
    def test_endpoints_are_read_only_and_trimmed(self) -> None:
        config = EndpointConfig({"MCP_SSFR_URL": "http://ssfr.test/", "EMPTY": ""})
        self.assertEqual(config.endpoints["MCP_SSFR_URL"], "http://ssfr.test")
        self.assertNotIn("EMPTY", config.endpoints)
        with self.assertRaises(TypeError):
            config.endpoints["MCP_SSFR_URL"] = "http://other.test"

    def test_from_settings_snapshots_environment(self) -> None:
        environ = {"MCP_SSFR_URL": "http://env-ssfr.test", "MCP_ISDA_URL": "http://isda.test"}
        cfg = AppConfig(TOOL_ENDPOINTS={"MCP_SSFR_URL": "http://explicit.test"})

        config = EndpointConfig.from_settings(
            cfg, keys=["MCP_SSFR_URL", "MCP_ISDA_URL", "MCP_GAP_URL"], environ=environ
        )
        environ["MCP_GAP_URL"] = "http://late.test"

        self.assertEqual(config.endpoints["MCP_SSFR_URL"], "http://explicit.test")
        self.assertEqual(config.endpoints["MCP_ISDA_URL"], "http://isda.test")
        self.assertNotIn("MCP_GAP_URL", config.endpoints)


class ServerRegistryTests(unittest.IsolatedAsyncioTestCase):
    async def test_addis_ababa_servers(self) -> None:
        registry = _seeded_registry()

        result = await registry.get_active_servers_for_location(*ADDIS)

        global_slugs = [server.slug for server in result.global_servers]
        self.assertEqual(sorted(global_slugs), ["accuweather", "agrivision"])
        regional = {server.slug: server for server in result.regional}
        self.assertEqual(
            set(regional),
            {"ssfr", "feed-formulation", "decision-tree", "edacap", "gap-weather", "isda-soil"},
        )
        self.assertEqual(len(result.regional), len(regional))
        self.assertEqual(regional["ssfr"].source_region, "Ethiopia")
        self.assertEqual(regional["isda-soil"].source_region, "Africa")
        self.assertEqual(result.detected_regions[0].code, "ETH")
        self.assertEqual(regional["ssfr"].endpoint, "http://ssfr.test")

    async def test_lowest_priority_mapping_wins_on_duplicates(self) -> None:
        registry = _seeded_registry()

        result = await registry.get_active_servers_for_location(*ADDIS)

        decision_tree = next(s for s in result.regional if s.slug == "decision-tree")
        # East Africa maps it at priority 2, Ethiopia at 3.
        self.assertEqual(decision_tree.source_region, "East Africa")

    async def test_no_coordinates_gives_globals_only(self) -> None:
        registry = _seeded_registry()

        result = await registry.get_active_servers_for_location(None, None)

        self.assertEqual(result.regional, [])
        self.assertEqual(result.detected_regions, [])
        self.assertTrue(result.global_servers)

    async def test_zero_coordinates_are_a_real_location(self) -> None:
        store = MemoryCatalogStore(
            regions=[
                Region(id="gulf", name="Gulf", code="GULF", level=1,
                       min_lat=-1, max_lat=1, min_lon=-1, max_lon=1)
            ],
            servers=[ToolServer(slug="buoy", name="Buoy", endpoint_key="BUOY")],
            mappings=[RegionToolMapping(region_id="gulf", server_slug="buoy", priority=1)],
        )
        registry = ServerRegistry(store, EndpointConfig({"BUOY": "http://buoy.test"}))

        result = await registry.get_active_servers_for_location(0.0, 0.0)

        self.assertEqual([s.slug for s in result.regional], ["buoy"])

    async def test_servers_without_endpoint_are_dropped(self) -> None:
        endpoints = dict(ALL_ENDPOINTS)
        endpoints.pop("MCP_SSFR_URL")
        endpoints.pop("MCP_AGRIVISION_URL")
        registry = _seeded_registry(endpoints)

        result = await registry.get_active_servers_for_location(*ADDIS)

        slugs = [server.slug for server in result.all_servers()]
        self.assertNotIn("ssfr", slugs)
        self.assertNotIn("agrivision", slugs)
        self.assertIn("accuweather", slugs)

    async def test_inactive_or_undeployed_servers_are_skipped(self) -> None:
        registry = _seeded_registry()
        result = await registry.get_active_servers_for_location(*ADDIS)
        slugs = [server.slug for server in result.all_servers()]
        self.assertNotIn("entity-extraction", slugs)
        self.assertNotIn("tomorrow-io", slugs)

    async def test_cyclic_hierarchy_degrades_to_detected_regions(self) -> None:
        store = MemoryCatalogStore(
            regions=[
                Region(id="a", name="A", code="A", level=2, parent_region_id="b",
                       min_lat=0, max_lat=10, min_lon=0, max_lon=10),
                Region(id="b", name="B", code="B", level=1, parent_region_id="a"),
            ],
            servers=[
                ToolServer(slug="s1", name="S1", endpoint_key="S1"),
                ToolServer(slug="s2", name="S2", endpoint_key="S2"),
            ],
            mappings=[
                RegionToolMapping(region_id="a", server_slug="s1", priority=1),
                RegionToolMapping(region_id="b", server_slug="s2", priority=1),
            ],
        )
        registry = ServerRegistry(
            store, EndpointConfig({"S1": "http://s1.test", "S2": "http://s2.test"})
        )

        result = await registry.get_active_servers_for_location(5.0, 5.0)

        self.assertEqual([s.slug for s in result.regional], ["s1"])

    async def test_store_failure_returns_empty_result(self) -> None:
        class BrokenStore(MemoryCatalogStore):
            async def find_global_servers(self):
                raise RuntimeError("database is locked")

        registry = ServerRegistry(BrokenStore(), EndpointConfig(ALL_ENDPOINTS))

        result = await registry.get_active_servers_for_location(*ADDIS)

        self.assertEqual(result.all_servers(), [])
        self.assertEqual(result.detected_regions, [])

    async def test_public_view_hides_endpoint(self) -> None:
        registry = _seeded_registry()
        result = await registry.get_active_servers_for_location(*ADDIS)
        for server in result.all_servers():
            self.assertNotIn("endpoint", server.public_view())

    async def test_list_servers_filters_and_orders(self) -> None:
        registry = _seeded_registry()

        everything = await registry.list_servers()
        weather = await registry.list_servers(category="weather", is_active=True)

        self.assertTrue(everything[0].is_global)
        self.assertEqual(
            [s.slug for s in weather],
            ["accuweather", "edacap", "gap-weather", "weatherapi"],
        )
        self.assertEqual((await registry.get_server("ssfr")).name, "SSFR Fertilizer Recommendations")
        self.assertIsNone(await registry.get_server("missing"))


class SqliteCatalogStoreTests(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.store = SqliteCatalogStore(Path(self._tmp.name) / "catalog.sqlite3")
        self.assertTrue(self.store.is_empty())
        self.store.seed(load_catalog_seed())

    async def asyncTearDown(self) -> None:
        self._tmp.cleanup()

    async def test_matches_memory_store_results(self) -> None:
        memory = _seeded_registry()
        sqlite = ServerRegistry(self.store, EndpointConfig(ALL_ENDPOINTS))

        expected = await memory.get_active_servers_for_location(*ADDIS)
        actual = await sqlite.get_active_servers_for_location(*ADDIS)

        self.assertEqual(
            [(s.slug, s.source_region) for s in actual.regional],
            [(s.slug, s.source_region) for s in expected.regional],
        )
        self.assertEqual(
            sorted(s.slug for s in actual.global_servers),
            sorted(s.slug for s in expected.global_servers),
        )

    async def test_health_status_is_persisted(self) -> None:
        checked_at = datetime(2026, 1, 1, tzinfo=timezone.utc)
        await self.store.update_health_status("ssfr", "healthy", checked_at)

        server = await self.store.get_server("ssfr")

        self.assertEqual(server.health_status, "healthy")
        self.assertEqual(server.last_health_check, checked_at)
        self.assertEqual(server.tools, ["get_fertilizer_recommendation"])

    async def test_connections_are_closed(self) -> None:
        opened = []
        connect = sqlite3.connect

        def tracking_connect(*args, **kwargs):
            conn = connect(*args, check_same_thread=False, **kwargs)
            opened.append(conn)
            return conn

        with patch("advisory_router.infra.catalog_store.sqlite3.connect", side_effect=tracking_connect):
            await self.store.get_server("ssfr")
            await self.store.update_health_status(
                "ssfr", "healthy", datetime(2026, 1, 1, tzinfo=timezone.utc)
            )
            self.assertFalse(self.store.is_empty())

        self.assertEqual(len(opened), 3)
        for conn in opened:
            with self.assertRaisesRegex(sqlite3.ProgrammingError, "closed"):
                conn.execute("SELECT 1")


if __name__ == "__main__":
    unittest.main()
