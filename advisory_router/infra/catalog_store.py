"""Region / tool-server catalog stores (read path plus health writes)."""

from __future__ import annotations

import asyncio
import json
import sqlite3
from contextlib import closing, contextmanager
from datetime import datetime
from functools import lru_cache
from pathlib import Path
from threading import Lock
from typing import Dict, Iterable, Iterator, List, Optional

from pydantic import BaseModel, Field

from ..schemas.models import (
    MappingRecord,
    Region,
    RegionToolMapping,
    ToolServer,
)
from .config import get_config


DEFAULT_CATALOG_PATH = Path(__file__).resolve().parents[1] / "resources" / "catalog.json"


class CatalogSeed(BaseModel):
    regions: List[Region] = Field(default_factory=list)
    servers: List[ToolServer] = Field(default_factory=list)
    mappings: List[RegionToolMapping] = Field(default_factory=list)


def load_catalog_seed(path: Optional[Path] = None) -> CatalogSeed:
    path = Path(path) if path else DEFAULT_CATALOG_PATH
    return CatalogSeed.model_validate_json(path.read_text(encoding="utf-8"))


class CatalogStore:
    async def find_regions_containing(self, lat: float, lon: float) -> List[Region]:
        raise NotImplementedError

    async def find_region_mappings(self, region_ids: Iterable[str]) -> List[MappingRecord]:
        raise NotImplementedError

    async def find_global_servers(self) -> List[ToolServer]:
        raise NotImplementedError

    async def find_parent_region(self, region_id: str) -> Optional[Region]:
        raise NotImplementedError

    async def list_servers(self) -> List[ToolServer]:
        raise NotImplementedError

    async def get_server(self, slug: str) -> Optional[ToolServer]:
        raise NotImplementedError

    async def update_health_status(
        self, slug: str, status: str, checked_at: datetime
    ) -> None:
        raise NotImplementedError


class MemoryCatalogStore(CatalogStore):
    def __init__(
        self,
        regions: Iterable[Region] = (),
        servers: Iterable[ToolServer] = (),
        mappings: Iterable[RegionToolMapping] = (),
    ) -> None:
        self._regions: Dict[str, Region] = {region.id: region for region in regions}
        self._servers: Dict[str, ToolServer] = {server.slug: server for server in servers}
        self._mappings: List[RegionToolMapping] = list(mappings)

    @classmethod
    def from_seed(cls, seed: CatalogSeed) -> "MemoryCatalogStore":
        return cls(seed.regions, seed.servers, seed.mappings)

    async def find_regions_containing(self, lat: float, lon: float) -> List[Region]:
        matches = [
            region
            for region in self._regions.values()
            if region.is_active and region.contains(lat, lon)
        ]
        return sorted(matches, key=lambda region: region.level, reverse=True)

    async def find_region_mappings(self, region_ids: Iterable[str]) -> List[MappingRecord]:
        wanted = set(region_ids)
        records = []
        for mapping in self._mappings:
            if not mapping.is_active or mapping.region_id not in wanted:
                continue
            region = self._regions.get(mapping.region_id)
            server = self._servers.get(mapping.server_slug)
            if region is None or server is None:
                continue
            records.append(MappingRecord(mapping=mapping, region=region, server=server))
        return sorted(records, key=lambda record: record.mapping.priority)

    async def find_global_servers(self) -> List[ToolServer]:
        return [
            server
            for server in self._servers.values()
            if server.is_global and server.is_active and server.is_deployed
        ]

    async def find_parent_region(self, region_id: str) -> Optional[Region]:
        region = self._regions.get(region_id)
        if region is None or not region.parent_region_id:
            return None
        return self._regions.get(region.parent_region_id)

    async def list_servers(self) -> List[ToolServer]:
        return list(self._servers.values())

    async def get_server(self, slug: str) -> Optional[ToolServer]:
        return self._servers.get(slug)

    async def update_health_status(
        self, slug: str, status: str, checked_at: datetime
    ) -> None:
        server = self._servers.get(slug)
        if server is None:
            return
        self._servers[slug] = server.model_copy(
            update={"health_status": status, "last_health_check": checked_at}
        )


_REGION_COLUMNS = (
    "id, name, code, level, min_lat, max_lat, min_lon, max_lon, "
    "parent_region_id, is_active"
)
_SERVER_COLUMNS = (
    "slug, name, category, description, tools, capabilities, is_global, "
    "is_active, is_deployed, endpoint_key, health_status, last_health_check"
)


def _row_to_region(row: tuple) -> Region:
    keys = [name.strip() for name in _REGION_COLUMNS.split(",")]
    payload = dict(zip(keys, row))
    payload["is_active"] = bool(payload["is_active"])
    return Region(**payload)


def _row_to_server(row: tuple) -> ToolServer:
    keys = [name.strip() for name in _SERVER_COLUMNS.split(",")]
    payload = dict(zip(keys, row))
    payload["tools"] = json.loads(payload["tools"] or "[]")
    payload["capabilities"] = json.loads(payload["capabilities"] or "[]")
    for flag in ("is_global", "is_active", "is_deployed"):
        payload[flag] = bool(payload[flag])
    return ToolServer(**payload)


class SqliteCatalogStore(CatalogStore):
    def __init__(self, path: Path) -> None:
        self._path = path
        self._lock = Lock()
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        with closing(sqlite3.connect(self._path)) as conn, conn:
            yield conn

    def _init_db(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._connect() as conn:
            conn.execute(
                "CREATE TABLE IF NOT EXISTS regions ("
                "id TEXT PRIMARY KEY, "
                "name TEXT NOT NULL, "
                "code TEXT NOT NULL UNIQUE, "
                "level INTEGER NOT NULL DEFAULT 0, "
                "min_lat REAL, max_lat REAL, min_lon REAL, max_lon REAL, "
                "parent_region_id TEXT, "
                "is_active INTEGER NOT NULL DEFAULT 1)"
            )
            conn.execute(
                "CREATE TABLE IF NOT EXISTS tool_servers ("
                "slug TEXT PRIMARY KEY, "
                "name TEXT NOT NULL, "
                "category TEXT NOT NULL, "
                "description TEXT, "
                "tools TEXT NOT NULL DEFAULT '[]', "
                "capabilities TEXT NOT NULL DEFAULT '[]', "
                "is_global INTEGER NOT NULL DEFAULT 0, "
                "is_active INTEGER NOT NULL DEFAULT 1, "
                "is_deployed INTEGER NOT NULL DEFAULT 1, "
                "endpoint_key TEXT, "
                "health_status TEXT NOT NULL DEFAULT 'unknown', "
                "last_health_check TEXT)"
            )
            conn.execute(
                "CREATE TABLE IF NOT EXISTS region_tool_mappings ("
                "region_id TEXT NOT NULL, "
                "server_slug TEXT NOT NULL, "
                "priority INTEGER NOT NULL DEFAULT 0, "
                "is_active INTEGER NOT NULL DEFAULT 1, "
                "PRIMARY KEY (region_id, server_slug))"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_region_bounds "
                "ON regions (min_lat, max_lat, min_lon, max_lon)"
            )

    def is_empty(self) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM tool_servers").fetchone()
        return not row or row[0] == 0

    def seed(self, seed: CatalogSeed) -> None:
        with self._lock, self._connect() as conn:
            for region in seed.regions:
                conn.execute(
                    f"INSERT OR REPLACE INTO regions ({_REGION_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        region.id,
                        region.name,
                        region.code,
                        region.level,
                        region.min_lat,
                        region.max_lat,
                        region.min_lon,
                        region.max_lon,
                        region.parent_region_id,
                        int(region.is_active),
                    ),
                )
            for server in seed.servers:
                conn.execute(
                    f"INSERT OR REPLACE INTO tool_servers ({_SERVER_COLUMNS}) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    (
                        server.slug,
                        server.name,
                        server.category,
                        server.description,
                        json.dumps(server.tools),
                        json.dumps(server.capabilities),
                        int(server.is_global),
                        int(server.is_active),
                        int(server.is_deployed),
                        server.endpoint_key,
                        server.health_status,
                        server.last_health_check.isoformat()
                        if server.last_health_check
                        else None,
                    ),
                )
            for mapping in seed.mappings:
                conn.execute(
                    "INSERT OR REPLACE INTO region_tool_mappings "
                    "(region_id, server_slug, priority, is_active) VALUES (?, ?, ?, ?)",
                    (
                        mapping.region_id,
                        mapping.server_slug,
                        mapping.priority,
                        int(mapping.is_active),
                    ),
                )

    def _fetch_regions_containing(self, lat: float, lon: float) -> List[Region]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_REGION_COLUMNS} FROM regions "
                "WHERE is_active = 1 AND min_lat <= ? AND max_lat >= ? "
                "AND min_lon <= ? AND max_lon >= ? "
                "ORDER BY level DESC",
                (lat, lat, lon, lon),
            ).fetchall()
        return [_row_to_region(row) for row in rows]

    def _fetch_region_mappings(self, region_ids: List[str]) -> List[MappingRecord]:
        if not region_ids:
            return []
        placeholders = ", ".join("?" for _ in region_ids)
        region_cols = ", ".join(
            f"r.{name.strip()}" for name in _REGION_COLUMNS.split(",")
        )
        server_cols = ", ".join(
            f"s.{name.strip()}" for name in _SERVER_COLUMNS.split(",")
        )
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT m.region_id, m.server_slug, m.priority, m.is_active, "
                f"{region_cols}, {server_cols} "
                "FROM region_tool_mappings m "
                "JOIN regions r ON r.id = m.region_id "
                "JOIN tool_servers s ON s.slug = m.server_slug "
                f"WHERE m.is_active = 1 AND m.region_id IN ({placeholders}) "
                "ORDER BY m.priority ASC, m.rowid ASC",
                tuple(region_ids),
            ).fetchall()
        region_width = len(_REGION_COLUMNS.split(","))
        records = []
        for row in rows:
            mapping = RegionToolMapping(
                region_id=row[0],
                server_slug=row[1],
                priority=row[2],
                is_active=bool(row[3]),
            )
            region = _row_to_region(row[4 : 4 + region_width])
            server = _row_to_server(row[4 + region_width :])
            records.append(MappingRecord(mapping=mapping, region=region, server=server))
        return records

    def _fetch_servers(self, where: str = "", params: tuple = ()) -> List[ToolServer]:
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT {_SERVER_COLUMNS} FROM tool_servers {where}", params
            ).fetchall()
        return [_row_to_server(row) for row in rows]

    def _fetch_parent_region(self, region_id: str) -> Optional[Region]:
        with self._connect() as conn:
            row = conn.execute(
                f"SELECT {', '.join('p.' + c.strip() for c in _REGION_COLUMNS.split(','))} "
                "FROM regions r JOIN regions p ON p.id = r.parent_region_id "
                "WHERE r.id = ?",
                (region_id,),
            ).fetchone()
        return _row_to_region(row) if row else None

    def _write_health(self, slug: str, status: str, checked_at: datetime) -> None:
        with self._lock, self._connect() as conn:
            conn.execute(
                "UPDATE tool_servers SET health_status = ?, last_health_check = ? "
                "WHERE slug = ?",
                (status, checked_at.isoformat(), slug),
            )

    async def find_regions_containing(self, lat: float, lon: float) -> List[Region]:
        return await asyncio.to_thread(self._fetch_regions_containing, lat, lon)

    async def find_region_mappings(self, region_ids: Iterable[str]) -> List[MappingRecord]:
        return await asyncio.to_thread(self._fetch_region_mappings, list(region_ids))

    async def find_global_servers(self) -> List[ToolServer]:
        return await asyncio.to_thread(
            self._fetch_servers,
            "WHERE is_global = 1 AND is_active = 1 AND is_deployed = 1",
        )

    async def find_parent_region(self, region_id: str) -> Optional[Region]:
        return await asyncio.to_thread(self._fetch_parent_region, region_id)

    async def list_servers(self) -> List[ToolServer]:
        return await asyncio.to_thread(self._fetch_servers)

    async def get_server(self, slug: str) -> Optional[ToolServer]:
        servers = await asyncio.to_thread(self._fetch_servers, "WHERE slug = ?", (slug,))
        return servers[0] if servers else None

    async def update_health_status(
        self, slug: str, status: str, checked_at: datetime
    ) -> None:
        await asyncio.to_thread(self._write_health, slug, status, checked_at)


def _build_store() -> CatalogStore:
    cfg = get_config()
    seed_path = Path(cfg.catalog_path) if cfg.catalog_path else None
    if cfg.catalog_store == "sqlite":
        if cfg.catalog_db_path:
            path = Path(cfg.catalog_db_path)
        else:
            root = Path(__file__).resolve().parents[2]
            path = root / ".cache" / "catalog.sqlite3"
        store = SqliteCatalogStore(path=path)
        if seed_path is not None or store.is_empty():
            store.seed(load_catalog_seed(seed_path))
        return store
    return MemoryCatalogStore.from_seed(load_catalog_seed(seed_path))


@lru_cache(maxsize=1)
def get_catalog_store() -> CatalogStore:
    return _build_store()
