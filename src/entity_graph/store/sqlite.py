"""
SQLite persistence adapter.

One row per entity holding its JSON record, plus a ``refs`` table mirroring
every slot reference so ``referrers`` is an indexed lookup instead of a scan.
Scalar attributes must be JSON-native; value objects are stored via
``model_dump`` and rebuilt from the registered entity type.
"""

from __future__ import annotations

import json
import logging
import sqlite3
import time
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path

from ..errors import NotFound
from ..mapping.registry import RelationshipRegistry
from ..model.entity import Entity, EntityKey

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS entities (
  type TEXT NOT NULL,
  id INTEGER NOT NULL,
  record_json TEXT NOT NULL,
  updated_at REAL NOT NULL,
  PRIMARY KEY (type, id)
);

CREATE TABLE IF NOT EXISTS refs (
  src_type TEXT NOT NULL,
  src_id INTEGER NOT NULL,
  slot TEXT NOT NULL,
  position INTEGER NOT NULL,
  dst_type TEXT NOT NULL,
  dst_id INTEGER NOT NULL,
  PRIMARY KEY (src_type, src_id, slot, position)
);

-- id counters; rows only ever move forward
CREATE TABLE IF NOT EXISTS sequences (
  type TEXT PRIMARY KEY,
  last_id INTEGER NOT NULL
);

CREATE INDEX IF NOT EXISTS idx_refs_dst ON refs(dst_type, dst_id);
"""


@dataclass
class SQLiteStore:
    path: str
    registry: RelationshipRegistry
    _depth: int = field(default=0, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.path != ":memory:":
            p = Path(self.path).expanduser()
            p.parent.mkdir(parents=True, exist_ok=True)
            self.path = str(p)
        # autocommit; transactions are explicit BEGIN/COMMIT
        self.conn = sqlite3.connect(self.path, isolation_level=None)
        self.conn.executescript(SCHEMA)
        logger.info(f"SQLite store ready at {self.path}")

    def close(self) -> None:
        self.conn.close()

    def allocate_id(self, type_name: str) -> int:
        cur = self.conn.cursor()
        cur.execute("INSERT OR IGNORE INTO sequences(type, last_id) VALUES (?, 0)", (type_name,))
        cur.execute("UPDATE sequences SET last_id = last_id + 1 WHERE type = ?", (type_name,))
        row = cur.execute("SELECT last_id FROM sequences WHERE type = ?", (type_name,)).fetchone()
        return int(row[0])

    def _bump_sequence(self, type_name: str, entity_id: int) -> None:
        self.conn.execute(
            "INSERT INTO sequences(type, last_id) VALUES (?, ?) "
            "ON CONFLICT(type) DO UPDATE SET last_id = MAX(last_id, excluded.last_id)",
            (type_name, entity_id),
        )

    def load(self, type_name: str, entity_id: int) -> Entity:
        row = self.conn.execute(
            "SELECT record_json FROM entities WHERE type = ? AND id = ?", (type_name, entity_id)
        ).fetchone()
        if row is None:
            raise NotFound(type_name, entity_id)
        return Entity.from_record(self.registry.entity_type(type_name), json.loads(row[0]))

    def exists(self, type_name: str, entity_id: int) -> bool:
        row = self.conn.execute(
            "SELECT 1 FROM entities WHERE type = ? AND id = ?", (type_name, entity_id)
        ).fetchone()
        return row is not None

    def store(self, entity: Entity) -> int:
        if entity.id is None:
            entity.id = self.allocate_id(entity.type_name)
        record = entity.to_record()
        with self.transaction():
            self.conn.execute(
                "INSERT OR REPLACE INTO entities(type, id, record_json, updated_at) VALUES (?, ?, ?, ?)",
                (entity.type_name, entity.id, json.dumps(record, ensure_ascii=False), time.time()),
            )
            self.conn.execute(
                "DELETE FROM refs WHERE src_type = ? AND src_id = ?", (entity.type_name, entity.id)
            )
            rows = [
                (entity.type_name, entity.id, slot_name, pos, t, i)
                for slot_name, keys in record["slots"].items()
                for pos, (t, i) in enumerate(keys)
            ]
            self.conn.executemany(
                "INSERT INTO refs(src_type, src_id, slot, position, dst_type, dst_id) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                rows,
            )
            self._bump_sequence(entity.type_name, entity.id)
        return entity.id

    def erase(self, type_name: str, entity_id: int) -> None:
        with self.transaction():
            cur = self.conn.execute(
                "DELETE FROM entities WHERE type = ? AND id = ?", (type_name, entity_id)
            )
            if cur.rowcount == 0:
                raise NotFound(type_name, entity_id)
            self.conn.execute("DELETE FROM refs WHERE src_type = ? AND src_id = ?", (type_name, entity_id))

    def scan(self, type_name: str) -> Iterator[Entity]:
        ids = [
            r[0]
            for r in self.conn.execute(
                "SELECT id FROM entities WHERE type = ? ORDER BY id", (type_name,)
            ).fetchall()
        ]
        for entity_id in ids:
            try:
                yield self.load(type_name, entity_id)
            except NotFound:
                # erased since the id list was read
                continue

    def count(self, type_name: str) -> int:
        row = self.conn.execute("SELECT COUNT(*) FROM entities WHERE type = ?", (type_name,)).fetchone()
        return int(row[0])

    def referrers(self, key: EntityKey) -> list[tuple[EntityKey, str]]:
        rows = self.conn.execute(
            "SELECT DISTINCT src_type, src_id, slot FROM refs WHERE dst_type = ? AND dst_id = ? "
            "ORDER BY src_type, src_id, slot",
            (key.type_name, key.id),
        ).fetchall()
        return [(EntityKey(t, int(i)), slot) for t, i, slot in rows]

    @contextmanager
    def transaction(self) -> Iterator[None]:
        if self._depth == 0:
            self.conn.execute("BEGIN")
        self._depth += 1
        try:
            yield
        except BaseException:
            self._depth -= 1
            if self._depth == 0:
                self.conn.execute("ROLLBACK")
                logger.warning("SQLite transaction rolled back")
            raise
        else:
            self._depth -= 1
            if self._depth == 0:
                self.conn.execute("COMMIT")
