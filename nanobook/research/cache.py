"""SQLite-backed cache of research records keyed by normalized topic."""

import atexit
import json
import logging
import os
import sqlite3
import time
from typing import Optional

from nanobook.config import RESEARCH_CACHE_MAX_ENTRIES, RESEARCH_CACHE_PATH
from nanobook.errors import SchemaValidationError
from nanobook.models import ResearchRecord
from nanobook.schema import validate
from nanobook.utils import normalize_topic

logger = logging.getLogger(__name__)


class ResearchCache:
    """Keeps the ``max_entries`` most recently written records.

    A write is a full replace. A row that no longer parses or validates is
    deleted and reported as a miss.
    """

    def __init__(self, db_path: str = None, max_entries: int = RESEARCH_CACHE_MAX_ENTRIES):
        if db_path is None:
            db_path = RESEARCH_CACHE_PATH
        self.db_path = db_path
        self.max_entries = max_entries
        self._closed = False

        if db_path != ":memory:" and os.path.dirname(db_path):
            os.makedirs(os.path.dirname(db_path), exist_ok=True)
        self.conn = sqlite3.connect(db_path)
        self.conn.execute(
            "CREATE TABLE IF NOT EXISTS research_cache "
            "(topic_key TEXT PRIMARY KEY, data TEXT, stored_at REAL)"
        )
        self.conn.commit()

        atexit.register(self.close)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def get(self, topic: str) -> Optional[ResearchRecord]:
        key = normalize_topic(topic)
        row = self.conn.execute(
            "SELECT data FROM research_cache WHERE topic_key = ?", (key,)
        ).fetchone()
        if not row:
            return None
        try:
            record = validate("research", json.loads(row[0]))
        except (json.JSONDecodeError, TypeError, SchemaValidationError) as e:
            logger.warning("Research cache entry for '%s' is corrupted (%s); discarding", key, e)
            self.delete(topic)
            return None
        logger.info("Research cache hit for '%s'", key)
        return record

    def put(self, topic: str, record: ResearchRecord) -> None:
        key = normalize_topic(topic)
        self.conn.execute(
            "INSERT OR REPLACE INTO research_cache (topic_key, data, stored_at) VALUES (?, ?, ?)",
            (key, json.dumps(record.to_json_dict()), time.time()),
        )
        evicted = self.conn.execute(
            "DELETE FROM research_cache WHERE topic_key NOT IN ("
            "SELECT topic_key FROM research_cache ORDER BY stored_at DESC, rowid DESC LIMIT ?)",
            (self.max_entries,),
        ).rowcount
        self.conn.commit()
        if evicted:
            logger.info("Research cache: evicted %d old entries", evicted)

    def delete(self, topic: str) -> None:
        self.conn.execute(
            "DELETE FROM research_cache WHERE topic_key = ?", (normalize_topic(topic),)
        )
        self.conn.commit()

    def __len__(self):
        return self.conn.execute("SELECT COUNT(*) FROM research_cache").fetchone()[0]

    def close(self):
        if not self._closed:
            self._closed = True
            self.conn.close()
