from __future__ import annotations

import sqlite3
import time
from pathlib import Path
from typing import Optional


class LocalStore:
    """
    Device-local persistent storage.

    - `audio`: song id -> raw audio bytes
    - `device_config`: small string settings (device mode)
    """

    def __init__(self, db_path: Path) -> None:
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self.db_path)

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS audio (
                    song_id TEXT PRIMARY KEY,
                    data BLOB NOT NULL,
                    cached_at REAL NOT NULL
                )
                """
            )
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS device_config (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL
                )
                """
            )

    # =========================
    # AUDIO
    # =========================

    def get_audio(self, song_id: str) -> Optional[bytes]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT data FROM audio WHERE song_id = ?", (song_id,)
            ).fetchone()
        if row is None:
            return None
        return bytes(row[0])

    def put_audio(self, song_id: str, data: bytes) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO audio (song_id, data, cached_at) VALUES (?, ?, ?)
                ON CONFLICT(song_id) DO UPDATE SET
                    data = excluded.data,
                    cached_at = excluded.cached_at
                """,
                (song_id, sqlite3.Binary(data), time.time()),
            )

    def delete_audio(self, song_id: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM audio WHERE song_id = ?", (song_id,))

    def audio_ids(self) -> list[str]:
        with self._connect() as conn:
            rows = conn.execute("SELECT song_id FROM audio").fetchall()
        return [row[0] for row in rows]

    # =========================
    # DEVICE CONFIG
    # =========================

    def get_config(self, key: str) -> Optional[str]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value FROM device_config WHERE key = ?", (key,)
            ).fetchone()
        return row[0] if row else None

    def set_config(self, key: str, value: str) -> None:
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO device_config (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, value),
            )

    def delete_config(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM device_config WHERE key = ?", (key,))
