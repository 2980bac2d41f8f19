"""playstats tests configuration."""

import sqlite3
from datetime import datetime, timezone
from threading import Thread
from typing import Any, Generator

import pytest
from fakeredis import TcpFakeServer
from starlette.testclient import TestClient

ALLOWED_REFERER = "https://blog-vincent.chyu.org/page"

# Fixed "now" for windowed queries
NOW = datetime(2024, 5, 10, 12, 0, tzinfo=timezone.utc)

SCHEMA = """
CREATE TABLE tracks (
    id INTEGER PRIMARY KEY,
    artist TEXT NOT NULL,
    album TEXT NOT NULL,
    album_artist TEXT,
    track TEXT NOT NULL,
    genre TEXT DEFAULT '',
    play_count INTEGER DEFAULT 0
);
CREATE TABLE track_play_records (
    id INTEGER PRIMARY KEY,
    artist TEXT NOT NULL,
    album TEXT NOT NULL,
    album_artist TEXT,
    track TEXT NOT NULL,
    play_time TEXT NOT NULL,
    source TEXT,
    scrobbled INTEGER DEFAULT 0
);
CREATE TABLE genres (
    name TEXT PRIMARY KEY,
    name_zh TEXT,
    play_count INTEGER DEFAULT 0
);
"""

TRACKS = [
    ("Radiohead", "OK Computer", "Radiohead", "Airbag", "Rock", 10),
    ("Radiohead", "OK Computer", "Radiohead", "Karma Police", "Rock", 25),
    ("Björk", "Homogenic", "Björk", "Jóga", "Electronic", 7),
    ("Miles Davis", "Kind of Blue", "Miles Davis", "So What", "Jazz", 3),
    ("Untagged", "Unknown", "Untagged", "Noise", "", 1),
]

PLAY_RECORDS = [
    ("Radiohead", "OK Computer", "Radiohead", "Karma Police", "2024-05-10T03:15:00.000Z", "Apple Music", 0),
    ("Radiohead", "OK Computer", "Radiohead", "Airbag", "2024-05-09T20:30:00.000Z", "applemusic", 1),
    ("Björk", "Homogenic", "Björk", "Jóga", "2024-05-08T10:00:00.000Z", "roon", 1),
    ("Björk", "Homogenic", "Björk", "Jóga", "2024-05-08T10:20:00.000Z", "Roon", 0),
    ("Miles Davis", "Kind of Blue", "Miles Davis", "So What", "2024-04-25T12:00:00.000Z", "audirvana", 1),
    ("Radiohead", "OK Computer", "Radiohead", "Karma Police", "2023-12-01T00:00:00.000Z", "", 1),
    ("Radiohead", "OK Computer", "Radiohead", "Karma Police", "2022-01-01T00:00:00.000Z", None, 1),
]

GENRES = [
    ("Rock", "摇滚", 35),
    ("Electronic", "电子", 7),
]


@pytest.fixture(scope="session")
def redis_server() -> Generator[tuple[str, int], Any, Any]:
    """FakeRedis fixture."""
    server = TcpFakeServer(("127.0.0.1", 0), server_type="redis")
    t = Thread(target=server.serve_forever, daemon=True)
    t.start()
    yield server.server_address[0], server.server_address[1]
    server.shutdown()
    server.server_close()
    t.join()


@pytest.fixture
def db_path(tmp_path) -> str:
    """SQLite database file seeded with listening history."""
    path = str(tmp_path / "playstats.db")
    conn = sqlite3.connect(path)
    with conn:
        conn.executescript(SCHEMA)
        conn.executemany(
            "INSERT INTO tracks (artist, album, album_artist, track, genre, play_count) VALUES (?, ?, ?, ?, ?, ?)",
            TRACKS,
        )
        conn.executemany(
            "INSERT INTO track_play_records (artist, album, album_artist, track, play_time, source, scrobbled) VALUES (?, ?, ?, ?, ?, ?, ?)",
            PLAY_RECORDS,
        )
        conn.executemany(
            "INSERT INTO genres (name, name_zh, play_count) VALUES (?, ?, ?)", GENRES
        )
    conn.close()
    return path


@pytest.fixture
def app(db_path) -> Generator[TestClient, Any, Any]:
    """Create App with a seeded database and in-memory cache."""
    from playstats.api.database import SQLiteDatabase
    from playstats.api.main import create_app
    from playstats.cache.backends import InMemoryCacheBackend

    application = create_app(
        database=SQLiteDatabase(db_path),
        cache_backend=InMemoryCacheBackend(),
        clock=lambda: NOW,
    )

    with TestClient(application, headers={"Referer": ALLOWED_REFERER}) as client:
        yield client


@pytest.fixture
def now() -> datetime:
    """Fixed current time used by the app fixture."""
    return NOW
