"""Tests for query executors."""

import json

import httpx
import pytest

from playstats.api.database import (
    D1Database,
    SQLiteDatabase,
    database_from_settings,
)
from playstats.api.errors import UpstreamQueryError
from playstats.api.settings import DatabaseSettings


class TestSQLiteDatabase:
    """Test the SQLite executor."""

    @pytest.mark.asyncio
    async def test_first_and_all(self, db_path):
        db = SQLiteDatabase(db_path)
        try:
            row = await db.prepare("SELECT COUNT(*) AS count FROM tracks").first()
            assert row == {"count": 5}

            rows = (
                await db.prepare(
                    "SELECT track FROM tracks WHERE artist = ? ORDER BY track"
                )
                .bind("Radiohead")
                .all()
            )
            assert rows == [{"track": "Airbag"}, {"track": "Karma Police"}]

            row = await db.prepare("SELECT * FROM tracks WHERE track = ?").bind("Creep").first()
            assert row is None
        finally:
            await db.close()

    @pytest.mark.asyncio
    async def test_bind_returns_new_statement(self):
        db = SQLiteDatabase()
        statement = db.prepare("SELECT ? AS value")

        assert await statement.bind(1).first() == {"value": 1}
        assert await statement.bind("a").first() == {"value": "a"}
        assert statement.params == ()

        await db.close()

    @pytest.mark.asyncio
    async def test_memory_database_persists(self):
        db = SQLiteDatabase()
        await db.executescript(
            "CREATE TABLE t (x INTEGER); INSERT INTO t VALUES (1), (2);"
        )
        assert await db.prepare("SELECT SUM(x) AS count FROM t").first() == {"count": 3}
        await db.close()

    @pytest.mark.asyncio
    async def test_integer_overflow(self):
        db = SQLiteDatabase()
        with pytest.raises(UpstreamQueryError):
            await db.prepare("SELECT ? AS value").bind(10**30).first()
        await db.close()

    @pytest.mark.asyncio
    async def test_errors(self):
        db = SQLiteDatabase()
        with pytest.raises(UpstreamQueryError) as excinfo:
            await db.prepare("SELECT * FROM missing_table").all()
        assert "missing_table" in str(excinfo.value)
        await db.close()


def d1_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestD1Database:
    """Test the D1 HTTP executor."""

    @pytest.mark.asyncio
    async def test_query(self):
        requests = []

        def handler(request: httpx.Request) -> httpx.Response:
            requests.append(request)
            return httpx.Response(
                200,
                json={
                    "success": True,
                    "errors": [],
                    "result": [{"results": [{"count": 46}], "success": True}],
                },
            )

        db = D1Database("acc", "db", "token", client=d1_client(handler))
        row = await db.prepare("SELECT SUM(play_count) AS count FROM tracks WHERE x = ?").bind(1).first()
        assert row == {"count": 46}

        (request,) = requests
        assert request.method == "POST"
        assert str(request.url) == (
            "https://api.cloudflare.com/client/v4/accounts/acc/d1/database/db/query"
        )
        assert json.loads(request.content) == {
            "sql": "SELECT SUM(play_count) AS count FROM tracks WHERE x = ?",
            "params": [1],
        }

        await db.close()

    @pytest.mark.asyncio
    async def test_empty_result(self):
        def handler(request):
            return httpx.Response(200, json={"success": True, "result": []})

        db = D1Database("acc", "db", "token", client=d1_client(handler))
        assert await db.prepare("SELECT 1").all() == []
        assert await db.prepare("SELECT 1").first() is None

    @pytest.mark.asyncio
    async def test_query_errors(self):
        def handler(request):
            return httpx.Response(
                400,
                json={"success": False, "errors": [{"code": 7500, "message": "no such table: foo"}]},
            )

        db = D1Database("acc", "db", "token", client=d1_client(handler))
        with pytest.raises(UpstreamQueryError) as excinfo:
            await db.prepare("SELECT * FROM foo").all()
        assert str(excinfo.value) == "no such table: foo"

    @pytest.mark.asyncio
    async def test_transport_errors(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        db = D1Database("acc", "db", "token", client=d1_client(handler))
        with pytest.raises(UpstreamQueryError):
            await db.prepare("SELECT 1").all()

        def not_json(request):
            return httpx.Response(502, content=b"<html>Bad gateway</html>")

        db = D1Database("acc", "db", "token", client=d1_client(not_json))
        with pytest.raises(UpstreamQueryError):
            await db.prepare("SELECT 1").all()


def test_database_from_settings():
    assert isinstance(database_from_settings(DatabaseSettings()), SQLiteDatabase)

    db = database_from_settings(
        DatabaseSettings(
            backend="d1",
            d1_account_id="acc",
            d1_database_id="db",
            d1_api_token="token",
        )
    )
    assert isinstance(db, D1Database)
    assert db.url.endswith("/accounts/acc/d1/database/db/query")


def test_executor_requires_execute():
    from playstats.api.database import _Executor

    class NoExecute(_Executor):
        pass

    with pytest.raises(TypeError):
        NoExecute()
