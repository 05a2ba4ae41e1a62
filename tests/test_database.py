"""
tests/test_database.py — Storage layer
======================================
Schema creation, pre-flight validation and the transaction helper.
"""

import pytest

import aiosqlite

from database import (
    SCHEMA_VERSION,
    get_core_tables,
    init_db,
    init_db_once,
    reset_db_init_flag,
    transaction,
    validate_db_connectivity,
    validate_schema,
)
from services.errors import InvalidState, StorageError


class TestStartupChecks:
    """Pre-flight checks used by engine.run_startup_checks()."""

    @pytest.mark.asyncio
    async def test_db_connectivity_passes_for_valid_path(self, tmp_path):
        result = await validate_db_connectivity(str(tmp_path / "engine.db"))
        assert result is True

    @pytest.mark.asyncio
    async def test_schema_creates_core_tables(self, test_db):
        status = await validate_schema(test_db)

        assert set(status) == set(await get_core_tables())
        assert all(status.values())

    @pytest.mark.asyncio
    async def test_schema_version_recorded(self, test_db):
        cursor = await test_db.execute(
            "SELECT value FROM meta WHERE key = 'schema_version'"
        )
        row = await cursor.fetchone()
        assert row["value"] == str(SCHEMA_VERSION)

    @pytest.mark.asyncio
    async def test_init_db_on_file(self, tmp_path):
        path = str(tmp_path / "file.db")
        await init_db(path)

        async with aiosqlite.connect(path) as db:
            status = await validate_schema(db)
        assert all(status.values())

    @pytest.mark.asyncio
    async def test_init_db_once_is_idempotent(self, tmp_path):
        reset_db_init_flag()
        path = str(tmp_path / "once.db")
        try:
            await init_db_once(path)
            assert await init_db_once(path) == 0.0
        finally:
            reset_db_init_flag()


class TestTransaction:
    """Atomic blocks: commit on success, rollback on any error."""

    async def _count(self, db):
        cursor = await db.execute("SELECT COUNT(*) FROM tournaments")
        return (await cursor.fetchone())[0]

    async def _insert(self, db, name="Cup"):
        await db.execute(
            """
            INSERT INTO tournaments (name, game, max_participants, creator_id)
            VALUES (?, 'Chess', 8, 'creator-1')
            """,
            (name,),
        )

    @pytest.mark.asyncio
    async def test_commit_on_success(self, test_db):
        async with transaction(test_db):
            await self._insert(test_db)

        assert await self._count(test_db) == 1

    @pytest.mark.asyncio
    async def test_domain_error_rolls_back(self, test_db):
        with pytest.raises(InvalidState):
            async with transaction(test_db):
                await self._insert(test_db)
                raise InvalidState("boom")

        assert await self._count(test_db) == 0

    @pytest.mark.asyncio
    async def test_storage_error_wraps_sqlite_error(self, test_db):
        with pytest.raises(StorageError) as exc:
            async with transaction(test_db):
                await self._insert(test_db)
                await test_db.execute("INSERT INTO no_such_table VALUES (1)")

        assert exc.value.kind == "StorageError"
        assert await self._count(test_db) == 0

    @pytest.mark.asyncio
    async def test_check_constraint_rejects_oversized_tournament(self, test_db):
        with pytest.raises(StorageError):
            async with transaction(test_db):
                await test_db.execute(
                    """
                    INSERT INTO tournaments (name, game, max_participants, creator_id)
                    VALUES ('Huge', 'Chess', 1000, 'creator-1')
                    """
                )

    @pytest.mark.asyncio
    async def test_connection_usable_after_rollback(self, test_db):
        with pytest.raises(InvalidState):
            async with transaction(test_db):
                raise InvalidState("first")

        async with transaction(test_db):
            await self._insert(test_db, "Second")

        assert await self._count(test_db) == 1
