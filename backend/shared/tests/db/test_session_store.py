"""Tests for SqliteSessionStore: persistence, errors and change publication."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime

import pytest

from shared.dal.errors import (
    ConflictError,
    NotFoundError,
    SessionClosedError,
    StaleWriteError,
    StoreError,
    WriteFailedError,
)
from shared.dal.models import ChangeKind, EntityKind, SessionStatus
from shared.db import SqliteSessionStore

BOARD = tuple(f"s{i}" for i in range(24))


async def _drain(subscription, count: int) -> list:
    return [await asyncio.wait_for(anext(subscription), timeout=1) for _ in range(count)]


class TestSessions:
    @pytest.mark.asyncio
    async def test_create_and_read(self, store):
        created = await store.create_session("Team Bingo", BOARD, "ABCD23")
        assert created.status == SessionStatus.WAITING
        assert created.revision == 0

        assert await store.get_session(created.id) == created
        assert await store.get_session_by_code("ABCD23") == created

    @pytest.mark.asyncio
    async def test_duplicate_code_conflicts(self, store):
        await store.create_session("One", BOARD, "ABCD23")
        with pytest.raises(ConflictError, match="ABCD23"):
            await store.create_session("Two", BOARD, "ABCD23")

    @pytest.mark.asyncio
    async def test_board_must_have_24_statements(self, store):
        with pytest.raises(ValueError, match="exactly 24"):
            await store.create_session("Bingo", BOARD[:20], "ABCD23")

    @pytest.mark.asyncio
    async def test_missing_session(self, store):
        with pytest.raises(NotFoundError):
            await store.get_session("nope")
        with pytest.raises(NotFoundError):
            await store.get_session_by_code("ZZZZ99")

    @pytest.mark.asyncio
    async def test_update_bumps_revision(self, store):
        created = await store.create_session("Bingo", BOARD, "ABCD23")
        updated = await store.update_session(created.id, status=SessionStatus.PLAYING)
        assert updated.status == SessionStatus.PLAYING
        assert updated.revision == 1
        assert updated.board == created.board
        assert (await store.get_session(created.id)).status == SessionStatus.PLAYING

    @pytest.mark.asyncio
    async def test_fixed_fields_cannot_change(self, store):
        created = await store.create_session("Bingo", BOARD, "ABCD23")
        with pytest.raises(ValueError, match="code"):
            await store.update_session(created.id, code="WXYZ78")

    @pytest.mark.asyncio
    async def test_update_missing_session(self, store):
        with pytest.raises(NotFoundError):
            await store.update_session("nope", status=SessionStatus.PLAYING)

    @pytest.mark.asyncio
    async def test_database_error_becomes_write_failure(self, db):
        store = SqliteSessionStore(db)
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        db.connection.execute("DROP TABLE players")
        with pytest.raises(WriteFailedError, match="Failed to create player"):
            await store.create_player(session.id, "Alice")

    @pytest.mark.asyncio
    async def test_read_error_is_a_store_error(self, db):
        store = SqliteSessionStore(db)
        db.connection.execute("DROP TABLE players")
        with pytest.raises(StoreError):
            await store.list_players("s1")


class TestPlayers:
    @pytest.mark.asyncio
    async def test_join_order_and_round(self, store):
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        await store.update_session(session.id, round=3)
        host = await store.create_player(session.id, "Host", is_host=True)
        alice = await store.create_player(session.id, "Alice")

        assert host.join_order == 0
        assert alice.join_order == 1
        assert alice.round == 3
        assert alice.marked_cells == (False,) * 25
        assert [p.id for p in await store.list_players(session.id)] == [host.id, alice.id]

    @pytest.mark.asyncio
    async def test_no_players_once_session_has_started(self, store):
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        await store.create_player(session.id, "Host", is_host=True)
        await store.update_session(session.id, status=SessionStatus.PLAYING)

        with pytest.raises(SessionClosedError, match="not accepting players"):
            await store.create_player(session.id, "Late")
        assert len(await store.list_players(session.id)) == 1

    @pytest.mark.asyncio
    async def test_player_needs_existing_session(self, store):
        with pytest.raises(NotFoundError):
            await store.create_player("nope", "Alice")

    @pytest.mark.asyncio
    async def test_list_players_of_unknown_session_is_empty(self, store):
        assert await store.list_players("nope") == []

    @pytest.mark.asyncio
    async def test_update_player(self, store):
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        player = await store.create_player(session.id, "Alice")
        cells = (True,) * 5 + (False,) * 20
        won_at = datetime(2026, 1, 1, tzinfo=UTC)

        updated = await store.update_player(player.id, marked_cells=cells, has_won=True, won_at=won_at)

        assert updated.revision == 1
        stored = (await store.list_players(session.id))[0]
        assert stored.marked_cells == cells
        assert stored.has_won is True
        assert stored.won_at == won_at

    @pytest.mark.asyncio
    async def test_wrong_round_rejected(self, store):
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        player = await store.create_player(session.id, "Alice")
        await store.reset_players(session.id, 1)

        with pytest.raises(StaleWriteError):
            await store.update_player(player.id, expected_round=0, marked_cells=(True,) + (False,) * 24)
        assert (await store.list_players(session.id))[0].marked_cells[0] is False

        applied = await store.update_player(player.id, expected_round=1, marked_cells=(True,) + (False,) * 24)
        assert applied.marked_cells[0] is True

    @pytest.mark.asyncio
    async def test_stale_write_is_a_write_failure(self):
        assert issubclass(StaleWriteError, WriteFailedError)

    @pytest.mark.asyncio
    async def test_marked_cells_length_validated(self, store):
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        player = await store.create_player(session.id, "Alice")
        with pytest.raises(ValueError, match="25 entries"):
            await store.update_player(player.id, marked_cells=(True,) * 24)

    @pytest.mark.asyncio
    async def test_is_host_cannot_change(self, store):
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        player = await store.create_player(session.id, "Alice")
        with pytest.raises(ValueError, match="is_host"):
            await store.update_player(player.id, is_host=True)

    @pytest.mark.asyncio
    async def test_reset_clears_every_player(self, store):
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        for name in ("Host", "Alice"):
            player = await store.create_player(session.id, name)
            await store.update_player(
                player.id,
                marked_cells=(True,) * 25,
                has_won=True,
                won_at=datetime(2026, 1, 1, tzinfo=UTC),
            )

        cleared = await store.reset_players(session.id, 1)

        assert len(cleared) == 2
        for player in await store.list_players(session.id):
            assert player.marked_cells == (False,) * 25
            assert player.has_won is False
            assert player.won_at is None
            assert player.round == 1
            assert player.revision == 2


class TestChangePublication:
    @pytest.mark.asyncio
    async def test_writes_are_published_in_order(self, store):
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        async with store.subscribe(session.id) as subscription:
            player = await store.create_player(session.id, "Alice")
            await store.update_player(player.id, name="Alicia")
            await store.update_session(session.id, status=SessionStatus.PLAYING)

            events = await _drain(subscription, 3)

        assert [(e.entity, e.kind) for e in events] == [
            (EntityKind.PLAYER, ChangeKind.INSERT),
            (EntityKind.PLAYER, ChangeKind.UPDATE),
            (EntityKind.SESSION, ChangeKind.UPDATE),
        ]
        assert events[1].record.name == "Alicia"
        assert events[2].record.status == SessionStatus.PLAYING

    @pytest.mark.asyncio
    async def test_reset_publishes_each_player(self, store):
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        await store.create_player(session.id, "Host")
        await store.create_player(session.id, "Alice")
        async with store.subscribe(session.id) as subscription:
            await store.reset_players(session.id, 1)
            events = await _drain(subscription, 2)
        assert all(e.record.round == 1 for e in events)

    @pytest.mark.asyncio
    async def test_other_sessions_not_delivered(self, store):
        one = await store.create_session("One", BOARD, "ABCD23")
        two = await store.create_session("Two", BOARD, "WXYZ78")
        async with store.subscribe(one.id) as subscription:
            await store.create_player(two.id, "Stranger")
            await store.create_player(one.id, "Alice")
            (event,) = await _drain(subscription, 1)
        assert event.record.name == "Alice"

    @pytest.mark.asyncio
    async def test_failed_write_publishes_nothing(self, store):
        session = await store.create_session("Bingo", BOARD, "ABCD23")
        player = await store.create_player(session.id, "Alice")
        await store.reset_players(session.id, 1)
        async with store.subscribe(session.id) as subscription:
            with pytest.raises(StaleWriteError):
                await store.update_player(player.id, expected_round=0, name="Late")
            await store.update_session(session.id, name="Marker")
            (event,) = await _drain(subscription, 1)
        assert event.entity == EntityKind.SESSION
