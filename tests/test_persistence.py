from __future__ import annotations

import fakeredis
import pytest
import redis

from grue.errors import PersistenceError
from grue.persistence import GameRepository, PersistenceWriter
from grue.state import new_game_state
from grue.world.models import World


@pytest.fixture()
def repo() -> GameRepository:
    return GameRepository(fakeredis.FakeRedis(decode_responses=True))


def test_world_round_trip_and_user_listing(repo: GameRepository, world: World) -> None:
    rec1 = repo.save_world(user_id="u1", world=world)
    rec2 = repo.save_world(user_id="u1", world=world.model_copy(update={"title": "Second"}))
    repo.save_world(user_id=None, world=world)
    assert (rec1.id, rec2.id) == ("1", "2")

    loaded = repo.get_world("1")
    assert loaded is not None and loaded.world_data == world
    assert repo.get_world("404") is None

    listed = repo.list_user_worlds("u1")
    assert {w.id for w in listed} == {"1", "2"}
    assert repo.list_user_worlds("nobody") == []


def test_game_state_upsert(repo: GameRepository) -> None:
    state = new_game_state("start")
    repo.save_game_state(user_id="u1", world_id="1", state=state)
    state.inventory.append("torch")
    state.score = 40
    repo.save_game_state(user_id="u1", world_id="1", state=state, continuation_token="resp_7")

    rec = repo.get_game_state(user_id="u1", world_id="1")
    assert rec is not None
    assert rec.inventory == ["torch"] and rec.score == 40
    assert rec.game_state == state
    assert rec.continuation_token == "resp_7"
    assert repo.get_game_state(user_id="u1", world_id="2") is None


def test_action_log_is_newest_first(repo: GameRepository) -> None:
    for cmd in ("look", "go north", "take torch"):
        repo.log_action(user_id="u1", world_id="1", action=cmd, details={"mode": "parser"})
    logs = repo.get_user_logs("u1", count=2)
    assert [a.action for a in logs] == ["take torch", "go north"]
    assert logs[0].details == {"mode": "parser"}
    assert logs[0].world_id == "1"


class _BrokenRedis:
    def __getattr__(self, name: str):  # type: ignore[no-untyped-def]
        def _fail(*args, **kwargs):  # type: ignore[no-untyped-def]
            raise redis.ConnectionError("redis is down")

        return _fail


def test_redis_failures_become_persistence_errors(world: World) -> None:
    broken = GameRepository(_BrokenRedis())  # type: ignore[arg-type]
    with pytest.raises(PersistenceError):
        broken.save_world(user_id="u1", world=world)
    with pytest.raises(PersistenceError):
        broken.get_game_state(user_id="u1", world_id="1")
    with pytest.raises(PersistenceError):
        broken.log_action(user_id="u1", world_id=None, action="look", details={})


@pytest.mark.asyncio
async def test_writer_swallows_and_counts_failures(repo: GameRepository) -> None:
    writer = PersistenceWriter()
    broken = GameRepository(_BrokenRedis())  # type: ignore[arg-type]

    writer.schedule("ok", repo.log_action, user_id="u1", world_id="1", action="look", details={})
    writer.schedule("bad", broken.log_action, user_id="u1", world_id="1", action="look", details={})
    await writer.drain()

    assert writer.failures == 1
    assert writer.pending == 0
    assert len(repo.get_user_logs("u1")) == 1
