from __future__ import annotations

import pytest

from grue.engine.deltas import (
    QUEST_COMPLETION_REWARD,
    QUEST_PROGRESS_STEP,
    NpcInteraction,
    QuestUpdate,
    ResourceChanges,
    StateDelta,
    apply_delta,
    apply_quest_update,
    delta_from_snapshot,
)
from grue.errors import InvariantViolation
from grue.state import new_game_state
from grue.world.models import World
from grue.world.mutations import require_room


def test_quest_start_is_idempotent(world: World) -> None:
    state = new_game_state("start")
    start = QuestUpdate(quest_id="q1", action="start")
    assert apply_quest_update(state, world, start) is True
    assert apply_quest_update(state, world, start) is False
    assert [q.id for q in state.active_quests] == ["q1"]
    assert state.active_quests[0].name == "Find the Light"


def test_quest_progress_caps_and_complete_rewards(world: World) -> None:
    state = new_game_state("start")
    apply_quest_update(state, world, QuestUpdate(quest_id="q1", action="start"))
    apply_quest_update(state, world, QuestUpdate(quest_id="q1", action="progress", progress_note="lit"))
    assert state.active_quests[0].progress == QUEST_PROGRESS_STEP
    assert state.active_quests[0].notes == ["lit"]
    for _ in range(6):
        apply_quest_update(state, world, QuestUpdate(quest_id="q1", action="progress"))
    assert state.active_quests[0].progress == 100

    state.turn_count = 7
    assert apply_quest_update(state, world, QuestUpdate(quest_id="q1", action="complete")) is True
    assert state.active_quests == []
    assert state.completed_quests[0].completed_at == 7
    assert state.score == QUEST_COMPLETION_REWARD

    # Completed quests never restart and never complete twice.
    assert apply_quest_update(state, world, QuestUpdate(quest_id="q1", action="start")) is False
    assert apply_quest_update(state, world, QuestUpdate(quest_id="q1", action="complete")) is False
    assert state.score == QUEST_COMPLETION_REWARD


def test_progress_on_inactive_quest_is_ignored(world: World) -> None:
    state = new_game_state("start")
    assert apply_quest_update(state, world, QuestUpdate(quest_id="q1", action="progress")) is False
    assert state.active_quests == []


def test_apply_delta_leaves_inputs_untouched(world: World) -> None:
    state = new_game_state("start")
    delta = StateDelta(
        new_room_id="hall",
        inventory_add=["torch"],
        npc_interactions=[NpcInteraction(npc_id="hermit", relationship_change=2, unlocked_dialogue="secret")],
        resource_changes=ResourceChanges(gold=-30, health=-150),
        game_flags={"door_open": True},
        score_change=5,
    )
    applied = apply_delta(state, world, delta)

    assert applied.changed
    assert applied.state.current_room == "hall"
    assert applied.state.visited_rooms == ["start", "hall"]
    assert applied.state.inventory == ["torch"]
    assert applied.state.health == 0
    assert applied.state.resources["gold"] == 70
    assert applied.state.npc_states["hermit"].relationship == 2
    assert applied.state.npc_states["hermit"].unlocked_dialogue == ["secret"]
    assert applied.state.game_flags == {"door_open": True}
    assert applied.state.score == 5

    assert state.current_room == "start" and state.inventory == []
    assert require_room(world, "start").items == ["torch"]


def test_inventory_add_takes_item_out_of_current_room(world: World) -> None:
    state = new_game_state("start")
    applied = apply_delta(state, world, StateDelta(inventory_add=["torch"]))
    assert applied.state.inventory == ["torch"]
    assert require_room(applied.world, "start").items == []


def test_inventory_remove_of_unheld_item_is_ignored(world: World) -> None:
    state = new_game_state("start")
    applied = apply_delta(state, world, StateDelta(inventory_remove=["crown"]))
    assert not applied.changed
    assert applied.state.inventory == []


def test_unknown_room_references_are_invariant_violations(world: World) -> None:
    state = new_game_state("start")
    with pytest.raises(InvariantViolation):
        apply_delta(state, world, StateDelta(new_room_id="attic"))
    with pytest.raises(InvariantViolation):
        apply_delta(state, world, StateDelta(room_updates={"attic": ["dust"]}))
    assert state.current_room == "start"


def test_room_updates_replace_item_lists(world: World) -> None:
    state = new_game_state("start")
    applied = apply_delta(state, world, StateDelta(room_updates={"hall": ["lantern"]}))
    assert applied.room_updates == {"hall": ["lantern"]}
    assert require_room(applied.world, "hall").items == ["lantern"]


def test_delta_from_snapshot_is_a_multiset_diff() -> None:
    before = new_game_state("start")
    before.inventory = ["coin", "coin", "rope"]
    before.score = 10
    delta = delta_from_snapshot(before, current_room="hall", inventory=["coin", "torch"], health=90, score=25)
    assert delta.new_room_id == "hall"
    assert delta.inventory_add == ["torch"]
    assert sorted(delta.inventory_remove) == ["coin", "rope"]
    assert delta.resource_changes.health == -10
    assert delta.score_change == 15

    unchanged = delta_from_snapshot(before, current_room="start", inventory=None, health=None, score=None)
    assert unchanged.new_room_id is None and unchanged.inventory_add == [] and unchanged.score_change == 0


def test_move_without_connecting_exit_is_ignored(world: World) -> None:
    world.rooms.append(world.rooms[1].model_copy(update={"id": "vault", "name": "Vault", "exits": {}}))
    state = new_game_state("start")
    applied = apply_delta(state, world, StateDelta(new_room_id="vault", score_change=1))
    assert applied.state.current_room == "start"
    assert applied.state.visited_rooms == ["start"]
    assert applied.state.score == 1


def test_room_update_cannot_restore_a_carried_item(world: World) -> None:
    state = new_game_state("start")
    taken = apply_delta(state, world, StateDelta(inventory_add=["torch"]))
    applied = apply_delta(taken.state, taken.world, StateDelta(room_updates={"start": ["torch", "rope"]}))
    assert applied.state.inventory == ["torch"]
    assert require_room(applied.world, "start").items == ["rope"]
    assert applied.room_updates == {"start": ["rope"]}


def test_take_then_move_picks_item_from_starting_room(world: World) -> None:
    state = new_game_state("start")
    applied = apply_delta(state, world, StateDelta(new_room_id="hall", inventory_add=["torch"]))
    assert applied.state.current_room == "hall"
    assert applied.state.inventory == ["torch"]
    assert require_room(applied.world, "start").items == []
