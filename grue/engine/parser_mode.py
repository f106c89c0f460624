from __future__ import annotations

import logging

from grue.engine.commands import HELP_TEXT, ParsedCommand, parse_command
from grue.engine.deltas import PUZZLE_REWARD
from grue.engine.outcome import CommandContext, CommandOutcome
from grue.world.models import Room, World
from grue.world.mutations import apply_item_transfer, find_room, fuzzy_index, require_room
from grue.world.navigation import available_exits, normalize_direction


logger = logging.getLogger(__name__)


def npc_name(world: World, ref: str) -> str:
    npc = world.npc(ref)
    return npc.name if npc is not None else ref


def describe_room(world: World, room: Room) -> str:
    lines = [room.name, "", room.description]
    if room.items:
        lines.append("")
        lines.append(f"You can see: {', '.join(world.item_name(i) for i in room.items)}")
    if room.npcs:
        lines.append(f"Present here: {', '.join(npc_name(world, n) for n in room.npcs)}")
    exits = available_exits(room)
    if exits:
        lines.append("")
        lines.append(f"Exits: {', '.join(exits)}")
    return "\n".join(lines).strip()


def _no_exit_message(direction: str, room: Room) -> str:
    msg = f"You can't go {direction} from here."
    exits = available_exits(room)
    if exits:
        msg += f" Available exits: {', '.join(exits)}"
    return msg


def _puzzle_flag(room: Room, idx: int) -> str:
    return f"puzzle:{room.id}:{idx}"


class ParserStrategy:
    """Deterministic verb-table command processing. Never calls the generator."""

    name = "parser"

    async def handle(self, ctx: CommandContext) -> CommandOutcome:
        parsed = parse_command(ctx.command)
        handler = getattr(self, f"_do_{parsed.verb}", None) if parsed.verb else None
        if handler is None:
            return CommandOutcome(
                message=f"I don't understand \"{ctx.command.strip()}\". Type 'help' for a list of commands."
            )
        return handler(ctx, parsed)

    def _do_look(self, ctx: CommandContext, parsed: ParsedCommand) -> CommandOutcome:
        room = require_room(ctx.world, ctx.state.current_room)
        target = parsed.arg.casefold()
        if not target or target in {"around", "room"}:
            return CommandOutcome(message=describe_room(ctx.world, room), action_type="examine")

        idx = fuzzy_index(room.items, target, name_of=ctx.world.item_name)
        if idx < 0:
            # Things you carry can be examined too.
            held = fuzzy_index(ctx.state.inventory, target, name_of=ctx.world.item_name)
            if held >= 0:
                return CommandOutcome(message=self._examine_item(ctx.world, ctx.state.inventory[held]), action_type="examine")
        else:
            return CommandOutcome(message=self._examine_item(ctx.world, room.items[idx]), action_type="examine")

        n = fuzzy_index(room.npcs, target, name_of=lambda ref: npc_name(ctx.world, ref))
        if n >= 0:
            npc = ctx.world.npc(room.npcs[n])
            if npc is not None and npc.description:
                return CommandOutcome(message=f"{npc.name}: {npc.description}", action_type="examine")
            name = npc_name(ctx.world, room.npcs[n])
            dialogue = npc.dialogue if npc is not None and npc.dialogue else "Hello there!"
            return CommandOutcome(message=f'{name} says: "{dialogue}"', action_type="examine")

        return CommandOutcome(message=f'You don\'t see any "{parsed.arg}" here.', action_type="examine")

    @staticmethod
    def _examine_item(world: World, ref: str) -> str:
        item = world.item_def(ref)
        if item is not None and item.description:
            return f"You examine the {item.name}. {item.description}"
        return f"You examine the {world.item_name(ref)}. It looks interesting."

    def _do_go(self, ctx: CommandContext, parsed: ParsedCommand) -> CommandOutcome:
        room = require_room(ctx.world, ctx.state.current_room)
        if not parsed.arg:
            exits = available_exits(room)
            return CommandOutcome(message=f"Go where? Available exits: {', '.join(exits) or 'none'}")

        direction = normalize_direction(parsed.arg)
        target_id = room.exits.get(direction)
        target = find_room(ctx.world, target_id) if target_id else None
        if target is None:
            if target_id:
                logger.warning("exit %s of %s points to unknown room %s", direction, room.id, target_id)
            return CommandOutcome(message=_no_exit_message(direction, room), action_type="movement")

        ctx.state.current_room = target.id
        first_visit = ctx.state.mark_visited(target.id)
        message = f"You go {direction}.\n\n{describe_room(ctx.world, target)}"
        if first_visit and target.first_visit_text:
            message += f"\n\n{target.first_visit_text}"
        return CommandOutcome(message=message, state_changed=True, action_type="movement")

    def _do_take(self, ctx: CommandContext, parsed: ParsedCommand) -> CommandOutcome:
        if not parsed.arg:
            return CommandOutcome(message="Take what?")
        room = require_room(ctx.world, ctx.state.current_room)
        idx = fuzzy_index(room.items, parsed.arg, name_of=ctx.world.item_name)
        if idx >= 0:
            item = ctx.world.item_def(room.items[idx])
            if item is not None and not item.takeable:
                return CommandOutcome(message=f"You can't take the {item.name}.", action_type="interaction")
        moved = apply_item_transfer(ctx.world, room.id, parsed.arg, "take", ctx.state.inventory)
        if moved is None:
            return CommandOutcome(message=f'There\'s no "{parsed.arg}" here to take.', action_type="interaction")
        return CommandOutcome(
            message=f"You take the {ctx.world.item_name(moved)}.",
            state_changed=True,
            room_updates={room.id: list(room.items)},
            action_type="interaction",
        )

    def _do_drop(self, ctx: CommandContext, parsed: ParsedCommand) -> CommandOutcome:
        if not parsed.arg:
            return CommandOutcome(message="Drop what?")
        room = require_room(ctx.world, ctx.state.current_room)
        moved = apply_item_transfer(ctx.world, room.id, parsed.arg, "drop", ctx.state.inventory)
        if moved is None:
            return CommandOutcome(message=f'You don\'t have any "{parsed.arg}".', action_type="interaction")
        return CommandOutcome(
            message=f"You drop the {ctx.world.item_name(moved)}.",
            state_changed=True,
            room_updates={room.id: list(room.items)},
            action_type="interaction",
        )

    def _do_inventory(self, ctx: CommandContext, parsed: ParsedCommand) -> CommandOutcome:
        if not ctx.state.inventory:
            return CommandOutcome(message="You aren't carrying anything.", action_type="system")
        names = ", ".join(ctx.world.item_name(i) for i in ctx.state.inventory)
        return CommandOutcome(message=f"You are carrying: {names}", action_type="system")

    def _do_help(self, ctx: CommandContext, parsed: ParsedCommand) -> CommandOutcome:
        return CommandOutcome(message=HELP_TEXT, action_type="system")

    def _do_talk(self, ctx: CommandContext, parsed: ParsedCommand) -> CommandOutcome:
        if not parsed.arg:
            return CommandOutcome(message="Talk to whom?")
        room = require_room(ctx.world, ctx.state.current_room)
        idx = fuzzy_index(room.npcs, parsed.arg, name_of=lambda ref: npc_name(ctx.world, ref))
        if idx < 0:
            return CommandOutcome(message=f'There\'s no one called "{parsed.arg}" here.', action_type="dialogue")
        npc = ctx.world.npc(room.npcs[idx])
        name = npc_name(ctx.world, room.npcs[idx])
        dialogue = npc.dialogue if npc is not None and npc.dialogue else "I have nothing to say right now."
        return CommandOutcome(message=f'{name} says: "{dialogue}"', action_type="dialogue")

    def _do_use(self, ctx: CommandContext, parsed: ParsedCommand) -> CommandOutcome:
        if not parsed.arg:
            return CommandOutcome(message="Use what?")
        held = fuzzy_index(ctx.state.inventory, parsed.arg, name_of=ctx.world.item_name)
        if held < 0:
            return CommandOutcome(message=f'You don\'t have any "{parsed.arg}".', action_type="use_item")

        item_ref = ctx.state.inventory[held]
        item_name = ctx.world.item_name(item_ref)
        room = require_room(ctx.world, ctx.state.current_room)
        needles = {parsed.arg.casefold(), item_name.casefold(), item_ref.casefold()}
        for idx, puzzle in enumerate(room.puzzles):
            text = f"{puzzle.solution} {puzzle.description}".casefold()
            if not any(n and n in text for n in needles):
                continue
            flag = _puzzle_flag(room, idx)
            if ctx.state.game_flags.get(flag):
                return CommandOutcome(message=f"You have already used the {item_name} here.", action_type="use_item")
            ctx.state.game_flags[flag] = True
            ctx.state.score += PUZZLE_REWARD
            return CommandOutcome(
                message=f"You use the {item_name}. {puzzle.solution or 'It works!'}",
                state_changed=True,
                action_type="use_item",
            )
        return CommandOutcome(message=f"You can't use the {item_name} here.", action_type="use_item")

    def _do_quit(self, ctx: CommandContext, parsed: ParsedCommand) -> CommandOutcome:
        return CommandOutcome(message="Thanks for playing. Session ended.", ended=True, action_type="system")
