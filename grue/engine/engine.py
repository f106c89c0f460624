"""The command processor.

`GameEngine.process_command` is the single entry point for a player's command: it
serializes commands per session, drives the session lifecycle, runs the selected
strategy on working copies, commits them on success and schedules durable writes.
"""
from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Protocol

from grue.engine.explore_mode import ExploreStrategy
from grue.engine.generator_mode import GeneratorStrategy, build_context
from grue.engine.outcome import CommandContext, CommandOutcome
from grue.engine.parser_mode import ParserStrategy
from grue.errors import NotFoundError, RequestValidationError, SessionBusyError
from grue.fsm import transition
from grue.generator.base import GenerationRequest, Message
from grue.generator.gateway import NarrativeGateway, new_correlation_id
from grue.lock import session_lock
from grue.persistence import GameRepository, PersistenceWriter
from grue.prompts import render_prompt
from grue.session_store import Session
from grue.state import GameState, SessionPhase
from grue.streams import sse_event, sse_from_channel
from grue.world.models import World


logger = logging.getLogger(__name__)

MODES = ("parser", "generator", "explore")
STREAM_HISTORY_TURNS = 8


class CommandStrategy(Protocol):
    name: str

    async def handle(self, ctx: CommandContext) -> CommandOutcome:  # pragma: no cover
        ...


@dataclass(frozen=True, slots=True)
class CommandResult:
    outcome: CommandOutcome
    session: Session
    mode: str
    correlation_id: str


class GameEngine:
    def __init__(
        self,
        gateway: NarrativeGateway,
        *,
        writer: PersistenceWriter | None = None,
        default_mode: str = "parser",
        lock_timeout_s: float = 30.0,
    ) -> None:
        if default_mode not in MODES:
            raise ValueError(f"Unknown command mode: {default_mode}")
        self.gateway = gateway
        self.writer = writer or PersistenceWriter()
        self.default_mode = default_mode
        self.lock_timeout_s = lock_timeout_s
        self.explorer = ExploreStrategy(gateway)
        self.strategies: dict[str, CommandStrategy] = {
            "parser": ParserStrategy(),
            "generator": GeneratorStrategy(gateway),
            "explore": self.explorer,
        }

    def resolve_mode(self, session: Session, mode: str | None) -> str:
        chosen = mode or session.mode or self.default_mode
        if chosen not in self.strategies:
            raise RequestValidationError(f"Unknown mode: {chosen}")
        return chosen

    async def process_command(
        self,
        session: Session,
        command: str,
        *,
        mode: str | None = None,
        repo: GameRepository | None = None,
        corr: str | None = None,
    ) -> CommandResult:
        if not command or not command.strip():
            raise RequestValidationError("command is required")
        corr = corr or new_correlation_id()
        chosen = self.resolve_mode(session, mode)

        async with session_lock(session, timeout_s=self.lock_timeout_s):
            world, state = self._check_playable(session)

            transition(session, "begin_command")
            ctx = CommandContext(
                session=session,
                world=world.model_copy(deep=True),
                state=state.model_copy(deep=True),
                command=command,
                corr=corr,
            )
            ctx.state.turn_count += 1
            try:
                outcome = await self.strategies[chosen].handle(ctx)
            except Exception as e:
                transition(session, "finish_command")
                session.log("command_failed", command=command, mode=chosen, error=str(e), corr=corr)
                logger.warning("command failed corr=%s sid=%s mode=%s: %s", corr, session.session_id, chosen, e)
                raise

            # Commit.
            session.world = ctx.world
            session.state = ctx.state
            session.remember("user", command)
            session.remember("assistant", outcome.message)
            if outcome.response_id:
                session.previous_response_id = outcome.response_id
            session.log(
                "command",
                command=command,
                mode=chosen,
                state_changed=outcome.state_changed,
                room=ctx.state.current_room,
                corr=corr,
            )
            transition(session, "end_game" if outcome.ended else "finish_command")

        logger.debug(
            "command done corr=%s sid=%s mode=%s changed=%s", corr, session.session_id, chosen, outcome.state_changed
        )
        if repo is not None:
            self.persist_command(session, repo, command=command, outcome=outcome, mode=chosen)
        return CommandResult(outcome=outcome, session=session, mode=chosen, correlation_id=corr)

    @staticmethod
    def _check_playable(session: Session) -> tuple[World, GameState]:
        if session.phase == SessionPhase.generating:
            raise SessionBusyError("The world is still being generated")
        if session.phase == SessionPhase.ended:
            raise NotFoundError(f"Game has ended for session {session.session_id}")
        world, state = session.world, session.state
        if world is None or state is None:
            raise NotFoundError(f"No game loaded for session {session.session_id}")
        if session.phase == SessionPhase.uninitialized:
            transition(session, "restore")
        return world, state

    def persist_command(
        self,
        session: Session,
        repo: GameRepository,
        *,
        command: str,
        outcome: CommandOutcome,
        mode: str,
    ) -> None:
        if not session.user_id:
            return
        self.writer.schedule(
            "log_action",
            repo.log_action,
            user_id=session.user_id,
            world_id=session.world_id,
            action=command,
            details={
                "mode": mode,
                "session_id": session.session_id,
                "state_changed": outcome.state_changed,
                "action_type": outcome.action_type,
            },
        )
        if outcome.state_changed:
            self.persist_state(session, repo)

    def persist_state(self, session: Session, repo: GameRepository) -> None:
        if not session.user_id or not session.world_id or session.state is None:
            return
        self.writer.schedule(
            "save_game_state",
            repo.save_game_state,
            user_id=session.user_id,
            world_id=session.world_id,
            state=session.state.model_copy(deep=True),
            continuation_token=session.previous_response_id,
        )

    def narration_request(self, session: Session, command: str) -> GenerationRequest:
        world, state = session.world, session.state
        if world is None or state is None:
            raise NotFoundError(f"No game loaded for session {session.session_id}")
        system = render_prompt(
            "narrator.txt",
            title=world.title,
            context=build_context(world, state),
        )
        history = [Message(role=t.role, content=t.content) for t in session.recent_turns(STREAM_HISTORY_TURNS)]
        return GenerationRequest(
            system=system,
            messages=[*history, Message(role="user", content=f'Player command: "{command}"')],
            previous_response_id=session.previous_response_id,
            seed=session.seed,
            metadata={"kind": "narration"},
        )

    def stream_narration(
        self,
        session: Session,
        command: str,
        *,
        heartbeat_s: float = 15.0,
        corr: str | None = None,
    ) -> AsyncIterator[str]:
        """Stream narration for one command as SSE text.

        The stream holds the session lock from before the generator is called until
        the last event, so it queues behind (and ahead of) commands for the same
        session. Only the conversation window and continuation token change; whatever
        narrative arrived before a disconnect is still remembered.
        """

        if not command or not command.strip():
            raise RequestValidationError("command is required")
        if not session.is_ready:
            raise NotFoundError(f"No game loaded for session {session.session_id}")
        corr = corr or new_correlation_id()

        async def _events() -> AsyncIterator[str]:
            try:
                async with session_lock(session, timeout_s=self.lock_timeout_s):
                    request = self.narration_request(session, command)
                    channel = self.gateway.stream(request, corr=corr)
                    try:
                        async for event in sse_from_channel(channel, heartbeat_s=heartbeat_s):
                            yield event
                    finally:
                        session.remember("user", command)
                        session.remember("assistant", channel.text)
                        if channel.response_id:
                            session.previous_response_id = channel.response_id
                        session.log("narration_streamed", command=command, chars=len(channel.text), corr=corr)
            except (SessionBusyError, NotFoundError) as e:
                logger.warning("narration refused corr=%s sid=%s: %s", corr, session.session_id, e)
                yield sse_event({"type": "error", "error": str(e)})

        return _events()
