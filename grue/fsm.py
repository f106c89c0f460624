from __future__ import annotations

from statemachine import State, StateMachine
from statemachine.exceptions import TransitionNotAllowed

from grue.errors import SessionBusyError
from grue.session_store import Session
from grue.state import SessionPhase


class SessionFSM(StateMachine):
    """Lifecycle guard around a Session.

    uninitialized -> generating -> ready -> (processing -> ready)* -> ended

    Commands only run from `ready`; the phase itself lives on the Session so it
    survives between requests, and this machine is rebuilt around it on demand.
    """

    uninitialized = State(SessionPhase.uninitialized.value, value=SessionPhase.uninitialized.value, initial=True)
    generating = State(SessionPhase.generating.value, value=SessionPhase.generating.value)
    ready = State(SessionPhase.ready.value, value=SessionPhase.ready.value)
    processing = State(SessionPhase.processing.value, value=SessionPhase.processing.value)
    ended = State(SessionPhase.ended.value, value=SessionPhase.ended.value, final=True)

    begin_generation = uninitialized.to(generating) | ready.to(generating)
    generation_succeeded = generating.to(ready)
    generation_failed = generating.to(uninitialized)
    restore = uninitialized.to(ready) | ready.to(ready)
    begin_command = ready.to(processing)
    finish_command = processing.to(ready)
    end_game = uninitialized.to(ended) | generating.to(ended) | ready.to(ended) | processing.to(ended)

    def __init__(self, session: Session):
        self.session = session
        super().__init__(start_value=session.phase.value)

    def after_transition(self) -> None:
        self.sync_phase_to_model()

    def sync_phase_to_model(self) -> None:
        self.session.phase = SessionPhase(str(self.current_state_value))


def transition(session: Session, event: str) -> SessionPhase:
    """Fire `event` against the session's current phase and return the new phase.

    Raises SessionBusyError when the event is not valid from the current phase.
    """

    fsm = SessionFSM(session)
    try:
        fsm.send(event)
    except TransitionNotAllowed as e:
        raise SessionBusyError(f"Cannot {event.replace('_', ' ')} while session is {session.phase.value}") from e
    fsm.sync_phase_to_model()
    return session.phase
