from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from grue.errors import SessionBusyError
from grue.session_store import Session


@asynccontextmanager
async def session_lock(session: Session, *, timeout_s: float = 30.0) -> AsyncIterator[None]:
    """Serialize commands for one session.

    A second command for the same session waits for the first to finish, at most
    `timeout_s` seconds, then fails with SessionBusyError. Other sessions are unaffected.
    """

    try:
        await asyncio.wait_for(session.lock.acquire(), timeout=timeout_s)
    except TimeoutError as e:
        raise SessionBusyError(f"Session {session.session_id} is busy") from e
    try:
        yield
    finally:
        session.lock.release()
