from __future__ import annotations


class GrueError(Exception):
    pass


class RequestValidationError(GrueError):
    """Client-caused: a required request field is missing or empty."""


class NotFoundError(GrueError):
    """Unknown session/world/room reference. Reported as a business-level failure."""


class SessionBusyError(GrueError):
    pass


class GeneratorError(GrueError):
    """Base for anything that went wrong talking to the narrative generator.

    `cause` is the underlying exception (if any) and `elapsed_ms` the wall time spent
    before the failure surfaced.
    """

    def __init__(self, message: str, *, cause: BaseException | None = None, elapsed_ms: int | None = None) -> None:
        super().__init__(message)
        self.cause = cause
        self.elapsed_ms = elapsed_ms


class GeneratorTransportError(GeneratorError):
    pass


class GeneratorParseError(GeneratorError):
    """Generator output did not contain a parseable JSON object.

    Recoverable: callers may retry once or fall back to canned content.
    """

    def __init__(self, message: str, *, raw: str = "", **kwargs) -> None:  # type: ignore[no-untyped-def]
        super().__init__(message, **kwargs)
        self.raw = raw


class SchemaError(GeneratorError):
    pass


class UnrecognizedFormat(SchemaError):
    pass


class PlanningError(GeneratorError):
    pass


class WorldGenerationError(GeneratorError):
    pass


class PersistenceError(GrueError):
    pass


class InvariantViolation(GrueError):
    pass
