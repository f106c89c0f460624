from __future__ import annotations

from dataclasses import dataclass

from grue.world.navigation import is_direction, normalize_direction


VERBS: dict[str, str] = {
    "look": "look",
    "l": "look",
    "examine": "look",
    "x": "look",
    "go": "go",
    "move": "go",
    "walk": "go",
    "take": "take",
    "get": "take",
    "grab": "take",
    "pick": "take",
    "drop": "drop",
    "put": "drop",
    "inventory": "inventory",
    "inv": "inventory",
    "i": "inventory",
    "help": "help",
    "h": "help",
    "?": "help",
    "talk": "talk",
    "speak": "talk",
    "say": "talk",
    "use": "use",
    "quit": "quit",
}

# Filler words dropped right after a verb: "pick up torch", "talk to hermit", "look at rope".
_FILLERS: dict[str, tuple[str, ...]] = {
    "take": ("up",),
    "drop": ("down",),
    "talk": ("to", "with"),
    "look": ("at",),
    "go": ("to",),
}


@dataclass(frozen=True, slots=True)
class ParsedCommand:
    raw: str
    verb: str | None
    arg: str = ""


def parse_command(raw: str) -> ParsedCommand:
    """Split a command into a canonical verb and its argument.

    Bare directions ("n", "north") become `go <direction>`. Unknown verbs come back
    with `verb=None`.
    """

    words = raw.strip().split()
    if not words:
        return ParsedCommand(raw=raw, verb=None)

    head = words[0].casefold()
    rest = words[1:]

    if is_direction(head) and not rest:
        return ParsedCommand(raw=raw, verb="go", arg=normalize_direction(head))

    verb = VERBS.get(head)
    if verb is None:
        return ParsedCommand(raw=raw, verb=None, arg=" ".join(rest))

    fillers = _FILLERS.get(verb, ())
    if rest and rest[0].casefold() in fillers:
        rest = rest[1:]
    arg = " ".join(rest).strip()
    if verb == "go" and arg:
        arg = normalize_direction(arg)
    return ParsedCommand(raw=raw, verb=verb, arg=arg)


HELP_TEXT = (
    "Commands: look (l), look <thing>, go <direction> (or n/s/e/w/u/d), take <item>, drop <item>, "
    "inventory (i), talk <person>, use <item>, help, quit"
)
