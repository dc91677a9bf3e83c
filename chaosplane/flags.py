"""
Flag canonicalisation.

An experiment's action flags are persisted as a single string so that a
record can be revived later (destroy, flag filtering):

    {"cpu-percent": "10", "desc": "two words"}  →  --cpu-percent=10 --desc='two words'

Keys are emitted in sorted order, values are shell-quoted when they contain
whitespace or other characters that would not survive a split. ``parse_flags``
is the exact inverse of ``format_flags``.
"""

import shlex
from typing import Mapping, Optional


def format_flags(flags: Optional[Mapping[str, str]]) -> str:
    """Serialize a flag map into its canonical ``--key=value`` form."""
    if not flags:
        return ""
    return " ".join(
        f"--{key}={shlex.quote(str(flags[key]))}" for key in sorted(flags)
    )


def parse_flags(flag: str) -> dict[str, str]:
    """Parse a canonical flag string back into a map.

    Tokens not starting with ``--`` are ignored. A bare ``--name`` is a
    boolean switch and decodes to ``"true"``.
    """
    result: dict[str, str] = {}
    if not flag or not flag.strip():
        return result
    for token in shlex.split(flag):
        if not token.startswith("--") or len(token) == 2:
            continue
        key, sep, value = token[2:].partition("=")
        result[key] = value if sep else "true"
    return result


def split_sub_command(command: str, sub_command: str) -> tuple[str, str, str]:
    """Recover ``(scope, target, action)`` from a stored command pair.

    One token: it is the action and ``command`` is the target.
    More tokens: the last is the action, the one before it the target, and
    ``command`` is the scope.
    """
    parts = sub_command.split()
    if not parts:
        return "", command, ""
    action = parts[-1]
    if len(parts) == 1:
        return "", command, action
    return command, parts[-2], action


def join_sub_command(scope: str, target: str, action: str) -> tuple[str, str]:
    """Inverse of ``split_sub_command``: the ``(command, sub_command)`` to store."""
    if scope:
        return scope, f"{target} {action}"
    return target, action
