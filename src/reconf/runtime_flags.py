"""Runtime-flag segment handling for the hand-off argument list.

A launcher invocation may carry a segment of runtime flags layered under
the program's own arguments::

    app +RTS -X dev -W error -RTS --verbose file.txt
    app +RTS -X dev --RTS --verbose +RTS

``+RTS`` opens a segment and ``-RTS`` closes it; ``--RTS`` closes it and
makes everything after it an ordinary argument, even a literal ``+RTS``.
The flags in the segment are interpreter options for the interpreter that
runs the custom executable. They are not the program's business, so they
are stripped before the main program sees its arguments, and rewritten
according to a policy before being forwarded across the hand-off.
"""

from __future__ import annotations

import dataclasses
from collections.abc import Sequence

ENTRY = "+RTS"
EXIT = "-RTS"
TERMINATOR = "--RTS"


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------

@dataclasses.dataclass(frozen=True)
class ReplaceWith:
    """Discard the flags the user passed and forward *flags* instead."""

    flags: tuple[str, ...] = ()

    def apply(self, extracted: Sequence[str]) -> list[str]:
        return list(self.flags)


@dataclasses.dataclass(frozen=True)
class AppendTo:
    """Forward the user's flags followed by *flags*."""

    flags: tuple[str, ...] = ()

    def apply(self, extracted: Sequence[str]) -> list[str]:
        return [*extracted, *self.flags]


RuntimeFlagPolicy = ReplaceWith | AppendTo


# ---------------------------------------------------------------------------
# Scanning
# ---------------------------------------------------------------------------

def extract_runtime_flags(args: Sequence[str]) -> list[str]:
    """Collect the tokens inside runtime segments of *args*.

    Two states: outside a segment, ``+RTS`` switches to inside and every
    other token is skipped; inside, ``-RTS`` switches back out and every
    other token (a nested ``+RTS`` included) is collected. ``--RTS`` ends
    the scan in either state.
    """
    inside = False
    flags: list[str] = []
    for arg in args:
        if arg == TERMINATOR:
            break
        if inside:
            if arg == EXIT:
                inside = False
            else:
                flags.append(arg)
        elif arg == ENTRY:
            inside = True
    return flags


def strip_runtime_flags(args: Sequence[str]) -> list[str]:
    """Return the ordinary arguments of *args*, the complement of extraction."""
    inside = False
    ordinary: list[str] = []
    for i, arg in enumerate(args):
        if arg == TERMINATOR:
            ordinary.extend(args[i + 1:])
            break
        if inside:
            if arg == EXIT:
                inside = False
        elif arg == ENTRY:
            inside = True
        elif arg != EXIT:
            ordinary.append(arg)
    return ordinary


# ---------------------------------------------------------------------------
# Rewriting
# ---------------------------------------------------------------------------

def rewrite_runtime_args(
    full_args: Sequence[str],
    ordinary_args: Sequence[str],
    policy: RuntimeFlagPolicy,
) -> list[str]:
    """Rebuild the argument list for the custom executable.

    *full_args* is the raw invocation (runtime segment included) and
    *ordinary_args* what the program itself would see.
    """
    flags = policy.apply(extract_runtime_flags(full_args))
    assert TERMINATOR not in flags, f"{TERMINATOR} inside runtime flags: {flags!r}"

    if not flags:
        if ENTRY in ordinary_args or TERMINATOR in ordinary_args:
            # Shield literal sentinels from the next runtime-flag scan
            return [TERMINATOR, *ordinary_args]
        return list(ordinary_args)
    return [ENTRY, *flags, TERMINATOR, *ordinary_args]
