"""Launcher command-line options and the transient hand-off store.

The launcher owns a handful of flags that the main program never sees:

    --force-reconf                 rebuild even if the cache looks fresh
    --deny-reconf                  never rebuild (wins over --force-reconf)
    --reconf-debug                 keep config and cache in the working dir
    --reconf-master-binary=PATH    set by the master when handing off

Any argument starting with ``--reconf-`` is reserved and removed, together
with the two override flags, from the ordinary argument list.
"""

from __future__ import annotations

import dataclasses
import os
import pathlib
from collections.abc import MutableMapping, Sequence

import reconf.runtime_flags

FORCE_RECONF = "--force-reconf"
DENY_RECONF = "--deny-reconf"
DEBUG = "--reconf-debug"
MASTER_BINARY = "--reconf-master-binary="
RESERVED_PREFIX = "--reconf-"

STORE_NAMESPACE = "reconf"
MASTER_BINARY_KEY = "master_binary"


@dataclasses.dataclass(frozen=True)
class Options:
    force_reconf: bool = False
    deny_reconf: bool = False
    debug: bool = False
    master_binary: pathlib.Path | None = None
    # Raw invocation, runtime segment included
    full_args: tuple[str, ...] = ()
    # What the main program sees
    args: tuple[str, ...] = ()


def _is_launcher_arg(arg: str) -> bool:
    return arg in (FORCE_RECONF, DENY_RECONF) or arg.startswith(RESERVED_PREFIX)


def parse_options(argv: Sequence[str]) -> Options:
    """Split *argv* (without the program name) into launcher options and
    the ordinary argument list.

    Launcher flags are only recognised outside the runtime-flag segment.
    """
    visible = reconf.runtime_flags.strip_runtime_flags(argv)

    master: pathlib.Path | None = None
    for arg in visible:
        if arg.startswith(MASTER_BINARY):
            value = arg[len(MASTER_BINARY):]
            master = pathlib.Path(value) if value else None

    return Options(
        force_reconf=FORCE_RECONF in visible,
        deny_reconf=DENY_RECONF in visible,
        debug=DEBUG in visible,
        master_binary=master,
        full_args=tuple(argv),
        args=tuple(a for a in visible if not _is_launcher_arg(a)),
    )


class TransientStore:
    """Environment-backed key/value record for the hand-off handshake.

    Values live in environment variables named ``<NAMESPACE>__<KEY>``, so
    they are visible to this process only until cleared, and would be
    inherited by children if left behind. The master writes the value at
    startup; the hand-off reads it and clears the namespace before exec.
    """

    def __init__(self, environ: MutableMapping[str, str] | None = None) -> None:
        self._environ = os.environ if environ is None else environ

    @staticmethod
    def _prefix(namespace: str) -> str:
        return f"{namespace.upper()}__"

    def _name(self, namespace: str, key: str) -> str:
        return self._prefix(namespace) + key.upper()

    def get(self, namespace: str, key: str) -> str | None:
        return self._environ.get(self._name(namespace, key))

    def put(self, namespace: str, key: str, value: str) -> None:
        self._environ[self._name(namespace, key)] = value

    def clear(self, namespace: str) -> None:
        prefix = self._prefix(namespace)
        for name in [k for k in self._environ if k.startswith(prefix)]:
            del self._environ[name]


def record_master_binary(
    store: TransientStore,
    options: Options,
    running_executable: pathlib.Path,
) -> pathlib.Path:
    """Store the master binary path: the one handed over, or ourselves."""
    master = options.master_binary or running_executable
    store.put(STORE_NAMESPACE, MASTER_BINARY_KEY, str(master))
    return master
