"""Transfer control from the master program to the custom executable.

On POSIX the process image is replaced with ``os.execvp``: the call never
returns, and the custom executable inherits the pid, the terminal and
the open standard streams. Windows has no such primitive, so there the
custom executable is spawned, waited for, and its exit status becomes
ours. The observable difference is that the parent process stays alive
for the duration of the child.
"""

from __future__ import annotations

import logging
import os
import pathlib
import subprocess
import sys
from collections.abc import Callable, Sequence
from typing import NoReturn

import reconf.compile
import reconf.options
import reconf.runtime_flags

logger = logging.getLogger("reconf.handoff")

# No process-image replacement on Windows
_SPAWN_AND_WAIT = os.name == "nt"


class HandoffError(RuntimeError):
    """The custom executable could not be started. Always fatal."""


def build_command(
    custom: pathlib.Path,
    args: Sequence[str],
    *,
    master: str,
    interpreter: str,
) -> list[str]:
    """Return the full command line that starts *custom*.

    The runtime flags in *args* become interpreter options; *args* itself
    is forwarded intact so the custom executable can strip them again.
    ``--force-reconf`` is dropped so a forced rebuild does not repeat on
    every launch of the custom executable.
    """
    forwarded = [
        a
        for a in (f"{reconf.options.MASTER_BINARY}{master}", *args)
        if a != reconf.options.FORCE_RECONF
    ]
    interpreter_flags = reconf.runtime_flags.extract_runtime_flags(forwarded)
    return [interpreter, *interpreter_flags, str(custom), *forwarded]


def _replace_process(cmd: list[str]) -> NoReturn:
    sys.stdout.flush()
    sys.stderr.flush()
    if _SPAWN_AND_WAIT:
        proc = subprocess.run(cmd)
        sys.exit(proc.returncode)
    # execvp doesn't return on success
    os.execvp(cmd[0], cmd)


def custom_exec(
    custom: pathlib.Path,
    args: Sequence[str],
    *,
    store: reconf.options.TransientStore,
    interpreter: str | None = None,
    status_out: Callable[[str], None] | None = None,
) -> NoReturn:
    """Replace this process with *custom*, forwarding *args*.

    Reads the master binary path from *store* and clears the store's
    namespace before exec. Raises :class:`HandoffError` if the path was
    never recorded or the exec itself fails; there is no fallback to
    running the main program once the hand-off has begun.
    """
    master = store.get(
        reconf.options.STORE_NAMESPACE, reconf.options.MASTER_BINARY_KEY
    )
    store.clear(reconf.options.STORE_NAMESPACE)
    if master is None:
        raise HandoffError("master binary path was not recorded before hand-off")

    if status_out is not None:
        status_out(f"Launching custom binary {custom}")

    cmd = build_command(
        custom,
        args,
        master=master,
        interpreter=reconf.compile.resolve_interpreter(interpreter),
    )
    logger.debug("exec %s", cmd)
    try:
        _replace_process(cmd)
    except OSError as exc:
        raise HandoffError(f"cannot execute {custom}: {exc}") from exc
