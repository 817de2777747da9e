"""Run a fully resolved command with its chain of parameters."""

from __future__ import annotations

import logging
import os
import stat
import subprocess
from collections.abc import Mapping

from devicesh.errors import ExecError
from devicesh.nodes import CommandNode, ParseNode, owning_command, parameter_chain

logger = logging.getLogger(__name__)


def build_exec_argv(node: ParseNode) -> tuple[CommandNode, list[str]]:
    """Return the owning command and ``[executable, "--", k1, v1, ...]``.

    Raises ExecError if any parameter on the way up failed its probe.
    """
    command = owning_command(node)
    if command is None:
        raise ExecError(f"'{node.name}' is not a command")

    params = parameter_chain(node)
    for param in reversed(params):
        if param.error is not None:
            raise ExecError(param.error, param.stderr)

    argv = [str(command.executable), "--"]
    for param in params:
        argv.extend(param.pair())
    return command, argv


def execute(node: ParseNode, environ: Mapping[str, str]) -> int:
    """Run the command ``node`` belongs to, with inherited stdio."""
    command, argv = build_exec_argv(node)

    try:
        st = os.stat(command.sysconf)
    except OSError as exc:
        raise ExecError(f"cannot stat sysconfdir: {exc.strerror}") from exc
    if not stat.S_ISDIR(st.st_mode):
        raise ExecError("sysconfdir not a directory")

    logger.debug("exec: %s (cwd %s)", argv, command.sysconf)
    try:
        result = subprocess.run(argv, cwd=command.sysconf, env=dict(environ))
    except OSError as exc:
        raise ExecError(f"cannot run command: {exc.strerror or exc}") from exc
    except ValueError as exc:
        # a word holding a NUL byte cannot be passed to exec
        raise ExecError(f"cannot run command: {exc}") from exc

    logger.debug("exec exited %d", result.returncode)
    if result.returncode < 0:
        raise ExecError(f"command exited on signal with code {-result.returncode}")
    if result.returncode != 0:
        raise ExecError(f"command exited normally with code {result.returncode}")
    return result.returncode
