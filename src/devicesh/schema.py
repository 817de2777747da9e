"""Parameter schema probe: ask a command which keys and values come next.

The command is run as ``<executable> -c <key> <value>... <key> <value>``
with stdin closed. Each stdout line of the form ``-token`` (optional) or
``*token`` (required) names one candidate, where ``token`` is a bare
value, ``key=`` or ``key=value``. Stderr is kept verbatim for display.
"""

from __future__ import annotations

import logging
import os
import selectors
import stat
import subprocess
from collections.abc import Mapping

from devicesh.errors import LexError, SchemaError
from devicesh.lexer import tokenize
from devicesh.nodes import ParameterNode, parameter_chain
from devicesh.tokens import Token

logger = logging.getLogger(__name__)

MAX_CANDIDATES = 1000
MAX_LINE = 8192

_READ_SIZE = 65536


def build_probe_argv(node: ParameterNode) -> list[str]:
    """``[executable, "-c", k1, v1, ..., kN, vN]`` ending with ``node`` itself."""
    if node.command is None:
        raise SchemaError("parameter has no command")
    argv = [str(node.command.executable), "-c"]
    for param in parameter_chain(node):
        argv.extend(param.pair())
    return argv


def check_sysconf(node: ParameterNode) -> None:
    """Fail unless the command's configuration directory is a directory."""
    assert node.command is not None
    try:
        st = os.stat(node.command.sysconf)
    except OSError as exc:
        raise SchemaError(f"cannot stat sysconfdir: {exc.strerror}") from exc
    if not stat.S_ISDIR(st.st_mode):
        raise SchemaError("sysconfdir not a directory")


class _Candidates:
    """Accumulates stdout lines into the node's candidate lists."""

    def __init__(self, node: ParameterNode) -> None:
        self._node = node
        self._count = 0
        self._pending = bytearray()
        self._skipping = False

    def feed(self, data: bytes) -> None:
        self._pending.extend(data)
        while True:
            newline = self._pending.find(b"\n")
            if newline < 0:
                if len(self._pending) > MAX_LINE:
                    # silently drop the rest of an overlong line
                    self._pending.clear()
                    self._skipping = True
                return
            line = bytes(self._pending[:newline])
            del self._pending[: newline + 1]
            if self._skipping:
                self._skipping = False
                continue
            if len(line) < MAX_LINE:
                self._line(line)

    def _line(self, line: bytes) -> None:
        if not line or line[0] not in b"-*":
            return
        required = line[0] == ord("*")

        try:
            result = tokenize(line[1:])
        except LexError:
            return
        if result.state.is_open or len(result.tokens) != 1:
            return

        if self._count >= MAX_CANDIDATES:
            if self._node.error is None:
                self._node.error = f"more than {MAX_CANDIDATES} parameters read, not completing."
            return

        if self._accept(result.tokens[0], required):
            self._count += 1

    def _accept(self, token: Token, required: bool) -> bool:
        node = self._node
        key, value = token.split_equals()

        if node.key is not None:
            if key is None or not token.text.startswith(node.key):
                return False
            if required:
                node.required = True
            node.values.append(value)
            # the key from the matched line replaces the typed key
            if len(node.key) <= len(key):
                node.key = key
            return True

        if key is not None:
            if required:
                node.required_keys.append(key)
            else:
                node.keys.append(key)
        else:
            node.values.append(value)
        return True


def _drain(proc: subprocess.Popen[bytes], candidates: _Candidates) -> bytes:
    """Read stdout and stderr together until both reach EOF."""
    assert proc.stdout is not None and proc.stderr is not None
    stderr = bytearray()

    with selectors.DefaultSelector() as selector:
        selector.register(proc.stdout, selectors.EVENT_READ)
        selector.register(proc.stderr, selectors.EVENT_READ)
        while selector.get_map():
            for key, _ in selector.select():
                data = os.read(key.fd, _READ_SIZE)
                if not data:
                    selector.unregister(key.fileobj)
                    continue
                if key.fileobj is proc.stdout:
                    candidates.feed(data)
                else:
                    stderr.extend(data)

    return bytes(stderr)


def _exit_message(returncode: int) -> str:
    if returncode < 0:
        return f"command exited on signal with code {-returncode}"
    return f"command exited normally with code {returncode}"


def run_probe(node: ParameterNode, environ: Mapping[str, str]) -> None:
    """Run the probe for ``node``, raising SchemaError on failure."""
    assert node.command is not None
    argv = build_probe_argv(node)
    check_sysconf(node)

    logger.debug("probe: %s (cwd %s)", argv, node.command.sysconf)
    try:
        proc = subprocess.Popen(
            argv,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=node.command.sysconf,
            env=dict(environ),
            bufsize=0,
        )
    except OSError as exc:
        raise SchemaError(f"cannot run command: {exc.strerror or exc}") from exc
    except ValueError as exc:
        # a word holding a NUL byte cannot be passed to exec
        raise SchemaError(f"cannot run command: {exc}") from exc

    with proc:
        node.stderr = _drain(proc, _Candidates(node))
        returncode = proc.wait()

    logger.debug(
        "probe exited %d: keys=%s required=%s values=%s",
        returncode,
        node.keys,
        node.required_keys,
        node.values,
    )
    if returncode != 0:
        raise SchemaError(_exit_message(returncode))


def probe(node: ParameterNode, environ: Mapping[str, str]) -> ParameterNode:
    """Fill in ``node``'s candidates, recording any failure on the node."""
    try:
        run_probe(node, environ)
    except SchemaError as exc:
        logger.debug("probe failed for %r: %s", node.name, exc)
        node.error = str(exc)
    return node
