"""Interactive Python REPL sessions driven by the model."""

from __future__ import annotations

import subprocess
import threading
import uuid
from collections.abc import Sequence
from dataclasses import dataclass
from typing import IO

from loguru import logger
from pydantic import Field

from ..errors import ActionError, ReplNotFoundError
from .base import ActionInput, EmptyInput, ModelAction, action_from_model
from .registry import ActionRegistry

PROMPT = b">>> "
DEFAULT_REPL_COMMAND = ("python3", "-i", "-u")


def _read_until_prompt(stream: IO[bytes]) -> str:
    buffer = bytearray()
    while not buffer.endswith(PROMPT):
        chunk = stream.read(1)
        if not chunk:
            raise ActionError("repl output closed before the next prompt")
        buffer += chunk
    return buffer[: -len(PROMPT)].decode("utf-8", errors="replace")


@dataclass
class ReplSession:
    """One running interpreter with stderr merged into stdout."""

    id: str
    process: subprocess.Popen[bytes]

    def send(self, command: str) -> str:
        stdin = self.process.stdin
        stdout = self.process.stdout
        if stdin is None or stdout is None:
            raise ActionError(f"repl {self.id} has no pipes")
        try:
            stdin.write(command.strip().encode("utf-8") + b"\n")
            stdin.flush()
        except OSError as exc:
            raise ActionError(f"repl {self.id} is not accepting input: {exc}") from exc
        return _read_until_prompt(stdout)

    def close(self) -> None:
        for pipe in (self.process.stdin, self.process.stdout):
            if pipe is not None:
                pipe.close()
        self.process.kill()
        returncode = self.process.wait()
        logger.info("repl.stopped id={} returncode={}", self.id, returncode)


class ReplSessions:
    """Arena of live REPL sessions keyed by a short generated id."""

    def __init__(self, command: Sequence[str] = DEFAULT_REPL_COMMAND) -> None:
        self._command = list(command)
        self._sessions: dict[str, ReplSession] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def start(self) -> tuple[str, str]:
        """Start an interpreter and return its id and greeting."""
        session_id = uuid.uuid4().hex[:8]
        process = subprocess.Popen(  # noqa: S603
            self._command,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            bufsize=0,
        )
        session = ReplSession(session_id, process)
        try:
            assert process.stdout is not None
            greeting = _read_until_prompt(process.stdout)
        except ActionError:
            session.close()
            raise
        with self._lock:
            self._sessions[session_id] = session
        logger.info("repl.started id={} pid={}", session_id, process.pid)
        return session_id, greeting

    def get(self, session_id: str) -> ReplSession:
        with self._lock:
            session = self._sessions.get(session_id)
        if session is None:
            raise ReplNotFoundError(f"no such repl: {session_id}")
        return session

    def send(self, session_id: str, command: str) -> str:
        return self.get(session_id).send(command)

    def stop(self, session_id: str) -> None:
        with self._lock:
            session = self._sessions.pop(session_id, None)
        if session is None:
            raise ReplNotFoundError(f"no such repl: {session_id}")
        session.close()

    def close(self) -> None:
        """Stop every session still running."""
        with self._lock:
            sessions = list(self._sessions.values())
            self._sessions.clear()
        for session in sessions:
            session.close()


class ReplRoundInput(ActionInput):
    repl_id: str = Field(..., alias="REPLId", description="Id returned by start_repl")
    command: str = Field(..., alias="Command", description="Python input to send")


class ReplStopInput(ActionInput):
    repl_id: str = Field(..., alias="REPLId", description="Id returned by start_repl")


def create_start_repl_action(sessions: ReplSessions) -> ModelAction[EmptyInput]:
    def _handler(_params: EmptyInput) -> str:
        session_id, greeting = sessions.start()
        return f"{greeting}\n\nrepl id = {session_id}"

    return action_from_model(
        EmptyInput, _handler, name="start_repl", description='starts a python3 repl as "python3 -i -u".'
    )


def create_repl_round_action(sessions: ReplSessions) -> ModelAction[ReplRoundInput]:
    def _handler(params: ReplRoundInput) -> str:
        return sessions.send(params.repl_id, params.command)

    return action_from_model(
        ReplRoundInput,
        _handler,
        name="repl_round",
        description="does an i/o round with an existing python repl having the given repl id.",
    )


def create_stop_repl_action(sessions: ReplSessions) -> ModelAction[ReplStopInput]:
    def _handler(params: ReplStopInput) -> str:
        sessions.stop(params.repl_id)
        return f"repl with id {params.repl_id} stopped."

    return action_from_model(
        ReplStopInput, _handler, name="stop_repl", description="stops a python repl having the given repl id."
    )


def register_repl_actions(registry: ActionRegistry, sessions: ReplSessions) -> None:
    registry.register(create_start_repl_action(sessions))
    registry.register(create_repl_round_action(sessions))
    registry.register(create_stop_repl_action(sessions))
