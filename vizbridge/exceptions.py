"""Bridge-layer exception hierarchy.

All bridge exceptions inherit from ``BridgeError`` to enable blanket
``except BridgeError`` handling at the RPC dispatch boundary and in the
transport.  Each carries a machine-readable ``error_code`` used in log lines.

Lookup misses (a Panel, DataSource or Table that is not in the workspace)
are not exceptions: resolvers return ``None`` for them.
"""

from __future__ import annotations

from typing import Any


class BridgeError(Exception):
    """Base exception for all bridge-layer failures."""

    error_code: str = "bridge_error"


class InitError(BridgeError):
    """Raised when the host extension runtime failed to initialize.

    Fatal to the whole session.  The readiness gate is rejected with one
    instance of this error and every awaiter observes that same instance.
    """

    error_code = "init_failed"

    def __init__(self, cause: BaseException | str) -> None:
        detail = cause if isinstance(cause, str) else f"{type(cause).__name__}: {cause}"
        super().__init__(f"host initialization failed: {detail}")
        self.detail = detail


class HostUnavailableError(BridgeError):
    """Raised when an operation needs the host but initialization failed."""

    error_code = "host_unavailable"

    def __init__(self, operation: str) -> None:
        super().__init__(f"host unavailable for {operation}")
        self.operation = operation


class InvalidSpecError(BridgeError):
    """Raised when a data spec does not match any known variant."""

    error_code = "invalid_spec"

    def __init__(self, spec: Any, detail: str = "") -> None:
        msg = f"unexpected data spec format: {spec!r}"
        if detail:
            msg = f"{msg} ({detail})"
        super().__init__(msg)
        self.spec = spec
        self.detail = detail


class UnknownMethodError(BridgeError):
    """Raised when an RPC request names a method outside the dispatch table."""

    error_code = "unknown_method"

    def __init__(self, method: str) -> None:
        super().__init__(f"method {method!r} does not exist")
        self.method = method


class InvalidCommandError(BridgeError):
    """Raised when an inbound control-process command is malformed."""

    error_code = "invalid_command"

    def __init__(self, command: Any, detail: str) -> None:
        super().__init__(f"invalid command: {detail}")
        self.command = command
        self.detail = detail


class HostCallError(BridgeError):
    """Raised when a single host API call fails inside an RPC handler.

    Not retried: host calls are not known to be idempotent.
    """

    error_code = "host_call_failed"

    def __init__(self, operation: str, original_error: BaseException) -> None:
        super().__init__(f"{operation} failed: {original_error}")
        self.operation = operation
        self.original_error = original_error


class PersistenceError(BridgeError):
    """Raised when the durable settings save fails.

    The in-memory host settings already hold the new values when this is
    raised; they are not rolled back.
    """

    error_code = "persistence_failed"

    def __init__(self, original_error: BaseException) -> None:
        super().__init__(f"saving settings failed: {original_error}")
        self.original_error = original_error


class CallbackUnavailableError(BridgeError):
    """Raised to posts still waiting for a callback URL when the session closes."""

    error_code = "callback_unavailable"
