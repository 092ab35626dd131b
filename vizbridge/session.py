"""Bridge session: start-up sequence and control-process command handling.

``BridgeSession.start()``:

1. initialize the host runtime, fulfilling (or rejecting) the readiness gate;
2. publish ``ready`` (or ``init-failed``);
3. subscribe to host settings and mark-selection change events;
4. collect and publish the schema snapshot;
5. push the initial settings snapshot;
6. start the event pump.

Host callbacks only enqueue ``HostEvent``s; a single pump task drains them,
so event handlers are never re-entered while one is in progress.

Inbound commands (``handle_command``):

- ``{"type": "init", "callbackUrl": ...}``
- ``{"type": "rpc", "method": ..., "args": [...], "id": ...}``
- ``{"type": "settings-update", "settings": {...}, "save": bool, "add": bool}``
- ``{"type": "dialog-close", "payload": ...}``
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from vizbridge.callback import CallbackClient
from vizbridge.channel import ControlChannel
from vizbridge.config import BridgeSettings
from vizbridge.config import settings as default_settings
from vizbridge.dataspec import DataSpecResolver
from vizbridge.dialog import DialogController
from vizbridge.exceptions import InitError, InvalidCommandError
from vizbridge.readiness import ReadinessGate
from vizbridge.rpc import RPCBridge, RpcRequest
from vizbridge.schema import Schema, SchemaCollector
from vizbridge.settings_sync import SettingsSynchronizer

if TYPE_CHECKING:
    from collections.abc import Callable, Mapping

    from vizbridge.host import WorkspaceHost

log = logging.getLogger(__name__)

__all__ = ["BridgeSession", "CommandType", "HostEvent", "HostEventKind"]


class HostEventKind(StrEnum):
    SETTINGS_CHANGED = "settings-changed"
    SELECTION_CHANGED = "selection-changed"


@dataclass(slots=True, frozen=True)
class HostEvent:
    """A host-originated change notification, queued for the event pump."""

    kind: HostEventKind
    panel: str = ""
    settings: dict[str, str] = field(default_factory=dict)
    timestamp: float = field(default_factory=time.time)


class CommandType(StrEnum):
    """Commands the control process may send."""

    INIT = "init"
    RPC = "rpc"
    SETTINGS_UPDATE = "settings-update"
    DIALOG_CLOSE = "dialog-close"


class BridgeSession:
    """Wires the bridge components to one host and one control process."""

    def __init__(
        self,
        host: WorkspaceHost,
        *,
        settings: BridgeSettings | None = None,
        channel: ControlChannel | None = None,
        callback: CallbackClient | None = None,
    ) -> None:
        self.settings = settings or default_settings
        self.host = host
        self.channel = channel or ControlChannel(
            max_buffer=self.settings.message_buffer,
            queue_size=self.settings.subscriber_queue_size,
        )
        self.callback = callback or CallbackClient(timeout_s=self.settings.callback_timeout_s)
        self.gate = ReadinessGate()
        self.collector = SchemaCollector(host, self.gate)
        self.resolver = DataSpecResolver(host)
        self.settings_sync = SettingsSynchronizer(host.settings, self.gate, self.channel)
        self.dialog = DialogController(host.ui, self.channel, self.settings)
        self.rpc = RPCBridge(
            host,
            self.gate,
            self.resolver,
            self.settings_sync,
            self.callback,
            range_bound=self.settings.range_bound,
        )

        self._events: asyncio.Queue[HostEvent] = asyncio.Queue()
        self._pump_task: asyncio.Task[None] | None = None
        self._tasks: set[asyncio.Task[Any]] = set()
        self._unsubscribers: list[Callable[[], None]] = []
        self.schema: Schema | None = None

    # -----------------------------------------------------------------------
    # Start-up
    # -----------------------------------------------------------------------

    async def start(self) -> None:
        """Initialize the host and run the initial schema and settings passes.

        Raises
        ------
        InitError
            If the host runtime failed to initialize.  The same error
            rejects the readiness gate.
        """
        started = time.monotonic()
        try:
            await self.host.initialize(self.dialog.configure_callback())
        except Exception as exc:
            error = InitError(exc)
            self.gate.reject(error)
            self.channel.publish("init-failed", error=str(error))
            raise error from exc
        self.gate.fulfill()
        log.info("host initialized in %.1fms", (time.monotonic() - started) * 1000)
        self.channel.publish("ready")

        started = time.monotonic()
        self._subscribe_host_events()
        try:
            self.schema = await self.collector.collect_schema()
        except Exception as exc:
            log.exception("initial schema collection failed")
            self.channel.publish("error", source="schema", message=str(exc))
        else:
            self.channel.publish("schema", value=self.schema.to_wire())
        try:
            await self.settings_sync.refresh()
        except Exception as exc:
            log.exception("initial settings push failed")
            self.channel.publish("error", source="settings", message=str(exc))
        self._pump_task = asyncio.get_running_loop().create_task(self._pump())
        log.info("bridge startup finished in %.1fms", (time.monotonic() - started) * 1000)

    def _subscribe_host_events(self) -> None:
        def on_settings(new_settings: dict[str, str]) -> None:
            self._events.put_nowait(
                HostEvent(HostEventKind.SETTINGS_CHANGED, settings=dict(new_settings))
            )

        self._unsubscribers.append(self.host.settings.add_change_listener(on_settings))

        for panel in self.host.panels:
            def on_selection(name: str = panel.name) -> None:
                self._events.put_nowait(HostEvent(HostEventKind.SELECTION_CHANGED, panel=name))

            self._unsubscribers.append(panel.add_selection_listener(on_selection))

    async def _pump(self) -> None:
        while True:
            event = await self._events.get()
            try:
                await self._handle_event(event)
            except Exception:
                log.exception("failed to handle host event %s", event.kind)
            finally:
                self._events.task_done()

    async def _handle_event(self, event: HostEvent) -> None:
        match event.kind:
            case HostEventKind.SETTINGS_CHANGED:
                await self.settings_sync.on_host_change(event.settings)
            case HostEventKind.SELECTION_CHANGED:
                self.channel.publish(
                    "selection-changed", worksheet=event.panel, eventTime=event.timestamp
                )

    async def drain_events(self) -> None:
        """Wait until every queued host event has been handled."""
        await self._events.join()

    # -----------------------------------------------------------------------
    # Control-process commands
    # -----------------------------------------------------------------------

    async def handle_command(self, message: Mapping[str, Any]) -> asyncio.Task[Any] | None:
        """Handle one inbound command.

        RPC requests and settings updates run as background tasks, which are
        returned; other commands complete synchronously.

        Raises
        ------
        InvalidCommandError
            If the command type is unknown or a required field is missing.
        """
        try:
            command = CommandType(message.get("type", ""))
        except (AttributeError, ValueError):
            raise InvalidCommandError(message, f"unknown command type {message!r}") from None

        match command:
            case CommandType.INIT:
                url = message.get("callbackUrl")
                if not url:
                    raise InvalidCommandError(message, "init requires callbackUrl")
                self.callback.set_url(str(url))
                return None
            case CommandType.RPC:
                try:
                    request = RpcRequest.from_wire(message)
                except InvalidCommandError as exc:
                    return self._spawn(self.rpc.reject(str(message.get("id", "")), exc))
                return self._spawn(self.rpc.handle(request))
            case CommandType.SETTINGS_UPDATE:
                return self._spawn(
                    self._update_settings(
                        message.get("settings") or {},
                        save=bool(message.get("save", False)),
                        add=bool(message.get("add", False)),
                    )
                )
            case CommandType.DIALOG_CLOSE:
                self.dialog.close(str(message.get("payload", "")))
                return None

    async def _update_settings(self, settings: Mapping[str, Any], *, save: bool, add: bool) -> None:
        try:
            await self.settings_sync.write(settings, save=save, add=add)
        except Exception:
            log.exception("settings update failed")

    def _spawn(self, coro: Any) -> asyncio.Task[Any]:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    # -----------------------------------------------------------------------
    # Shutdown
    # -----------------------------------------------------------------------

    async def close(self) -> None:
        """Unsubscribe from the host, let in-flight work finish, stop the pump.

        Requests still waiting for host readiness are answered with
        ``host_unavailable``; responses still waiting for a callback URL are
        dropped.
        """
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers.clear()

        self.gate.reject("session closed before the host was ready")
        self.callback.abandon_pending()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._pump_task is not None:
            self._pump_task.cancel()
            try:
                await self._pump_task
            except asyncio.CancelledError:
                pass
            self._pump_task = None
        await self.callback.aclose()
        log.info("bridge session closed")
