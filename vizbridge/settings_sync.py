"""Settings synchronizer between the host settings store and the control process.

Host settings are a ``str -> str`` mapping.  Typed values travel as JSON
text: the control process writes ``encode_setting(value)`` and reads back the
decoded value.  A host entry that is not valid JSON is treated as absent.

Host -> control process (``refresh``):
    read the snapshot, decode, diff against the last pushed snapshot, then
    publish ``setting`` messages (``None`` for removed keys, the value for new
    or changed keys) followed by one ``settings`` aggregate message.

Control process -> host (``write``):
    optionally erase keys missing from the incoming mapping (``add=False``),
    erase keys whose value is ``None``, set the rest, optionally persist.

The destructive write path and the host change path are not serialized
against each other; whichever runs last wins.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from vizbridge.exceptions import HostUnavailableError, InitError, PersistenceError

if TYPE_CHECKING:
    from collections.abc import Mapping

    from vizbridge.channel import ControlChannel
    from vizbridge.host import SettingsBackend
    from vizbridge.readiness import ReadinessGate

log = logging.getLogger(__name__)

__all__ = [
    "SettingsDiff",
    "SettingsSynchronizer",
    "decode_settings",
    "diff_settings",
    "encode_setting",
]


def encode_setting(value: Any) -> str:
    """Encode a typed value as JSON text for the host store.

    Raises ``ValueError`` for NaN and infinite floats, which JSON cannot carry.
    """
    return json.dumps(value, allow_nan=False)


def _reject_constant(name: str) -> Any:
    raise ValueError(f"non-standard JSON constant {name}")


def decode_settings(raw: Mapping[str, str]) -> dict[str, Any]:
    """Decode every JSON-encoded value; undecodable entries are dropped."""
    decoded: dict[str, Any] = {}
    for key, text in raw.items():
        try:
            decoded[key] = json.loads(text, parse_constant=_reject_constant)
        except (TypeError, ValueError):
            log.warning("dropping setting %r: value is not valid JSON", key)
    return decoded


@dataclass(slots=True, frozen=True)
class SettingsDiff:
    """Difference between two decoded settings snapshots."""

    removed: tuple[str, ...] = ()
    changed: dict[str, Any] = field(default_factory=dict)
    snapshot: dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not self.removed and not self.changed


def diff_settings(previous: Mapping[str, Any], current: Mapping[str, Any]) -> SettingsDiff:
    """Compute removed and new/changed keys going from *previous* to *current*."""
    removed = tuple(key for key in previous if key not in current)
    changed = {
        key: value
        for key, value in current.items()
        if key not in previous or previous[key] != value
    }
    return SettingsDiff(removed=removed, changed=changed, snapshot=dict(current))


class SettingsSynchronizer:
    """Keeps the host settings store and the control process consistent."""

    def __init__(
        self,
        backend: SettingsBackend,
        gate: ReadinessGate,
        channel: ControlChannel,
    ) -> None:
        self._backend = backend
        self._gate = gate
        self._channel = channel
        self._last_pushed: dict[str, Any] = {}

    @property
    def last_pushed(self) -> dict[str, Any]:
        """The decoded snapshot most recently pushed to the control process."""
        return dict(self._last_pushed)

    async def refresh(self, raw: Mapping[str, str] | None = None) -> SettingsDiff:
        """Push the current host settings to the control process.

        Parameters
        ----------
        raw : Mapping[str, str] | None
            Snapshot delivered by a change event; read from the host when
            ``None``.
        """
        try:
            await self._gate.await_ready()
        except InitError as exc:
            raise HostUnavailableError("settings refresh") from exc

        if raw is None:
            raw = self._backend.get_all()
        self._last_pushed, diff = self._push(self._last_pushed, decode_settings(raw))
        return diff

    def _push(
        self, previous: dict[str, Any], current: dict[str, Any]
    ) -> tuple[dict[str, Any], SettingsDiff]:
        diff = diff_settings(previous, current)
        for key in diff.removed:
            self._channel.publish("setting", key=key, value=None)
        for key, value in diff.changed.items():
            self._channel.publish("setting", key=key, value=value)
        self._channel.publish("settings", value=diff.snapshot)
        log.debug(
            "pushed settings: %d removed, %d changed, %d total",
            len(diff.removed), len(diff.changed), len(diff.snapshot),
        )
        return diff.snapshot, diff

    async def on_host_change(self, new_settings: Mapping[str, str]) -> None:
        """Handle a host-originated change notification; never raises."""
        try:
            await self.refresh(new_settings)
        except Exception:
            log.exception("failed to push changed settings")

    async def write(
        self,
        settings: Mapping[str, Any],
        *,
        save: bool = False,
        add: bool = False,
    ) -> None:
        """Apply a settings update from the control process to the host.

        Raises
        ------
        PersistenceError
            If *save* is set and the durable save fails.  The in-memory
            host settings keep the new values.
        ValueError
            If a value cannot be encoded as JSON (NaN, infinity).
        """
        try:
            await self._gate.await_ready()
        except InitError as exc:
            raise HostUnavailableError("settings write") from exc

        # An unencodable value must leave the store untouched.
        encoded = {
            key: None if value is None else encode_setting(value)
            for key, value in settings.items()
        }
        if not add:
            for key in list(self._backend.get_all()):
                if key not in encoded:
                    self._backend.erase(key)
        for key, text in encoded.items():
            if text is None:
                self._backend.erase(key)
            else:
                self._backend.set(key, text)

        if save:
            try:
                await self._backend.save()
            except Exception as exc:
                log.error("saving settings failed: %s", exc)
                raise PersistenceError(exc) from exc
            log.info("extension settings saved")
