"""Configure dialog support.

The host calls the extension's ``configure`` callback synchronously from its
menu; the dialog itself is opened asynchronously.  When the dialog closes,
its return payload is published to the control process as a
``dialog-closed`` message.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING
from urllib.parse import urljoin

if TYPE_CHECKING:
    from collections.abc import Callable

    from vizbridge.channel import ControlChannel
    from vizbridge.config import BridgeSettings
    from vizbridge.host import DialogBackend

log = logging.getLogger(__name__)

__all__ = ["DialogController"]


class DialogController:
    """Opens the configure dialog and closes the dialog the bridge runs in."""

    def __init__(
        self,
        ui: DialogBackend,
        channel: ControlChannel,
        settings: BridgeSettings,
    ) -> None:
        self._ui = ui
        self._channel = channel
        self._settings = settings
        self._tasks: set[asyncio.Task[str | None]] = set()

    @property
    def configure_url(self) -> str:
        return urljoin(self._settings.base_url, self._settings.configure_query)

    async def open_configure(self) -> str | None:
        """Open the configure dialog and wait for it to close.

        Returns the dialog's payload, or ``None`` if the host failed to open
        it (the failure is logged, not raised).
        """
        url = self.configure_url
        log.info("opening configure dialog: %s", url)
        try:
            payload = await self._ui.display_dialog(
                url,
                "",
                width=self._settings.dialog_width,
                height=self._settings.dialog_height,
            )
        except Exception:
            log.exception("configure dialog failed")
            return None
        log.info("configure dialog closed")
        self._channel.publish("dialog-closed", payload=payload)
        return payload

    def configure_callback(self) -> Callable[[], None]:
        """Return the synchronous ``configure`` hook handed to the host."""

        def configure() -> None:
            task = asyncio.get_running_loop().create_task(self.open_configure())
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

        return configure

    def close(self, payload: str = "") -> None:
        """Close the dialog this extension is running in, returning *payload*."""
        log.info("closing dialog")
        self._ui.close_dialog(payload)
