"""Capture of RPC callback POSTs through ``httpx.MockTransport``."""

from __future__ import annotations

import json

import httpx

CALLBACK_URL = "http://control.test/rpc-callback"


class CallbackRecorder:
    """Mock transport handler recording every request it receives."""

    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        return httpx.Response(self.status_code, json={"ok": True})

    @property
    def posts(self) -> list[tuple[str | None, dict]]:
        """``(id query parameter, JSON body)`` of each POST, in arrival order."""
        return [
            (req.url.params.get("id"), json.loads(req.content))
            for req in self.requests
        ]
