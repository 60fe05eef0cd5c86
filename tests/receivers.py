"""Scripted webhook endpoints for delivery tests."""

from __future__ import annotations

import httpx


class WebhookReceiver:
    """Scripted stand-in for remote webhook endpoints.

    Serves as an httpx MockTransport handler. Each request is recorded;
    responses are taken from ``script`` in order, repeating the last one.
    A script entry may be a status code or an exception to raise.
    """

    def __init__(self, *script: int | Exception) -> None:
        self.script: list[int | Exception] = list(script) or [200]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        index = min(len(self.requests), len(self.script)) - 1
        outcome = self.script[index]
        if isinstance(outcome, Exception):
            raise outcome
        return httpx.Response(outcome, text="ok" if outcome < 300 else "nope")

    @property
    def bodies(self) -> list[bytes]:
        return [r.content for r in self.requests]

    def client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=httpx.MockTransport(self))
