"""Test doubles shared by the unit and integration tests."""

import asyncio
from collections import deque
from typing import Any, Dict, List, Optional, Union

from callguard.domain.interfaces.transport import Transport
from callguard.domain.models.calls import TransportResponse


class FakeClock:
    """Monotonic clock whose sleep() advances time instead of waiting."""

    def __init__(self, start: float = 1000.0):
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


class ScriptedTransport(Transport):
    """Transport replaying scripted outcomes and recording every call."""

    def __init__(self, outcomes: Optional[List[Union[TransportResponse, BaseException]]] = None):
        self.outcomes = deque(outcomes or [])
        self.calls: List[Dict[str, Any]] = []
        self.closed = False
        # When set, send() waits on it before answering
        self.gate: Optional[asyncio.Event] = None
        self.completed = 0

    def script(self, *outcomes: Union[TransportResponse, BaseException]) -> None:
        self.outcomes.extend(outcomes)

    async def send(self, url, body, headers, timeout) -> TransportResponse:
        self.calls.append({"url": url, "body": body, "headers": headers, "timeout": timeout})
        await asyncio.sleep(0)
        if self.gate is not None:
            await self.gate.wait()
        self.completed += 1
        outcome = self.outcomes.popleft() if self.outcomes else ok_response()
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome

    async def close(self) -> None:
        self.closed = True


def ok_response(body: Any = None) -> TransportResponse:
    return TransportResponse(status=200, body=body if body is not None else {"content": [{"type": "text", "text": "ok"}]})


def error_response(status: int, body: Any = None) -> TransportResponse:
    return TransportResponse(status=status, body=body if body is not None else {"error": {"type": "api_error"}})
