"""Response sinks - the engine's only handle on the host's response."""

import asyncio
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, Optional, Protocol

if TYPE_CHECKING:
    from chaos_claws.brain.actions import ChaosAction
    from chaos_claws.brain.random_source import RandomSource

CallNext = Callable[[], Awaitable[None]]


class ResponseSink(Protocol):
    """What an applier needs from the hosting framework's response."""

    @property
    def status(self) -> int:
        ...

    @property
    def body(self) -> Any:
        ...

    def set_status(self, code: int) -> None:
        ...

    def set_body(self, content: Any) -> None:
        ...

    def end(self) -> None:
        ...

    async def suspend(self, duration_ms: float) -> None:
        ...


class ActionApplier(Protocol):
    """Realizes one kind of chaos action against a sink.

    Returns the action as actually applied, which may differ from the one
    passed in when the applier had to fall back.
    """

    async def apply(
        self,
        action: Any,
        sink: ResponseSink,
        call_next: CallNext,
        source: "RandomSource",
    ) -> "ChaosAction":
        ...


class BufferedResponse:
    """In-memory response sink.

    Used by the httpx transport and the ``simulate`` command, and handy as a
    test double. ``sleep`` is awaited on suspend; swap it out to run delays
    without real waiting.
    """

    def __init__(
        self,
        status: int = 200,
        body: Any = None,
        headers: Optional[Dict[str, str]] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._status = status
        self._body = body
        self.headers: Dict[str, str] = dict(headers or {})
        self.ended = False
        self.suspended_ms = 0.0
        self._sleep = sleep

    @property
    def status(self) -> int:
        return self._status

    @property
    def body(self) -> Any:
        return self._body

    def set_status(self, code: int) -> None:
        self._ensure_open()
        self._status = code

    def set_body(self, content: Any) -> None:
        self._ensure_open()
        self._body = content

    def end(self) -> None:
        self.ended = True

    async def suspend(self, duration_ms: float) -> None:
        """Wait without blocking the event loop, then resume."""
        await self._sleep(duration_ms / 1000.0)
        self.suspended_ms += duration_ms

    def _ensure_open(self) -> None:
        if self.ended:
            raise RuntimeError("Response already ended")
