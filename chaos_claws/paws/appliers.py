"""Action appliers - realize a chaos decision against a response sink.

Each applier receives the action, the sink and ``call_next``, the coroutine
that runs the real handler and writes its result into the sink. Appliers
decide whether and when the real handler runs.
"""

import json
import logging
from typing import Any, Dict, Optional, Tuple

from chaos_claws.brain.actions import (
    ActionKind,
    ChaosAction,
    CorruptionAction,
    CorruptionStrategy,
    DelayAction,
    ErrorAction,
)
from chaos_claws.brain.random_source import RandomSource
from chaos_claws.paws.sink import ActionApplier, CallNext, ResponseSink

logger = logging.getLogger(__name__)

CORRUPTION_MARKER = "<<chaos-claws:corrupted>>"


class DelayApplier:
    """Hold the response for the decided duration, then proceed normally."""

    async def apply(
        self,
        action: DelayAction,
        sink: ResponseSink,
        call_next: CallNext,
        source: RandomSource,
    ) -> ChaosAction:
        # A host cancellation here propagates before anything is finalized
        await sink.suspend(action.duration_ms)
        await call_next()
        return action


class ErrorApplier:
    """Short-circuit with the synthetic error; the real handler never runs."""

    async def apply(
        self,
        action: ErrorAction,
        sink: ResponseSink,
        call_next: CallNext,
        source: RandomSource,
    ) -> ChaosAction:
        sink.set_status(action.status_code)
        sink.set_body(action.body)
        sink.end()
        return action


class CorruptionApplier:
    """Let the handler respond, then mangle its body before it is sent."""

    async def apply(
        self,
        action: CorruptionAction,
        sink: ResponseSink,
        call_next: CallNext,
        source: RandomSource,
    ) -> ChaosAction:
        await call_next()
        corrupted, effective = corrupt_body(sink.body, action.strategy, source)
        sink.set_body(corrupted)
        if effective is not action.strategy:
            return CorruptionAction(strategy=effective, degraded=True)
        return action


APPLIERS: Dict[ActionKind, ActionApplier] = {
    ActionKind.DELAY: DelayApplier(),
    ActionKind.ERROR: ErrorApplier(),
    ActionKind.CORRUPTION: CorruptionApplier(),
}


def corrupt_body(
    body: Any, strategy: CorruptionStrategy, source: RandomSource
) -> Tuple[str, CorruptionStrategy]:
    """Corrupt ``body`` and report which strategy was actually used.

    Bodies that are not JSON objects or arrays, and any failure while
    corrupting, fall back to invalid content.

    Returns:
        Tuple of (corrupted text, effective strategy).
    """
    if strategy is not CorruptionStrategy.INVALID_CONTENT:
        payload = _parse_json(body)
        if payload is not None:
            try:
                if strategy is CorruptionStrategy.NULL_BODY:
                    return "null", strategy
                if strategy is CorruptionStrategy.SCRAMBLE_STRINGS:
                    return json.dumps(_scramble(payload, source)), strategy
            except Exception as e:
                logger.warning("Corruption strategy %s failed, using invalid content: %s", strategy.value, e)
        else:
            logger.debug("Body is not JSON-shaped; %s degrades to invalid content", strategy.value)

    return _invalid_content(body), CorruptionStrategy.INVALID_CONTENT


def _parse_json(body: Any) -> Optional[Any]:
    """Return the body as a dict/list, or None if it is not JSON-shaped."""
    if isinstance(body, (dict, list)):
        return body
    if isinstance(body, (bytes, bytearray)):
        try:
            body = bytes(body).decode("utf-8")
        except UnicodeDecodeError:
            return None
    if not isinstance(body, str):
        return None
    try:
        payload = json.loads(body)
    except ValueError:
        return None
    return payload if isinstance(payload, (dict, list)) else None


def _scramble(value: Any, source: RandomSource) -> Any:
    """Shuffle the characters of every string value; keys and shape stay."""
    if isinstance(value, dict):
        return {key: _scramble(item, source) for key, item in value.items()}
    if isinstance(value, list):
        return [_scramble(item, source) for item in value]
    if isinstance(value, str):
        chars = list(value)
        for i in range(len(chars) - 1, 0, -1):
            j = min(int(source.random() * (i + 1)), i)
            chars[i], chars[j] = chars[j], chars[i]
        return "".join(chars)
    return value


def _as_text(body: Any) -> str:
    if body is None:
        return ""
    if isinstance(body, (bytes, bytearray)):
        return bytes(body).decode("utf-8", errors="replace")
    if isinstance(body, str):
        return body
    try:
        return json.dumps(body, default=str)
    except (TypeError, ValueError):
        return repr(body)


def _invalid_content(body: Any) -> str:
    """Truncate the body and append a marker.

    The marker is unquoted and starts with ``<``, so the result is never
    valid JSON whether or not the cut lands inside a string literal.
    """
    text = _as_text(body)
    return text[: len(text) // 2] + CORRUPTION_MARKER
