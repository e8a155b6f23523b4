"""Chaos Engine - per-request fault injection decisions.

For every intercepted request the engine runs the same pipeline:

    route filter -> probability gate -> action selection -> applier -> stats

The engine never owns the response. It works on a ``RequestDescriptor`` and
drives whatever ``ResponseSink`` the host hands it, calling ``call_next``
when the real handler should run.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional

from chaos_claws.brain.actions import (
    ActionKind,
    ActionRegistry,
    ChaosAction,
    ChaosDecision,
    RequestDescriptor,
    default_registry,
)
from chaos_claws.brain.random_source import RandomSource, SeededRandom
from chaos_claws.brain.routes import RouteFilter
from chaos_claws.brain.stats import Stats, StatsCollector
from chaos_claws.paws.appliers import APPLIERS
from chaos_claws.paws.sink import ActionApplier, CallNext, ResponseSink
from chaos_claws.utils.config import ChaosConfig, resolve_config

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChaosEvent:
    """Structured record handed to the log sink for every applied action."""
    timestamp: datetime
    route: str
    method: str
    action_kind: ActionKind
    action_detail: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "route": self.route,
            "method": self.method,
            "action_kind": self.action_kind.value,
            "action_detail": dict(self.action_detail),
        }


def log_chaos_event(event: ChaosEvent) -> None:
    """Default log sink: one INFO line per applied action."""
    logger.info(
        "[CHAOS] %s %s -> %s %s",
        event.method,
        event.route,
        event.action_kind.value,
        event.action_detail,
    )


class ChaosEngine:
    """Decides and applies chaos for each request.

    Args:
        config: Resolved configuration. Defaults to the mild preset.
        random_source: Source of uniform floats. Inject a seeded or scripted
            source for reproducible decisions.
        stats: Counter store. Each engine gets its own unless one is passed.
        registry: Weighted action strategies. Defaults to delay, error and
            corruption weighted per ``config.action_weights``.
        appliers: Extra or replacement appliers keyed by action kind.
        log_sink: Called with a ``ChaosEvent`` for each applied action when
            ``config.logging_enabled`` is set.
    """

    def __init__(
        self,
        config: Optional[ChaosConfig] = None,
        *,
        random_source: Optional[RandomSource] = None,
        stats: Optional[StatsCollector] = None,
        registry: Optional[ActionRegistry] = None,
        appliers: Optional[Dict[ActionKind, ActionApplier]] = None,
        log_sink: Optional[Callable[[ChaosEvent], None]] = None,
    ) -> None:
        self.config = config if config is not None else resolve_config()
        self.route_filter = RouteFilter(self.config.enabled_routes, self.config.disabled_routes)
        self.random_source = random_source if random_source is not None else SeededRandom()
        self.stats = stats if stats is not None else StatsCollector()
        self.registry = registry if registry is not None else default_registry(self.config)
        self.appliers: Dict[ActionKind, ActionApplier] = dict(APPLIERS)
        if appliers:
            self.appliers.update(appliers)
        self.log_sink = log_sink if log_sink is not None else log_chaos_event

        logger.debug(
            "Chaos engine ready: preset=%s probability=%s kinds=%s",
            self.config.intensity.value,
            self.config.probability,
            [kind.value for kind in self.registry.kinds()],
        )

    def should_act(self) -> bool:
        """Roll the probability gate once."""
        return self.random_source.random() < self.config.probability

    def decide(self, request: RequestDescriptor) -> ChaosDecision:
        """Decide what, if anything, happens to ``request``.

        Never raises; a fault while selecting an action, or an action no
        applier handles, turns into a pass-through. Stats are recorded once,
        after the outcome is known.
        """
        decision = ChaosDecision(request=request, eligible=False)
        if self.route_filter.is_eligible(request.path):
            decision = ChaosDecision(request=request, eligible=True)
            if self.should_act():
                action = self._select_action(request)
                if action is not None:
                    decision = ChaosDecision(request=request, eligible=True, action=action)

        self.stats.record(decision.action_kind if decision.applied else None)
        return decision

    def _select_action(self, request: RequestDescriptor) -> Optional[ChaosAction]:
        try:
            action = self.registry.select(self.config, self.random_source)
            kind = action.kind
            if kind is ActionKind.NONE or kind not in self.appliers:
                raise ValueError(f"No applier for action kind: {kind!r}")
        except Exception:
            logger.exception("Chaos action selection failed for %s %s", request.method, request.path)
            return None
        return action

    async def handle(
        self,
        request: RequestDescriptor,
        sink: ResponseSink,
        call_next: CallNext,
    ) -> ChaosDecision:
        """Run the full pipeline for one request.

        Args:
            request: Path and method of the intercepted request.
            sink: The host's response.
            call_next: Runs the real handler and writes its result to ``sink``.

        Returns:
            The decision as applied. A corruption that had to fall back to
            invalid content is reported with its effective strategy.
        """
        decision = self.decide(request)
        if not decision.applied:
            await call_next()
            return decision

        timestamp = datetime.now(timezone.utc)
        applier = self.appliers[decision.action_kind]
        applied = await applier.apply(decision.action, sink, call_next, self.random_source)
        if applied != decision.action:
            decision = replace(decision, action=applied)

        if self.config.logging_enabled:
            self._emit(decision, timestamp)
        return decision

    def _emit(self, decision: ChaosDecision, timestamp: datetime) -> None:
        event = ChaosEvent(
            timestamp=timestamp,
            route=decision.request.path,
            method=decision.request.method,
            action_kind=decision.action_kind,
            action_detail=decision.detail(),
        )
        try:
            self.log_sink(event)
        except Exception:
            logger.exception("Chaos log sink failed")

    def get_stats(self) -> Stats:
        """Return a snapshot of the counters."""
        return self.stats.snapshot()

    def reset_stats(self) -> None:
        self.stats.reset()
