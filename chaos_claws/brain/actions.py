"""Chaos actions, per-request decisions and the weighted action registry.

A decision is a tagged union: ``ChaosDecision.action`` is ``None`` for a
pass-through, or one of ``DelayAction``, ``ErrorAction`` or
``CorruptionAction``. Which action gets picked is driven by an
``ActionRegistry`` of weighted strategies, so a new chaos kind only needs a
new strategy registered, not a change to the gate or route filter.
"""

from dataclasses import dataclass, field
from enum import Enum
from http import HTTPStatus
from typing import TYPE_CHECKING, Any, Callable, ClassVar, Dict, List, Optional, Union

from chaos_claws.brain.random_source import RandomSource, choose, uniform, weighted_choose

if TYPE_CHECKING:
    from chaos_claws.utils.config import ChaosConfig


CHAOS_MARKER = "Chaos injected error"


class ActionKind(str, Enum):
    """Kinds of chaos that can be applied to a response."""
    NONE = "none"
    DELAY = "delay"
    ERROR = "error"
    CORRUPTION = "corruption"


class CorruptionStrategy(str, Enum):
    """Ways a response payload can be mangled."""
    NULL_BODY = "null_body"
    SCRAMBLE_STRINGS = "scramble_strings"
    INVALID_CONTENT = "invalid_content"


@dataclass(frozen=True)
class RequestDescriptor:
    """The only view of a request the engine needs."""
    path: str
    method: str = "GET"


@dataclass(frozen=True)
class DelayAction:
    duration_ms: float
    kind: ClassVar[ActionKind] = ActionKind.DELAY

    def detail(self) -> Dict[str, Any]:
        return {"duration_ms": self.duration_ms}


@dataclass(frozen=True)
class ErrorAction:
    status_code: int
    kind: ClassVar[ActionKind] = ActionKind.ERROR

    @property
    def body(self) -> Dict[str, Any]:
        """Synthetic error payload. Built fresh on every access."""
        try:
            reason = HTTPStatus(self.status_code).phrase
        except ValueError:
            reason = "Error"
        return {
            "error": reason,
            "status": self.status_code,
            "message": CHAOS_MARKER,
            "chaos": True,
        }

    def detail(self) -> Dict[str, Any]:
        return {"status_code": self.status_code}


@dataclass(frozen=True)
class CorruptionAction:
    strategy: CorruptionStrategy
    # Set when the chosen strategy could not apply and invalid content was used
    degraded: bool = False
    kind: ClassVar[ActionKind] = ActionKind.CORRUPTION

    def detail(self) -> Dict[str, Any]:
        return {"strategy": self.strategy.value, "degraded": self.degraded}


ChaosAction = Union[DelayAction, ErrorAction, CorruptionAction]


@dataclass(frozen=True)
class ChaosDecision:
    """Whether, what and how chaos was applied to one request."""
    request: RequestDescriptor
    eligible: bool
    action: Optional[ChaosAction] = None

    @property
    def applied(self) -> bool:
        return self.action is not None

    @property
    def action_kind(self) -> ActionKind:
        if self.action is None:
            return ActionKind.NONE
        return self.action.kind

    def detail(self) -> Dict[str, Any]:
        return self.action.detail() if self.action is not None else {}

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.request.path,
            "method": self.request.method,
            "eligible": self.eligible,
            "applied": self.applied,
            "action_kind": self.action_kind.value,
            "action_detail": self.detail(),
        }


ActionBuilder = Callable[["ChaosConfig", RandomSource], ChaosAction]


@dataclass
class ActionStrategy:
    """A chaos kind, its selection weight and how to draw its parameters."""
    kind: ActionKind
    weight: float
    build: ActionBuilder = field(repr=False)


def build_delay(config: "ChaosConfig", source: RandomSource) -> DelayAction:
    low, high = config.delay_range
    return DelayAction(duration_ms=uniform(source, low, high))


def build_error(config: "ChaosConfig", source: RandomSource) -> ErrorAction:
    return ErrorAction(status_code=choose(source, config.error_codes))


def build_corruption(config: "ChaosConfig", source: RandomSource) -> CorruptionAction:
    return CorruptionAction(strategy=choose(source, list(CorruptionStrategy)))


class ActionRegistry:
    """Ordered set of weighted action strategies.

    Registration order matters for reproducibility: the same registry and
    the same random sequence always select the same kinds.
    """

    def __init__(self, strategies: Optional[List[ActionStrategy]] = None) -> None:
        self._strategies: Dict[ActionKind, ActionStrategy] = {}
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: ActionStrategy) -> None:
        """Add or replace the strategy for ``strategy.kind``."""
        if strategy.kind is ActionKind.NONE:
            raise ValueError("ActionKind.NONE cannot be registered")
        if strategy.weight < 0:
            raise ValueError(f"Negative weight for {strategy.kind.value}: {strategy.weight}")
        self._strategies[strategy.kind] = strategy

    def kinds(self) -> List[ActionKind]:
        """Kinds that can currently be selected."""
        return [kind for kind, s in self._strategies.items() if s.weight > 0]

    def select(self, config: "ChaosConfig", source: RandomSource) -> ChaosAction:
        """Draw a kind, then let its strategy draw the parameters."""
        strategy = weighted_choose(
            source, [(s, s.weight) for s in self._strategies.values()]
        )
        return strategy.build(config, source)


def default_registry(config: "ChaosConfig") -> ActionRegistry:
    """Delay, error and corruption weighted as configured."""
    weights = config.action_weights
    return ActionRegistry([
        ActionStrategy(ActionKind.DELAY, weights[ActionKind.DELAY], build_delay),
        ActionStrategy(ActionKind.ERROR, weights[ActionKind.ERROR], build_error),
        ActionStrategy(ActionKind.CORRUPTION, weights[ActionKind.CORRUPTION], build_corruption),
    ])
