"""Chaos Claws - probabilistic fault injection for HTTP responses."""

from chaos_claws.brain.chaos_engine import ChaosEngine, ChaosEvent
from chaos_claws.brain.actions import (
    ActionKind,
    ActionRegistry,
    ActionStrategy,
    ChaosDecision,
    CorruptionStrategy,
    RequestDescriptor,
)
from chaos_claws.brain.random_source import SeededRandom
from chaos_claws.brain.stats import Stats, StatsCollector
from chaos_claws.paws.sink import ActionApplier, BufferedResponse, ResponseSink
from chaos_claws.paws.transport import ChaosTransport
from chaos_claws.utils.config import ChaosConfig, Intensity, InvalidConfiguration, resolve_config

__version__ = "0.1.0"

__all__ = [
    "ChaosEngine",
    "ChaosEvent",
    "ActionKind",
    "ActionRegistry",
    "ActionStrategy",
    "ChaosDecision",
    "CorruptionStrategy",
    "RequestDescriptor",
    "SeededRandom",
    "Stats",
    "StatsCollector",
    "ActionApplier",
    "BufferedResponse",
    "ResponseSink",
    "ChaosTransport",
    "ChaosConfig",
    "Intensity",
    "InvalidConfiguration",
    "resolve_config",
]
