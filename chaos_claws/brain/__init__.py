"""The Brain - decides whether, what and how to break."""

from chaos_claws.brain.actions import ActionKind, ActionRegistry, ChaosDecision, RequestDescriptor
from chaos_claws.brain.routes import RouteFilter
from chaos_claws.brain.stats import Stats, StatsCollector

__all__ = ["ActionKind", "ActionRegistry", "ChaosDecision", "RequestDescriptor", "RouteFilter", "Stats", "StatsCollector"]
