"""The Paws - apply chaos decisions to responses."""

from chaos_claws.paws.sink import ActionApplier, BufferedResponse, ResponseSink
from chaos_claws.paws.appliers import CorruptionApplier, DelayApplier, ErrorApplier
from chaos_claws.paws.transport import ChaosTransport

__all__ = ["ActionApplier", "BufferedResponse", "ResponseSink", "CorruptionApplier", "DelayApplier", "ErrorApplier", "ChaosTransport"]
