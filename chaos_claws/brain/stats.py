"""Thread-safe chaos statistics."""

import threading
from dataclasses import asdict, dataclass
from typing import Dict, Optional

from chaos_claws.brain.actions import ActionKind


@dataclass(frozen=True)
class Stats:
    """Immutable snapshot of the counters."""
    total_requests: int = 0
    chaos_count: int = 0
    delay_count: int = 0
    error_count: int = 0
    corruption_count: int = 0

    def to_dict(self) -> Dict[str, int]:
        return asdict(self)


class StatsCollector:
    """Counters owned by one engine instance.

    Each engine gets its own collector unless one is passed in, so several
    engines in one process never share numbers by accident.
    """

    _KIND_FIELDS = {
        ActionKind.DELAY: "delay_count",
        ActionKind.ERROR: "error_count",
        ActionKind.CORRUPTION: "corruption_count",
    }

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counts: Dict[str, int] = {}
        self.reset()

    def record(self, kind: Optional[ActionKind] = None) -> None:
        """Count one request and, when ``kind`` is given, its applied action.

        Both counters move under one lock hold, so a concurrent ``reset()``
        can never leave ``chaos_count`` above ``total_requests``.

        Raises:
            ValueError: If ``kind`` has no counter (e.g. ``ActionKind.NONE``).
        """
        field_name = self._field_for(kind) if kind is not None else None
        with self._lock:
            self._counts["total_requests"] += 1
            if field_name is not None:
                self._counts["chaos_count"] += 1
                self._counts[field_name] += 1

    def record_request(self) -> None:
        with self._lock:
            self._counts["total_requests"] += 1

    def record_chaos(self, kind: ActionKind) -> None:
        """Count one applied action of ``kind``.

        Raises:
            ValueError: If ``kind`` has no counter (e.g. ``ActionKind.NONE``).
        """
        field_name = self._field_for(kind)
        with self._lock:
            self._counts["chaos_count"] += 1
            self._counts[field_name] += 1

    def _field_for(self, kind: ActionKind) -> str:
        field_name = self._KIND_FIELDS.get(kind)
        if field_name is None:
            raise ValueError(f"No counter for action kind: {kind!r}")
        return field_name

    def snapshot(self) -> Stats:
        with self._lock:
            return Stats(**self._counts)

    def reset(self) -> None:
        with self._lock:
            self._counts = {name: 0 for name in Stats.__dataclass_fields__}
