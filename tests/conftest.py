import itertools
from typing import Iterable, List

import pytest
import yaml

from chaos_claws.brain.chaos_engine import ChaosEngine
from chaos_claws.paws.sink import BufferedResponse
from chaos_claws.utils.config import resolve_config


class ScriptedRandom:
    """Replays a fixed list of floats, cycling when it runs out."""

    def __init__(self, values: Iterable[float]) -> None:
        self.values: List[float] = list(values)
        self._cycle = itertools.cycle(self.values)
        self.calls = 0

    def random(self) -> float:
        self.calls += 1
        return next(self._cycle)


class SleepRecorder:
    """Stand-in for asyncio.sleep that records instead of waiting."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def scripted():
    return ScriptedRandom


@pytest.fixture
def sleep_recorder():
    return SleepRecorder()


@pytest.fixture
def make_sink(sleep_recorder):
    """Build BufferedResponse sinks that never really sleep."""
    def _make(**kwargs):
        kwargs.setdefault("sleep", sleep_recorder)
        return BufferedResponse(**kwargs)
    return _make


@pytest.fixture
def make_engine():
    """Build an engine from resolve_config keyword arguments."""
    def _make(preset=None, random_source=None, log_sink=None, **overrides):
        return ChaosEngine(
            resolve_config(preset, **overrides),
            random_source=random_source,
            log_sink=log_sink,
        )
    return _make


@pytest.fixture
def json_handler():
    """call_next factory writing a small JSON document into a sink."""
    def _factory(sink, calls=None):
        async def call_next():
            if calls is not None:
                calls.append(sink)
            sink.set_status(200)
            sink.set_body({"id": 7, "name": "Whiskers", "tags": ["cat", "orange"], "age": 4})
        return call_next
    return _factory


@pytest.fixture
def sample_config(tmp_path):
    """Creates a temporary config file."""
    config_path = tmp_path / "chaos-claws.yaml"
    config_data = {
        "chaos": {
            "preset": "wild",
            "delay_range": [10, 20],
            "error_codes": [503],
            "enabled_routes": ["/api/"],
            "disabled_routes": ["/api/health"],
            "logging": True,
        },
        "target": {"base_url": "http://api.example.com/users"},
    }
    with open(config_path, "w") as f:
        yaml.dump(config_data, f)
    return str(config_path)
