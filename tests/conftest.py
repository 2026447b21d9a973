import pytest
from loguru import logger

from blkarbs_probes import Clock, clear_results


class ScriptedClock(Clock):
    """Clock returning a fixed sequence of instants."""

    def __init__(self, instants: list[int]) -> None:
        self._instants = iter(instants)

    def now(self) -> int:
        return next(self._instants)


@pytest.fixture
def clean_registry():
    clear_results()
    yield
    clear_results()


@pytest.fixture
def warning_messages():
    messages: list[str] = []
    handler_id = logger.add(messages.append, level="WARNING", format="{message}")
    yield messages
    logger.remove(handler_id)
