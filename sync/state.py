from contextlib import contextmanager
from dataclasses import dataclass
from typing import Optional


@dataclass
class CoordinatorState:
    suppress_feedback: bool = False


@dataclass
class FollowerState:
    base_speed: float = 1.0
    manual_offset: float = 0.0
    last_known_position: Optional[float] = None
    master_paused: Optional[bool] = None
    suppress_feedback: bool = False


@contextmanager
def suppressed(state):
    """
    Anti-echo guard around applying an inbound message: host events fired
    while the block runs must not be re-broadcast. Always cleared on exit.
    """
    state.suppress_feedback = True
    try:
        yield state
    finally:
        state.suppress_feedback = False
