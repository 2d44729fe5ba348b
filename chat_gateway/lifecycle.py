from __future__ import annotations

import logging
from enum import Enum


logger = logging.getLogger(__name__)


class RequestState(str, Enum):
    IDLE = "idle"
    NORMALIZING = "normalizing"
    VALIDATING = "validating"
    PROVIDER_RESOLVED = "provider_resolved"
    BUDGET_RESOLVED = "budget_resolved"
    DISPATCHED = "dispatched"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"


_ORDER = (
    RequestState.IDLE,
    RequestState.NORMALIZING,
    RequestState.VALIDATING,
    RequestState.PROVIDER_RESOLVED,
    RequestState.BUDGET_RESOLVED,
    RequestState.DISPATCHED,
    RequestState.STREAMING,
    RequestState.COMPLETED,
)
_RANK = {state: rank for rank, state in enumerate(_ORDER)}

TERMINAL_STATES = frozenset({RequestState.COMPLETED, RequestState.FAILED})


class InvalidTransition(RuntimeError):
    pass


class RequestLifecycle:
    """Tracks one chat request through its processing stages.

    States only move forward. Streaming is optional, so a synchronous
    request goes straight from dispatched to completed.
    """

    def __init__(self, request_id: str) -> None:
        self.request_id = request_id
        self.state = RequestState.IDLE

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    def _move(self, target: RequestState) -> None:
        logger.debug("request %s: %s -> %s", self.request_id, self.state.value, target.value)
        self.state = target

    def advance(self, target: RequestState) -> None:
        if self.is_terminal:
            raise InvalidTransition(f"request {self.request_id} already {self.state.value}")
        if target is RequestState.FAILED or _RANK[target] <= _RANK[self.state]:
            raise InvalidTransition(
                f"cannot move request {self.request_id} from {self.state.value} to {target.value}"
            )
        self._move(target)

    def fail(self) -> None:
        if self.is_terminal:
            raise InvalidTransition(f"request {self.request_id} already {self.state.value}")
        self._move(RequestState.FAILED)
