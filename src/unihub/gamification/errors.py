"""Gamification error taxonomy.

``NotFoundError`` and ``InvalidArgumentError`` are raised before any write.
``ConflictRetryableError`` is raised only after the unit of work exhausted its
retries. ``FanoutFailure`` wraps publish errors; the dispatcher logs and drops
it so it never reaches callers of the points operations.
"""

from __future__ import annotations


class GamificationError(Exception):
    """Base class for all engine errors."""


class NotFoundError(GamificationError):
    """A referenced user or badge tier does not exist."""

    def __init__(self, entity: str, entity_id: object) -> None:
        super().__init__(f"{entity} not found: {entity_id}")
        self.entity = entity
        self.entity_id = entity_id


class InvalidArgumentError(GamificationError):
    """A caller passed a value the engine cannot accept."""


class ConflictRetryableError(GamificationError):
    """Concurrent writes kept conflicting after the bounded retry budget."""

    def __init__(self, user_id: int, attempts: int) -> None:
        super().__init__(f"Points update for user {user_id} conflicted {attempts} times")
        self.user_id = user_id
        self.attempts = attempts


class FanoutFailure(GamificationError):
    """Publishing to the real-time transport failed."""

    def __init__(self, topic: str) -> None:
        super().__init__(f"Failed to publish to {topic}")
        self.topic = topic
