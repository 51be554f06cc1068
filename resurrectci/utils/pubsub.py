# Copyright (c) 2025 Parth Sinha and Shine Gupta. All rights reserved.
# ResurrectCI - Autonomous AI agent that detects, analyzes, and resolves deployment failures in real-time.

"""
Synchronous typed publisher.

Subscribers are called in registration order on the publishing thread.
A subscriber that raises is logged and skipped; the rest still run.
"""

import threading
from typing import Callable, Generic, TypeVar

from resurrectci.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class Publisher(Generic[T]):
    """
    Fan out events of one type to registered callbacks.

    Example:
        ```python
        actions: Publisher[AutomatedAction] = Publisher("actions")
        actions.subscribe(print)
        actions.publish(action)
        ```
    """

    def __init__(self, name: str = "publisher") -> None:
        self.name = name
        self._lock = threading.Lock()
        self._subscribers: list[Callable[[T], None]] = []

    def subscribe(self, callback: Callable[[T], None]) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def unsubscribe(self, callback: Callable[[T], None]) -> bool:
        """Remove a callback. Returns True if it was registered."""
        with self._lock:
            try:
                self._subscribers.remove(callback)
                return True
            except ValueError:
                return False

    def publish(self, event: T) -> None:
        with self._lock:
            snapshot = list(self._subscribers)

        for callback in snapshot:
            try:
                callback(event)
            except Exception:
                logger.exception(
                    "subscriber_failed",
                    publisher=self.name,
                    subscriber=getattr(callback, "__qualname__", repr(callback)),
                )

    def __len__(self) -> int:
        with self._lock:
            return len(self._subscribers)
