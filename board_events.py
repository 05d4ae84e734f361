"""
Task change notifications.

Route handlers publish a TaskEvent after every committed task write; the
server-sent event stream and tests subscribe to the channel. One channel is
created per application and handed to handlers as a dependency.
"""

import enum
import logging
from dataclasses import asdict, dataclass
from typing import Callable, List, Optional

logger = logging.getLogger(__name__)


class TaskEventKind(str, enum.Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass(frozen=True)
class TaskEvent:
    kind: TaskEventKind
    task_id: int
    tab_id: Optional[int] = None
    actor_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data["kind"] = self.kind.value
        return data


class TaskEventChannel:
    """Fan-out of task events to registered callbacks."""

    def __init__(self, max_subscribers: int = 100):
        self.max_subscribers = max_subscribers
        self._subscribers: List[Callable[[TaskEvent], None]] = []

    def subscribe(self, callback: Callable[[TaskEvent], None]) -> Callable[[], None]:
        """Register a callback and return a function that removes it again."""
        if len(self._subscribers) >= self.max_subscribers:
            raise RuntimeError(f"Too many task event subscribers (limit {self.max_subscribers})")
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def publish(self, event: TaskEvent) -> None:
        for callback in list(self._subscribers):
            try:
                callback(event)
            except Exception:
                logger.exception("Task event subscriber failed on %s for task %s", event.kind.value, event.task_id)
