"""
In-process conversation state.

- SessionMemory: recent turns per phone, feeding the completion API
- PendingOperationTracker: step state of multi-turn admin wizards
- ConversationContext: both, created once per application lifespan

Nothing here is persisted; a restart starts every phone from scratch.
"""

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

ROLE_USER = "user"
ROLE_ASSISTANT = "assistant"


class SessionMemory:
    """
    Bounded recent-turn history per phone.

    The stored history is trimmed to `max_history` on every write; `window()`
    is a read-time slice of the last `window_size` turns. Phones are kept in
    LRU order and the least recently used one is evicted past `max_phones`.
    """

    def __init__(self, max_history: int = 20, window_size: int = 12, max_phones: int = 1000):
        self.max_history = max_history
        self.window_size = window_size
        self.max_phones = max_phones
        self._histories: "OrderedDict[str, List[dict]]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._histories)

    def __contains__(self, phone: str) -> bool:
        return phone in self._histories

    def get_or_create(self, phone: str) -> List[dict]:
        history = self._histories.get(phone)
        if history is None:
            history = []
            self._histories[phone] = history
            self._evict()
        else:
            self._histories.move_to_end(phone)
        return history

    def append(self, phone: str, role: str, content: str) -> List[dict]:
        history = self.get_or_create(phone)
        history.append({"role": role, "content": content})
        if len(history) > self.max_history:
            del history[: len(history) - self.max_history]
        return history

    def window(self, phone: str) -> List[dict]:
        """Last `window_size` turns, oldest first."""
        if self.window_size <= 0:
            return []
        history = self._histories.get(phone, [])
        return [dict(turn) for turn in history[-self.window_size:]]

    def clear(self, phone: str) -> None:
        self._histories.pop(phone, None)

    def _evict(self) -> None:
        while len(self._histories) > self.max_phones:
            evicted, _ = self._histories.popitem(last=False)
            logger.debug(f"Session history evicted: {evicted}")


@dataclass
class PendingOperation:
    """Saved step state of an in-progress admin workflow."""
    type: str
    step: str
    data: Dict[str, object] = field(default_factory=dict)
    updated_at: float = 0.0


class PendingOperationTracker:
    """
    Pending admin operations per phone with idle expiry.

    An operation untouched for `ttl_seconds` is dropped on the next lookup.
    """

    def __init__(self, ttl_seconds: int = 600, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._operations: Dict[str, PendingOperation] = {}

    def start(self, phone: str, op_type: str, step: str) -> PendingOperation:
        operation = PendingOperation(type=op_type, step=step, updated_at=self._clock())
        self._operations[phone] = operation
        logger.info(f"Pending operation started: phone={phone}, type={op_type}")
        return operation

    def get(self, phone: str) -> Optional[PendingOperation]:
        operation = self._operations.get(phone)
        if operation is None:
            return None
        if self._clock() - operation.updated_at > self.ttl_seconds:
            logger.info(f"Pending operation expired: phone={phone}, type={operation.type}")
            del self._operations[phone]
            return None
        return operation

    def advance(self, phone: str, step: str, **data) -> Optional[PendingOperation]:
        operation = self.get(phone)
        if operation is None:
            return None
        operation.step = step
        operation.data.update(data)
        operation.updated_at = self._clock()
        return operation

    def clear(self, phone: str) -> Optional[PendingOperation]:
        return self._operations.pop(phone, None)


@dataclass
class ConversationContext:
    """Process-lifetime conversation state passed through request handling."""
    sessions: SessionMemory
    pending: PendingOperationTracker


def create_context(settings) -> ConversationContext:
    return ConversationContext(
        sessions=SessionMemory(
            max_history=settings.SESSION_MAX_HISTORY,
            window_size=settings.SESSION_WINDOW,
            max_phones=settings.SESSION_MAX_PHONES,
        ),
        pending=PendingOperationTracker(ttl_seconds=settings.PENDING_TTL_SECONDS),
    )
