import itertools
import random
import threading
import time
from collections import deque
from typing import Callable, List, Optional

from bipseed.models import ChatMessage

CHAT_HISTORY_LIMIT = 50
MAX_MESSAGE_LENGTH = 200


def pseudonym(rng=random) -> str:
    return f"Anonyme {rng.randint(0, 999)}"


class ChatLedger:
    """Most recent anonymous chat messages, oldest evicted first.

    Pseudonyms are drawn per message, not per connection.
    """

    def __init__(self, limit: int = CHAT_HISTORY_LIMIT, max_length: int = MAX_MESSAGE_LENGTH,
                 clock: Callable[[], float] = time.time, rng=None):
        self.limit = limit
        self.max_length = max_length
        self.clock = clock
        self.rng = rng or random.Random()
        self._messages = deque(maxlen=limit)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def post(self, raw) -> Optional[ChatMessage]:
        if not isinstance(raw, str):
            return None
        text = raw.strip()[:self.max_length]
        if not text:
            return None
        with self._lock:
            message = ChatMessage(
                id=next(self._ids),
                text=text,
                timestamp=self.clock(),
                user=pseudonym(self.rng),
            )
            self._messages.append(message)
        return message

    @property
    def messages(self) -> List[ChatMessage]:
        with self._lock:
            return list(self._messages)

    def history(self) -> List[dict]:
        return [m.to_dict() for m in self.messages]

    def __len__(self) -> int:
        return len(self._messages)
