from typing import List, Optional, Set

REQUIRED_WORDS = 30
MAX_WORD_LENGTH = 50


def normalize_word(raw) -> str:
    """Trim and lower-case a submitted word; non-strings normalize to ''."""
    if not isinstance(raw, str):
        return ''
    return raw.strip().lower()


class WordLedger:
    """Insertion-ordered set of normalized words, capped at ``capacity``.

    The ledger only answers "was this word new?"; deciding whether the
    current phase accepts words at all belongs to the state machine.
    """

    def __init__(self, capacity: int = REQUIRED_WORDS, max_length: int = MAX_WORD_LENGTH):
        self.capacity = capacity
        self.max_length = max_length
        self._words: List[str] = []
        self._seen: Set[str] = set()

    def add(self, raw) -> Optional[str]:
        """Record ``raw`` and return its normalized form, or None when rejected."""
        word = normalize_word(raw)
        # over-long words are refused whole, never cut down to a prefix
        if not word or len(word) > self.max_length:
            return None
        if word in self._seen or self.is_full:
            return None
        self._words.append(word)
        self._seen.add(word)
        return word

    def clear(self) -> None:
        self._words = []
        self._seen = set()

    @property
    def is_full(self) -> bool:
        return len(self._words) >= self.capacity

    @property
    def words(self) -> List[str]:
        return list(self._words)

    def __contains__(self, raw) -> bool:
        return normalize_word(raw) in self._seen

    def __len__(self) -> int:
        return len(self._words)
