"""Local token-count heuristic.

Approximates generated-token cost without calling any vendor tokenizer, so
results will not match official usage accounting.
"""
import math

PUNCTUATION = frozenset(".,!?;:'\"()[]{}")
LONG_WORD_LENGTH = 8


def estimate_tokens(text: str) -> int:
    if not text:
        return 0
    words = text.split()
    punctuation = sum(1 for ch in text if ch in PUNCTUATION)
    long_words = sum(1 for w in words if len(w) > LONG_WORD_LENGTH)
    return max(1, len(words) + math.ceil(long_words * 0.5) + punctuation)
