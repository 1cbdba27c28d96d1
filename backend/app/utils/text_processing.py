"""
Lightweight text heuristics shared by the context engine.

Concept extraction is used by the concept analyzer, the conflict resolver and
the knowledge base aggregator with different parameters, so it lives here as a
single pure function.
"""
import math
import re
from collections import Counter
from typing import Iterable, List, Optional, Set

CHARS_PER_TOKEN = 4

_WORD_PATTERN = re.compile(r"\b[a-z]+\b")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")
_WHITESPACE = re.compile(r"\s+")

STOP_WORDS = frozenset({
    "the", "and", "for", "are", "but", "not", "you", "all", "can", "had",
    "her", "was", "one", "our", "out", "day", "get", "has", "him", "his",
    "how", "its", "may", "new", "now", "old", "see", "two", "way", "who",
    "boy", "did", "she", "use", "your", "have", "they", "this", "from",
    "been", "them", "than", "many", "some", "time", "very", "when", "much",
})


def estimate_token_count(text: str) -> int:
    """Rough estimate: ~4 characters per token"""
    return math.ceil(len(text or "") / CHARS_PER_TOKEN)


def tokenize(text: str) -> List[str]:
    """Lower-cased alphabetic words; runs glued to digits or underscores are skipped"""
    return _WORD_PATTERN.findall((text or "").lower())


def word_set(text: str) -> Set[str]:
    return set(tokenize(text))


def split_sentences(text: str) -> List[str]:
    return [s for s in _SENTENCE_SPLIT.split(text or "") if s.strip()]


def normalize_whitespace(text: str) -> str:
    return _WHITESPACE.sub(" ", (text or "").lower()).strip()


def extract_concepts(
    text: str,
    min_length: int,
    min_count: int = 1,
    top_n: Optional[int] = None,
    stopwords: Iterable[str] = (),
) -> List[str]:
    """
    Extract candidate concept words from text.

    Args:
        text: Input text
        min_length: Minimum word length to qualify as a concept
        min_count: Minimum occurrences within the text
        top_n: Keep only the N most frequent (None keeps all)
        stopwords: Words that never qualify

    Returns:
        Concepts ordered by frequency desc, ties by first appearance
    """
    blocked = frozenset(stopwords)
    counts: Counter = Counter()
    first_seen = {}
    for position, word in enumerate(tokenize(text)):
        if len(word) < min_length or word in blocked:
            continue
        counts[word] += 1
        first_seen.setdefault(word, position)

    ranked = sorted(
        (word for word, count in counts.items() if count >= min_count),
        key=lambda word: (-counts[word], first_seen[word])
    )
    return ranked[:top_n] if top_n is not None else ranked


def word_overlap_ratio(first: str, second: str) -> float:
    """
    Share of words the two strings have in common, relative to the shorter one.

    Words are whitespace separated after lower-casing, so punctuation stays
    attached to the word it follows.
    """
    first_words = set(normalize_whitespace(first).split(" ")) - {""}
    second_words = set(normalize_whitespace(second).split(" ")) - {""}
    if not first_words or not second_words:
        return 0.0
    shared = first_words & second_words
    return len(shared) / min(len(first_words), len(second_words))


def dedupe_preserving_order(items: Iterable[str]) -> List[str]:
    seen = set()
    unique = []
    for item in items:
        if item in seen:
            continue
        seen.add(item)
        unique.append(item)
    return unique
