"""
Keyword frequency over approved review text.

A heuristic signal for recurring guest issues, not NLP: no stemming,
phrases or language detection.
"""

import re
from collections import Counter
from typing import Dict, Iterable, List

from guest_reviews.models import CanonicalReview

TOP_N = 50
MIN_WORD_LENGTH = 4

STOP_WORDS = frozenset({
    "the", "and", "a", "to", "of", "is", "it", "was", "for", "in", "on",
    "we", "i", "our", "with", "at", "this", "that", "had", "were", "be", "very",
})

_NON_WORD = re.compile(r"[^a-z0-9\s]")


def tokenize(text: str) -> List[str]:
    """Lowercase, blank out punctuation, keep words longer than 3 chars."""
    cleaned = _NON_WORD.sub(" ", text.lower())
    return [w for w in cleaned.split() if len(w) >= MIN_WORD_LENGTH and w not in STOP_WORDS]


def extract_keywords(reviews: Iterable[CanonicalReview],
                     limit: int = TOP_N) -> List[Dict[str, object]]:
    """Top words by count across approved reviews; ties keep first-seen order."""
    freq: Counter = Counter()
    for review in reviews:
        if review.approved and review.text:
            freq.update(tokenize(review.text))

    # sorted() is stable and Counter preserves insertion order
    ranked = sorted(freq.items(), key=lambda kv: kv[1], reverse=True)
    return [{"word": word, "count": count} for word, count in ranked[:limit]]
