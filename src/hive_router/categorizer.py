"""Rule-based category assignment for memory records.

Categories are a pure function of (text, rule table), so a stored record's
category can be re-derived at any time and never needs migrating when the
rules change.
"""

import re
from typing import Mapping, Sequence

DEFAULT_CATEGORY = "general"

_WORD_RE = re.compile(r"[a-z0-9#+/.\-]+")


def tokenize(text: str) -> list[str]:
    """Split text into lowercase word tokens."""
    return [t.strip(".-") for t in _WORD_RE.findall(text.lower()) if t.strip(".-")]


def categorize(
    text: str,
    rules: Mapping[str, Sequence[str]],
    default: str = DEFAULT_CATEGORY,
) -> str:
    """Assign the category whose keywords occur most often in *text*.

    Ties go to the rule listed first. When nothing matches the *default*
    category is returned; it is the lowest-confidence label and means only
    that no rule fired.
    """
    tokens = tokenize(text)
    if not tokens:
        return default

    counts: dict[str, int] = {}
    for token in tokens:
        counts[token] = counts.get(token, 0) + 1

    best_category = default
    best_hits = 0
    for category, keywords in rules.items():
        hits = sum(counts.get(k.lower(), 0) for k in set(keywords))
        if hits > best_hits:
            best_category = category
            best_hits = hits

    return best_category
