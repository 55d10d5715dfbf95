"""Text helpers for recognized-text processing."""

import re
from typing import Iterable, List, Optional


def tokenize(text: str) -> List[str]:
    """Tokenize recognized text with robust normalization.

    Normalizes text by:
    - Converting to lowercase
    - Stripping whitespace
    - Removing punctuation
    - Splitting on whitespace
    - Filtering out empty tokens

    Args:
        text: Input text to tokenize.

    Returns:
        List of non-empty tokens.
    """
    if not text:
        return []

    # Lowercase and strip
    normalized = text.lower().strip()

    # Remove punctuation
    no_punct = re.sub(r'[^\w\s]', ' ', normalized)

    # Split on whitespace and filter empty strings
    tokens = [token for token in no_punct.split() if token]

    return tokens


def match_lexicon(text: str, lexicon: Iterable[str]) -> Optional[str]:
    """Find the first lexicon word present in text.

    Matching is case-insensitive and whole-word, so "Room 302" matches
    "Room" but "Broom" does not. Lexicon order decides ties.

    Args:
        text: Recognized text.
        lexicon: Candidate words in priority order.

    Returns:
        The matching lexicon entry as written in the lexicon, or None.
    """
    tokens = set(tokenize(text))
    if not tokens:
        return None

    for word in lexicon:
        if word.lower() in tokens:
            return word
    return None
