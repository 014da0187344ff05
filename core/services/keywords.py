"""
Keyword extraction for lexical context retrieval.
"""

from __future__ import annotations

import re
from typing import Optional, Sequence

from core.config import RETRIEVAL_SETTINGS, RetrievalSettings

_NON_WORD_RE = re.compile(r"[^\w\s]")


def tokenize(text: str, settings: RetrievalSettings = RETRIEVAL_SETTINGS) -> list[str]:
    """Lowercase, strip punctuation and drop short tokens and stop words."""
    normalized = _NON_WORD_RE.sub(" ", text.lower())
    return [
        token
        for token in normalized.split()
        if len(token) >= settings.min_token_length and token not in settings.stop_words
    ]


def extract_keywords(
    query: str,
    history: Optional[Sequence[str]] = None,
    settings: RetrievalSettings = RETRIEVAL_SETTINGS,
) -> list[str]:
    """
    Extract the ordered keyword list for a query.

    The first ``max_query_keywords`` surviving query tokens come first, followed
    by up to ``max_history_keywords`` tokens taken from the last
    ``history_window`` history entries. History tokens may repeat query tokens.
    """
    keywords = tokenize(query, settings)[: settings.max_query_keywords]
    if history:
        recent = " ".join(history[-settings.history_window:])
        keywords.extend(tokenize(recent, settings)[: settings.max_history_keywords])
    return keywords
