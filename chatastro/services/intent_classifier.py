"""
Intent Classifier

Keyword-table classification of astrology questions. Pure and deterministic:
the same text and table always give the same result.

Scoring: every keyword found as a substring adds 1, or 2 when it also
matches as a whole word. The sum is divided by the length of the intent's
keyword list so that long lists do not dominate short ones.
"""

import re
from typing import Dict, List, Tuple

from chatastro.utils.models import Classification

GENERAL_OVERVIEW = "general_overview"
DEFAULT_INTENT = "general"

DEFAULT_REQUIRED_DATA: Tuple[str, ...] = ("planetary-positions", "basic-astro-details")

OVERVIEW_TERMS = ("overview", "reading")

# Order matters: ties keep the first intent listed.
INTENT_TABLE: Dict[str, Dict[str, Tuple[str, ...]]] = {
    "marriage": {
        "keywords": ("marry", "marriage", "wedding", "spouse", "partner", "husband",
                     "wife", "relationship", "shaadi", "vivah"),
        "required_data": DEFAULT_REQUIRED_DATA,
    },
    "career": {
        "keywords": ("career", "job", "work", "profession", "business", "success",
                     "promotion", "office", "naukri"),
        "required_data": DEFAULT_REQUIRED_DATA,
    },
    "money": {
        "keywords": ("money", "wealth", "finance", "income", "salary", "profit", "rich",
                     "financial", "dhan", "paisa"),
        "required_data": DEFAULT_REQUIRED_DATA,
    },
    "health": {
        "keywords": ("health", "disease", "illness", "fitness", "medical", "body", "pain",
                     "healing", "swasthya"),
        "required_data": DEFAULT_REQUIRED_DATA,
    },
    "love": {
        "keywords": ("love", "romance", "dating", "boyfriend", "girlfriend", "crush",
                     "attraction", "pyaar"),
        "required_data": DEFAULT_REQUIRED_DATA,
    },
    "family": {
        "keywords": ("family", "father", "mother", "brother", "sister", "children", "kids",
                     "parents", "parivar"),
        "required_data": DEFAULT_REQUIRED_DATA,
    },
    "general": {
        "keywords": ("life", "future", "destiny", "general", "overall", "horoscope",
                     "kundli", "jyotish"),
        "required_data": DEFAULT_REQUIRED_DATA,
    },
}

COMPLEX_TOKEN_THRESHOLD = 10

_WORD_PATTERNS: Dict[str, "re.Pattern[str]"] = {}


def _whole_word(keyword: str) -> "re.Pattern[str]":
    pattern = _WORD_PATTERNS.get(keyword)
    if pattern is None:
        pattern = re.compile(rf"\b{re.escape(keyword)}\b", re.IGNORECASE)
        _WORD_PATTERNS[keyword] = pattern
    return pattern


def is_general_overview_request(text: str) -> bool:
    lowered = text.lower()
    return "general" in lowered and any(term in lowered for term in OVERVIEW_TERMS)


def score_intent(text: str, keywords: Tuple[str, ...]) -> float:
    """Normalised keyword score of `text` against one intent's keywords."""
    lowered = text.lower()
    total = 0
    for keyword in keywords:
        if keyword in lowered:
            total += 2 if _whole_word(keyword).search(text) else 1
    return total / len(keywords) if total else 0.0


def score_all(text: str) -> List[Tuple[str, float]]:
    return [(intent, score_intent(text, entry["keywords"])) for intent, entry in INTENT_TABLE.items()]


def classify(text: str) -> Classification:
    """
    Classify a free-text question.

    Args:
        text: The user's message

    Returns:
        Classification with intent, confidence in [0, 1], the provider data
        keys the intent needs, and the overview/complexity flags
    """
    is_complex = len(text.split(" ")) > COMPLEX_TOKEN_THRESHOLD

    if is_general_overview_request(text):
        return Classification(
            intent=GENERAL_OVERVIEW,
            confidence=1.0,
            required_data=list(DEFAULT_REQUIRED_DATA),
            is_general_overview=True,
            is_complex=is_complex,
        )

    best_intent = DEFAULT_INTENT
    best_score = 0.0
    for intent, score in score_all(text):
        if score > best_score:
            best_intent, best_score = intent, score

    return Classification(
        intent=best_intent,
        confidence=min(best_score, 1.0),
        required_data=list(INTENT_TABLE[best_intent]["required_data"]),
        is_general_overview=False,
        is_complex=is_complex,
    )
