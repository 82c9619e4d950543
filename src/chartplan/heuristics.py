"""Deterministic, non-AI plan extraction.

The condition patterns are tuned to typical dictated narratives and are a
starting heuristic, not a clinically validated extractor.
"""

import re
from typing import Any, Dict, List, Sequence, Tuple

from .contracts import CommandType
from .redaction import safe_harbor_redact
from .sections import HISTORY, PAST_HISTORY
from .terminology import KNOWN_CONDITIONS, match_term, singularize

NARRATIVE_REASONING = "Free-text encounter narrative supplied by clinician."
CONDITION_REASONING = "Past medical history conditions mentioned in the narrative."

_TERMS = r"(?P<terms>[^.;:!?\n]+)"
CONDITION_PATTERNS = [
    re.compile(r"\bpast medical history (?:includes|of|significant for|is significant for)\s+" + _TERMS, re.IGNORECASE),
    re.compile(r"\bhistory of\s+(?!present illness)" + _TERMS, re.IGNORECASE),
    re.compile(r"\bhx of\s+" + _TERMS, re.IGNORECASE),
    re.compile(r"\bdiagnosed with\s+" + _TERMS, re.IGNORECASE),
]

SPLIT_PATTERN = re.compile(r"\s*(?:,|/|;|&|\band\b|\bor\b|\bplus\b)\s*", re.IGNORECASE)

# Qualifiers that end a condition phrase ("cataracts 6 months ago by optometrist").
TRAILING_QUALIFIER = re.compile(
    r"\s+(?:\d|since\b|for\b|ago\b|by\b|in\b|at\b|on\b|who\b|which\b|that\b|but\b|"
    r"with\b|without\b|was\b|were\b|is\b|are\b|currently\b|now\b|last\b|recently\b)",
    re.IGNORECASE,
)
LEADING_ARTICLE = re.compile(r"^(?:a|an|the|mild|some)\s+", re.IGNORECASE)

ROMAN_NUMERAL = re.compile(r"^(?=[ivxlcdm]+$)m{0,3}(cm|cd|d?c{0,3})(xc|xl|l?x{0,3})(ix|iv|v?i{0,3})$", re.IGNORECASE)
CONNECTORS = {"of", "the", "and", "in", "on", "to", "a", "an", "with"}
COMMON_SHORT_WORDS = {"eye", "dry", "low", "leg", "arm", "ear", "hip", "new", "old", "non", "day", "top", "wet"}
PHRASE_BREAK = re.compile(
    r"^(?:noting|noticing|presenting|reports?|complains?|denies|who|which|but|now|currently|here)\b", re.IGNORECASE
)


def _capitalize_token(token: str) -> str:
    if "-" in token:
        return "-".join(_capitalize_token(part) for part in token.split("-"))
    lowered = token.lower()
    if not token:
        return token
    if lowered in CONNECTORS:
        return lowered
    if token.isupper() and len(token) > 1:
        return token
    if ROMAN_NUMERAL.match(token) or (len(token) <= 3 and lowered not in COMMON_SHORT_WORDS):
        return token.upper()
    return token[0].upper() + token[1:].lower()


def normalize_capitalization(phrase: str) -> str:
    return " ".join(_capitalize_token(token) for token in phrase.split())


def extract_condition_phrases(narrative: str) -> List[str]:
    phrases: List[str] = []
    for pattern in CONDITION_PATTERNS:
        for match in pattern.finditer(narrative):
            for part in SPLIT_PATTERN.split(match.group("terms")):
                if PHRASE_BREAK.match(part.strip()):
                    break
                part = TRAILING_QUALIFIER.split(part, maxsplit=1)[0]
                part = LEADING_ARTICLE.sub("", part.strip()).strip(" '\"()")
                if len(part) < 2:
                    continue
                phrases.append(normalize_capitalization(part))
    # Preserve order but drop duplicates.
    return list(dict.fromkeys(phrases))


def classify_conditions(phrases: Sequence[str], known: Sequence[str] = KNOWN_CONDITIONS) -> Tuple[List[str], List[str]]:
    select: List[str] = []
    free_text: List[str] = []
    for phrase in phrases:
        found = match_term(phrase, known)
        if not found.matched:
            found = match_term(singularize(phrase), known)
        if found.matched:
            if found.canonical not in select:
                select.append(found.canonical)
        elif phrase not in free_text:
            free_text.append(phrase)
    return select, free_text


def heuristic_plan(narrative: str, redact: bool = False) -> Dict[str, Any]:
    """Build a raw plan (sanitizer input shape) from the narrative alone."""

    text = narrative.strip()
    items: List[Dict[str, Any]] = [
        {
            "target_section": HISTORY,
            "subsection": "Extended HPI",
            "reasoning": NARRATIVE_REASONING,
            "commands": [
                {
                    "type": CommandType.INSERT_NARRATIVE_TEXT.value,
                    "description": "Insert encounter narrative into Extended HPI",
                    "params": {
                        "field": "Extended HPI",
                        "text": safe_harbor_redact(text) if redact else text,
                    },
                }
            ],
        }
    ]

    select, free_text = classify_conditions(extract_condition_phrases(text))
    if select or free_text:
        items.append(
            {
                "target_section": PAST_HISTORY,
                "subsection": "PMHx",
                "reasoning": CONDITION_REASONING,
                "commands": [
                    {
                        "type": CommandType.SELECT_OR_CREATE_CONDITION.value,
                        "description": "Select or free-type past medical history conditions",
                        "params": {"select": select, "free_text": free_text},
                    }
                ],
            }
        )

    count = len(select) + len(free_text)
    summary = f"Heuristic plan: narrative captured; {count} past-history condition(s) detected."
    return {"summary": summary, "items": items}
