import re
from typing import Iterable, List

# Capitalised-word heuristics are left out: chart vocabulary ("Blurred Vision")
# is title-cased and would be wiped.
SAFE_HARBOR_PATTERNS = [
    re.compile(r"\b\d{3}[-.\s]?\d{2}[-.\s]?\d{4}\b"),
    re.compile(r"(?<![\d/])(\+?\d{1,3}[-.\s]?)?\(?\d{3}\)?[-.\s]?\d{3}[-.\s]?\d{4}\b"),
    re.compile(r"\b[\w\.-]+@[\w\.-]+\.\w+\b"),
    re.compile(r"https?://\S+"),
    re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"),
    re.compile(r"\b\d{1,2}-\d{1,2}-\d{2,4}\b"),
    re.compile(r"\b\d{4}-\d{2}-\d{2}\b"),
]


def safe_harbor_redact(text: str) -> str:
    red = text
    for pat in SAFE_HARBOR_PATTERNS:
        red = pat.sub("[REDACTED]", red)
    return red


def context_identifiers(context: str) -> List[str]:
    """Split a ``name|dob`` style context string into substitutable parts."""

    parts = [part.strip() for part in re.split(r"[|,;]", context or "")]
    return [part for part in parts if len(part) > 1]


def substitute_identifiers(text: str, identifiers: Iterable[str], alias: str) -> str:
    red = text
    # Longest first so a full name wins over its surname.
    for identifier in sorted(set(identifiers), key=len, reverse=True):
        red = re.sub(re.escape(identifier), alias, red, flags=re.IGNORECASE)
    return red
