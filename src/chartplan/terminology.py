import re
from typing import Iterable, Literal, Optional

from pydantic import BaseModel

KNOWN_CONDITIONS = [
    "Negative",
    "Anxiety",
    "Asthma",
    "Atrial Fibrillation",
    "Cancer",
    "Cataract",
    "COPD",
    "Coronary Artery Disease",
    "Depression",
    "Diabetes Mellitus Type I",
    "Diabetes Mellitus Type II",
    "Diverticulosis",
    "Dry Eye Syndrome",
    "GERD",
    "Glaucoma",
    "Hyperlipidemia",
    "Hypertension",
    "Hypothyroidism",
    "Macular Degeneration",
    "Migraine",
    "Osteoarthritis",
    "Sleep Apnea",
    "Stroke",
]

CC_FINDINGS = [
    "Blurred Vision",
    "Decreased Vision",
    "Double Vision",
    "Dry Eyes",
    "Eye Pain",
    "Flashes",
    "Floaters",
    "Glare",
    "Itching",
    "Redness",
    "Tearing",
]

EYE_LOCATIONS = ["OD", "OS", "OU"]

DIAGNOSTIC_TESTS = [
    "OCT Macula",
    "OCT RNFL",
    "IOL Master/Lenstar",
    "Corneal Topography",
    "Visual Field",
    "Fundus Photo",
    "Pachymetry",
]

DIAGNOSTIC_TEST_ALIASES = {
    "oct of the macula": "OCT Macula",
    "macular oct": "OCT Macula",
    "oct macula": "OCT Macula",
    "oct rnfl": "OCT RNFL",
    "rnfl": "OCT RNFL",
    "nerve fiber layer": "OCT RNFL",
    "iol master": "IOL Master/Lenstar",
    "lenstar": "IOL Master/Lenstar",
    "biometry": "IOL Master/Lenstar",
    "a-scan": "IOL Master/Lenstar",
    "pentacam": "Corneal Topography",
    "topography": "Corneal Topography",
    "visual field": "Visual Field",
    "hvf": "Visual Field",
    "fundus photo": "Fundus Photo",
    "fundus photography": "Fundus Photo",
    "pachymetry": "Pachymetry",
}

KNOWN_DIAGNOSES = [
    "Cataract",
    "Dry Eye",
    "Glaucoma",
    "Macular Degeneration",
    "Ocular Hypertension",
    "Posterior Vitreous Detachment",
    "Diabetic Retinopathy",
]

FOLLOW_UP_UNITS = ["Day", "Week", "Month", "Year"]

_WHITESPACE = re.compile(r"\s+")


class TermMatch(BaseModel):
    kind: Literal["matched", "unmatched"]
    canonical: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.kind == "matched"


def normalize_term(term: str) -> str:
    return _WHITESPACE.sub(" ", term.strip()).casefold()


def match_term(candidate: str, available: Iterable[str]) -> TermMatch:
    """Return the canonical entry equal to ``candidate`` after normalisation.

    Picklists are closed vocabularies, so near misses are reported as
    unmatched and left for the caller to free-type.
    """

    if not isinstance(candidate, str) or not candidate.strip():
        return TermMatch(kind="unmatched")
    wanted = normalize_term(candidate)
    for canonical in available:
        if normalize_term(canonical) == wanted:
            return TermMatch(kind="matched", canonical=canonical)
    return TermMatch(kind="unmatched")


def singularize(term: str) -> str:
    normalized = term.strip()
    if len(normalized) > 3 and normalized.lower().endswith("s") and not normalized.lower().endswith("ss"):
        return normalized[:-1]
    return normalized


def normalize_test_name(test_name: str) -> str:
    return DIAGNOSTIC_TEST_ALIASES.get(normalize_term(test_name), test_name.strip())
