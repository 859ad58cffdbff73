"""
Narration response clean-up, applied in this order:

1. normalize malformed coordinate and temperature tokens
2. detect truncation
3. repair truncation with a canned closing clause
4. ensure the ``**Analysis:**`` prefix

Truncation repair is a cosmetic heuristic, not a correctness guarantee.
"""

import re
from typing import Optional, Tuple

from heatatlas.llm.prompts.system_prompts import ANALYSIS_PREFIX
from heatatlas.utils.logger import get_logger

logger = get_logger(__name__)

PLAUSIBLE_MAX_CELSIUS = 60
IMPLAUSIBLE_TEMPERATURE_DISPLAY = "40-50°C"

GENERIC_COMPLETION = "The analysis provides valuable insights for urban climate resilience planning."

# Keyed by the last word of the truncated text; each continues that word.
COMPLETIONS = {
    "urban": "heat island characteristics require further mitigation strategies.",
    "planning": "interventions should prioritize green infrastructure and cool materials.",
    "analysis": "confirms the presence of significant urban heat island effects.",
    "temperature": "patterns indicate the need for targeted cooling interventions.",
    "vulnerability": "assessment highlights areas requiring immediate attention.",
    "conclusion": "underscores the importance of evidence-based urban planning.",
    "data": "provides a robust foundation for climate adaptation strategies.",
    "results": "demonstrate clear patterns of urban thermal variation.",
    "study": "contributes valuable insights to urban climatology research.",
}

TRUNCATION_PATTERNS = [
    re.compile(r"\.\.\.$"),
    re.compile(r"…$"),
    re.compile(r",$"),
    re.compile(r"\sand$"),
    re.compile(r", etc$"),
    re.compile(r"incomplete$", re.IGNORECASE),
    re.compile(r"\bhowever$", re.IGNORECASE),
    re.compile(r"\bfurthermore$", re.IGNORECASE),
    re.compile(r"\badditionally$", re.IGNORECASE),
]

# Sentence ends at terminal punctuation followed by whitespace or end; "41.17" stays whole.
_SENTENCE_SPLIT = re.compile(r"[.!?]+(?=\s|$)")
_TEMPERATURE = re.compile(r"(?<![\d.])(\d{2,3}(?:\.\d+)?)°C")
_BARE_COORDINATE = re.compile(r"(?<![\d.])(\d{4})°([NE])")


def _fraction_digits(value: float) -> str:
    return f"{abs(value):.4f}".split(".")[1]


def normalize_tokens(text: str, centroid: Optional[Tuple[float, float]] = None) -> str:
    """
    Repair coordinates that lost their integer part (``6904°N`` for 28.6904°N)
    when the study centroid is known, and replace implausible surface
    temperatures with a display band.
    """
    if centroid is not None:
        lat, lng = centroid
        known = {"N": (lat, _fraction_digits(lat)), "E": (lng, _fraction_digits(lng))}

        def fix_coordinate(match):
            digits, hemisphere = match.group(1), match.group(2)
            value, fraction = known[hemisphere]
            if digits == fraction:
                return f"{value:.4f}°{hemisphere}"
            return match.group(0)

        text = _BARE_COORDINATE.sub(fix_coordinate, text)

    def fix_temperature(match):
        if float(match.group(1)) > PLAUSIBLE_MAX_CELSIUS:
            return IMPLAUSIBLE_TEMPERATURE_DISPLAY
        return match.group(0)

    return _TEMPERATURE.sub(fix_temperature, text)


def is_truncated(text: str) -> bool:
    """
    True when the text ends on an open conjunction, ellipsis or comma, or its
    final sentence has fewer than 5 words and under 25 characters.
    """
    stripped = text.strip()
    if not stripped:
        return True

    sentences = [s.strip() for s in _SENTENCE_SPLIT.split(stripped) if s.strip()]
    if sentences:
        last = sentences[-1]
        if len(last.split()) < 5 and len(last) < 25:
            return True

    return any(pattern.search(stripped) for pattern in TRUNCATION_PATTERNS)


def complete_truncated(text: str) -> str:
    """Append a closing clause keyed by the last word, else a generic closing sentence."""
    base = text.rstrip()
    words = base.split()
    last_word = re.sub(r"[.,!?;:…]+$", "", words[-1]).lower() if words else ""

    if last_word in COMPLETIONS:
        trimmed = re.sub(r"[.,;:…]+$", "", base)
        return f"{trimmed} {COMPLETIONS[last_word]}"

    trimmed = re.sub(r"(\.\.\.|…|,)+$", "", base).rstrip()
    if trimmed and not trimmed.endswith((".", "!", "?")):
        trimmed += "."
    return f"{trimmed} {GENERIC_COMPLETION}".strip()


def ensure_prefix(text: str) -> str:
    if text.startswith(ANALYSIS_PREFIX):
        return text
    return f"{ANALYSIS_PREFIX}\n{text}"


def clean_response(text: str, centroid: Optional[Tuple[float, float]] = None) -> str:
    cleaned = normalize_tokens(text.strip(), centroid)
    if is_truncated(cleaned):
        logger.warning("Narration looks truncated, completing", tail=cleaned[-40:])
        cleaned = complete_truncated(cleaned)
    return ensure_prefix(cleaned)
