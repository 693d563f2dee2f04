"""
Heuristics for descriptions the OCR provider read with high confidence but got wrong.

Examples of what should warn:
- "Frogen prontosaurvi RDS" (for "Frozen Brontosaurus Ribs")
- "1234 #### ////" (symbol noise)
- "prntsrvs" (long token without vowels)
"""

from __future__ import annotations

import enum
import re

from invoice_intake.modules.canonical.lexicon import LEGITIMATE_LONG_WORDS
from invoice_intake.modules.canonical.spellcheck import SpellChecker, get_spellchecker

_VOWELS = frozenset("aeiouAEIOU")
_CONSONANTS = frozenset("bcdfghjklmnpqrstvwxyzBCDFGHJKLMNPQRSTVWXYZ")
_PRODUCT_CODE_RE = re.compile(r"^[A-Z]{2,5}-?\d+$", re.IGNORECASE)
_NOISE_RES = (
    re.compile(r"[~|`]{3,}"),
    re.compile(r"#{3,}"),
    re.compile(r"/{3,}"),
    re.compile(r"[bcdfghjklmnpqrstvwxyz]{5,}", re.IGNORECASE),
)


class DescriptionWarning(str, enum.Enum):
    LOW_ALPHA_RATIO = "DESCRIPTION_LOW_ALPHA_RATIO"
    NO_VOWELS_LONG_TOKEN = "DESCRIPTION_NO_VOWELS_LONG_TOKEN"
    OCR_NOISE = "DESCRIPTION_OCR_NOISE"
    GIBBERISH = "DESCRIPTION_GIBBERISH"
    CONSONANT_CLUSTER = "DESCRIPTION_CONSONANT_CLUSTER"
    POSSIBLE_TYPO = "DESCRIPTION_POSSIBLE_TYPO"


BASE_WARNINGS = frozenset(
    {
        DescriptionWarning.LOW_ALPHA_RATIO,
        DescriptionWarning.NO_VOWELS_LONG_TOKEN,
        DescriptionWarning.OCR_NOISE,
        DescriptionWarning.GIBBERISH,
    }
)


def _letters(token: str) -> str:
    return "".join(ch for ch in token if ch.isascii() and ch.isalpha())


def alpha_ratio(text: str) -> float:
    if not text:
        return 0.0
    return len(_letters(text)) / len(text)


def has_vowels(token: str) -> bool:
    return any(ch in _VOWELS for ch in token)


def vowel_ratio(token: str) -> float:
    letters = _letters(token)
    if not letters:
        return 0.0
    return sum(1 for ch in letters if ch in _VOWELS) / len(letters)


def consonant_profile(token: str) -> tuple[int, int]:
    """Return (longest consonant run, number of runs reaching two consonants)."""
    longest = 0
    clusters = 0
    run = 0
    for ch in _letters(token):
        if ch in _CONSONANTS:
            run += 1
            longest = max(longest, run)
            if run == 2:
                clusters += 1
        else:
            run = 0
    return longest, clusters


def looks_like_ocr_word_garbage(token: str) -> bool:
    t = token.strip()
    if len(t) < 8:
        return False

    longest, clusters = consonant_profile(t)
    vr = vowel_ratio(t)

    if longest >= 4:
        return True
    if longest >= 3 and len(t) >= 10 and vr <= 0.25:
        return True
    if len(t) >= 10 and vr < 0.5 and clusters >= 3:
        if 0.38 <= vr <= 0.45 and longest <= 2:
            return True
        if vr < 0.35:
            return True
    return False


def _is_strong_cluster_pattern(token: str) -> bool:
    letters = _letters(token)
    if not letters:
        return False
    longest, clusters = consonant_profile(letters)
    vr = vowel_ratio(letters)
    density = clusters / len(letters)
    return clusters >= 3 and 0.38 <= vr <= 0.45 and longest <= 2 and density < 0.27


def has_ocr_noise(text: str) -> bool:
    return any(pattern.search(text) for pattern in _NOISE_RES)


def looks_gibberish(tokens: list[str]) -> bool:
    if not tokens:
        return False
    unusual = 0
    for token in tokens:
        if len(token) >= 6 and not has_vowels(token):
            unusual += 1
        if len(token) >= 4 and alpha_ratio(token) < 0.5:
            unusual += 1
    return unusual / len(tokens) > 0.3


def _typo_suspected(tokens: list[str], spellchecker: SpellChecker) -> bool:
    if not spellchecker.ready:
        return False
    checkable = [t for t in tokens if not spellchecker.should_ignore_token(t)]
    if not checkable:
        return False
    unknown = sum(1 for t in checkable if not spellchecker.is_correct(t))
    return unknown / len(checkable) > 0.5


def compute_description_warnings(
    description: str | None, *, spellchecker: SpellChecker | None = None
) -> list[DescriptionWarning]:
    """
    Ordered, de-duplicated warning codes for a line description. Empty means trusted.

    Strong consonant-cluster patterns warn on their own; weaker ones only when a base
    warning already fired.
    """
    if not description or not description.strip():
        return []

    trimmed = description.strip()
    tokens = trimmed.split()
    warnings: list[DescriptionWarning] = []

    is_product_code = bool(_PRODUCT_CODE_RE.match(trimmed)) and len(trimmed) <= 15
    if alpha_ratio(trimmed) < 0.65 and len(trimmed) >= 5 and not is_product_code:
        warnings.append(DescriptionWarning.LOW_ALPHA_RATIO)

    if any(len(t) >= 6 and not has_vowels(t) for t in tokens):
        warnings.append(DescriptionWarning.NO_VOWELS_LONG_TOKEN)

    if has_ocr_noise(trimmed):
        warnings.append(DescriptionWarning.OCR_NOISE)

    if warnings and looks_gibberish(tokens):
        warnings.append(DescriptionWarning.GIBBERISH)

    has_base_warning = any(w in BASE_WARNINGS for w in warnings)
    for token in tokens:
        if len(token) < 10 or token.lower() in LEGITIMATE_LONG_WORDS:
            continue
        if not looks_like_ocr_word_garbage(token):
            continue
        if has_base_warning or _is_strong_cluster_pattern(token):
            warnings.append(DescriptionWarning.CONSONANT_CLUSTER)
            break

    if _typo_suspected(tokens, spellchecker or get_spellchecker()):
        warnings.append(DescriptionWarning.POSSIBLE_TYPO)

    return list(dict.fromkeys(warnings))
