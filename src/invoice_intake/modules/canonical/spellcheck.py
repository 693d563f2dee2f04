from __future__ import annotations

import difflib
import enum
import re
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from invoice_intake.core.config import settings
from invoice_intake.core.logging import get_logger, log_event
from invoice_intake.core.models import utcnow
from invoice_intake.modules.canonical.lexicon import CULINARY_TERMS, UNIT_ABBREVIATIONS

logger = get_logger(__name__)

_EDGE_PUNCT_RE = re.compile(r"^[^\w]+|[^\w]+$")
_MIN_WORD_LIST_ENTRIES = 1000


class SpellCheckStatus(str, enum.Enum):
    UNINITIALIZED = "uninitialized"
    READY = "ready"
    DISABLED = "disabled"


@dataclass(frozen=True)
class SpellChecker:
    status: SpellCheckStatus
    words: frozenset[str] = frozenset()
    allowlists: dict[str, frozenset[str]] = field(default_factory=dict)
    dictionaries_loaded: tuple[str, ...] = ()
    reason: str | None = None
    initialized_at: datetime | None = None

    @classmethod
    def disabled(cls, reason: str | None = None) -> SpellChecker:
        return cls(status=SpellCheckStatus.DISABLED, reason=reason)

    @property
    def ready(self) -> bool:
        return self.status == SpellCheckStatus.READY and bool(self.words)

    @staticmethod
    def normalize_token(token: str) -> str:
        return _EDGE_PUNCT_RE.sub("", token.strip().lower())

    @staticmethod
    def should_ignore_token(token: str) -> bool:
        t = token.strip()
        if len(t) <= 3:
            return True
        # Short acronyms (GST, RDS, ...)
        if len(t) <= 5 and t.isalpha() and t.isupper():
            return True
        letters = sum(1 for ch in t if ch.isascii() and ch.isalpha())
        # Pack sizes and codes (12x500g, 500ml, #1234)
        if re.fullmatch(r"[\d#A-Za-z]+", t) and any(ch.isdigit() for ch in t):
            if letters / len(t) < 0.5:
                return True
        if letters / len(t) < 0.7:
            return True
        symbols = sum(1 for ch in t if not (ch.isalnum() or ch == "_" or ch.isspace()))
        return symbols / len(t) > 0.3

    def is_correct(self, word: str) -> bool:
        if not self.ready:
            return True
        normalized = self.normalize_token(word)
        if not normalized:
            return True
        if any(normalized in allowlist for allowlist in self.allowlists.values()):
            return True
        return normalized in self.words

    def suggest(self, word: str, limit: int = 3) -> list[str]:
        if not self.ready:
            return []
        normalized = self.normalize_token(word)
        if not normalized:
            return []
        return difflib.get_close_matches(normalized, self.words, n=limit, cutoff=0.75)


def load_word_list(path: Path) -> set[str]:
    words: set[str] = set()
    with path.open(encoding="utf-8", errors="ignore") as fh:
        for line in fh:
            entry = line.strip().lower()
            if entry and not entry.startswith("#"):
                words.add(entry)
    return words


def build_spellchecker(paths: Iterable[Path]) -> SpellChecker:
    words: set[str] = set()
    loaded: list[str] = []
    for path in paths:
        if not path.is_file():
            log_event(logger, "spellcheck.dictionary.missing", path=str(path))
            continue
        entries = load_word_list(path)
        if len(entries) < _MIN_WORD_LIST_ENTRIES:
            log_event(
                logger, "spellcheck.dictionary.too_small", path=str(path), entry_count=len(entries)
            )
            continue
        words |= entries
        loaded.append(path.name)

    if not words:
        return SpellChecker.disabled("No dictionaries loaded")

    return SpellChecker(
        status=SpellCheckStatus.READY,
        words=frozenset(words),
        allowlists={"culinary_en": CULINARY_TERMS, "units_abbrev": UNIT_ABBREVIATIONS},
        dictionaries_loaded=tuple(loaded),
        initialized_at=utcnow(),
    )


_spellchecker: SpellChecker = SpellChecker(status=SpellCheckStatus.UNINITIALIZED)


def initialize_spellchecker(*, force: bool = False) -> SpellChecker:
    """Boot-time load of the dictionary capability. Request paths only read it."""
    global _spellchecker  # noqa: PLW0603
    if _spellchecker.status != SpellCheckStatus.UNINITIALIZED and not force:
        return _spellchecker

    if not settings.spellcheck_enabled:
        _spellchecker = SpellChecker.disabled("Disabled by configuration")
    else:
        _spellchecker = build_spellchecker(settings.spellcheck_dictionary_paths)

    log_event(
        logger,
        "spellcheck.initialized",
        status=_spellchecker.status.value,
        reason=_spellchecker.reason,
        dictionaries=list(_spellchecker.dictionaries_loaded),
        word_count=len(_spellchecker.words),
    )
    return _spellchecker


def get_spellchecker() -> SpellChecker:
    return _spellchecker
