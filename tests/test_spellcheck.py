from __future__ import annotations

from pathlib import Path

from invoice_intake.modules.canonical.spellcheck import (
    SpellChecker,
    SpellCheckStatus,
    build_spellchecker,
)


def _word_list(tmp_path: Path, extra: list[str]) -> Path:
    path = tmp_path / "words.txt"
    filler = [f"filler{i}" for i in range(1000)]
    path.write_text("\n".join(["# comment", *extra, *filler]), encoding="utf-8")
    return path


def test_missing_or_small_dictionaries_disable_the_checker(tmp_path: Path):
    small = tmp_path / "small.txt"
    small.write_text("beef\nlamb\n", encoding="utf-8")

    checker = build_spellchecker([tmp_path / "missing.txt", small])

    assert checker.status == SpellCheckStatus.DISABLED
    assert not checker.ready
    assert checker.is_correct("zzqxv")
    assert checker.suggest("beff") == []


def test_ready_checker_uses_dictionary_and_allowlists(tmp_path: Path):
    checker = build_spellchecker([_word_list(tmp_path, ["Beef", "brisket", "frozen"])])

    assert checker.status == SpellCheckStatus.READY
    assert checker.dictionaries_loaded == ("words.txt",)
    assert checker.is_correct("beef")
    assert checker.is_correct("Brisket,")
    # Allowlisted culinary and unit terms pass without a dictionary entry.
    assert checker.is_correct("prosciutto")
    assert checker.is_correct("CTN")
    assert not checker.is_correct("briskit")
    assert "brisket" in checker.suggest("briskit")


def test_ignored_tokens():
    assert SpellChecker.should_ignore_token("RDS")
    assert SpellChecker.should_ignore_token("GST")
    assert SpellChecker.should_ignore_token("12x500g")
    assert SpellChecker.should_ignore_token("#1234")
    assert not SpellChecker.should_ignore_token("brisket")
