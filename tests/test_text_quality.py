from __future__ import annotations

from pathlib import Path

from invoice_intake.modules.canonical.spellcheck import SpellChecker, build_spellchecker
from invoice_intake.modules.canonical.text_quality import (
    DescriptionWarning,
    compute_description_warnings,
    looks_like_ocr_word_garbage,
)


def test_clean_descriptions_do_not_warn():
    assert compute_description_warnings("Frozen Brontosaurus Ribs") == []
    assert compute_description_warnings("Prosciutto di Parma") == []
    assert compute_description_warnings("Mozzarella Fior di Latte 2kg") == []


def test_confident_misread_trips_consonant_cluster():
    warnings = compute_description_warnings("Frogen prontosaurvi RDS")
    assert warnings
    assert DescriptionWarning.CONSONANT_CLUSTER in warnings


def test_symbol_noise_and_low_alpha_ratio():
    warnings = compute_description_warnings("1234 #### ////")
    assert DescriptionWarning.LOW_ALPHA_RATIO in warnings
    assert DescriptionWarning.OCR_NOISE in warnings


def test_long_token_without_vowels():
    warnings = compute_description_warnings("Beef prntsrvs")
    assert DescriptionWarning.NO_VOWELS_LONG_TOKEN in warnings
    assert DescriptionWarning.OCR_NOISE in warnings


def test_gibberish_only_evaluated_after_a_base_warning():
    warnings = compute_description_warnings("xkcdqz 12#4 zzqrtp")
    assert warnings.index(DescriptionWarning.NO_VOWELS_LONG_TOKEN) < warnings.index(
        DescriptionWarning.GIBBERISH
    )


def test_product_code_shape_is_not_low_alpha():
    assert DescriptionWarning.LOW_ALPHA_RATIO not in compute_description_warnings("ABC-12345")


def test_warnings_are_deduplicated_and_stable():
    first = compute_description_warnings("Frogen prontosaurvi RDS")
    second = compute_description_warnings("Frogen prontosaurvi RDS")
    assert first == second
    assert len(first) == len(set(first))


def test_allowlisted_words_are_never_garbage_candidates():
    # Pattern-wise "prosciutto" is cluster heavy; the allowlist keeps it out.
    assert looks_like_ocr_word_garbage("Prosciutto")
    assert compute_description_warnings("Prosciutto") == []


def test_typo_detection_with_loaded_dictionary(tmp_path: Path):
    words = ["frozen", "ribs", "beef", "brisket", "tomato", "tomatoes"]
    words += [f"filler{i}" for i in range(1000)]
    path = tmp_path / "words.txt"
    path.write_text("\n".join(words), encoding="utf-8")
    checker = build_spellchecker([path])
    assert checker.ready

    assert compute_description_warnings("Frozen Beef Brisket", spellchecker=checker) == []
    warnings = compute_description_warnings("Frozzen Beeef Briskit", spellchecker=checker)
    assert DescriptionWarning.POSSIBLE_TYPO in warnings


def test_disabled_spellchecker_is_a_no_op():
    checker = SpellChecker.disabled("No dictionaries loaded")
    assert compute_description_warnings("Frozzen Beeef Briskit", spellchecker=checker) == []
