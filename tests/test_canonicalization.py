from __future__ import annotations

from decimal import Decimal

from invoice_intake.modules.canonical.models import AdjustmentStatus, QualityStatus
from invoice_intake.modules.canonical.service import (
    FAILED_NUMERIC_PARSE,
    LineInput,
    canonicalize_line,
    normalize_description,
)
from invoice_intake.modules.canonical.units import (
    UnitCategory,
    canonicalize_unit_label,
    extract_unit_from_description,
    extract_unit_from_quantity,
    unit_category,
)


def test_unit_extraction_and_synonyms():
    assert extract_unit_from_quantity("8.42 KILO") == "KILO"
    assert extract_unit_from_description("Mince 4x5KG") == "KG"
    assert extract_unit_from_description("Cream 500 ml") == "ML"
    assert canonicalize_unit_label("kilo") == "KG"
    assert canonicalize_unit_label(None, description="Olive oil 2 litre") == "L"
    assert canonicalize_unit_label("ea") == "EACH"


def test_unit_categories():
    assert unit_category("KILO") == UnitCategory.WEIGHT
    assert unit_category("ml") == UnitCategory.VOLUME
    assert unit_category("CTN") == UnitCategory.UNIT
    assert unit_category(None) == UnitCategory.UNKNOWN


def test_normalize_description_collapses_whitespace_and_case():
    assert normalize_description("  Frozen   Brontosaurus, Ribs. ") == "frozen brontosaurus ribs"


def test_clean_line_is_ok():
    line = canonicalize_line(
        LineInput(
            source_line_ref="line:0",
            description="Frozen Brontosaurus Ribs",
            quantity="10 KG",
            unit_price="12.05",
            line_total="120.50",
            header_currency="aud",
        )
    )
    assert line.quality_status == QualityStatus.OK
    assert line.warn_reasons == []
    assert line.quantity == Decimal("10")
    assert line.unit_label == "KG"
    assert line.unit_category == UnitCategory.WEIGHT
    assert line.unit_price == Decimal("12.05")
    assert line.line_total == Decimal("120.50")
    assert line.currency == "AUD"
    assert line.adjustment_status == AdjustmentStatus.NONE


def test_line_currency_overrides_header():
    line = canonicalize_line(
        LineInput(
            source_line_ref="line:0", description="Butter", currency="nzd", header_currency="AUD"
        )
    )
    assert line.currency == "NZD"


def test_ambiguous_line_total_warns_without_failing():
    line = canonicalize_line(
        LineInput(
            source_line_ref="line:1",
            description="Prosciutto di Parma",
            unit_price="1.234",
            line_total="1.234",
        )
    )
    assert line.quality_status == QualityStatus.WARN
    assert line.unit_price == Decimal("1.234")
    assert line.line_total is None
    assert line.warn_reasons == [FAILED_NUMERIC_PARSE, "AMBIGUOUS_DECIMAL_SEPARATOR"]


def test_description_heuristics_warn_and_edits_mark_modified():
    line = canonicalize_line(
        LineInput(
            source_line_ref="abc",
            description="Frogen prontosaurvi RDS",
            line_total="45.00",
            is_edited=True,
        )
    )
    assert line.quality_status == QualityStatus.WARN
    assert "DESCRIPTION_CONSONANT_CLUSTER" in line.warn_reasons
    assert line.adjustment_status == AdjustmentStatus.MODIFIED


def test_reasons_are_recomputed_not_accumulated():
    raw = LineInput(source_line_ref="line:0", description="1234 #### ////", line_total="1.234")
    first = canonicalize_line(raw)
    second = canonicalize_line(raw)
    assert first.warn_reasons == second.warn_reasons
    assert first.warn_reasons.count(FAILED_NUMERIC_PARSE) == 1
