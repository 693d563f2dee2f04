from __future__ import annotations

from io import BytesIO

import pytest
from PIL import Image

from invoice_intake.core.storage import get_storage
from invoice_intake.modules.extraction.preprocessing import (
    ImageTooLargeError,
    PillowImageTransformer,
    preprocess_for_attempt,
    processed_key,
    recipe_for_attempt,
    upscale_size,
)


def _png(width: int, height: int) -> bytes:
    out = BytesIO()
    Image.new("RGB", (width, height), color=(200, 200, 200)).save(out, format="PNG")
    return out.getvalue()


def test_recipes_escalate_by_attempt():
    assert recipe_for_attempt(1).flags() == {
        "auto_rotate": True,
        "contrast_boost": False,
        "upscale": False,
        "denoise": False,
        "provider_deskew": False,
    }
    second = recipe_for_attempt(2)
    assert second.auto_rotate and second.contrast_boost and second.upscale and second.denoise
    third = recipe_for_attempt(3)
    assert third.provider_deskew
    assert not third.transforms_pixels


def test_upscale_is_bounded():
    assert upscale_size(1000, 500, max_width=4000, max_height=4000, max_factor=2.0) == (2000, 1000)
    assert upscale_size(3000, 1000, max_width=4000, max_height=4000, max_factor=2.0) == (4000, 1333)
    assert upscale_size(5000, 100, max_width=4000, max_height=4000, max_factor=2.0) == (5000, 100)


def test_pdf_passes_through_untouched():
    result = preprocess_for_attempt(
        storage_key="orgs/x/doc.pdf", content_type="application/pdf", filename="doc.pdf", attempt=2
    )
    assert result.storage_key == "orgs/x/doc.pdf"
    assert result.flags == {}
    assert not result.derived


def test_attempt_two_writes_a_derived_asset():
    storage = get_storage()
    storage.put(key="orgs/x/photo.png", body=_png(400, 300), content_type="image/png")

    result = preprocess_for_attempt(
        storage_key="orgs/x/photo.png", content_type="image/png", filename="photo.png", attempt=2
    )

    assert result.derived
    assert result.storage_key == processed_key("orgs/x/photo.png", attempt=2, content_type="image/png")
    assert result.storage_key == "orgs/x/photo_processed_2.png"
    assert result.flags["upscale"] is True
    assert result.flags["contrast_boost"] is True
    assert result.flags["denoise"] is True
    assert result.flags["original_dimensions"] == [400, 300]
    assert result.flags["processed_dimensions"] == [800, 600]
    # Original is never mutated.
    with Image.open(BytesIO(storage.get(key="orgs/x/photo.png"))) as original:
        assert original.size == (400, 300)


def test_attempt_three_only_signals_provider_deskew():
    result = preprocess_for_attempt(
        storage_key="orgs/x/photo.jpg", content_type="image/jpeg", filename="photo.jpg", attempt=3
    )
    assert not result.derived
    assert result.storage_key == "orgs/x/photo.jpg"
    assert result.flags["provider_deskew"] is True


def test_oversized_images_are_rejected_before_transform():
    transformer = PillowImageTransformer()
    recipe = recipe_for_attempt(2)
    with pytest.raises(ImageTooLargeError):
        transformer.transform(
            _png(900, 100), recipe, max_width=400, max_height=400, max_upscale=2.0
        )
