from __future__ import annotations

import posixpath
import time
from dataclasses import dataclass, field
from io import BytesIO
from typing import Any

from PIL import Image, ImageEnhance, ImageFilter, ImageOps

from invoice_intake.core.config import settings
from invoice_intake.core.logging import get_logger, log_event, monotonic_ms
from invoice_intake.core.storage import ObjectStorage, get_storage

logger = get_logger(__name__)

IMAGE_CONTENT_TYPES = frozenset(
    {"image/jpeg", "image/jpg", "image/png", "image/tiff", "image/bmp", "image/webp"}
)


class ImageTooLargeError(RuntimeError):
    pass


@dataclass(frozen=True)
class PreprocessRecipe:
    auto_rotate: bool = False
    contrast_boost: bool = False
    upscale: bool = False
    denoise: bool = False
    provider_deskew: bool = False

    @property
    def transforms_pixels(self) -> bool:
        return self.auto_rotate or self.contrast_boost or self.upscale or self.denoise

    def flags(self) -> dict[str, bool]:
        return {
            "auto_rotate": self.auto_rotate,
            "contrast_boost": self.contrast_boost,
            "upscale": self.upscale,
            "denoise": self.denoise,
            "provider_deskew": self.provider_deskew,
        }


RECIPES: dict[int, PreprocessRecipe] = {
    1: PreprocessRecipe(auto_rotate=True),
    2: PreprocessRecipe(auto_rotate=True, contrast_boost=True, upscale=True, denoise=True),
    3: PreprocessRecipe(provider_deskew=True),
}


def recipe_for_attempt(attempt: int) -> PreprocessRecipe:
    if attempt <= 1:
        return RECIPES[1]
    return RECIPES.get(attempt, RECIPES[max(RECIPES)])


@dataclass(frozen=True)
class TransformResult:
    body: bytes
    content_type: str
    applied: dict[str, bool]
    original_size: tuple[int, int]
    processed_size: tuple[int, int]


class ImageTransformer:
    def transform(
        self,
        body: bytes,
        recipe: PreprocessRecipe,
        *,
        max_width: int,
        max_height: int,
        max_upscale: float,
    ) -> TransformResult:  # pragma: no cover
        raise NotImplementedError


def upscale_size(
    width: int, height: int, *, max_width: int, max_height: int, max_factor: float
) -> tuple[int, int]:
    if width <= 0 or height <= 0 or width >= max_width or height >= max_height:
        return width, height
    scale = min(max_width / width, max_height / height, max_factor)
    return round(width * scale), round(height * scale)


class PillowImageTransformer(ImageTransformer):
    def transform(
        self,
        body: bytes,
        recipe: PreprocessRecipe,
        *,
        max_width: int,
        max_height: int,
        max_upscale: float,
    ) -> TransformResult:
        image = Image.open(BytesIO(body))
        original_size = image.size
        if original_size[0] > max_width * 2 or original_size[1] > max_height * 2:
            raise ImageTooLargeError(
                f"Image dimensions {original_size[0]}x{original_size[1]} exceed "
                f"{max_width * 2}x{max_height * 2}"
            )

        output_format = "PNG" if image.format == "PNG" else "JPEG"
        applied = dict.fromkeys(("auto_rotate", "contrast_boost", "upscale", "denoise"), False)
        applied["provider_deskew"] = recipe.provider_deskew

        if recipe.auto_rotate:
            image = ImageOps.exif_transpose(image)
            applied["auto_rotate"] = True

        if image.mode not in {"RGB", "L"}:
            image = image.convert("RGB")

        if recipe.upscale:
            target = upscale_size(
                *image.size, max_width=max_width, max_height=max_height, max_factor=max_upscale
            )
            if target != image.size:
                image = image.resize(target, Image.Resampling.LANCZOS)
                applied["upscale"] = True
        if image.width > max_width or image.height > max_height:
            image.thumbnail((max_width, max_height), Image.Resampling.LANCZOS)

        if recipe.contrast_boost:
            image = ImageEnhance.Brightness(image).enhance(1.1)
            image = ImageEnhance.Contrast(image).enhance(1.2)
            applied["contrast_boost"] = True

        if recipe.denoise:
            image = image.filter(ImageFilter.MedianFilter(size=3))
            applied["denoise"] = True

        out = BytesIO()
        if output_format == "PNG":
            image.save(out, format="PNG", optimize=True)
        else:
            image.save(out, format="JPEG", quality=90)
        return TransformResult(
            body=out.getvalue(),
            content_type="image/png" if output_format == "PNG" else "image/jpeg",
            applied=applied,
            original_size=original_size,
            processed_size=image.size,
        )


@dataclass(frozen=True)
class PreprocessResult:
    storage_key: str
    content_type: str
    flags: dict[str, Any] = field(default_factory=dict)
    derived: bool = False


def is_image(content_type: str | None, filename: str | None = None) -> bool:
    ctype = (content_type or "").lower().split(";")[0].strip()
    if ctype in IMAGE_CONTENT_TYPES:
        return True
    if ctype == "application/pdf":
        return False
    return (filename or "").lower().endswith((".png", ".jpg", ".jpeg", ".tif", ".tiff", ".bmp", ".webp"))


def processed_key(storage_key: str, *, attempt: int, content_type: str) -> str:
    directory, name = posixpath.split(storage_key)
    stem = name.rsplit(".", 1)[0] if "." in name else name
    ext = "png" if content_type == "image/png" else "jpg"
    return posixpath.join(directory, f"{stem}_processed_{attempt}.{ext}")


_transformer: ImageTransformer | None = None


def get_image_transformer() -> ImageTransformer:
    global _transformer  # noqa: PLW0603
    if _transformer is None:
        _transformer = PillowImageTransformer()
    return _transformer


def preprocess_for_attempt(
    *,
    storage_key: str,
    content_type: str,
    filename: str | None,
    attempt: int,
    storage: ObjectStorage | None = None,
    transformer: ImageTransformer | None = None,
) -> PreprocessResult:
    """
    Apply the attempt's recipe and store the result under a new key.

    PDFs and attempts without pixel transforms return the original key. Raises on any
    transform failure; the caller decides whether to fall back to the original.
    """
    recipe = recipe_for_attempt(attempt)
    if not is_image(content_type, filename):
        return PreprocessResult(storage_key=storage_key, content_type=content_type, flags={})
    if not recipe.transforms_pixels:
        return PreprocessResult(
            storage_key=storage_key, content_type=content_type, flags=recipe.flags()
        )

    start = time.monotonic()
    storage = storage or get_storage()
    transformer = transformer or get_image_transformer()
    result = transformer.transform(
        storage.get(key=storage_key),
        recipe,
        max_width=settings.preprocess_max_width,
        max_height=settings.preprocess_max_height,
        max_upscale=settings.preprocess_max_upscale_factor,
    )
    key = processed_key(storage_key, attempt=attempt, content_type=result.content_type)
    storage.put(key=key, body=result.body, content_type=result.content_type)

    flags: dict[str, Any] = dict(result.applied)
    flags["original_dimensions"] = list(result.original_size)
    flags["processed_dimensions"] = list(result.processed_size)
    log_event(
        logger,
        "preprocess.success",
        storage_key=storage_key,
        processed_key=key,
        attempt=attempt,
        duration_ms=monotonic_ms(start),
    )
    return PreprocessResult(
        storage_key=key, content_type=result.content_type, flags=flags, derived=True
    )
