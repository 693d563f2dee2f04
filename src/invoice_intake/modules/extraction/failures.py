from __future__ import annotations

from dataclasses import dataclass

from invoice_intake.core.config import settings
from invoice_intake.modules.documents.models import OcrFailureCategory
from invoice_intake.modules.extraction.provider import OcrProviderError

_TIMEOUT_SIGNALS = (
    "throttl",
    "rate exceeded",
    "rate limit",
    "ratelimit",
    "toomanyrequests",
    "provisionedthroughputexceeded",
    "limitexceeded",
    "limit exceeded",
    "timeout",
    "timed out",
)
_TYPE_MISMATCH_SIGNALS = (
    "invalidparameter",
    "unsupporteddocument",
    "baddocument",
    "invalids3object",
    "documenttoolarge",
)
_BLUR_SIGNALS = ("blur",)
_RESOLUTION_SIGNALS = ("resolution", "too small")

FAILURE_HINTS = {
    OcrFailureCategory.NOT_A_DOCUMENT: (
        "We could not find an invoice in this file. Check it is a clear photo or PDF of an invoice."
    ),
    OcrFailureCategory.PROVIDER_TIMEOUT: (
        "The text recognition service was busy or timed out. Retrying usually works."
    ),
    OcrFailureCategory.DOCUMENT_TYPE_MISMATCH: (
        "This file type could not be read. Upload a PDF, JPEG or PNG instead."
    ),
    OcrFailureCategory.BLURRY: "The image looks blurry. Retake the photo in good light.",
    OcrFailureCategory.LOW_RESOLUTION: (
        "The image resolution is too low. Retake the photo closer to the invoice."
    ),
    OcrFailureCategory.PROVIDER_ERROR: (
        "The text recognition service returned an error. Retry, or enter the invoice manually."
    ),
    OcrFailureCategory.UNKNOWN: "Processing failed. Retry, or enter the invoice manually.",
}


@dataclass(frozen=True)
class FailureClassification:
    category: OcrFailureCategory
    detail: str

    @property
    def hint(self) -> str:
        return FAILURE_HINTS[self.category]


def _error_text(error: BaseException) -> str:
    parts = [type(error).__name__, str(error)]
    code = getattr(error, "code", None)
    if code:
        parts.append(str(code))
    return " ".join(parts).lower()


def classify_ocr_failure(
    error: BaseException | None = None,
    *,
    confidence_score: float | None = None,
    word_count: int | None = None,
) -> FailureClassification:
    """
    Map a provider error and/or input-quality signals to a failure category.

    Input quality is checked first, so a poor scan that also tripped a provider error is
    reported as NOT_A_DOCUMENT rather than by the incidental error.
    """
    if word_count is not None and word_count < settings.ocr_min_word_count:
        return FailureClassification(
            OcrFailureCategory.NOT_A_DOCUMENT,
            f"Only {word_count} words detected (minimum {settings.ocr_min_word_count})",
        )
    if confidence_score is not None and confidence_score < settings.ocr_min_confidence_percent:
        return FailureClassification(
            OcrFailureCategory.NOT_A_DOCUMENT,
            f"OCR confidence {confidence_score:.1f}% below {settings.ocr_min_confidence_percent:g}%",
        )

    if error is None:
        return FailureClassification(OcrFailureCategory.UNKNOWN, "No failure signal available")

    text = _error_text(error)
    detail = str(error) or type(error).__name__
    if isinstance(error, OcrProviderError) and error.code:
        detail = f"{error.code}: {detail}"

    if any(s in text for s in _TIMEOUT_SIGNALS) or isinstance(error, TimeoutError):
        return FailureClassification(OcrFailureCategory.PROVIDER_TIMEOUT, detail)
    if any(s in text for s in _TYPE_MISMATCH_SIGNALS):
        return FailureClassification(OcrFailureCategory.DOCUMENT_TYPE_MISMATCH, detail)
    if any(s in text for s in _BLUR_SIGNALS):
        return FailureClassification(OcrFailureCategory.BLURRY, detail)
    if any(s in text for s in _RESOLUTION_SIGNALS):
        return FailureClassification(OcrFailureCategory.LOW_RESOLUTION, detail)
    return FailureClassification(OcrFailureCategory.PROVIDER_ERROR, detail)
