from __future__ import annotations


class PipelineError(RuntimeError):
    pass


class DocumentNotFoundError(PipelineError):
    pass


class InvoiceNotFoundError(PipelineError):
    pass


class AttemptLimitReachedError(PipelineError):
    pass


class InvalidTransitionError(PipelineError):
    pass


class InputValidationError(PipelineError):
    pass
