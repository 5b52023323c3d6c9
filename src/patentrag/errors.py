"""Exception hierarchy for patentrag."""

from __future__ import annotations


class PatentRAGError(Exception):
    """Base class for all patentrag errors."""


class InvalidInputError(PatentRAGError, ValueError):
    """Caller supplied an invalid argument (bad task, empty id, empty template)."""


class TemplateNotFoundError(PatentRAGError, KeyError):
    """No template is registered under the requested name."""

    def __init__(self, name: str):
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"template {self.name!r} not found"


class TemplateRenderError(PatentRAGError):
    """A registered template failed while rendering."""


class EmptyLLMOutputError(PatentRAGError):
    """The model returned no usable text."""


class GenerationError(PatentRAGError):
    """Prompt building or model inference failed during report generation."""


class ExportFormatNotImplementedError(PatentRAGError, NotImplementedError):
    """The requested export format is recognised but not supported."""


class BatchIndexError(PatentRAGError):
    """One or more documents in a batch failed to index.

    Attributes:
        failures: ``(document_id, exception)`` pairs in submission order.
        total: Number of documents in the batch.
    """

    def __init__(self, failures: list[tuple[str, BaseException]], total: int):
        self.failures = failures
        self.total = total
        details = "; ".join(f"{doc_id}: {exc}" for doc_id, exc in failures)
        super().__init__(f"{len(failures)}/{total} failed: {details}")
