"""Exception hierarchy shared by the analysis pipeline."""

from __future__ import annotations

from typing import List, Optional, Sequence


class ArchgraphError(Exception):
    """Base class for every error raised by archgraph_cli."""


class WorkspaceError(ArchgraphError):
    """The workspace root is missing, unreadable, or has nothing to analyze."""

    def __init__(self, message: str, root: Optional[str] = None) -> None:
        super().__init__(message)
        self.root = root


class AnalysisCancelledError(ArchgraphError):
    """The caller cancelled analysis between two batches."""

    def __init__(self, processed: int, total: int) -> None:
        super().__init__(f"Analysis cancelled after {processed}/{total} files")
        self.processed = processed
        self.total = total


class GraphValidationError(ArchgraphError):
    """Collaborator output or authored input failed validation.

    ``errors`` holds one message per violation; ``valid_values`` lists the
    acceptable values when the violation is an unknown reference.
    """

    prefix = "Validation failed"

    def __init__(
        self,
        errors: Sequence[str],
        valid_values: Optional[Sequence[str]] = None,
    ) -> None:
        self.errors: List[str] = list(errors)
        self.valid_values: List[str] = list(valid_values or [])
        super().__init__(f"{self.prefix}: {', '.join(self.errors)}")


class ResponseParseError(GraphValidationError):
    prefix = "Response parsing failed"


class SchemaValidationError(GraphValidationError):
    prefix = "Schema validation failed"


class CrossReferenceError(GraphValidationError):
    prefix = "Cluster validation failed"


class StepFormatError(GraphValidationError):
    prefix = "Invalid execution steps"


class UnknownComponentError(GraphValidationError):
    """Trace steps reference component ids the base diagram does not define."""

    prefix = "Invalid componentId(s)"

    def __init__(
        self,
        invalid_ids: Sequence[str],
        valid_ids: Sequence[str],
        diagram_id: str,
    ) -> None:
        self.invalid_ids = list(invalid_ids)
        self.diagram_id = diagram_id
        super().__init__(self.invalid_ids, valid_values=valid_ids)

    @property
    def valid_ids(self) -> List[str]:
        return self.valid_values

    def __str__(self) -> str:
        listing = "\n".join(f"  - {cid}" for cid in self.valid_values)
        return (
            f"Invalid componentId(s): {', '.join(self.invalid_ids)}\n\n"
            f'Valid cluster IDs from diagram "{self.diagram_id}":\n{listing}'
        )


class ClusteringExhaustedError(ArchgraphError):
    """Every clustering attempt failed; ``last_error`` is the final failure verbatim."""

    def __init__(self, attempts: int, last_error: str) -> None:
        super().__init__(
            f"LLM clustering failed after {attempts} attempts. Last error: {last_error}"
        )
        self.attempts = attempts
        self.last_error = last_error


class CollaboratorError(ArchgraphError):
    """The text-generation backend produced no usable response."""


class DocumentNotFoundError(ArchgraphError, LookupError):
    def __init__(self, kind: str, doc_id: str) -> None:
        super().__init__(f"{kind} not found: {doc_id}")
        self.kind = kind
        self.doc_id = doc_id


class InvalidDocumentIdError(ArchgraphError, ValueError):
    def __init__(self, doc_id: str) -> None:
        super().__init__(f"Invalid document id: {doc_id!r}")
        self.doc_id = doc_id


class CorruptDocumentError(ArchgraphError):
    """A stored document exists but cannot be decoded into its model."""

    def __init__(self, kind: str, doc_id: str, detail: str) -> None:
        super().__init__(f"{kind} {doc_id} is corrupt: {detail}")
        self.kind = kind
        self.doc_id = doc_id
        self.detail = detail
