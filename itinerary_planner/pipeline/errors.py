from __future__ import annotations

from typing import Any


class PipelineError(Exception):
    """Base class for every classified pipeline failure."""

    kind = "pipeline_error"

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.context = dict(context or {})

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "stage": self.stage,
            "message": self.message,
            "context": self.context,
        }


class ValidationError(PipelineError):
    """Malformed request profile. Raised before any external call."""

    kind = "validation_error"

    def __init__(self, message: str, *, field: str | None = None, **kwargs: Any) -> None:
        super().__init__(message, stage=kwargs.pop("stage", "validation"), **kwargs)
        self.field = field
        self.context.setdefault("field", field)


class DependencyUnavailable(PipelineError):
    """Connectivity failure or timeout talking to an external service."""

    kind = "dependency_unavailable"

    def __init__(self, message: str, *, service: str, **kwargs: Any) -> None:
        super().__init__(message, **kwargs)
        self.service = service
        self.context.setdefault("service", service)


class DependencyRejected(PipelineError):
    """The transport worked but the service refused or failed the request."""

    kind = "dependency_rejected"

    def __init__(
        self,
        message: str,
        *,
        service: str,
        status_code: int | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(message, **kwargs)
        self.service = service
        self.status_code = status_code
        self.context.setdefault("service", service)
        self.context.setdefault("status_code", status_code)


class EmptyResultError(PipelineError):
    """No candidates survived retrieval or filtering."""

    kind = "empty_result"


class ReorderParseError(PipelineError):
    """The generative response could not be parsed or validated."""

    kind = "reorder_parse_error"

    def __init__(self, message: str, **kwargs: Any) -> None:
        super().__init__(message, stage=kwargs.pop("stage", "reorder"), **kwargs)


# Errors raised by an external dependency, for call sites that apply a fallback.
DependencyError = (DependencyUnavailable, DependencyRejected)
