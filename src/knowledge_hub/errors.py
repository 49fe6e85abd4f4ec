"""Exception hierarchy shared by the backends, clients and orchestrator."""

from __future__ import annotations


class KnowledgeHubError(Exception):
    """Base class; ``status_code`` is the HTTP status the error renders as."""

    status_code = 500


class ValidationError(KnowledgeHubError):
    status_code = 400

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class NotFoundError(KnowledgeHubError):
    status_code = 404


class StoreError(KnowledgeHubError):
    """Persistence failure inside a backend's own store."""


class BackendFailure(KnowledgeHubError):
    """Any failure of a call from a service client to a backend."""

    def __init__(self, backend: str, message: str) -> None:
        super().__init__(f"{backend} backend error: {message}")
        self.backend = backend


class BackendUnreachable(BackendFailure):
    def __init__(self, backend: str, message: str) -> None:
        super().__init__(backend, f"unreachable ({message})")


class BackendTimeout(BackendFailure):
    def __init__(self, backend: str, timeout: float) -> None:
        super().__init__(backend, f"timed out after {timeout:g}s")
        self.timeout = timeout


class BackendError(BackendFailure):
    def __init__(self, backend: str, status: int, message: str) -> None:
        super().__init__(backend, f"HTTP {status}: {message}")
        self.status = status


class BackendNotFound(BackendError):
    """A backend answered 404 for the requested entity."""

    status_code = 404

    def __init__(self, backend: str, message: str) -> None:
        super().__init__(backend, 404, message)
