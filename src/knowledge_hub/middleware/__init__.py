"""HTTP middleware shared by the orchestrator and the backends."""

from .request_log import RequestLogMiddleware

__all__ = ["RequestLogMiddleware"]
