"""Internal machinery - HTTP and capability protocols."""

from .http import (
    Auth,
    HttpClient,
    HttpError,
    Response,
    TokenAuth,
)
from .protocols import (
    ClusterHooks,
    ComputeProvider,
    SelectedNode,
)

__all__ = [
    "Auth",
    "HttpClient",
    "HttpError",
    "Response",
    "TokenAuth",
    "ClusterHooks",
    "ComputeProvider",
    "SelectedNode",
]
