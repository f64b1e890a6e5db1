"""HTTP surface of the reference host."""

from .routes import router, status_for
from .shared_runtime import get_runtime, set_runtime

__all__ = ["router", "status_for", "get_runtime", "set_runtime"]
