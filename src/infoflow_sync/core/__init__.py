"""InfoFlow client and shared helpers."""

from .async_utils import run_sync
from .client import InfoFlowClient, RemoteSource

__all__ = ["InfoFlowClient", "RemoteSource", "run_sync"]
