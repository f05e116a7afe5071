"""Browser resources: context pool, stealth layer and network capture."""

from .capture import CapturedResponse, NetworkCapture
from .pool import BrowserContextHandle, BrowserPool, EngineState

__all__ = [
    "BrowserContextHandle",
    "BrowserPool",
    "CapturedResponse",
    "EngineState",
    "NetworkCapture",
]
