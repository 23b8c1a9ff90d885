from .bridge import PageBridge
from .handshake import handshake
from .session import Session

__all__ = ["PageBridge", "Session", "handshake"]
