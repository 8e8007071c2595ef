# nest-mcp - company dataset SQL tools over SSE
"""
nest-mcp - read-only SQL tools for the company dataset, served over SSE.
"""

__version__ = "0.1.0"

from .config import Settings, load_settings
from .server import create_app
from .session import SessionManager
from .tools import Dispatcher, build_registry

__all__ = [
    "__version__",
    "Settings",
    "load_settings",
    "create_app",
    "SessionManager",
    "Dispatcher",
    "build_registry",
]
