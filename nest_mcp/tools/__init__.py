"""
Tools module (MCP boundary).
"""

from .dispatcher import Dispatcher, InvocationState, ToolResponse
from .registry import ToolDescriptor, ToolRegistry, build_registry

__all__ = [
    "Dispatcher",
    "InvocationState",
    "ToolResponse",
    "ToolDescriptor",
    "ToolRegistry",
    "build_registry",
]
