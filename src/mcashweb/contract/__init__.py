"""
Contract handles and ABI method dispatch.
"""

from .contract import Contract
from .method import Method, MethodOptions, WatchOptions

__all__ = ["Contract", "Method", "MethodOptions", "WatchOptions"]
