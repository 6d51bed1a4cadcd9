__all__ = [
    # Client
    "McashWeb",
    "HttpProvider",
    "Plugin",
    # Components
    "Mcash",
    "TransactionBuilder",
    "EventServer",
    "Contract",
    "Method",
    # Options
    "DeployOptions",
    "TriggerOptions",
    "TokenOptions",
    "TokenUpdateOptions",
    "MethodOptions",
    "WatchOptions",
    "EventQuery",
    # Errors
    "McashWebError",
    "ValidationError",
    "AbiError",
    "RpcError",
    "StateError",
    "SignatureError",
    "PermissionDenied",
    "ExecutionError",
    "RevertError",
    "ResultNotFoundError",
    "PluginError",
    "__version__",
]

from .client import McashWeb
from .contract import Contract, Method, MethodOptions, WatchOptions
from .errors import (
    AbiError,
    ExecutionError,
    McashWebError,
    PermissionDenied,
    PluginError,
    ResultNotFoundError,
    RevertError,
    RpcError,
    SignatureError,
    StateError,
    ValidationError,
)
from .plugin import Plugin
from .pneuma.builder import DeployOptions, TokenOptions, TokenUpdateOptions, TransactionBuilder, TriggerOptions
from .pneuma.event import EventQuery, EventServer
from .pneuma.providers import HttpProvider
from .pneuma.trx import Mcash
from .version import __version__
