"""
Authentication flows: port selection, callback listener, token polling and
the orchestrator that drives them.
"""

from .browser import browser_command, open_browser
from .callback import CallbackListener, CallbackResult
from .completion import Completion
from .orchestrator import (
    AuthFlowOrchestrator,
    AuthOptions,
    Credentials,
    FlowState,
    build_login_url,
    determine_auth_type,
)
from .poller import TokenPoller, extract_token
from .ports import find_available_port, is_port_available

__all__ = [
    "browser_command",
    "open_browser",
    "CallbackListener",
    "CallbackResult",
    "Completion",
    "AuthFlowOrchestrator",
    "AuthOptions",
    "Credentials",
    "FlowState",
    "build_login_url",
    "determine_auth_type",
    "TokenPoller",
    "extract_token",
    "find_available_port",
    "is_port_available",
]
