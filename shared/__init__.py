"""
POSTURE MUSE Shared Module

Common utilities used across all services.
"""

from .utils import (
    setup_logger,
    error_response,
    log_execution_time,
    handle_exceptions,
    get_now,
    get_now_iso,
)

__all__ = [
    'setup_logger',
    'error_response',
    'log_execution_time',
    'handle_exceptions',
    'get_now',
    'get_now_iso',
]
