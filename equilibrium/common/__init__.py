"""Common utilities shared by the adapters and services."""

from .exception_handler import format_exception_json, get_error_code, log_exception

__all__ = [
    "format_exception_json",
    "log_exception",
    "get_error_code",
]
