"""
==============================================================================
Core Package
==============================================================================

Core infrastructure for the application.

This package provides:
- Custom exception handling with consistent error responses
- Exception factory functions for capture and product lookup errors

Usage:
------
    from foodscan.core import AppException
    from foodscan.core import exceptions

    raise exceptions.decode_not_found()

==============================================================================
"""

from .exceptions import (
    AppException,
    register_exception_handlers,
)

__all__ = [
    "AppException",
    "register_exception_handlers",
]
