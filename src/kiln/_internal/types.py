"""Shared type aliases used across kiln modules."""

from collections.abc import Callable
from typing import Any, TypeAlias

# Route handler: takes (), (request) or (request, match)
Handler: TypeAlias = Callable[..., Any]

# Error handler: takes (), (request) or (request, status)
ErrorHandler: TypeAlias = Callable[..., Any]
