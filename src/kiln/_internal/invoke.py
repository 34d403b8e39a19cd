"""Invoke helpers: call sync or async handlers uniformly.

Handlers can be ``def`` or ``async def`` and may accept fewer arguments
than the dispatcher has to offer. The arity and sync/async checks live
here so every caller of user code behaves the same.

Usage::

    from kiln._internal.invoke import invoke_with

    result = await invoke_with(handler, request, match)
"""

import inspect
from typing import Any


async def invoke(handler: Any, *args: Any, **kwargs: Any) -> Any:
    """Call a handler and await the result if it's a coroutine."""
    result = handler(*args, **kwargs)
    if inspect.isawaitable(result):
        result = await result
    return result


def accepted_arity(handler: Any) -> int | None:
    """Number of positional arguments *handler* takes; ``None`` if unbounded."""
    try:
        params = inspect.signature(handler).parameters.values()
    except (TypeError, ValueError):
        return None
    count = 0
    for param in params:
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            return None
        if param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            count += 1
    return count


async def invoke_with(handler: Any, *candidates: Any) -> Any:
    """Call *handler* with as many leading *candidates* as it accepts.

    A handler declared as ``def index()`` gets nothing, ``def show(request)``
    gets the request, ``def show(request, match)`` gets both.
    """
    arity = accepted_arity(handler)
    args = candidates if arity is None else candidates[:arity]
    return await invoke(handler, *args)
