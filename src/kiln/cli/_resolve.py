"""Site import resolution: ``"module:attribute"`` strings to Site instances."""

import importlib

from kiln.app import Site


def resolve_site(import_string: str) -> Site:
    """Resolve an import string to a kiln Site instance.

    Accepts ``"module:attribute"``; the attribute defaults to ``site``.
    A callable that is not a Site is treated as a factory and called.

    Raises:
        ModuleNotFoundError: If the module cannot be imported.
        AttributeError: If the attribute does not exist on the module.
        TypeError: If the resolved object is not a ``Site``.
    """
    module_path, _, attr_name = import_string.partition(":")
    if not attr_name:
        attr_name = "site"

    module = importlib.import_module(module_path)
    obj = getattr(module, attr_name)

    if callable(obj) and not isinstance(obj, Site):
        try:
            obj = obj()
        except Exception as exc:
            msg = f"Factory function {import_string!r} raised an error: {exc}"
            raise TypeError(msg) from exc

    if not isinstance(obj, Site):
        msg = f"{import_string!r} resolved to {type(obj).__name__}, not a kiln.Site instance"
        raise TypeError(msg)

    return obj
