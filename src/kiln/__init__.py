"""Kiln: a caching template compiler and a small ASGI site framework.

Templates use ``{{@ ... }}`` clauses for includes, overridable blocks,
and control flow; compiled programs are cached on disk next to the
expanded source::

    from kiln import Template

    tpl = Template({"cache_dir": "var/cache/tpl"})
    html = tpl.parse("views/page.html", {"title": "Hello"})

Sites route regular expressions to handlers::

    from kiln import Site

    site = Site()

    @site.get("/")
    async def index():
        return await site.html("views/index.html")

    site.run()
"""

__version__ = "0.1.0-dev"
__all__ = [
    "AppConfig",
    "BlockNotFoundError",
    "Conf",
    "ConfigurationError",
    "HTTPError",
    "IncludeError",
    "KilnError",
    "NotFound",
    "Request",
    "Response",
    "Site",
    "Template",
    "TemplateConfig",
    "TemplateError",
    "TemplateNotFoundError",
    "TemplateRuntimeError",
    "TemplateSyntaxError",
    "Unauthorized",
    "UndefinedError",
    "redirect",
]

_ERRORS = frozenset(
    {
        "BlockNotFoundError",
        "ConfigurationError",
        "HTTPError",
        "IncludeError",
        "KilnError",
        "NotFound",
        "TemplateError",
        "TemplateNotFoundError",
        "TemplateRuntimeError",
        "TemplateSyntaxError",
        "Unauthorized",
        "UndefinedError",
    }
)


def __getattr__(name: str) -> object:
    """Lazy imports for public API.

    Keeps ``import kiln`` fast while providing a clean top-level API.
    """
    if name == "Site":
        from kiln.app import Site

        return Site

    if name == "Template":
        from kiln.templating.engine import Template

        return Template

    if name == "Conf":
        from kiln.conf import Conf

        return Conf

    if name in ("AppConfig", "TemplateConfig"):
        from kiln import config

        return getattr(config, name)

    if name == "Request":
        from kiln.http.request import Request

        return Request

    if name in ("Response", "redirect"):
        from kiln.http import response

        return getattr(response, name)

    if name in _ERRORS:
        from kiln import errors

        return getattr(errors, name)

    msg = f"module {__name__!r} has no attribute {name!r}"
    raise AttributeError(msg)
