"""Kiln exception hierarchy.

Shared across the template compiler, router, site, and CLI so every module
raises and catches the same types.
"""

from dataclasses import dataclass

from kida import html_escape


class KilnError(Exception):
    """Base for all kiln-specific errors."""


class ConfigurationError(KilnError):
    """Raised when configuration is invalid.

    Typically raised by ``TemplateConfig.from_mapping()`` for unknown keys.
    """


@dataclass(frozen=True, slots=True)
class HTTPError(KilnError):
    """An error that maps directly to an HTTP status code.

    Raised by the dispatcher or by handlers. The site catches these and
    dispatches to the matching ``@site.error()`` handler.
    """

    status: int
    detail: str = ""
    headers: tuple[tuple[str, str], ...] = ()

    def __str__(self) -> str:
        if self.detail:
            return f"{self.status}: {self.detail}"
        return str(self.status)


class NotFound(HTTPError):  # noqa: N818
    """404: no route accepted the request path."""

    def __init__(self, detail: str = "Not Found") -> None:
        super().__init__(status=404, detail=detail)


class Unauthorized(HTTPError):  # noqa: N818
    """401: a protected route rejected the supplied password."""

    def __init__(self, detail: str = "Unauthorized") -> None:
        super().__init__(status=401, detail=detail)


# -- Template errors --


class TemplateError(KilnError):
    """Base for template compile and render errors.

    Carries the template file name and line number when known.
    """

    def __init__(
        self,
        message: str,
        *,
        template: str | None = None,
        lineno: int | None = None,
    ) -> None:
        self.message = message
        self.template = template
        self.lineno = lineno
        super().__init__(self._format())

    def _format(self) -> str:
        where = ""
        if self.template:
            where = f" in {self.template}"
            if self.lineno:
                where += f":{self.lineno}"
        return f"{self.message}{where}"


class TemplateNotFoundError(TemplateError):
    """The top-level template file does not exist."""


class TemplateSyntaxError(TemplateError):
    """Malformed tags or expressions."""


class TemplateRuntimeError(TemplateError):
    """An expression failed while the compiled template was executing."""


class UndefinedError(TemplateRuntimeError):
    """An undefined name was used while strict mode is on."""


class RecoverableTemplateError(TemplateError):
    """A clause that failed locally; its output is replaced inline.

    The rest of the template keeps rendering. ``to_html()`` produces the
    fragment substituted at the failing clause.
    """

    kind = "Template"

    def __init__(self, target: str, *, template: str | None = None) -> None:
        self.target = target
        super().__init__(self.describe(), template=template)

    def describe(self) -> str:
        return f'{self.kind} "{self.target}" failed'

    def to_html(self) -> str:
        """Render the diagnostic fragment, escaping every dynamic part."""
        detail = html_escape(self.describe())
        where = f" in <b>{html_escape(self.template)}</b>" if self.template else ""
        return f"<b>Template error:</b> {detail}{where}"


class IncludeError(RecoverableTemplateError):
    """An include target is missing, cyclic, or nested too deeply."""

    kind = "Include"

    def __init__(self, target: str, *, template: str | None = None, reason: str = "not found") -> None:
        self.reason = reason
        super().__init__(target, template=template)

    def describe(self) -> str:
        return f'Include "{self.target}" {self.reason}'


class BlockNotFoundError(RecoverableTemplateError):
    """A ``block`` clause or inline ``@name`` reference names no known block."""

    kind = "Block"

    def __init__(self, target: str, *, template: str | None = None, reason: str = "undefined") -> None:
        self.reason = reason
        super().__init__(target, template=template)

    def describe(self) -> str:
        return f'Block "{self.target}" {self.reason}'


class ProgramDecodeError(TemplateError):
    """A cached program could not be decoded; the cache treats it as stale."""
