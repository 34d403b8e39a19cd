"""Templating: a caching compiler for the ``{{@ ... }}`` tag language.

Sources go through include expansion, parsing, block resolution, and code
generation into a ``Program`` that is cached on disk and executed by a
small runtime::

    from kiln.templating import Template

    tpl = Template({"cache_dir": "var/cache/tpl"})
    tpl.parse("views/page.html", {"title": "Hello"})
"""

from kiln.templating.engine import Template
from kiln.templating.evaluator import Undefined
from kiln.templating.program import Program

__all__ = [
    "Program",
    "Template",
    "Undefined",
]
