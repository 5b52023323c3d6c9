"""Template registry backed by Jinja2.

Templates support variable substitution, conditionals and loops, plus a
few list/casing helpers registered as filters:

* ``join_list(items, sep=", ")``
* ``truncate_list(items, n)`` — first ``n`` items, with ``"(+k more)"`` appended
* ``bullet_list(items, marker="-")``
* ``title_case(text)`` — ``"patent_landscape"`` → ``"Patent Landscape"``

Undefined variables raise at render time rather than rendering empty.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import Any

import jinja2

from patentrag.errors import InvalidInputError, TemplateNotFoundError, TemplateRenderError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TemplateInfo:
    name: str
    version: str
    registered_at: datetime


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------


def join_list(items: Iterable[Any] | None, sep: str = ", ") -> str:
    return sep.join(str(i) for i in (items or []))


def truncate_list(items: Iterable[Any] | None, n: int) -> list[str]:
    values = [str(i) for i in (items or [])]
    if len(values) <= n:
        return values
    return [*values[:n], f"(+{len(values) - n} more)"]


def bullet_list(items: Iterable[Any] | None, marker: str = "-") -> str:
    return "\n".join(f"{marker} {i}" for i in (items or []))


def title_case(text: Any) -> str:
    return " ".join(w.capitalize() for w in str(text).replace("_", " ").split())


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


class TemplateRegistry:
    """Named, versioned templates guarded by a single lock.

    Registering an existing name replaces it; readers see either the old or
    the new template, never a partial one.
    """

    def __init__(self, default_version: str = "v1"):
        self.default_version = default_version
        self._env = jinja2.Environment(
            undefined=jinja2.StrictUndefined,
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
            keep_trailing_newline=False,
        )
        self._env.filters.update(
            join_list=join_list,
            truncate_list=truncate_list,
            bullet_list=bullet_list,
            title_case=title_case,
        )
        self._lock = threading.Lock()
        self._templates: dict[str, tuple[jinja2.Template, TemplateInfo]] = {}

    def register(self, name: str, body: str, version: str | None = None) -> TemplateInfo:
        """Compile and store a template.

        Raises:
            InvalidInputError: empty name/body or a syntax error.
        """
        if not name or not name.strip():
            raise InvalidInputError("template name must not be empty")
        if not body or not body.strip():
            raise InvalidInputError(f"template {name!r} body must not be empty")

        try:
            compiled = self._env.from_string(body)
        except jinja2.TemplateSyntaxError as exc:
            raise InvalidInputError(f"template {name!r} has invalid syntax: {exc}") from exc

        info = TemplateInfo(
            name=name,
            version=version or self.default_version,
            registered_at=datetime.now(UTC),
        )
        with self._lock:
            replaced = name in self._templates
            self._templates[name] = (compiled, info)

        logger.debug("Registered template %s (version=%s, replaced=%s)", name, info.version, replaced)
        return info

    def render(self, name: str, data: Any = None) -> str:
        """Render a registered template.

        ``data`` may be a mapping (its keys become template variables) or any
        other object, exposed to the template as ``data``.

        Raises:
            TemplateNotFoundError: no template named ``name``.
            TemplateRenderError: the template failed while rendering.
        """
        with self._lock:
            entry = self._templates.get(name)
        if entry is None:
            raise TemplateNotFoundError(name)

        if data is None:
            context: dict[str, Any] = {}
        elif isinstance(data, Mapping):
            context = dict(data)
        else:
            context = {"data": data}

        try:
            return entry[0].render(**context)
        except (jinja2.TemplateError, TypeError, ValueError) as exc:
            raise TemplateRenderError(f"rendering {name!r} failed: {exc}") from exc

    def get_info(self, name: str) -> TemplateInfo:
        with self._lock:
            entry = self._templates.get(name)
        if entry is None:
            raise TemplateNotFoundError(name)
        return entry[1]

    def list(self) -> list[TemplateInfo]:
        """Return info for every template, sorted by name."""
        with self._lock:
            infos = [info for _, info in self._templates.values()]
        return sorted(infos, key=lambda i: i.name)

    def __contains__(self, name: object) -> bool:
        with self._lock:
            return name in self._templates

    def __len__(self) -> int:
        with self._lock:
            return len(self._templates)
