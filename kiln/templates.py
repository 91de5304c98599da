"""Template instantiation for Kiln.

Templates are plain HTML documents under ``templates/`` in the source root. They carry three
kinds of placeholders:

- ``%content%``: the rendered document body.
- ``%global.KEY%``: a value from ``config.yaml``.
- ``%data.KEY%``: a value from the document's front matter.

Substitution is purely textual and runs in that order. Placeholders whose key is unknown
are left in the output unchanged.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from datetime import date
from pathlib import Path
from typing import Any

from .config import TEMPLATES_DIR_NAME

CONTENT_PLACEHOLDER = "%content%"
# A key is any text up to the next "%" on the same line.
GLOBAL_PLACEHOLDER_RE = re.compile(r"%global\.([^%\s][^%\r\n]*)%")
DATA_PLACEHOLDER_RE = re.compile(r"%data\.([^%\s][^%\r\n]*)%")

_MISSING = object()


class TemplateNotFoundError(Exception):
    """Raised when a document names a template that does not exist.

    Attributes:
        name: The requested template name.
        path: The file that was looked up.
    """

    def __init__(self, name: str, path: Path):
        self.name = name
        self.path = path
        super().__init__(f"Template '{name}' not found at {path}")


def stringify(value: Any) -> str:
    """Convert a config or front matter value into placeholder text.

    Booleans render as ``true``/``false``, ``None`` as an empty string, dates in ISO
    format and lists or mappings as JSON with sorted keys.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    if isinstance(value, str):
        return value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, Mapping):
        return json.dumps(
            {stringify(k): v for k, v in value.items()},
            sort_keys=True,
            default=stringify,
            ensure_ascii=False,
        )
    if isinstance(value, (list, tuple)):
        return json.dumps(list(value), sort_keys=True, default=stringify, ensure_ascii=False)
    return str(value)


def _get(values: Any, key: str) -> Any:
    if not isinstance(values, Mapping):
        return _MISSING
    if key in values:
        return values[key]
    # YAML keys may be ints, dates or booleans; placeholders only carry text.
    for candidate, value in values.items():
        if not isinstance(candidate, str) and stringify(candidate) == key:
            return value
    return _MISSING


def _lookup(values: Mapping[str, Any], key: str) -> Any:
    value = _get(values, key)
    if value is not _MISSING or "." not in key:
        return value
    current: Any = values
    for part in key.split("."):
        current = _get(current, part)
        if current is _MISSING:
            return _MISSING
    return current


def _substitute(pattern: re.Pattern, text: str, values: Mapping[str, Any]) -> str:
    def repl(match: re.Match) -> str:
        value = _lookup(values, match.group(1))
        if value is _MISSING:
            return match.group(0)
        return stringify(value)

    return pattern.sub(repl, text)


def instantiate(
    template: str,
    global_config: Mapping[str, Any],
    data: Mapping[str, Any],
    content: str,
) -> str:
    """Fill a template with a rendered body and metadata.

    Args:
        template: Template text.
        global_config: Site-wide values from ``config.yaml``.
        data: Front matter of the document being rendered.
        content: Rendered document body.

    Returns:
        The instantiated document.

    Examples:
        >>> instantiate("<h1>%data.title%</h1>%content%", {}, {"title": "Hi"}, "<p>body</p>")
        '<h1>Hi</h1><p>body</p>'
    """
    output = template.replace(CONTENT_PLACEHOLDER, content)
    output = _substitute(GLOBAL_PLACEHOLDER_RE, output, global_config)
    return _substitute(DATA_PLACEHOLDER_RE, output, data)


def template_path(source_root: Path, name: str) -> Path:
    return source_root / TEMPLATES_DIR_NAME / f"{name}.html"


def load_template(source_root: Path, name: str) -> str:
    """Read the template a document refers to.

    Args:
        source_root: Directory holding the site sources.
        name: Template name without the ``.html`` suffix; may contain subfolders.

    Returns:
        Template text.

    Raises:
        TemplateNotFoundError: If the file does not exist or lies outside ``templates/``.
    """
    templates_dir = (source_root / TEMPLATES_DIR_NAME).resolve()
    path = template_path(source_root, name)
    resolved = path.resolve()
    if templates_dir not in resolved.parents or not resolved.is_file():
        raise TemplateNotFoundError(name, path)
    return resolved.read_text(encoding="utf-8")
