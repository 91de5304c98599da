"""Front matter extraction for Kiln.

Markdown documents start with a YAML block fenced by ``---`` lines. The block names the
template the document renders into and carries the values templates read through
``%data.KEY%``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Any

import yaml

FRONTMATTER_RE = re.compile(r"\A\ufeff?---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|\Z)", re.DOTALL)


class FrontMatterError(Exception):
    """Raised when a document's front matter is missing or malformed."""


@dataclass
class FrontMatter:
    """Front matter of a document and the body that follows it.

    Attributes:
        data: Parsed header values.
        body: Document text after the closing fence.
    """

    data: dict[str, Any] = field(default_factory=dict)
    body: str = ""

    @property
    def template(self) -> str:
        """Name of the template the document renders into.

        Raises:
            FrontMatterError: If the header has no usable ``template`` key.
        """
        name = self.data.get("template")
        if not isinstance(name, str) or not name.strip():
            raise FrontMatterError('Front matter must declare a "template" key')
        return name.strip()


def extract_frontmatter(text: str) -> FrontMatter:
    """Split a document into front matter and body.

    Args:
        text: Raw document content.

    Returns:
        FrontMatter with the parsed header and the remaining body.

    Raises:
        FrontMatterError: If there is no header, the YAML is invalid, or it is not a mapping.
    """
    match = FRONTMATTER_RE.match(text)
    if not match:
        raise FrontMatterError("Document has no front matter block")
    try:
        data = yaml.safe_load(match.group(1))
    except yaml.YAMLError as exc:
        raise FrontMatterError(f"Invalid front matter: {exc}") from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise FrontMatterError("Front matter must be a mapping")
    return FrontMatter(data=data, body=text[match.end() :])
