"""Markdown rendering for Kiln.

Bodies of Markdown documents are rendered with mistune. Fenced code blocks are highlighted
with Pygments, using the language declared on the fence or, when none is declared or the
name is unknown, the language Pygments guesses from the code itself.
"""

from __future__ import annotations

import html

import mistune
from pygments import highlight
from pygments.formatters import HtmlFormatter
from pygments.lexer import Lexer
from pygments.lexers import TextLexer, get_lexer_by_name, guess_lexer
from pygments.util import ClassNotFound

MARKDOWN_PLUGINS = ["strikethrough", "footnotes", "table", "url"]

_FORMATTER = HtmlFormatter(nowrap=True)


def select_lexer(code: str, info: str | None) -> Lexer:
    """Pick a Pygments lexer for a code block.

    Args:
        code: The code content.
        info: Fence info string; its first word is the declared language.

    Returns:
        Lexer for the declared language, else a guessed one, else a plain text lexer.
    """
    language = info.split()[0] if info and info.strip() else ""
    if language:
        try:
            return get_lexer_by_name(language)
        except ClassNotFound:
            pass
    try:
        return guess_lexer(code)
    except ClassNotFound:
        return TextLexer()


class _HighlightRenderer(mistune.HTMLRenderer):
    """HTML renderer that highlights fenced code blocks."""

    def __init__(self):
        super().__init__(escape=False)

    def block_code(self, code: str, info: str | None = None) -> str:
        lexer = select_lexer(code, info)
        language = lexer.aliases[0] if lexer.aliases else "text"
        highlighted = highlight(code, lexer, _FORMATTER)
        return (
            f'<pre><code class="highlight language-{html.escape(language)}">'
            f"{highlighted}</code></pre>\n"
        )


def render_markdown(text: str) -> str:
    """Render a Markdown body to HTML.

    Args:
        text: Markdown source without front matter.

    Returns:
        Rendered HTML.
    """
    markdown = mistune.create_markdown(renderer=_HighlightRenderer(), plugins=MARKDOWN_PLUGINS)
    return markdown(text)
