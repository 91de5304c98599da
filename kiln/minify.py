"""Minifiers used by production builds.

Each function returns the input unchanged, after logging a warning, if its minifier
fails. An unminified file is still a correct file.
"""

from __future__ import annotations

import minify_html
import rcssmin
import rjsmin

from .log import get_logger

logger = get_logger("minify")


def minify_js(source: str, origin: str = "<script>") -> str:
    try:
        return rjsmin.jsmin(source)
    except Exception as exc:
        logger.warning("In file %s: JavaScript minification failed: %s", origin, exc)
        return source


def minify_css(source: str, origin: str = "<style>") -> str:
    try:
        return rcssmin.cssmin(source)
    except Exception as exc:
        logger.warning("In file %s: CSS minification failed: %s", origin, exc)
        return source


def minify_markup(source: str, origin: str = "<html>") -> str:
    """Collapse whitespace and drop comments from an HTML document.

    Closing tags and the ``<html>``/``<head>`` opening tags are kept, so minified
    fragments stay valid when concatenated or inspected.
    """
    try:
        return minify_html.minify(
            source,
            minify_css=True,
            minify_js=True,
            keep_comments=False,
            keep_closing_tags=True,
            keep_html_and_head_opening_tags=True,
        )
    except Exception as exc:
        logger.warning("In file %s: HTML minification failed: %s", origin, exc)
        return source
