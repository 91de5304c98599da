"""Kiln static site generator.

This package compiles a source tree of Markdown, TypeScript, JavaScript, CSS, HTML and
plain files into a deployable output tree with three areas: ``pages/``, ``content/`` and
``public/``. A development server adds incremental rebuilds and websocket-driven reloads.

Main pieces:
- build: Walks the source tree and dispatches every file to a processor.
- processors: One processor per supported file kind plus a byte-for-byte copy fallback.
- templates: Placeholder substitution for Markdown documents.
- resolver: Maps request paths onto files of the output tree.
- reload: Watches the source tree, rebuilds changed files and notifies browsers.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
