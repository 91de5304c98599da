"""Request path resolution for Kiln.

Maps a request path onto a file of the built output tree. The lookup order is fixed:

1. ``/blob/...`` serves static assets from ``public/``. A missing asset is a plain miss.
2. ``/content/...`` serves content documents from ``content/``, with or without ``.html``.
3. Anything else, including a content miss, serves a page from ``pages/``: the exact path,
   then ``<path>.html``, then ``<path>/index.html``.
4. ``pages/not-found.html`` answers every other request as a non-exact match.

Extensions on page and content requests are ignored, so ``/about``, ``/about.html`` and
``/about.php`` all reach ``pages/about.html``.
"""

from __future__ import annotations

import posixpath
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote, urlsplit

from .config import ServerConfig

BLOB_PREFIX = "/blob/"
CONTENT_PREFIX = "/content/"
NOT_FOUND_DOCUMENT = "not-found.html"


@dataclass(frozen=True)
class ResolveConfig:
    """Output directories the resolver reads.

    Attributes:
        pages_dir: Route-addressable documents.
        content_dir: Documents addressed under ``/content/``.
        public_dir: Static assets addressed under ``/blob/``.
    """

    pages_dir: Path
    content_dir: Path
    public_dir: Path

    @classmethod
    def from_server_config(cls, config: ServerConfig) -> ResolveConfig:
        return cls(config.pages_dir, config.content_dir, config.public_dir)


@dataclass(frozen=True)
class ResolvedRoute:
    """Outcome of a resolution.

    Attributes:
        path: File to serve, or None when nothing can be served.
        exact: False for the not-found document, which must be served with a 404.
    """

    path: Path | None
    exact: bool

    @property
    def found(self) -> bool:
        return self.path is not None


NO_ROUTE = ResolvedRoute(None, False)


def _is_real_file(path: Path) -> bool:
    return path.is_file()


def normalize_request_path(request_path: str) -> str:
    """Reduce a request target to a clean absolute URL path.

    Drops query string and fragment, decodes percent escapes and folds ``.`` and ``..``
    segments. The result always starts with ``/`` and never climbs above it; a trailing
    slash is kept.
    """
    path = unquote(urlsplit(request_path).path)
    trailing = path.endswith("/")
    normalized = posixpath.normpath("/" + path.lstrip("/"))
    # normpath keeps a leading "//"
    normalized = "/" + normalized.lstrip("/")
    if trailing and normalized != "/":
        normalized += "/"
    return normalized


def _strip_extension(path: str) -> str:
    head, tail = posixpath.split(path)
    stem, _ = posixpath.splitext(tail)
    return posixpath.join(head, stem) if tail else path


def _join(base: Path, rel: str) -> Path:
    return base.joinpath(*[part for part in rel.split("/") if part])


def resolve(config: ResolveConfig, request_path: str) -> ResolvedRoute:
    """Find the file that answers a request path.

    Args:
        config: Output directories.
        request_path: Raw request target, possibly with query string and fragment.

    Returns:
        An exact route to the file to serve, the not-found document as a non-exact route,
        or ``NO_ROUTE``.
    """
    normalized = normalize_request_path(request_path)

    if normalized.startswith(BLOB_PREFIX):
        asset = _join(config.public_dir, normalized[len(BLOB_PREFIX) :])
        if asset != config.public_dir and _is_real_file(asset):
            return ResolvedRoute(asset, True)
        return NO_ROUTE

    rel_no_ext = _strip_extension(normalized)

    if rel_no_ext.startswith(CONTENT_PREFIX):
        rel = rel_no_ext[len(CONTENT_PREFIX) :]
        if rel.strip("/"):
            document = _join(config.content_dir, rel)
            for candidate in (document, document.with_name(f"{document.name}.html")):
                if _is_real_file(candidate):
                    return ResolvedRoute(candidate, True)

    page = _join(config.pages_dir, rel_no_ext)
    candidates = [page]
    if page != config.pages_dir:
        candidates.append(page.with_name(f"{page.name}.html"))
    candidates.append(page / "index.html")
    for candidate in candidates:
        if _is_real_file(candidate):
            return ResolvedRoute(candidate, True)

    not_found = config.pages_dir / NOT_FOUND_DOCUMENT
    if _is_real_file(not_found):
        return ResolvedRoute(not_found, False)
    return NO_ROUTE
