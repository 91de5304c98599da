from __future__ import annotations

import logging
from pathlib import Path

import pytest

PAGE_TEMPLATE = (
    "<!doctype html>\n<html>\n<head>\n<title>%data.title% | %global.site_name%</title>\n"
    "</head>\n<body>\n<!-- layout -->\n<main>%content%</main>\n</body>\n</html>\n"
)


def create_site(root: Path) -> Path:
    """Write a small site and return its source directory."""
    src = root / "src"
    (src / "templates").mkdir(parents=True)
    (src / "pages" / "docs").mkdir(parents=True)
    (src / "content").mkdir()
    (src / "public" / "styles").mkdir(parents=True)

    (src / "config.yaml").write_text("site_name: Kiln Test\nyear: 2024\n", encoding="utf-8")
    (src / "templates" / "page.html").write_text(PAGE_TEMPLATE, encoding="utf-8")
    (src / "pages" / "index.md").write_text(
        "---\ntemplate: page\ntitle: Home\n---\n# Welcome\n\nHello from Kiln.\n",
        encoding="utf-8",
    )
    (src / "pages" / "docs" / "index.md").write_text(
        "---\ntemplate: page\ntitle: Docs\n---\n```python\nprint('hi')\n```\n",
        encoding="utf-8",
    )
    (src / "pages" / "not-found.html").write_text(
        "<html><body>\n  <!-- missing -->\n  <p>Nothing here</p>\n</body></html>\n",
        encoding="utf-8",
    )
    (src / "content" / "post.md").write_text(
        "---\ntemplate: page\ntitle: Post\n---\nA *post*.\n", encoding="utf-8"
    )
    (src / "public" / "app.js").write_text(
        "const debug = __DEBUG__;\n\nfunction greet(name) {\n    return 'hi ' + name;\n}\n",
        encoding="utf-8",
    )
    (src / "public" / "styles" / "site.css").write_text(
        "body {\n    color: red;\n}\n", encoding="utf-8"
    )
    (src / "public" / "logo.bin").write_bytes(bytes(range(256)))
    return src


def snapshot(root: Path) -> dict[str, bytes]:
    return {
        path.relative_to(root).as_posix(): path.read_bytes()
        for path in sorted(root.rglob("*"))
        if path.is_file()
    }


@pytest.fixture
def site(tmp_path: Path) -> Path:
    return create_site(tmp_path)


@pytest.fixture
def tree_snapshot():
    return snapshot


@pytest.fixture(autouse=True)
def reset_kiln_logger():
    logger = logging.getLogger("kiln")
    handlers, level = list(logger.handlers), logger.level
    yield
    logger.handlers[:] = handlers
    logger.setLevel(level)
