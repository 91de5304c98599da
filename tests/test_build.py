import logging

import pytest

from kiln.build import (
    BuildError,
    BuildResult,
    Pipeline,
    _format_error_message,
    process_path,
    process_tree,
)
from kiln.config import BuildConfig, ConfigError, Mode


def test_full_build_mirrors_source_layout(site, tmp_path):
    dst = tmp_path / "dst"
    result = process_tree(site, dst, Mode.DEVELOPMENT)

    assert isinstance(result, BuildResult)
    assert result.ok
    assert (dst / "pages" / "index.html").is_file()
    assert (dst / "pages" / "docs" / "index.html").is_file()
    assert (dst / "pages" / "not-found.html").is_file()
    assert (dst / "content" / "post.html").is_file()
    assert (dst / "public" / "app.js").is_file()
    assert (dst / "public" / "styles" / "site.css").is_file()
    assert (dst / "public" / "logo.bin").read_bytes() == bytes(range(256))
    assert not (dst / "templates").exists()
    assert not (dst / "config.yaml").exists()
    assert not (dst / "pages" / "index.md").exists()

    home = (dst / "pages" / "index.html").read_text(encoding="utf-8")
    assert "<title>Home | Kiln Test</title>" in home
    assert '<h1>Welcome</h1>' in home
    assert "const debug = true;" in (dst / "public" / "app.js").read_text(encoding="utf-8")
    assert (dst / "public" / "styles" / "site.css").read_text(encoding="utf-8") == (
        site / "public" / "styles" / "site.css"
    ).read_text(encoding="utf-8")


def test_production_build_minifies(site, tmp_path):
    dst = tmp_path / "dst"
    process_tree(site, dst, Mode.PRODUCTION)

    home = (dst / "pages" / "index.html").read_text(encoding="utf-8")
    assert "<!--" not in home
    assert "Kiln Test" in home
    not_found = (dst / "pages" / "not-found.html").read_text(encoding="utf-8")
    assert "missing" not in not_found
    assert "Nothing here" in not_found
    app = (dst / "public" / "app.js").read_text(encoding="utf-8")
    assert "false" in app and "__DEBUG__" not in app
    assert "\n    " not in (dst / "public" / "styles" / "site.css").read_text(encoding="utf-8")


@pytest.mark.parametrize("mode", [Mode.DEVELOPMENT, Mode.PRODUCTION])
def test_full_build_is_deterministic(site, tmp_path, tree_snapshot, mode):
    dst = tmp_path / "dst"
    process_tree(site, dst, mode)
    first = tree_snapshot(dst)
    process_tree(site, dst, mode)
    assert tree_snapshot(dst) == first
    assert first


def test_full_build_wipes_stale_output(site, tmp_path):
    dst = tmp_path / "dst"
    (dst / "pages").mkdir(parents=True)
    (dst / "pages" / "stale.html").write_text("old", encoding="utf-8")
    process_tree(site, dst, Mode.DEVELOPMENT)
    assert not (dst / "pages" / "stale.html").exists()


def test_failing_file_does_not_stop_siblings(site, tmp_path, caplog):
    (site / "pages" / "broken.md").write_text("---\ntitle: no template\n---\nBody", encoding="utf-8")
    (site / "pages" / "ghost.md").write_text("---\ntemplate: ghost\n---\nBody", encoding="utf-8")
    dst = tmp_path / "dst"

    with caplog.at_level(logging.ERROR, logger="kiln"):
        result = process_tree(site, dst, Mode.DEVELOPMENT)

    assert not result.ok
    assert sorted(p.name for p in result.failed) == ["broken.md", "ghost.md"]
    assert (dst / "pages" / "index.html").is_file()
    assert not (dst / "pages" / "broken.html").exists()
    assert "broken.md" in caplog.text
    assert "Template 'ghost' not found" in caplog.text


def test_process_path_rebuilds_one_file(site, tmp_path):
    dst = tmp_path / "dst"
    process_tree(site, dst, Mode.DEVELOPMENT)
    before_post = (dst / "content" / "post.html").read_bytes()

    (site / "pages" / "index.md").write_text(
        "---\ntemplate: page\ntitle: Changed\n---\nNew body\n", encoding="utf-8"
    )
    written = process_path(site, dst, Mode.DEVELOPMENT, site / "pages" / "index.md")

    assert written == [(dst / "pages" / "index.html").resolve()]
    assert "<title>Changed | Kiln Test</title>" in (dst / "pages" / "index.html").read_text(
        encoding="utf-8"
    )
    assert (dst / "content" / "post.html").read_bytes() == before_post


def test_process_path_directory_does_not_recurse(site, tmp_path):
    dst = tmp_path / "dst"
    process_tree(site, dst, Mode.DEVELOPMENT)
    (site / "pages" / "blog").mkdir()
    (site / "pages" / "blog" / "first.html").write_text("<p>1</p>", encoding="utf-8")

    written = process_path(site, dst, Mode.DEVELOPMENT, site / "pages" / "blog")

    assert written == [(dst / "pages" / "blog").resolve()]
    assert (dst / "pages" / "blog").is_dir()
    assert not (dst / "pages" / "blog" / "first.html").exists()


def test_process_path_failure_keeps_previous_output(site, tmp_path):
    dst = tmp_path / "dst"
    process_tree(site, dst, Mode.DEVELOPMENT)
    before = (dst / "pages" / "index.html").read_bytes()

    source = site / "pages" / "index.md"
    source.write_text("---\ntemplate: [broken\n---\nBody", encoding="utf-8")
    with pytest.raises(BuildError) as excinfo:
        process_path(site, dst, Mode.DEVELOPMENT, source)

    assert excinfo.value.source_path == source.resolve()
    assert "Invalid front matter" in excinfo.value.message
    assert (dst / "pages" / "index.html").read_bytes() == before


def test_process_path_skips_build_inputs(site, tmp_path):
    dst = tmp_path / "dst"
    process_tree(site, dst, Mode.DEVELOPMENT)
    assert process_path(site, dst, Mode.DEVELOPMENT, site / "templates" / "page.html") == []
    assert process_path(site, dst, Mode.DEVELOPMENT, site / "config.yaml") == []
    assert not (dst / "templates").exists()


def test_process_path_rejects_outside_and_missing_paths(site, tmp_path):
    dst = tmp_path / "dst"
    outside = tmp_path / "elsewhere.md"
    outside.write_text("x", encoding="utf-8")
    with pytest.raises(BuildError, match="outside the source directory"):
        process_path(site, dst, Mode.DEVELOPMENT, outside)
    with pytest.raises(BuildError, match="file or directory"):
        process_path(site, dst, Mode.DEVELOPMENT, site / "pages" / "gone.md")


def test_process_path_reports_bad_global_config(site, tmp_path):
    dst = tmp_path / "dst"
    process_tree(site, dst, Mode.DEVELOPMENT)
    (site / "config.yaml").write_text("key: [oops\n", encoding="utf-8")
    with pytest.raises(BuildError, match="Invalid YAML"):
        process_path(site, dst, Mode.DEVELOPMENT, site / "pages" / "index.md")


def test_startup_errors_are_config_errors(site, tmp_path):
    with pytest.raises(ConfigError, match="Source directory not found"):
        process_tree(tmp_path / "nope", tmp_path / "dst", Mode.PRODUCTION)

    with pytest.raises(ConfigError, match="must not contain"):
        process_tree(site, site.parent, Mode.PRODUCTION)

    (site / "config.yaml").write_text("- not\n- a mapping\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="mapping"):
        process_tree(site, tmp_path / "dst", Mode.PRODUCTION)

    (site / "config.yaml").unlink()
    for template in (site / "templates").iterdir():
        template.unlink()
    (site / "templates").rmdir()
    with pytest.raises(ConfigError, match="Templates directory not found"):
        process_tree(site, tmp_path / "dst", Mode.PRODUCTION)


def test_output_inside_source_is_not_walked(site):
    dst = site / "_build"
    result = process_tree(site, dst, Mode.DEVELOPMENT)
    assert result.ok
    assert not (dst / "_build").exists()
    assert (dst / "pages" / "index.html").is_file()


def test_pipeline_accepts_mode_strings(site, tmp_path):
    result = process_tree(site, tmp_path / "dst", "development")
    assert result.ok
    pipeline = Pipeline(BuildConfig(site, tmp_path / "dst", Mode.DEVELOPMENT))
    assert pipeline.source_root == site.resolve()
    assert pipeline.is_excluded(site.resolve() / "templates" / "page.html")
    assert not pipeline.is_excluded(site.resolve() / "pages" / "index.md")


def test_format_error_message():
    from kiln.frontmatter import FrontMatterError

    assert _format_error_message(FrontMatterError("bad header")) == "bad header"
    assert _format_error_message(KeyError("x")) == "KeyError: 'x'"
    assert _format_error_message(ValueError("v")) == "ValueError: v"
