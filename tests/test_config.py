import logging

import pytest

from kiln.config import (
    DEVELOPMENT_CACHE_CONTROL,
    PRODUCTION_CACHE_CONTROL,
    BuildConfig,
    ConfigError,
    Mode,
    ServerConfig,
    load_global_config,
)
from kiln.log import configure_logging, get_logger


def test_mode_parse():
    assert Mode.parse("development") is Mode.DEVELOPMENT
    assert Mode.parse(" Production ") is Mode.PRODUCTION
    assert Mode.parse(Mode.DEVELOPMENT) is Mode.DEVELOPMENT
    assert Mode.DEVELOPMENT.debug and not Mode.PRODUCTION.debug
    with pytest.raises(ConfigError, match="Unknown mode"):
        Mode.parse("staging")


def test_build_config_validate(site, tmp_path):
    BuildConfig(site, tmp_path / "dst").validate()
    assert BuildConfig(site, tmp_path / "dst", Mode.DEVELOPMENT).debug
    assert BuildConfig(site, tmp_path / "dst").templates_dir == site / "templates"

    with pytest.raises(ConfigError, match="must not contain"):
        BuildConfig(site, site).validate()
    with pytest.raises(ConfigError, match="Source directory not found"):
        BuildConfig(tmp_path / "absent", tmp_path / "dst").validate()


def test_server_config_paths_and_cache(tmp_path):
    dev = ServerConfig(Mode.DEVELOPMENT, tmp_path)
    prod = ServerConfig(Mode.PRODUCTION, tmp_path)
    assert dev.pages_dir == tmp_path / "pages"
    assert dev.content_dir == tmp_path / "content"
    assert dev.public_dir == tmp_path / "public"
    assert dev.cache_control == DEVELOPMENT_CACHE_CONTROL == "public, max-age=300"
    assert prod.cache_control == PRODUCTION_CACHE_CONTROL
    assert "immutable" in prod.cache_control
    assert (prod.hostname, prod.port, prod.ws_port) == ("0.0.0.0", 8080, 8090)


def test_server_config_build_config(site, tmp_path):
    config = ServerConfig(Mode.DEVELOPMENT, tmp_path / "out", source_root=site)
    assert config.build_config() == BuildConfig(site, tmp_path / "out", Mode.DEVELOPMENT)
    with pytest.raises(ConfigError, match='"--src-dir"'):
        ServerConfig(Mode.DEVELOPMENT, tmp_path / "out").build_config()


def test_load_global_config(tmp_path):
    assert dict(load_global_config(tmp_path)) == {}

    (tmp_path / "config.yaml").write_text("", encoding="utf-8")
    assert dict(load_global_config(tmp_path)) == {}

    (tmp_path / "config.yaml").write_text("title: Site\nnav:\n  home: /\n", encoding="utf-8")
    loaded = load_global_config(tmp_path)
    assert loaded["title"] == "Site"
    assert loaded["nav"] == {"home": "/"}
    with pytest.raises(TypeError):
        loaded["title"] = "changed"

    (tmp_path / "config.yaml").write_text("title: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigError, match="Invalid YAML"):
        load_global_config(tmp_path)


def test_configure_logging_replaces_handler():
    logger = configure_logging(verbose=True)
    assert logger is get_logger()
    assert logger.level == logging.DEBUG
    configure_logging()
    assert len(logger.handlers) == 1
    assert logger.level == logging.INFO
    assert get_logger("build").name == "kiln.build"
