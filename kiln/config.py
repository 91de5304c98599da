"""Configuration objects for Kiln.

This module holds the settings shared by the build pipeline and the servers, and loads the
site-wide ``config.yaml`` that every template can read through ``%global.KEY%``.

Key objects:
- Mode: development or production.
- BuildConfig: Source root, output root and mode for one build.
- ServerConfig: Everything the file server and reload server need.
- load_global_config: Parses ``config.yaml`` from the source root.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Any, Mapping

import yaml

GLOBAL_CONFIG_NAME = "config.yaml"
TEMPLATES_DIR_NAME = "templates"

PAGES_DIR_NAME = "pages"
CONTENT_DIR_NAME = "content"
PUBLIC_DIR_NAME = "public"

DEFAULTS = {
    "hostname": "0.0.0.0",
    "port": 8080,
    "ws_port": 8090,
}

DEVELOPMENT_CACHE_CONTROL = f"public, max-age={5 * 60}"
PRODUCTION_CACHE_CONTROL = f"public, max-age={7 * 24 * 60 * 60}, immutable"


class ConfigError(Exception):
    """Raised when Kiln cannot start because its configuration is unusable."""


class Mode(str, enum.Enum):
    """Build and serve mode."""

    DEVELOPMENT = "development"
    PRODUCTION = "production"

    @property
    def debug(self) -> bool:
        return self is Mode.DEVELOPMENT

    @classmethod
    def parse(cls, value: str | Mode) -> Mode:
        """Convert a CLI value into a Mode.

        Raises:
            ConfigError: If the value names no known mode.
        """
        if isinstance(value, Mode):
            return value
        try:
            return cls(value.strip().lower())
        except ValueError:
            choices = ", ".join(m.value for m in cls)
            raise ConfigError(f"Unknown mode {value!r}; expected one of: {choices}") from None


@dataclass(frozen=True)
class BuildConfig:
    """Inputs of one build.

    Attributes:
        source_root: Directory holding the site sources.
        output_root: Directory the build writes into.
        mode: Development emits debug builds, production minifies.
    """

    source_root: Path
    output_root: Path
    mode: Mode = Mode.PRODUCTION

    @property
    def debug(self) -> bool:
        return self.mode.debug

    @property
    def templates_dir(self) -> Path:
        return self.source_root / TEMPLATES_DIR_NAME

    def validate(self) -> None:
        """Check that a build can start.

        Raises:
            ConfigError: If the source root or its templates directory is missing, or the
                output root would contain the source root.
        """
        if not self.source_root.is_dir():
            raise ConfigError(f"Source directory not found: {self.source_root}")
        source, output = self.source_root.resolve(), self.output_root.resolve()
        if source == output or output in source.parents:
            raise ConfigError(f"Output directory {output} must not contain the source directory")
        if not self.templates_dir.is_dir():
            raise ConfigError(f"Templates directory not found: {self.templates_dir}")


@dataclass(frozen=True)
class ServerConfig:
    """Settings for the file server and, in development, the reload server.

    Attributes:
        mode: Serving mode; development also builds and watches ``source_root``.
        output_root: Built site to serve.
        source_root: Site sources; required in development.
        hostname: Interface both servers bind to.
        port: HTTP(S) port.
        ws_port: Websocket port for reload notifications.
        tls_key: Private key file; enables HTTPS/WSS together with ``tls_cert``.
        tls_cert: Certificate chain file.
    """

    mode: Mode
    output_root: Path
    source_root: Path | None = None
    hostname: str = DEFAULTS["hostname"]
    port: int = DEFAULTS["port"]
    ws_port: int = DEFAULTS["ws_port"]
    tls_key: Path | None = None
    tls_cert: Path | None = None

    @property
    def pages_dir(self) -> Path:
        return self.output_root / PAGES_DIR_NAME

    @property
    def content_dir(self) -> Path:
        return self.output_root / CONTENT_DIR_NAME

    @property
    def public_dir(self) -> Path:
        return self.output_root / PUBLIC_DIR_NAME

    @property
    def tls_enabled(self) -> bool:
        return self.tls_key is not None and self.tls_cert is not None

    @property
    def cache_control(self) -> str:
        if self.mode is Mode.DEVELOPMENT:
            return DEVELOPMENT_CACHE_CONTROL
        return PRODUCTION_CACHE_CONTROL

    def build_config(self) -> BuildConfig:
        """Return the BuildConfig the development server rebuilds with.

        Raises:
            ConfigError: If no source directory was given.
        """
        if self.source_root is None:
            raise ConfigError('Missing required option "--src-dir" for development mode')
        return BuildConfig(self.source_root, self.output_root, self.mode)

    def validate(self) -> None:
        """Check required options and TLS material before any socket is opened.

        Raises:
            ConfigError: On a missing source directory in development or incomplete TLS material.
        """
        if self.mode is Mode.DEVELOPMENT:
            self.build_config().validate()
        if (self.tls_key is None) != (self.tls_cert is None):
            raise ConfigError("TLS needs both a key and a certificate")
        for path in (self.tls_key, self.tls_cert):
            if path is not None and not path.is_file():
                raise ConfigError(f"TLS file not found: {path}")


def load_global_config(source_root: Path) -> Mapping[str, Any]:
    """Load ``config.yaml`` from the source root.

    Args:
        source_root: Directory holding the site sources.

    Returns:
        Read-only mapping of the parsed document, empty when the file does not exist.

    Raises:
        ConfigError: If the file cannot be read, is not UTF-8 YAML, or its top level is not
            a mapping.
    """
    config_path = source_root / GLOBAL_CONFIG_NAME
    if not config_path.exists():
        return MappingProxyType({})
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {config_path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(f"{config_path} is not valid UTF-8: {exc}") from exc
    except OSError as exc:
        raise ConfigError(f"Cannot read {config_path}: {exc}") from exc
    if loaded is None:
        loaded = {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{config_path} must contain a mapping at the top level")
    return MappingProxyType(loaded)
