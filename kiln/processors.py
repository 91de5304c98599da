"""File processors for Kiln.

Every source file is handled by exactly one processor, chosen by its extension. A processor
reads its source and returns the artifacts to write; it never touches the output tree
itself, so a processor that raises leaves earlier output in place.

Key classes:
- TypeScriptProcessor: Compiles TypeScript with esbuild.
- JavaScriptProcessor: Injects the debug constant and minifies JavaScript.
- StyleProcessor: Minifies CSS in production.
- MarkdownProcessor: Renders Markdown into its front matter template.
- HTMLProcessor: Minifies HTML in production.
- CopyProcessor: Copies any other file byte for byte.
- ProcessorRegistry: Maps extensions to processors.
"""

from __future__ import annotations

import base64
import binascii
import json
import re
import subprocess
from abc import ABC, abstractmethod
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .config import BuildConfig
from .frontmatter import extract_frontmatter
from .log import get_logger
from .minify import minify_css, minify_js, minify_markup
from .renderers import render_markdown
from .templates import instantiate, load_template
from .utils import find_executable

logger = get_logger("processors")

DEBUG_SYMBOL = "__DEBUG__"
DEBUG_SYMBOL_RE = re.compile(r"(?<![\w$.])__DEBUG__(?![\w$])")
INLINE_SOURCE_MAP_RE = re.compile(
    r"\n?//# sourceMappingURL=data:application/json;(?:charset=utf-8;)?base64,([A-Za-z0-9+/=]+)\s*\Z"
)

SCRIPT_TARGET = "es2020"


class ProcessorError(Exception):
    """Raised when a processor cannot turn its source into output."""


@dataclass(frozen=True)
class Artifact:
    """One output file.

    Attributes:
        path: Location relative to the output root.
        data: File contents.
    """

    path: Path
    data: bytes


@dataclass(frozen=True)
class ProcessContext:
    """What a processor needs besides the file itself.

    Attributes:
        config: The running build's configuration.
        global_config: Parsed ``config.yaml`` for template instantiation.
    """

    config: BuildConfig
    global_config: Mapping[str, Any] = field(default_factory=dict)

    @property
    def debug(self) -> bool:
        return self.config.debug


class BaseProcessor(ABC):
    """Base class for processors.

    Subclasses list the extensions they handle in ``extensions`` (lower case, with the
    leading dot) and implement ``process``.
    """

    extensions: tuple[str, ...] = ()

    @property
    def name(self) -> str:
        return type(self).__name__

    @abstractmethod
    def process(self, source: Path, rel: Path, context: ProcessContext) -> list[Artifact]:
        """Turn a source file into output artifacts.

        Args:
            source: Absolute path of the source file.
            rel: Path of the source file relative to the source root.
            context: Build configuration and global values.

        Returns:
            Artifacts to write, with paths relative to the output root.
        """
        ...


class TypeScriptProcessor(BaseProcessor):
    """Compiles TypeScript to browser JavaScript with the esbuild CLI.

    The debug constant is injected with esbuild's ``--define``. Production output is
    minified. Development output keeps a source map plus a copy of the original source
    next to the compiled file, so browser devtools can show the TypeScript.
    """

    extensions = (".ts", ".mts")

    def process(self, source: Path, rel: Path, context: ProcessContext) -> list[Artifact]:
        esbuild = find_executable("esbuild", (context.config.source_root, Path.cwd()))
        if not esbuild:
            raise ProcessorError(
                "esbuild executable not found; install it with `npm install -D esbuild`"
            )

        text = source.read_text(encoding="utf-8")
        cmd = [
            esbuild,
            "--loader=ts",
            "--format=esm",
            f"--target={SCRIPT_TARGET}",
            f"--sourcefile={rel.name}",
            f"--define:{DEBUG_SYMBOL}={'true' if context.debug else 'false'}",
            "--log-level=warning",
        ]
        if context.debug:
            cmd.append("--sourcemap=inline")

        result = subprocess.run(cmd, input=text, capture_output=True, text=True)
        if result.returncode != 0:
            raise ProcessorError(f"esbuild failed: {result.stderr.strip()}")
        if result.stderr.strip():
            logger.warning("In file %s: %s", source, result.stderr.strip())

        js_rel = rel.with_suffix(".mjs" if rel.suffix.lower() == ".mts" else ".js")
        if not context.debug:
            return [Artifact(js_rel, minify_js(result.stdout, str(source)).encode("utf-8"))]

        code, source_map = self._split_source_map(result.stdout, rel, js_rel)
        map_rel = js_rel.with_name(f"{js_rel.name}.map")
        code = f"{code.rstrip()}\n//# sourceMappingURL={map_rel.name}\n"
        return [
            Artifact(js_rel, code.encode("utf-8")),
            Artifact(map_rel, source_map),
            Artifact(rel, source.read_bytes()),
        ]

    def _split_source_map(self, output: str, rel: Path, js_rel: Path) -> tuple[str, bytes]:
        """Cut esbuild's inline source map off the compiled code.

        Returns:
            Tuple of (code without the map comment, source map JSON pointing at ``rel``).
        """
        match = INLINE_SOURCE_MAP_RE.search(output)
        if not match:
            raise ProcessorError("esbuild produced no inline source map")
        try:
            source_map = json.loads(base64.b64decode(match.group(1)))
        except (binascii.Error, ValueError) as exc:
            raise ProcessorError(f"esbuild produced an unreadable source map: {exc}") from exc
        source_map["file"] = js_rel.name
        source_map["sources"] = [rel.name]
        return output[: match.start()], json.dumps(source_map).encode("utf-8")


class JavaScriptProcessor(BaseProcessor):
    """Injects the debug constant into JavaScript and minifies it in production.

    JavaScript needs no compiler, so the constant is a whole-identifier text
    substitution: ``__DEBUG__`` becomes ``true`` or ``false``. Property accesses such as
    ``window.__DEBUG__`` are left alone.
    """

    extensions = (".js", ".mjs")

    def process(self, source: Path, rel: Path, context: ProcessContext) -> list[Artifact]:
        text = source.read_text(encoding="utf-8")
        text = DEBUG_SYMBOL_RE.sub("true" if context.debug else "false", text)
        if not context.debug:
            text = minify_js(text, str(source))
        return [Artifact(rel, text.encode("utf-8"))]


class StyleProcessor(BaseProcessor):
    """Minifies CSS in production; development output is the source unchanged."""

    extensions = (".css",)

    def process(self, source: Path, rel: Path, context: ProcessContext) -> list[Artifact]:
        if context.debug:
            return [Artifact(rel, source.read_bytes())]
        text = source.read_text(encoding="utf-8")
        return [Artifact(rel, minify_css(text, str(source)).encode("utf-8"))]


class MarkdownProcessor(BaseProcessor):
    """Renders a Markdown document into the template its front matter names.

    The output replaces the ``.md`` extension with ``.html`` and is minified in
    production.
    """

    extensions = (".md", ".markdown")

    def process(self, source: Path, rel: Path, context: ProcessContext) -> list[Artifact]:
        document = extract_frontmatter(source.read_text(encoding="utf-8"))
        template = load_template(context.config.source_root, document.template)
        content = render_markdown(document.body)
        output = instantiate(template, context.global_config, document.data, content)
        if not context.debug:
            output = minify_markup(output, str(source))
        return [Artifact(rel.with_suffix(".html"), output.encode("utf-8"))]


class HTMLProcessor(BaseProcessor):
    """Minifies HTML fragments in production; development output is unchanged."""

    extensions = (".html", ".htm")

    def process(self, source: Path, rel: Path, context: ProcessContext) -> list[Artifact]:
        if context.debug:
            return [Artifact(rel, source.read_bytes())]
        text = source.read_text(encoding="utf-8")
        return [Artifact(rel, minify_markup(text, str(source)).encode("utf-8"))]


class CopyProcessor(BaseProcessor):
    """Copies a file byte for byte. Used for every extension without a processor."""

    def process(self, source: Path, rel: Path, context: ProcessContext) -> list[Artifact]:
        return [Artifact(rel, source.read_bytes())]


class ProcessorRegistry:
    """Maps file extensions to processors.

    Lookup is case-insensitive. Files whose extension has no processor go to the
    default processor.
    """

    def __init__(self, default: BaseProcessor | None = None):
        self._processors: dict[str, BaseProcessor] = {}
        self.default = default or CopyProcessor()

    def register(self, processor: BaseProcessor) -> None:
        """Register a processor for all of its extensions.

        A later registration for the same extension replaces the earlier one.
        """
        for extension in processor.extensions:
            self._processors[extension.lower()] = processor

    def get_processor(self, path: Path) -> BaseProcessor:
        return self._processors.get(path.suffix.lower(), self.default)

    @property
    def extensions(self) -> list[str]:
        return sorted(self._processors)


def create_default_registry() -> ProcessorRegistry:
    """Create a registry with every built-in processor."""
    registry = ProcessorRegistry(default=CopyProcessor())
    registry.register(TypeScriptProcessor())
    registry.register(JavaScriptProcessor())
    registry.register(StyleProcessor())
    registry.register(MarkdownProcessor())
    registry.register(HTMLProcessor())
    return registry
