"""Site building functionality for Kiln.

This module walks the source tree and turns every file into output artifacts through the
processor registered for its extension. The output tree mirrors the source tree; the
``templates/`` directory and the root ``config.yaml`` are build inputs and are not copied.

Key functions:
- process_tree: Wipe the output root and rebuild everything.
- process_path: Rebuild the artifacts of a single source path.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .config import (
    GLOBAL_CONFIG_NAME,
    TEMPLATES_DIR_NAME,
    BuildConfig,
    ConfigError,
    Mode,
    load_global_config,
)
from .log import get_logger
from .processors import ProcessContext, ProcessorRegistry, create_default_registry
from .utils import ensure_clean_dir, is_relative_to, write_bytes_atomic

logger = get_logger("build")


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the source file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


@dataclass
class BuildResult:
    """Result of a full build.

    Attributes:
        output_root: Directory the site was built into.
        written: Every output file written, in walk order.
        failed: Source files whose processing failed.
    """

    output_root: Path
    written: list[Path] = field(default_factory=list)
    failed: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type in {
        "FrontMatterError",
        "TemplateNotFoundError",
        "ProcessorError",
        "ConfigError",
    }:
        return error_msg
    if error_type == "UnicodeDecodeError":
        return f"Not valid UTF-8 text: {error_msg}"

    return f"{error_type}: {error_msg}"


class Pipeline:
    """Builds a site, either completely or one source path at a time.

    Attributes:
        config: Source root, output root and mode.
        registry: Processors by extension.
    """

    def __init__(self, config: BuildConfig, registry: ProcessorRegistry | None = None):
        self.config = BuildConfig(
            config.source_root.resolve(), config.output_root.resolve(), config.mode
        )
        self.registry = registry or create_default_registry()

    @property
    def source_root(self) -> Path:
        return self.config.source_root

    @property
    def output_root(self) -> Path:
        return self.config.output_root

    def build_all(self) -> BuildResult:
        """Wipe the output root and rebuild it from the whole source tree.

        A file that fails is logged and skipped; the rest of the tree is still built.

        Returns:
            BuildResult listing written outputs and failed sources.

        Raises:
            ConfigError: If the source tree, its templates directory or ``config.yaml``
                is unusable.
        """
        self.config.validate()
        context = ProcessContext(self.config, load_global_config(self.source_root))
        ensure_clean_dir(self.output_root)
        result = BuildResult(self.output_root)
        self._walk(self.source_root, context, result)
        logger.info(
            "Built %d files into %s (%d failed)",
            len(result.written),
            self.output_root,
            len(result.failed),
        )
        return result

    def build_path(self, path: Path) -> list[Path]:
        """Rebuild the artifacts derived from one source path.

        A directory only gets its mirrored output directory; its children are not
        visited.

        Args:
            path: A file or directory inside the source root.

        Returns:
            Output paths written or created. Empty when the path is a build input such as
            a template.

        Raises:
            BuildError: If the path cannot be processed.
        """
        path = path.resolve()
        if not is_relative_to(path, self.source_root):
            raise BuildError(path, f"Path is outside the source directory {self.source_root}")
        if self.is_excluded(path):
            logger.debug("Skipping build input %s", path)
            return []
        if path.is_dir():
            return [self._mirror_dir(path)]
        if not path.is_file():
            raise BuildError(path, "Path must either point to a file or directory")
        try:
            global_config = load_global_config(self.source_root)
        except ConfigError as exc:
            raise BuildError(path, _format_error_message(exc), exc) from exc
        return self._process_file(path, ProcessContext(self.config, global_config))

    def is_excluded(self, path: Path) -> bool:
        """Tell whether a source path is a build input that produces no output."""
        if path == self.output_root or is_relative_to(path, self.output_root):
            return True
        rel = path.relative_to(self.source_root)
        if not rel.parts:
            return False
        if rel.parts[0] == TEMPLATES_DIR_NAME:
            return True
        return rel == Path(GLOBAL_CONFIG_NAME)

    def _walk(self, directory: Path, context: ProcessContext, result: BuildResult) -> None:
        for child in sorted(directory.iterdir()):
            if self.is_excluded(child):
                continue
            if child.is_dir():
                try:
                    self._mirror_dir(child)
                except BuildError as exc:
                    logger.error("In directory %s: %s", exc.source_path, exc.message)
                    result.failed.append(child)
                    continue
                self._walk(child, context, result)
            elif child.is_file():
                try:
                    result.written.extend(self._process_file(child, context))
                except BuildError as exc:
                    logger.error("In file %s: %s", exc.source_path, exc.message)
                    result.failed.append(child)
            else:
                logger.warning("Skipping %s: not a regular file or directory", child)

    def _mirror_dir(self, path: Path) -> Path:
        target = self.output_root / path.relative_to(self.source_root)
        try:
            target.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            # e.g. a stale output file where the directory belongs
            raise BuildError(path, f"Cannot create {target}: {exc}", exc) from exc
        return target

    def _process_file(self, path: Path, context: ProcessContext) -> list[Path]:
        rel = path.relative_to(self.source_root)
        processor = self.registry.get_processor(path)
        try:
            artifacts = processor.process(path, rel, context)
        except Exception as exc:
            raise BuildError(path, _format_error_message(exc), exc) from exc

        written: list[Path] = []
        for artifact in artifacts:
            target = self.output_root / artifact.path
            try:
                write_bytes_atomic(target, artifact.data)
            except OSError as exc:
                raise BuildError(path, f"Cannot write {target}: {exc}", exc) from exc
            written.append(target)
        logger.debug("%s: %s -> %s", processor.name, rel, ", ".join(str(p) for p in written))
        return written


def process_tree(
    source_root: Path,
    output_root: Path,
    mode: Mode = Mode.PRODUCTION,
    registry: ProcessorRegistry | None = None,
) -> BuildResult:
    """Clear ``output_root`` and build the whole site into it.

    Args:
        source_root: Directory holding the site sources.
        output_root: Directory to build into; wiped first.
        mode: Development or production.
        registry: Optional custom processor registry.

    Returns:
        BuildResult of the full build.
    """
    return Pipeline(BuildConfig(source_root, output_root, Mode.parse(mode)), registry).build_all()


def process_path(
    source_root: Path,
    output_root: Path,
    mode: Mode,
    path: Path,
    registry: ProcessorRegistry | None = None,
) -> list[Path]:
    """Rebuild the artifacts of one source file or create one output directory.

    Args:
        source_root: Directory holding the site sources.
        output_root: Directory the site is built into.
        mode: Development or production.
        path: Source path that changed.
        registry: Optional custom processor registry.

    Returns:
        Output paths written or created.

    Raises:
        BuildError: If the path cannot be processed.
    """
    pipeline = Pipeline(BuildConfig(source_root, output_root, Mode.parse(mode)), registry)
    return pipeline.build_path(path)
