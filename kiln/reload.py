"""Watch, rebuild and reload coordination for the development server.

The coordinator builds the whole site once, then watches the source tree. Every created or
modified path is rebuilt on its own; when that succeeds, every connected browser receives
a ``reload`` message over its websocket. A failed rebuild is logged and announces nothing,
so browsers keep showing the last good output.

Deleted sources are not pruned from the output tree. Stale files stay until the next full
build.

Key classes:
- WatchEvent: One change reported for a source path.
- ClientRegistry: The websockets currently connected for reload notifications.
- ReloadCoordinator: Owns the watcher and the registry and ties them to the build.
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import enum
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer
from websockets.exceptions import ConnectionClosed
from websockets.protocol import State

from .build import BuildError, BuildResult, Pipeline
from .config import BuildConfig
from .log import get_logger
from .utils import is_relative_to

logger = get_logger("reload")

RELOAD_MESSAGE = "reload"


class WatchEventKind(str, enum.Enum):
    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"
    ADD_DIR = "addDir"
    UNLINK_DIR = "unlinkDir"
    ERROR = "error"


REBUILD_KINDS = frozenset({WatchEventKind.ADD, WatchEventKind.CHANGE, WatchEventKind.ADD_DIR})


@dataclass(frozen=True)
class WatchEvent:
    """A change reported by the watcher.

    Attributes:
        path: Source path the event concerns.
        kind: What happened to it.
    """

    path: Path
    kind: WatchEventKind


def translate_event(event: FileSystemEvent) -> list[WatchEvent]:
    """Convert a watchdog event into watch events.

    A move becomes the removal of the old path followed by the addition of the new one.
    Directory modifications and open/close notifications carry no rebuildable change and
    produce nothing.
    """
    src = Path(os.fsdecode(event.src_path))
    if event.event_type == "created":
        kind = WatchEventKind.ADD_DIR if event.is_directory else WatchEventKind.ADD
        return [WatchEvent(src, kind)]
    if event.event_type == "modified":
        return [] if event.is_directory else [WatchEvent(src, WatchEventKind.CHANGE)]
    if event.event_type == "deleted":
        kind = WatchEventKind.UNLINK_DIR if event.is_directory else WatchEventKind.UNLINK
        return [WatchEvent(src, kind)]
    if event.event_type == "moved":
        dest = Path(os.fsdecode(event.dest_path))
        if event.is_directory:
            return [
                WatchEvent(src, WatchEventKind.UNLINK_DIR),
                WatchEvent(dest, WatchEventKind.ADD_DIR),
            ]
        return [WatchEvent(src, WatchEventKind.UNLINK), WatchEvent(dest, WatchEventKind.ADD)]
    return []


class ClientRegistry:
    """Websockets connected for reload notifications.

    Sockets are added on connect and removed on disconnect. A broadcast only reaches
    sockets that are open at that moment; connecting or closing sockets are skipped, and
    nothing is queued or retried for them.
    """

    def __init__(self):
        self._clients: set[Any] = set()
        self._lock = threading.Lock()

    def add(self, websocket: Any) -> None:
        with self._lock:
            self._clients.add(websocket)

    def remove(self, websocket: Any) -> None:
        with self._lock:
            self._clients.discard(websocket)

    def snapshot(self) -> frozenset:
        with self._lock:
            return frozenset(self._clients)

    def __len__(self) -> int:
        with self._lock:
            return len(self._clients)

    def __contains__(self, websocket: Any) -> bool:
        with self._lock:
            return websocket in self._clients

    async def broadcast(self, message: str = RELOAD_MESSAGE, exclude: Any = None) -> int:
        """Send a message to every open socket.

        Args:
            message: Text frame to send.
            exclude: A socket to leave out, usually the one that asked for the broadcast.

        Returns:
            Number of sockets the message was handed to.
        """
        delivered = 0
        for websocket in self.snapshot():
            if websocket is exclude or getattr(websocket, "state", None) is not State.OPEN:
                continue
            try:
                await websocket.send(message)
            except ConnectionClosed:
                logger.debug("Client closed during broadcast; skipped")
                continue
            delivered += 1
        return delivered


def _log_broadcast_failure(future: concurrent.futures.Future) -> None:
    if future.cancelled():
        return
    exc = future.exception()
    if exc is not None:
        logger.error("Reload broadcast failed: %s", exc, exc_info=exc)


class _SourceChangeHandler(FileSystemEventHandler):
    def __init__(self, coordinator: ReloadCoordinator):
        super().__init__()
        self.coordinator = coordinator

    def on_any_event(self, event):
        output_root = self.coordinator.pipeline.output_root
        for watch_event in translate_event(event):
            # Our own writes land here when the output lives inside the source tree.
            if is_relative_to(watch_event.path, output_root):
                continue
            self.coordinator.handle_event(watch_event)


class ReloadCoordinator:
    """Keeps the output tree and connected browsers in step with the source tree.

    Attributes:
        pipeline: Builds the site and single paths.
    """

    def __init__(
        self,
        config: BuildConfig,
        registry: ClientRegistry | None = None,
        pipeline: Pipeline | None = None,
    ):
        self.pipeline = pipeline or Pipeline(config)
        self._clients = registry if registry is not None else ClientRegistry()
        self._observer: Observer | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    @property
    def client_count(self) -> int:
        return len(self._clients)

    def bind_loop(self, loop: asyncio.AbstractEventLoop) -> None:
        """Use ``loop`` (the websocket server's loop) for broadcasts from other threads."""
        self._loop = loop

    def start(self) -> BuildResult:
        """Build the whole site, then start watching the source tree.

        Paths that already exist produce no events, so the initial build is not repeated.

        Raises:
            ConfigError: If the site cannot be built at all.
        """
        result = self.pipeline.build_all()
        observer = Observer()
        observer.schedule(
            _SourceChangeHandler(self), str(self.pipeline.source_root), recursive=True
        )
        observer.start()
        self._observer = observer
        logger.info("Watching %s for changes", self.pipeline.source_root)
        return result

    def stop(self) -> None:
        if self._observer:
            self._observer.stop()
            self._observer.join()
            self._observer = None

    def handle_event(self, event: WatchEvent) -> bool:
        """Rebuild the path of one event and announce it.

        Args:
            event: The change to react to.

        Returns:
            True when the path was rebuilt and a reload was broadcast.
        """
        logger.info("%s %s", event.kind.value, event.path)
        if event.kind is WatchEventKind.ERROR:
            logger.warning("Watcher reported an error for %s", event.path)
            return False
        if event.kind not in REBUILD_KINDS:
            return False
        try:
            self.pipeline.build_path(event.path)
        except BuildError as exc:
            logger.error("Error while processing %s: %s", exc.source_path, exc.message)
            return False
        self.broadcast_reload()
        return True

    def broadcast_reload(self) -> None:
        """Tell every open client to reload.

        From a foreign thread the broadcast is handed to the bound websocket loop and this
        call returns without waiting for delivery.
        """
        coro = self._clients.broadcast(RELOAD_MESSAGE)
        loop = self._loop
        if loop is not None and loop.is_running():
            future = asyncio.run_coroutine_threadsafe(coro, loop)
            future.add_done_callback(_log_broadcast_failure)
        else:
            asyncio.run(coro)

    async def handle_client(self, websocket: Any) -> None:
        """Serve one reload websocket until it disconnects.

        A ``reload`` message from the client is relayed to every other client.
        """
        self._clients.add(websocket)
        logger.debug("Reload client connected (%d open)", len(self._clients))
        try:
            async for message in websocket:
                if isinstance(message, bytes):
                    message = message.decode("utf-8", "replace")
                if message.strip() == RELOAD_MESSAGE:
                    await self._clients.broadcast(RELOAD_MESSAGE, exclude=websocket)
        except ConnectionClosed:
            pass
        finally:
            self._clients.remove(websocket)
            logger.debug("Reload client disconnected (%d open)", len(self._clients))
