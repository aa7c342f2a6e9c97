"""
Reload notifications for the open document.

The parent directory is watched rather than the file itself so that editors
which save by writing a temp file and renaming it over the original are
still noticed.
"""

from __future__ import annotations

import logging
import os
import threading
from typing import Callable, Optional

from watchdog.events import (
    EVENT_TYPE_CREATED,
    EVENT_TYPE_MODIFIED,
    EVENT_TYPE_MOVED,
    FileSystemEvent,
    FileSystemEventHandler,
)
from watchdog.observers import Observer

logger = logging.getLogger(__name__)


class DocumentChangeHandler(FileSystemEventHandler):
    """Forwards every directory event to the owning watcher."""

    def __init__(self, watcher: "FileWatcher"):
        super().__init__()
        self.watcher = watcher

    def on_any_event(self, event: FileSystemEvent) -> None:
        self.watcher.dispatch(event)


class FileWatcher:
    """
    Watches one document at a time and calls ``on_change`` once per arming.

    ``watch`` arms the trigger; the first write or create of the document
    fires ``on_change`` and disarms it until the next ``watch`` call. Changes
    that arrive while disarmed are remembered and fire on re-arming. The
    callback runs on the observer thread, or on the caller of ``watch``
    for a remembered change.
    """

    def __init__(self, on_change: Callable[[], None], observer=None):
        self.on_change = on_change
        self._observer = observer if observer is not None else Observer()
        self._handler = DocumentChangeHandler(self)
        self._lock = threading.Lock()
        self._watch = None
        self._dir = ""
        self._path = ""
        self._armed = False
        self._pending = False
        self._closed = False

    @property
    def watched_dir(self) -> str:
        return self._dir

    @property
    def armed(self) -> bool:
        return self._armed

    def watch(self, path: str) -> None:
        """
        Watch ``path``'s directory, replacing any previous subscription.

        A change to the same document seen while disarmed is replayed here,
        so writes landing during a reload still trigger another one.
        """
        if not path or self._closed:
            return

        path = os.path.abspath(path)
        directory = os.path.dirname(path)

        with self._lock:
            missed = self._pending and path == self._path
            self._pending = False
            self._path = path
            self._armed = not missed

            moved = self._watch is None or self._dir != directory
            if moved:
                self._unschedule()
                try:
                    self._watch = self._observer.schedule(self._handler, directory, recursive=False)
                except OSError as e:
                    logger.error("error adding dir to watcher: %s: %s", directory, e)
                    self._armed = False
                    return
                self._dir = directory

        if moved:
            if not self._observer.is_alive():
                self._observer.start()
            logger.info("watching dir %s", directory)

        if missed:
            logger.debug("replaying change to %s seen during reload", path)
            self.on_change()

    def unwatch(self) -> None:
        with self._lock:
            self._armed = False
            self._pending = False
            self._path = ""
            self._unschedule()

    def close(self) -> None:
        self.unwatch()
        self._closed = True
        if self._observer.is_alive():
            self._observer.stop()
            self._observer.join(timeout=1)

    def _unschedule(self) -> None:
        if self._watch is None:
            return
        directory = self._dir
        try:
            self._observer.unschedule(self._watch)
            logger.debug("dir unwatched: %s", directory)
        except (KeyError, OSError) as e:
            logger.error("failed to unwatch dir %s: %s", directory, e)
        self._watch = None
        self._dir = ""

    def dispatch(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return

        if event.event_type == EVENT_TYPE_MOVED:
            target: Optional[str] = event.dest_path
        elif event.event_type in (EVENT_TYPE_MODIFIED, EVENT_TYPE_CREATED):
            target = event.src_path
        else:
            logger.debug("ignoring %s event for %s", event.event_type, event.src_path)
            return

        target = os.path.abspath(os.fsdecode(target))
        with self._lock:
            if target != self._path:
                return
            if not self._armed:
                self._pending = True
                return
            self._armed = False

        logger.debug("watch event %s on %s", event.event_type, target)
        self.on_change()
