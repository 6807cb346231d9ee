"""File-backed data providers that push reloaded content to listeners."""

from __future__ import annotations

import logging
import os
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass

_log = logging.getLogger(__name__)

# How often the watcher checks the file, and how long it waits after the
# last change before reloading (seconds).
_POLL_INTERVAL = 0.5
_RELOAD_DELAY = 1.0


class DataListener(ABC):
    """Receives the content of a data provider whenever it changes."""

    @abstractmethod
    def update(self, data: bytes) -> None:
        """Take the new data; raise if it cannot be used."""


@dataclass
class DataProviderConfig:
    """Configuration of one data provider."""

    tag: str = ""
    file: str = ""
    auto_reload: bool = False


class DataProvider:
    """Serves the content of one file and optionally reloads it on change."""

    def __init__(self, config: DataProviderConfig, logger: logging.Logger | None = None) -> None:
        self._logger = logger or _log
        self._file = config.file
        self._auto_reload = config.auto_reload
        self._listeners: dict[DataListener, None] = {}
        self._listeners_lock = threading.Lock()
        self._closed = threading.Event()
        self._watcher: threading.Thread | None = None

        self.get_data()
        if self._auto_reload:
            self._watcher = threading.Thread(
                target=self._watch, name=f"data-provider-{config.tag or 'watch'}", daemon=True
            )
            self._watcher.start()

    @property
    def file(self) -> str:
        return self._file

    def close(self) -> None:
        """Stop watching the file."""
        self._closed.set()
        if self._watcher is not None and self._watcher is not threading.current_thread():
            self._watcher.join(timeout=_POLL_INTERVAL * 4)

    def load_and_add_listener(self, listener: DataListener) -> None:
        """Give listener the current data and, if it accepts it, register it.

        Errors from reading the file or from the listener are raised and the
        listener is not registered.
        """
        data = self.get_data()
        listener.update(data)
        with self._listeners_lock:
            self._listeners[listener] = None

    def delete_listener(self, listener: DataListener) -> None:
        """Unregister listener; a no-op if it is not registered."""
        with self._listeners_lock:
            self._listeners.pop(listener, None)

    def get_data(self) -> bytes:
        """Read and return the whole file."""
        with open(self._file, "rb") as fh:
            return fh.read()

    def reload(self) -> bytes:
        """Read the file again, push it to every listener and return it.

        A read error is raised; listener errors are logged and skipped.
        """
        self._logger.info("reloading file %s", self._file)
        data = self.get_data()
        self._logger.info("file reloaded %s", self._file)
        self._push(data)
        return data

    def _push(self, data: bytes) -> None:
        with self._listeners_lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener.update(data)
            except Exception as exc:
                self._logger.error("failed to update data listener: %s", exc)

    def _signature(self) -> tuple[int, int, int] | None:
        try:
            st = os.stat(self._file)
        except OSError:
            return None
        return st.st_mtime_ns, st.st_size, st.st_ino

    def _delayed_reload(self) -> None:
        if self._closed.is_set():
            return
        try:
            self.reload()
        except OSError as exc:
            self._logger.error("failed to reload file %s: %s", self._file, exc)

    def _watch(self) -> None:
        last = self._signature()
        timer: threading.Timer | None = None
        try:
            while not self._closed.wait(_POLL_INTERVAL):
                current = self._signature()
                if current == last:
                    continue
                last = current
                self._logger.info("fs event on file %s", self._file)
                if timer is not None:
                    timer.cancel()
                timer = threading.Timer(_RELOAD_DELAY, self._delayed_reload)
                timer.daemon = True
                timer.start()
        finally:
            if timer is not None:
                timer.cancel()


class DataManager:
    """A registry of data providers by name."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._providers: dict[str, DataProvider] = {}

    def add_data_provider(self, name: str, provider: DataProvider) -> None:
        with self._lock:
            self._providers[name] = provider

    def get_data_provider(self, name: str) -> DataProvider | None:
        with self._lock:
            return self._providers.get(name)