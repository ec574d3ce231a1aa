"""
Triage Config File
==================

YAML-backed triage configuration with watchdog hot reload.
"""

import threading
from pathlib import Path
from typing import Optional

import yaml
from watchdog.events import FileSystemEventHandler
from watchdog.observers import Observer

from ticketmate.shared.infrastructure.logging import get_logger
from ticketmate.triage.domain.value_objects import TriageConfig

logger = get_logger(__name__)


class ConfigFileHandler(FileSystemEventHandler):
    """Watchdog event handler for triage config file changes."""

    def __init__(self, config_manager: "TriageConfigManager", config_path: Path):
        self.config_manager = config_manager
        self.config_path = config_path
        super().__init__()

    def on_modified(self, event):
        if event.is_directory:
            return
        if Path(event.src_path).resolve() == self.config_path.resolve():
            logger.info(f"Triage config file changed: {event.src_path}")
            self.config_manager.reload()


class TriageConfigManager:
    """
    Thread-safe triage configuration holder with hot-reload support.

    The watchdog observer thread swaps the whole TriageConfig under a lock;
    readers always see either the old or the new value.
    """

    def __init__(self, config: Optional[TriageConfig] = None):
        self._config: Optional[TriageConfig] = config
        self._lock = threading.Lock()
        self._path: Optional[Path] = None
        self._observer = None

    def load(self, path: Path) -> TriageConfig:
        """Initial configuration load."""
        self._path = Path(path)
        self._config = self._load_from_file(self._path)
        return self._config

    def _load_from_file(self, path: Path) -> TriageConfig:
        if not path.exists():
            logger.warning(f"Triage config file not found: {path}, using defaults")
            return TriageConfig()

        with open(path, "r") as f:
            data = yaml.safe_load(f) or {}

        return TriageConfig(**data)

    def reload(self) -> bool:
        """Reload configuration from file. A broken file keeps the old config."""
        if self._path is None:
            return False

        try:
            new_config = self._load_from_file(self._path)
        except (OSError, yaml.YAMLError, ValueError) as e:
            logger.error(f"Failed to reload triage config: {e}")
            return False

        with self._lock:
            self._config = new_config
        logger.info("Triage configuration reloaded successfully")
        return True

    def start_watching(self) -> None:
        """
        Start watching the configuration file for changes.

        Skipped when the file doesn't exist or inotify is unavailable.
        """
        if self._path is None:
            raise RuntimeError("Config not loaded. Call load() first.")

        if not self._path.exists():
            logger.info(f"Triage config file doesn't exist, skipping file watch: {self._path}")
            return

        try:
            self._observer = Observer()
            handler = ConfigFileHandler(self, self._path)
            self._observer.schedule(handler, str(self._path.parent), recursive=False)
            self._observer.start()
            logger.info(f"Started watching triage config file: {self._path}")
        except OSError as e:
            logger.warning(f"File watching not available, using static config: {e}")
            self._observer = None

    def stop_watching(self) -> None:
        """Stop watching (safe to call even if not watching)."""
        if self._observer is not None:
            self._observer.stop()
            self._observer.join(timeout=5)
            self._observer = None

    @property
    def is_watching(self) -> bool:
        return self._observer is not None

    @property
    def config(self) -> TriageConfig:
        """Get current configuration (defaults when nothing was loaded)."""
        with self._lock:
            if self._config is None:
                self._config = TriageConfig()
            return self._config
