"""Preset persistence.

The store encodes presets as JSON through a storage backend and keeps the preset cache
consistent with every write and delete. Reads go to the cache first.

Every public method returns a :class:`~CardNavigator.status.status.Outcome`; missing and
unreadable presets are reported as ``Status.NotFound`` and ``Status.Corrupt``.
"""
import logging
import pathlib
import threading
from typing import Dict, List, Tuple, Union

from .. import lib
from .cache import PresetCache
from .preset import DEFAULT_PRESET, Preset
from ...core.storage import FileBackend, validate_name
from ...status import status


class PresetStore:
    """Load and save presets through a :class:`FileBackend`.

    Backend reads run outside the lock so a slow read does not hold up other lookups.
    Every write and delete bumps a per-name version; a read only fills the cache if the
    version it started from is still current.

    Args:
        backend: Storage backend for the preset blobs.
        cache: Cache mirrored on every read, write and delete.
    """

    def __init__(self, backend: FileBackend, cache: PresetCache) -> None:
        self.backend = backend
        self.cache = cache
        self._lock = threading.RLock()
        self._versions: Dict[str, int] = {}
        self._epoch = 0

    @property
    def folder(self) -> pathlib.Path:
        return self.backend.folder

    @status.outcome
    def list(self) -> List[str]:
        with self._lock:
            return self.backend.list()

    def exists(self, name: str) -> bool:
        if name in self.cache:
            return True
        try:
            with self._lock:
                return self.backend.exists(name)
        except (status.InvalidPresetNameException, OSError):
            return False

    def _version(self, name: str) -> Tuple[int, int]:
        return self._epoch, self._versions.get(name, 0)

    def _bump(self, name: str) -> None:
        self._versions[name] = self._versions.get(name, 0) + 1

    def _load(self, name: str) -> Preset:
        try:
            text = self.backend.read(name)
        except FileNotFoundError:
            raise status.PresetNotFoundException(f'"{name}"')

        try:
            preset = Preset.from_json(text)
        except status.PresetCorruptException:
            logging.error(f'Preset file of "{name}" is corrupt: {self.backend.path(name)}')
            raise
        if preset.name != name:
            logging.warning(f'Preset file "{name}" names itself "{preset.name}", using the file name.')
            preset.name = name
            preset.is_default = name == DEFAULT_PRESET
        return preset

    def _regenerate_default(self) -> Preset:
        logging.warning(f'The "{DEFAULT_PRESET}" preset is missing or unreadable, regenerating it')
        preset = Preset.default()
        with self._lock:
            self.backend.write(DEFAULT_PRESET, preset.to_json())
            self._bump(DEFAULT_PRESET)
            self.cache.put(DEFAULT_PRESET, preset)
        return preset.copy()

    def _read(self, name: str) -> Preset:
        preset = self.cache.get(name)
        if preset is not None:
            return preset

        validate_name(name)
        with self._lock:
            version = self._version(name)

        try:
            preset = self._load(name)
        except (status.PresetNotFoundException, status.PresetCorruptException):
            if name != DEFAULT_PRESET:
                raise
            return self._regenerate_default()

        with self._lock:
            if self._version(name) == version:
                self.cache.put(name, preset)
            else:
                logging.debug(f'"{name}" changed while it was being read, not caching it')
        return preset.copy()

    @status.outcome
    def read(self, name: str) -> Preset:
        """Return the named preset.

        A missing or unreadable default preset is regenerated from the baseline settings,
        so reading ``default`` only fails on storage errors.

        Returns:
            Outcome whose value is a copy of the preset, or a NotFound/Corrupt/StorageError failure.
        """
        return self._read(name)

    @status.outcome
    def write(self, name: str, preset: Preset) -> Preset:
        """Store ``preset`` under ``name`` and refresh the cache entry.

        Values are validated and clamped the same way they are on load.
        """
        name = validate_name(name)
        preset = preset.copy()
        preset.name = name
        preset.is_default = name == DEFAULT_PRESET
        preset.settings = lib.sanitize_bundle(preset.settings)
        with self._lock:
            self.backend.write(name, preset.to_json())
            self._bump(name)
            self.cache.put(name, preset)
        return preset.copy()

    @status.outcome
    def delete(self, name: str) -> bool:
        """Remove the named preset and evict it from the cache.

        Returns:
            Outcome failing with NotFound if no file existed.
        """
        with self._lock:
            self._bump(name)
            self.cache.invalidate(name)
            if not self.backend.delete(name):
                raise status.PresetNotFoundException(f'"{name}"')
        return True

    def update_folder(self, folder: Union[str, pathlib.Path]) -> None:
        """Point the store at another preset folder and empty the cache."""
        with self._lock:
            self.backend.set_folder(folder)
            self._epoch += 1
            self.cache.clear()
