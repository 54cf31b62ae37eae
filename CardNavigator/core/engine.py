"""The preset engine.

Wires the settings context, preset store, cache, mapping tables, resolver, applier,
preset API and staging buffer together, and applies the right preset when the active
note changes.

Every subject change is tagged with a generation number. Lookups run on a worker
thread and their results are applied on the main thread only if no newer request was
made in the meantime, so a slow lookup can never overwrite a faster, later one.

While the settings editor is open, subject changes are not applied. The latest subject
is remembered and resolved again when the editor closes.
"""
import logging
import threading
from typing import Any, Iterable, List, Optional, Set, Tuple

from PySide6 import QtCore

from .storage import FileBackend
from .worker import AsyncWorker
from ..log import log
from ..settings import lib
from ..settings.mapping import MappingTables
from ..settings.presets.applier import PresetApplier
from ..settings.presets.cache import CACHE_CAPACITY, PresetCache
from ..settings.presets.lib import PresetsAPI
from ..settings.presets.preset import DEFAULT_PRESET
from ..settings.presets.resolver import ApplyMode, PresetResolver, Resolution, Source, is_tag
from ..settings.presets.staging import DEBOUNCE_MS, StagingBuffer
from ..settings.presets.store import PresetStore
from ..status import status
from ..ui.actions import signals

Subject = Tuple[Optional[str], Tuple[str, ...]]
LookupResult = Tuple[int, Optional[str], Resolution, status.Outcome]


class PresetEngine(QtCore.QObject):
    """Owns the preset components and dispatches subject changes.

    Args:
        paths: Application paths. The standard application data location is used when omitted.
        backend: Preset storage. A :class:`FileBackend` over the configured preset folder by default.
        cache_capacity: Number of presets kept in memory.
        debounce_ms: Coalescing window of the staging buffer.

    Signals:
        subjectApplied (int, str): A lookup was applied: generation and preset name.
        subjectDiscarded (int, str): A stale lookup was dropped: generation and preset name.
    """
    subjectApplied = QtCore.Signal(int, str)
    subjectDiscarded = QtCore.Signal(int, str)

    def __init__(
            self,
            paths: Optional[lib.ConfigPaths] = None,
            backend: Optional[FileBackend] = None,
            cache_capacity: int = CACHE_CAPACITY,
            debounce_ms: int = DEBOUNCE_MS,
            parent: Optional[QtCore.QObject] = None
    ) -> None:
        super().__init__(parent)
        self.paths = paths or lib.ConfigPaths()
        self.context = lib.SettingsContext(self.paths, parent=self)

        self.cache = PresetCache(cache_capacity)
        self.backend = backend or FileBackend(self.paths.presets_dir(self.context['preset_folder']))
        self.store = PresetStore(self.backend, self.cache)
        self.mapping = MappingTables(self.context)
        self.resolver = PresetResolver(self.mapping)
        self.applier = PresetApplier(self.context, self.store)
        self.presets = PresetsAPI(self.context, self.store, self.mapping, self.applier, parent=self)
        self.staging = StagingBuffer(self.context, self.store, self.mapping, debounce_ms, parent=self)

        self._generation: int = 0
        self._generation_lock = threading.Lock()
        self._workers: Set[AsyncWorker] = set()
        self._subject: Optional[Subject] = None
        self._replay: bool = False

    # Generations

    @property
    def generation(self) -> int:
        return self._generation

    def next_generation(self) -> int:
        with self._generation_lock:
            self._generation += 1
            return self._generation

    def is_current(self, generation: int) -> bool:
        return generation == self._generation

    def is_idle(self) -> bool:
        return not self._workers

    def notices(self, level: int = logging.WARNING) -> List[str]:
        """Return recent log messages at ``level`` or above, oldest first.

        The settings surface shows these to explain why a preset was not applied.
        """
        handler = log.get_notice_handler()
        if handler is None:
            return []
        return handler.get_logs(level)

    # Startup

    @status.outcome
    def initialize(self) -> str:
        """Create the default preset if needed and apply the last active preset.

        Returns:
            Outcome whose value is the applied preset name.
        """
        result = self.presets.initialize()
        if not result:
            return result
        return self.applier.apply_with_fallback(self.context['last_active_preset'] or DEFAULT_PRESET)

    @status.outcome
    def set_preset_folder(self, folder: str) -> list:
        """Move the preset store to another folder and make sure it has a default preset."""
        if not isinstance(folder, str) or not folder.strip():
            raise status.InvalidSettingException('The preset folder must not be empty.')
        self.context.update({'preset_folder': folder.strip()})
        self.context.save()
        self.store.update_folder(self.paths.presets_dir(folder.strip()))
        return self.presets.initialize()

    # Subject changes

    def _auto_apply_status(self, subject: Optional[str], tags: Tuple[str, ...]) -> Optional[status.Status]:
        if not self.context['auto_apply_presets']:
            return status.Status.Ignored
        by_tags = self.context['auto_apply_tag_presets'] and (tags or is_tag(subject))
        by_folder = self.context['auto_apply_folder_presets'] and not is_tag(subject)
        if not by_tags and not by_folder:
            return status.Status.Ignored
        return None

    def _resolve(self, subject: Optional[str], tags: Tuple[str, ...]) -> Resolution:
        path = subject
        if is_tag(subject):
            path, tags = None, (subject,) + tags
        return self.resolver.resolve_note(
            path,
            tags,
            mode=ApplyMode(self.context['preset_apply_mode']),
            use_folders=self.context['auto_apply_folder_presets'],
            use_tags=self.context['auto_apply_tag_presets'],
        )

    def _lookup(self, generation: int, subject: Optional[str], tags: Tuple[str, ...]) -> LookupResult:
        """Resolve the subject and read its preset. Safe to run off the main thread."""
        resolution = self._resolve(subject, tags)
        return generation, subject, resolution, self.store.read(resolution.name)

    def _accept(self, subject: Optional[str], tags: Iterable[str]) -> Tuple[Tuple[str, ...], Optional[status.Outcome]]:
        tags = tuple(tags or ())
        self._subject = (subject, tags)

        skip = self._auto_apply_status(subject, tags)
        if skip is not None:
            logging.debug(f'Ignoring subject "{subject}": automatic presets are disabled')
            return tags, status.Outcome.failure(skip)
        if self.staging.is_open:
            logging.debug(f'Deferring subject "{subject}" until the editing session closes')
            self._replay = True
            return tags, status.Outcome.failure(status.Status.Deferred)
        return tags, None

    def subject_changed_sync(self, subject: Optional[str], tags: Iterable[str] = ()) -> status.Outcome:
        """Resolve and apply the preset of ``subject`` on the calling thread.

        Args:
            subject: Folder path of the active note, or a ``#tag``.
            tags: Tags of the active note, ordered by ``preset_apply_mode`` against the folder.

        Returns:
            Outcome whose value is the applied preset name.
        """
        tags, skipped = self._accept(subject, tags)
        if skipped is not None:
            return skipped
        return self.complete(*self._lookup(self.next_generation(), subject, tags))

    def request_subject(self, subject: Optional[str], tags: Iterable[str] = ()) -> status.Outcome:
        """Resolve the preset of ``subject`` on a worker thread and apply it when done.

        Returns:
            Outcome whose value is the generation of the request.
        """
        tags, skipped = self._accept(subject, tags)
        if skipped is not None:
            return skipped

        generation = self.next_generation()
        worker = AsyncWorker(self._lookup, generation, subject, tags)
        worker.resultReady.connect(self._on_lookup_finished)
        worker.errorOccurred.connect(self._on_lookup_failed)
        worker.finished.connect(self._on_worker_finished)
        self._workers.add(worker)
        worker.start()
        logging.debug(f'Requested preset for "{subject}" (generation {generation})')
        return status.Outcome.success(generation)

    @QtCore.Slot(object)
    def _on_lookup_finished(self, result: Any) -> None:
        self.complete(*result)

    @QtCore.Slot(object)
    def _on_lookup_failed(self, ex: Any) -> None:
        logging.error(f'Preset lookup failed: {ex}')
        signals.error.emit(f'Preset lookup failed: {ex}')

    @QtCore.Slot()
    def _on_worker_finished(self) -> None:
        worker = self.sender()
        if not isinstance(worker, AsyncWorker):
            return
        self._workers.discard(worker)
        worker.wait()
        worker.deleteLater()

    def complete(
            self,
            generation: int,
            subject: Optional[str],
            resolution: Resolution,
            result: status.Outcome
    ) -> status.Outcome:
        """Apply a finished lookup if it belongs to the latest request.

        Stale results are discarded. When the resolved preset could not be read, the
        default preset is applied instead.

        Returns:
            Outcome whose value is the applied preset name, or Superseded / Deferred.
        """
        if not self.is_current(generation):
            logging.debug(f'Discarding stale lookup {generation} for "{subject}" (latest is {self._generation})')
            self.subjectDiscarded.emit(generation, resolution.name)
            return status.Outcome.failure(status.Status.Superseded)

        if self.staging.is_open:
            self._replay = True
            return status.Outcome.failure(status.Status.Deferred)

        name = resolution.name
        if result:
            try:
                self.applier.apply_preset(name, result.value)
            except OSError as ex:
                return status.Outcome.from_exception(status.StorageErrorException(str(ex)))
        else:
            logging.warning(f'Preset "{name}" for "{subject}" is unavailable ({result.status}), using "{DEFAULT_PRESET}"')
            applied = self.applier.apply(DEFAULT_PRESET)
            if not applied:
                return applied
            name = DEFAULT_PRESET

        if resolution.source == Source.Folder:
            logging.debug(f'"{subject}" uses the preset of folder "{resolution.key}"')
        self.subjectApplied.emit(generation, name)
        return status.Outcome.success(name)

    def wait(self, timeout_ms: int = 5000) -> bool:
        """Block until running lookups have finished. Results are delivered by the event loop."""
        return all(w.wait(timeout_ms) for w in list(self._workers))

    # Editing sessions

    def open_session(self) -> status.Outcome:
        """Open the settings editor session. Subject changes are deferred until it closes."""
        return self.staging.initialize()

    def close_session(self, discard: bool = False) -> status.Outcome:
        """Close the settings editor session and resolve the latest subject again.

        Args:
            discard: Drop pending edits instead of flushing them.

        Returns:
            Outcome of the replayed request, or success when nothing was deferred.
        """
        if not self.staging.is_open:
            return status.Outcome.failure(status.Status.SessionNotOpen)

        if discard:
            self.staging.discard()
        else:
            self.staging.close()

        if not self._replay or self._subject is None:
            return status.Outcome.success()
        self._replay = False
        subject, tags = self._subject
        logging.debug(f'Replaying deferred subject "{subject}"')
        return self.request_subject(subject, tags)

    def shutdown(self) -> None:
        """Flush the editing session and wait for running lookups."""
        if self.staging.is_open:
            self.staging.close()
        self.next_generation()
        self.wait()
