"""Working copy of the preset settings used while the settings editor is open.

The staging buffer is seeded from the last active preset when an editing session
starts. Edits are mirrored into the live settings straight away so the cards follow the
editor, but no preset file is written until :meth:`StagingBuffer.save_as` is called.

Field edits pass through a :class:`CoalescingQueue`: edits arriving within the debounce
window are merged and mirrored with one settings update and one settings.json save.
Closing the session flushes pending edits, discarding it drops them.
"""
import copy
import logging
from typing import Any, Dict, Optional

from PySide6 import QtCore

from .. import lib
from ..mapping import MappingTables
from .preset import DEFAULT_PRESET, Preset
from .store import PresetStore
from ...core.storage import validate_name
from ...status import status
from ...ui.actions import signals

DEBOUNCE_MS: int = 300


class CoalescingQueue(QtCore.QObject):
    """Collect key/value edits and release them as one batch after a quiet period.

    Pushing a key that is already pending replaces its value and restarts the timer.

    Signals:
        flushed (dict): Emitted with the merged batch when the timer fires or
            :meth:`flush` is called.
    """
    flushed = QtCore.Signal(dict)
    pendingChanged = QtCore.Signal(bool)

    def __init__(self, interval_ms: int = DEBOUNCE_MS, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self._pending: Dict[str, Any] = {}

        self._timer = QtCore.QTimer(self)
        self._timer.setSingleShot(True)
        self._timer.setInterval(interval_ms)
        self._timer.timeout.connect(self.flush)

    @property
    def interval(self) -> int:
        return self._timer.interval()

    def has_pending(self) -> bool:
        return bool(self._pending)

    def pending(self) -> Dict[str, Any]:
        return copy.deepcopy(self._pending)

    def push(self, key: str, value: Any) -> None:
        was_pending = self.has_pending()
        self._pending[key] = copy.deepcopy(value)
        self._timer.start()
        if not was_pending:
            self.pendingChanged.emit(True)

    @QtCore.Slot()
    def flush(self) -> Dict[str, Any]:
        """Release the pending batch now. Returns the batch, empty if nothing was pending."""
        self._timer.stop()
        if not self._pending:
            return {}
        batch, self._pending = self._pending, {}
        logging.debug(f'Flushing {len(batch)} staged edit(s): {sorted(batch)}')
        self.pendingChanged.emit(False)
        self.flushed.emit(batch)
        return batch

    def cancel(self) -> None:
        """Drop pending edits without releasing them."""
        self._timer.stop()
        if not self._pending:
            return
        logging.debug(f'Dropping {len(self._pending)} staged edit(s)')
        self._pending.clear()
        self.pendingChanged.emit(False)


class StagingBuffer(QtCore.QObject):
    """The editing session's working copy of the preset settings.

    Only one session is open at a time, and only the session mutates the buffer.

    Args:
        context: Live settings the buffer mirrors into.
        store: Preset store used to seed and save the buffer.
        mapping: Mapping tables updated by :meth:`save_as`.
        debounce_ms: Coalescing window for field edits.
    """
    bufferChanged = QtCore.Signal()

    def __init__(
            self,
            context: lib.SettingsContext,
            store: PresetStore,
            mapping: MappingTables,
            debounce_ms: int = DEBOUNCE_MS,
            parent: Optional[QtCore.QObject] = None
    ) -> None:
        super().__init__(parent)
        self.context = context
        self.store = store
        self.mapping = mapping

        self._open: bool = False
        self._buffer: Dict[str, Any] = {}
        self._seed: str = ''

        self.queue = CoalescingQueue(debounce_ms, parent=self)
        self._connect_signals()

    def _connect_signals(self) -> None:
        self.queue.flushed.connect(self._mirror)

    @property
    def is_open(self) -> bool:
        return self._open

    @property
    def has_pending(self) -> bool:
        return self.queue.has_pending()

    @property
    def buffer(self) -> Dict[str, Any]:
        return copy.deepcopy(self._buffer)

    @property
    def seed(self) -> str:
        """Name of the preset the buffer was last loaded from."""
        return self._seed

    def _verify_open(self) -> None:
        if not self._open:
            raise status.SessionNotOpenException()

    def _set_buffer(self, name: str, preset: Preset) -> None:
        data = lib.baseline_preset_settings()
        data.update(preset.settings)
        self._buffer = data
        self._seed = name
        self.bufferChanged.emit()

    @QtCore.Slot(dict)
    def _mirror(self, batch: Dict[str, Any]) -> None:
        """Write a batch of buffer values into the live settings and save them once."""
        if not batch:
            return
        try:
            self.context.update(batch)
            self.context.save()
        except OSError as ex:
            logging.error(f'Could not save settings: {ex}')
            signals.error.emit(f'Could not save settings: {ex}')

    @status.outcome
    def initialize(self) -> str:
        """Open a session and seed the buffer.

        The buffer is loaded from the last active preset. If that preset is missing or
        unreadable, the default preset is used, and if that fails too, the baseline
        template.

        Returns:
            Outcome whose value is the name of the preset the buffer was seeded from.
        """
        self.queue.cancel()

        name = self.context['last_active_preset'] or DEFAULT_PRESET
        result = self.store.read(name)
        if not result and name != DEFAULT_PRESET:
            logging.warning(f'Last active preset "{name}" is unavailable, seeding from "{DEFAULT_PRESET}"')
            name = DEFAULT_PRESET
            result = self.store.read(name)

        if result:
            self._set_buffer(name, result.value)
        else:
            logging.warning('Default preset is unavailable, seeding from the baseline template')
            self._set_buffer(DEFAULT_PRESET, Preset.default())

        if not self._open:
            self._open = True
            signals.sessionOpened.emit()
        logging.debug(f'Editing session opened, seeded from "{self._seed}"')
        return self._seed

    @status.outcome
    def apply_preview(self, name: str) -> str:
        """Replace the buffer with the named preset and mirror it immediately.

        Pending field edits are dropped. The preset is not recorded as the last
        active preset until it is saved.
        """
        self._verify_open()
        result = self.store.read(name)
        if not result:
            return result
        self.queue.cancel()
        self._set_buffer(name, result.value)
        self._mirror(self.buffer)
        return name

    @status.outcome
    def update_field(self, key: str, value: Any) -> Any:
        """Set one preset setting in the buffer and schedule it for mirroring.

        Numeric values are clamped to their configured range.

        Returns:
            Outcome whose value is the value stored in the buffer.
        """
        self._verify_open()
        if key in lib.NON_PRESET_KEYS:
            raise status.InvalidSettingException(f'"{key}" is not a preset setting.')
        value = lib.clamp_value(key, lib.validate_value(key, value))

        self._buffer[key] = value
        self.queue.push(key, value)
        self.bufferChanged.emit()
        return value

    @status.outcome
    def revert_to_default(self) -> str:
        """Reseed the buffer from the default preset and mirror it."""
        self._verify_open()
        self.queue.cancel()
        result = self.store.read(DEFAULT_PRESET)
        self._set_buffer(DEFAULT_PRESET, result.value if result else Preset.default())
        self._mirror(self.buffer)
        return DEFAULT_PRESET

    @status.outcome
    def save_as(
            self,
            name: str,
            description: str = '',
            folder: Optional[str] = None,
            make_global: bool = False
    ) -> Preset:
        """Persist the buffer as a preset, creating or overwriting it.

        Args:
            name: Preset name. The default preset cannot be overwritten.
            description: Preset description.
            folder: When given, the preset is added to the folder and selected for it.
            make_global: When True, the preset becomes the global preset.

        Returns:
            Outcome whose value is the saved preset.
        """
        self._verify_open()
        if isinstance(name, str) and name.strip() == DEFAULT_PRESET:
            raise status.PresetProtectedException(f'Cannot save over "{DEFAULT_PRESET}".')
        name = validate_name(name)

        self.queue.flush()

        preset = Preset(name, self.buffer, description or '')
        result = self.store.write(name, preset)
        if not result:
            return result

        if folder is not None:
            bound = self.mapping.add_preset_to_folder(folder, name)
            if bound:
                bound = self.mapping.set_active_folder_preset(folder, name)
            if not bound:
                return bound
        if make_global:
            bound = self.mapping.set_global_preset(name)
            if not bound:
                return bound

        self.context.update({'last_active_preset': name})
        self.context.save()
        self._seed = name

        logging.info(f'Saved preset "{name}"')
        signals.presetsChanged.emit()
        return result.value

    @QtCore.Slot()
    def discard(self) -> None:
        """Close the session, dropping edits that have not been mirrored yet."""
        self.queue.cancel()
        self._end()

    @QtCore.Slot()
    def close(self) -> None:
        """Close the session, mirroring any pending edits first."""
        self.queue.flush()
        self._end()

    def _end(self) -> None:
        self._buffer = {}
        self._seed = ''
        if self._open:
            self._open = False
            logging.debug('Editing session closed')
            signals.sessionClosed.emit()
