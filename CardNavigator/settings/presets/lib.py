"""Preset management API.

Creates, edits, renames, clones, deletes, imports and exports presets, keeping the
mapping tables and the live settings consistent with what is stored on disk.

The default preset is protected: it cannot be renamed, edited or deleted, and it is
regenerated from the baseline template when missing or damaged. Protection is checked
before any file is touched.

Every public method returns an :class:`~CardNavigator.status.status.Outcome`.
"""
import json
import logging
from typing import Any, Dict, List, Optional

from PySide6 import QtCore

from .. import lib
from ..mapping import MappingTables
from .applier import PresetApplier
from .preset import DEFAULT_PRESET, Preset
from .store import PresetStore
from ...core.storage import validate_name
from ...status import status
from ...ui.actions import signals


def _verify_not_default(name: str, action: str) -> None:
    if isinstance(name, str) and name.strip() == DEFAULT_PRESET:
        raise status.PresetProtectedException(f'Cannot {action} "{DEFAULT_PRESET}".')


def validate_settings(settings: Any) -> Dict[str, Any]:
    """Return validated preset-scoped settings.

    Global, bookkeeping and unknown keys are dropped. Numeric values are clamped.

    Raises:
        status.InvalidSettingException: If a preset setting has an invalid value.
    """
    if not isinstance(settings, dict):
        raise status.InvalidSettingException(f'Expected a dict of settings, got {type(settings).__name__}.')
    data = lib.strip_non_preset_keys(settings)
    return {k: lib.clamp_value(k, lib.validate_value(k, v)) for k, v in data.items()}


def parse_import(data: Any) -> Preset:
    """Validate one exported preset entry.

    Raises:
        status.InvalidImportException: If ``name`` or ``settings`` is missing, has the wrong
            type, or holds invalid values.
    """
    if not isinstance(data, dict):
        raise status.InvalidImportException(f'Expected an object, got {type(data).__name__}.')

    name = data.get('name')
    settings = data.get('settings')
    if not isinstance(name, str) or not name.strip():
        raise status.InvalidImportException('"name" must be a non-empty string.')
    if not isinstance(settings, dict):
        raise status.InvalidImportException(f'"settings" of "{name}" must be an object.')

    description = data.get('description') or ''
    if not isinstance(description, str):
        raise status.InvalidImportException(f'"description" of "{name}" must be a string.')

    try:
        name = validate_name(name)
        settings = validate_settings(settings)
    except (status.InvalidPresetNameException, status.InvalidSettingException) as ex:
        raise status.InvalidImportException(str(ex)) from ex

    return Preset(name, settings, description)


def _loads(text: str) -> Any:
    try:
        return json.loads(text)
    except (TypeError, json.JSONDecodeError) as ex:
        raise status.InvalidImportException(f'Malformed JSON: {ex}') from ex


class PresetsAPI(QtCore.QObject):
    """
    Manages presets stored on disk and their bindings in the live settings.

    Provides methods to create, save, rename, clone, delete, import and export presets.
    """

    # Signals to notify views of changes
    presetsReloaded = QtCore.Signal()
    presetAdded = QtCore.Signal(str)
    presetRemoved = QtCore.Signal(str)
    presetRenamed = QtCore.Signal(str, str)
    presetUpdated = QtCore.Signal(str)

    def __init__(
            self,
            context: lib.SettingsContext,
            store: PresetStore,
            mapping: MappingTables,
            applier: PresetApplier,
            parent: Optional[QtCore.QObject] = None
    ) -> None:
        super().__init__(parent)
        self.context = context
        self.store = store
        self.mapping = mapping
        self.applier = applier

    def _write(self, name: str, preset: Preset) -> Preset:
        result = self.store.write(name, preset)
        if not result:
            raise status.StorageErrorException(result.message)
        return result.value

    def _read(self, name: str) -> Preset:
        result = self.store.read(name)
        if not result:
            raise status.PresetNotFoundException(f'"{name}"') if result.status is status.Status.NotFound \
                else status.PresetCorruptException(f'"{name}"')
        return result.value

    def _changed(self) -> None:
        signals.presetsChanged.emit()

    @status.outcome
    def initialize(self) -> List[str]:
        """Make sure the preset folder and a valid default preset exist.

        Returns:
            Outcome whose value is the list of stored preset names.
        """
        self.store.folder.mkdir(parents=True, exist_ok=True)

        expected = Preset.default()
        if self.store.exists(DEFAULT_PRESET):
            current = self.store.read(DEFAULT_PRESET)
            if current and current.value.settings == expected.settings:
                self.presetsReloaded.emit()
                return self.store.list().value
            logging.warning(f'The "{DEFAULT_PRESET}" preset is out of date or damaged, regenerating it')
        else:
            logging.info(f'Creating the "{DEFAULT_PRESET}" preset in "{self.store.folder}"')

        self._write(DEFAULT_PRESET, expected)
        self.presetsReloaded.emit()
        return self.store.list().value

    @status.outcome
    def names(self) -> List[str]:
        """Return stored preset names, the default preset first."""
        result = self.store.list()
        if not result:
            return result
        names = [n for n in result.value if n != DEFAULT_PRESET]
        return [DEFAULT_PRESET] + names

    def exists(self, name: str) -> bool:
        return self.store.exists(name)

    @status.outcome
    def get(self, name: str) -> Preset:
        return self._read(name)

    @status.outcome
    def create(self, name: str, settings: Optional[Dict[str, Any]] = None, description: str = '') -> Preset:
        """Create a new preset.

        Args:
            name: Name of the new preset.
            settings: Preset settings. The live preset settings are used when omitted.
            description: Preset description.

        Returns:
            Outcome failing with AlreadyExists when the name is taken.
        """
        name = validate_name(name)
        if self.store.exists(name):
            raise status.PresetAlreadyExistsException(f'"{name}"')
        if settings is None:
            settings = self.context.preset_settings()

        preset = self._write(name, Preset(name, validate_settings(settings), description or ''))
        self.presetAdded.emit(name)
        self._changed()
        return preset

    @status.outcome
    def save(self, name: str, settings: Dict[str, Any], description: Optional[str] = None) -> Preset:
        """Create or overwrite a preset.

        Args:
            name: Preset name.
            settings: Preset settings.
            description: New description. The existing one is kept when omitted.
        """
        _verify_not_default(name, 'overwrite')
        name = validate_name(name)
        settings = validate_settings(settings)

        is_new = not self.store.exists(name)
        if description is None:
            description = '' if is_new else self._read(name).description

        preset = self._write(name, Preset(name, settings, description))
        if is_new:
            self.presetAdded.emit(name)
        else:
            self.presetUpdated.emit(name)
        self._changed()
        return preset

    @status.outcome
    def save_current(self, name: str, description: Optional[str] = None) -> Preset:
        """Save the live preset settings under ``name``."""
        return self.save(name, self.context.preset_settings(), description)

    @status.outcome
    def clone(self, source: str, new_name: str) -> Preset:
        """Copy ``source`` to ``new_name``. Cloning the default preset is allowed."""
        new_name = validate_name(new_name)
        source_preset = self._read(source)
        if self.store.exists(new_name):
            raise status.PresetAlreadyExistsException(f'"{new_name}"')

        preset = self._write(new_name, Preset(new_name, source_preset.settings, source_preset.description))
        self.presetAdded.emit(new_name)
        self._changed()
        return preset

    @status.outcome
    def rename(self, old_name: str, new_name: str) -> str:
        """Rename a preset and point every folder, tag and global binding at the new name.

        Returns:
            Outcome whose value is the new name.
        """
        _verify_not_default(old_name, 'rename')
        _verify_not_default(new_name, 'rename a preset to')
        new_name = validate_name(new_name)
        if new_name == old_name:
            return new_name

        preset = self._read(old_name)
        if self.store.exists(new_name):
            raise status.PresetAlreadyExistsException(f'"{new_name}"')

        self._write(new_name, Preset(new_name, preset.settings, preset.description))
        result = self.store.delete(old_name)
        if not result:
            self.store.delete(new_name)
            raise status.StorageErrorException(result.message)

        with self.context.lock:
            reassigned = self.mapping.reassign_preset(old_name, new_name)
            if not reassigned:
                return reassigned
            if self.context['last_active_preset'] == old_name:
                self.context.update({'last_active_preset': new_name})
        self.context.save()

        logging.info(f'Renamed preset "{old_name}" to "{new_name}"')
        self.presetRenamed.emit(old_name, new_name)
        self._changed()
        return new_name

    @status.outcome
    def set_description(self, name: str, description: str) -> Preset:
        _verify_not_default(name, 'edit')
        preset = self._read(name)
        if preset.description == description:
            return preset
        preset.description = description or ''
        preset = self._write(name, preset)
        self.presetUpdated.emit(name)
        self._changed()
        return preset

    @status.outcome
    def delete(self, name: str) -> str:
        """Delete a preset and clean up every binding that references it.

        Folder, tag and global references fall back to the default preset. When the
        deleted preset was the global or the last active preset, the default preset is
        applied.
        """
        _verify_not_default(name, 'delete')
        result = self.store.delete(name)
        if not result:
            return result

        was_active = self.context['last_active_preset'] == name
        dropped = self.mapping.drop_preset(name)
        if not dropped:
            return dropped
        changed = dropped.value
        if was_active or 'global_preset' in changed:
            applied = self.applier.apply_with_fallback(DEFAULT_PRESET)
            if not applied:
                logging.error(f'Could not apply "{DEFAULT_PRESET}" after deleting "{name}": {applied.message}')
        elif changed:
            self.context.save()

        logging.info(f'Deleted preset "{name}"')
        self.presetRemoved.emit(name)
        signals.presetRemoved.emit(name)
        self._changed()
        return name

    @status.outcome
    def export_preset(self, name: str) -> str:
        """Return the preset as a JSON text blob."""
        return self._read(name).to_json()

    @status.outcome
    def export_all(self) -> str:
        """Return every readable preset as one JSON object keyed by name.

        Unreadable presets are skipped with a warning.
        """
        data: Dict[str, Any] = {}
        for name in self.store.list().value or []:
            result = self.store.read(name)
            if not result:
                logging.warning(f'Skipping preset "{name}" from export: {result.message}')
                continue
            data[name] = result.value.to_dict()
        return json.dumps(data, indent=4, ensure_ascii=False)

    @status.outcome
    def import_preset(self, text: str) -> str:
        """Import a single exported preset, overwriting a preset of the same name.

        Returns:
            Outcome whose value is the imported name, or InvalidImport. Nothing is
            written when validation fails.
        """
        preset = parse_import(_loads(text))
        _verify_not_default(preset.name, 'import over')

        is_new = not self.store.exists(preset.name)
        self._write(preset.name, preset)
        if is_new:
            self.presetAdded.emit(preset.name)
        else:
            self.presetUpdated.emit(preset.name)
        self._changed()
        return preset.name

    @status.outcome
    def import_all(self, text: str) -> List[str]:
        """Import the output of :meth:`export_all`.

        Every entry is validated before any file is written. Entries for the default
        preset are skipped. If a write fails, presets written by this call are restored
        to their previous state.

        Returns:
            Outcome whose value is the list of imported names.
        """
        data = _loads(text)
        if not isinstance(data, dict):
            raise status.InvalidImportException(f'Expected an object of presets, got {type(data).__name__}.')

        presets: List[Preset] = []
        for key, entry in data.items():
            preset = parse_import(entry)
            if preset.name == DEFAULT_PRESET:
                logging.warning(f'Skipping "{DEFAULT_PRESET}" from import')
                continue
            if preset.name != key:
                logging.warning(f'Imported entry "{key}" is named "{preset.name}", using "{preset.name}"')
            presets.append(preset)

        previous: Dict[str, Optional[Preset]] = {}
        for preset in presets:
            previous[preset.name] = self._read(preset.name) if self.store.exists(preset.name) else None

        written: List[str] = []
        try:
            for preset in presets:
                self._write(preset.name, preset)
                written.append(preset.name)
        except status.StorageErrorException:
            self._rollback(written, previous)
            raise

        for name in written:
            if previous[name] is None:
                self.presetAdded.emit(name)
            else:
                self.presetUpdated.emit(name)
        self._changed()
        return written

    def _rollback(self, written: List[str], previous: Dict[str, Optional[Preset]]) -> None:
        logging.warning(f'Rolling back {len(written)} imported preset(s)')
        for name in written:
            old = previous.get(name)
            result = self.store.write(name, old) if old else self.store.delete(name)
            if not result:
                logging.error(f'Could not roll back "{name}": {result.message}')

    @status.outcome
    def reset_to_default(self) -> List[str]:
        """Delete every preset, clear all bindings and apply a fresh default preset."""
        for name in self.store.list().value or []:
            if name == DEFAULT_PRESET:
                continue
            result = self.store.delete(name)
            if not result:
                raise status.StorageErrorException(result.message)
            self.presetRemoved.emit(name)
            signals.presetRemoved.emit(name)

        self.context.update({
            'folder_presets': {},
            'active_folder_presets': {},
            'tag_presets': {},
            'global_preset': DEFAULT_PRESET,
        })
        self._write(DEFAULT_PRESET, Preset.default())

        applied = self.applier.apply(DEFAULT_PRESET)
        if not applied:
            return applied

        self.presetsReloaded.emit()
        self._changed()
        return [DEFAULT_PRESET]
