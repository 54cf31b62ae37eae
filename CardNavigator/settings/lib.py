"""Settings library for the CardNavigator configuration.

Provides:
    - The settings schema, split into preset-scoped keys and global keys.
    - Value validation, coercion and range clamping.
    - Helpers to strip global keys from preset payloads.
    - ConfigPaths: application directories and the settings.json location.
    - SettingsContext: the single-writer live settings object handed to the engine.
"""

import copy
import json
import logging
import pathlib
import threading
from typing import Any, Dict, FrozenSet, List, Optional, Tuple

from PySide6 import QtCore

from ..status import status

app_name: str = 'CardNavigator'

DEFAULT_PRESET: str = 'default'
DEFAULT_PRESET_FOLDER: str = 'CardNavigatorPresets'
SETTINGS_FILE_NAME: str = 'settings.json'

CARD_SET_TYPES: List[str] = ['activeFolder', 'selectedFolder', 'vault']
SORT_CRITERIA: List[str] = ['fileName', 'lastModified', 'created']
SORT_ORDERS: List[str] = ['asc', 'desc']
LAYOUTS: List[str] = ['auto', 'list', 'grid', 'masonry']
PRESET_APPLY_MODES: List[str] = ['folder_first', 'tag_first', 'folder_only', 'tag_only']

SETTINGS_SCHEMA: Dict[str, Dict[str, Any]] = {
    # Card set and sorting
    'card_set_type': {'type': str, 'default': 'activeFolder', 'allowed_values': CARD_SET_TYPES},
    'selected_folder': {'type': (str, type(None)), 'default': None},
    'sort_criterion': {'type': str, 'default': 'fileName', 'allowed_values': SORT_CRITERIA},
    'sort_order': {'type': str, 'default': 'asc', 'allowed_values': SORT_ORDERS},

    # Layout
    'default_layout': {'type': str, 'default': 'auto', 'allowed_values': LAYOUTS},
    'card_width': {'type': int, 'default': 250, 'range': (200, 500)},
    'align_card_height': {'type': bool, 'default': True},
    'cards_per_view': {'type': int, 'default': 4, 'range': (1, 10)},
    'grid_columns': {'type': int, 'default': 4, 'range': (1, 8)},
    'grid_card_height': {'type': int, 'default': 200, 'range': (100, 400)},
    'masonry_columns': {'type': int, 'default': 4, 'range': (1, 8)},
    'enable_scroll_animation': {'type': bool, 'default': True},

    # Content rendering
    'render_content_as_html': {'type': bool, 'default': False},
    'drag_drop_content': {'type': bool, 'default': False},
    'show_file_name': {'type': bool, 'default': True},
    'show_first_header': {'type': bool, 'default': True},
    'show_body': {'type': bool, 'default': True},
    'body_length_limit': {'type': bool, 'default': True},
    'body_length': {'type': int, 'default': 500, 'range': (100, 1000)},
    'file_name_font_size': {'type': int, 'default': 17, 'range': (12, 24)},
    'first_header_font_size': {'type': int, 'default': 17, 'range': (12, 24)},
    'body_font_size': {'type': int, 'default': 15, 'range': (12, 24)},

    # Global keys
    'preset_folder': {'type': str, 'default': DEFAULT_PRESET_FOLDER, 'global': True},
    'global_preset': {'type': str, 'default': DEFAULT_PRESET, 'global': True},
    'auto_apply_presets': {'type': bool, 'default': True, 'global': True},
    'auto_apply_folder_presets': {'type': bool, 'default': True, 'global': True},
    'auto_apply_tag_presets': {'type': bool, 'default': True, 'global': True},
    'preset_apply_mode': {'type': str, 'default': 'folder_first', 'allowed_values': PRESET_APPLY_MODES, 'global': True},
    'folder_presets': {'type': dict, 'default': {}, 'global': True, 'value_type': list},
    'active_folder_presets': {'type': dict, 'default': {}, 'global': True, 'value_type': str},
    'tag_presets': {'type': dict, 'default': {}, 'global': True, 'value_type': str},

    # Written only by the applier and the staging buffer
    'last_active_preset': {'type': str, 'default': DEFAULT_PRESET, 'bookkeeping': True},
}

GLOBAL_KEYS: FrozenSet[str] = frozenset(k for k, v in SETTINGS_SCHEMA.items() if v.get('global'))
BOOKKEEPING_KEYS: FrozenSet[str] = frozenset(k for k, v in SETTINGS_SCHEMA.items() if v.get('bookkeeping'))
NON_PRESET_KEYS: FrozenSet[str] = GLOBAL_KEYS | BOOKKEEPING_KEYS
PRESET_KEYS: FrozenSet[str] = frozenset(SETTINGS_SCHEMA) - NON_PRESET_KEYS


def baseline_settings() -> Dict[str, Any]:
    """Return a fresh copy of the baseline settings template."""
    return {k: copy.deepcopy(v['default']) for k, v in SETTINGS_SCHEMA.items()}


def baseline_preset_settings() -> Dict[str, Any]:
    """Return the baseline template with global and bookkeeping keys removed."""
    return strip_non_preset_keys(baseline_settings())


def strip_non_preset_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of ``data`` containing only preset-scoped keys.

    Global keys, the bookkeeping key and unknown keys are dropped.

    Args:
        data: A full or partial settings bundle.

    Returns:
        A new dict safe to store as a preset payload.
    """
    result: Dict[str, Any] = {}
    for k, v in data.items():
        if k in PRESET_KEYS:
            result[k] = copy.deepcopy(v)
        elif k in NON_PRESET_KEYS:
            logging.debug(f'Dropping non-preset key "{k}" from preset payload.')
        else:
            logging.warning(f'Dropping unknown settings key "{k}" from preset payload.')
    return result


def global_subset(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return a copy of the global-key subset of ``data``."""
    return {k: copy.deepcopy(v) for k, v in data.items() if k in GLOBAL_KEYS}


def clamp_value(key: str, value: Any) -> Any:
    """Clamp a numeric value into the configured range of ``key``.

    Keys without a range are returned unchanged.
    """
    bounds: Optional[Tuple[int, int]] = SETTINGS_SCHEMA.get(key, {}).get('range')
    if bounds is None or isinstance(value, bool) or not isinstance(value, (int, float)):
        return value
    lo, hi = bounds
    return max(lo, min(hi, value))


def _validate_mapping_table(key: str, value: Dict[str, Any], value_type: type) -> Dict[str, Any]:
    """Validate a mapping table section (folder or tag tables).

    Raises:
        status.InvalidSettingException: If keys are not strings or values have the wrong type.
    """
    for k, v in value.items():
        if not isinstance(k, str):
            raise status.InvalidSettingException(f'"{key}" keys must be strings, got {type(k)}.')
        if value_type is list:
            if not isinstance(v, list) or not all(isinstance(n, str) for n in v):
                raise status.InvalidSettingException(f'"{key}" values must be lists of preset names.')
        elif not isinstance(v, value_type):
            raise status.InvalidSettingException(f'"{key}" values must be {value_type.__name__}.')
    return copy.deepcopy(value)


def validate_value(key: str, value: Any) -> Any:
    """Validate and coerce a single settings value against SETTINGS_SCHEMA.

    Scalar values of the wrong type are converted when possible, the same way the
    settings editor converts text input.

    Args:
        key: Settings key.
        value: Candidate value.

    Returns:
        The validated, possibly converted value.

    Raises:
        status.InvalidSettingException: If the key is unknown or the value cannot be used.
    """
    if key not in SETTINGS_SCHEMA:
        raise status.InvalidSettingException(f'Unknown settings key: "{key}".')

    entry = SETTINGS_SCHEMA[key]
    _type = entry['type']

    if _type is dict:
        if not isinstance(value, dict):
            raise status.InvalidSettingException(f'"{key}" must be a dict, got {type(value)}.')
        return _validate_mapping_table(key, value, entry['value_type'])

    if not isinstance(value, _type) or (_type is int and isinstance(value, bool)):
        logging.warning(f'Settings key "{key}" is not of type {_type}, got {type(value)}.')
        try:
            if _type is str:
                value = str(value)
            elif _type is int:
                value = int(value)
            elif _type is bool:
                if isinstance(value, str):
                    value = value.strip().lower() in ('1', 'true', 'yes', 'on')
                else:
                    value = bool(value)
            else:
                raise TypeError(f'Cannot convert {type(value)} to {_type}')
        except (TypeError, ValueError) as ex:
            raise status.InvalidSettingException(f'Cannot convert "{value}" for "{key}": {ex}') from ex

    allowed = entry.get('allowed_values')
    if allowed and value not in allowed:
        raise status.InvalidSettingException(f'"{key}" must be one of {allowed}, got "{value}".')

    return value


def sanitize_bundle(data: Dict[str, Any]) -> Dict[str, Any]:
    """Return the valid subset of a settings bundle.

    Invalid values are dropped with a warning instead of failing the whole bundle, so a
    single bad value in a stored preset does not prevent the rest from applying.
    """
    result: Dict[str, Any] = {}
    for k, v in data.items():
        try:
            result[k] = clamp_value(k, validate_value(k, v))
        except status.InvalidSettingException as ex:
            logging.warning(f'Ignoring settings value "{k}": {ex}')
    return result


class ConfigPaths:
    """Manage application file paths and ensure required directories exist.

    The application data directory comes from QStandardPaths unless ``root`` is given,
    which the tests use to isolate their data.
    """

    def __init__(self, root: Optional[pathlib.Path] = None) -> None:
        if root is None:
            QtCore.QCoreApplication.setApplicationName(app_name)
            QtCore.QCoreApplication.setOrganizationName('')
            logging.debug(f'Setting application name: {app_name}')

            p = QtCore.QStandardPaths.writableLocation(QtCore.QStandardPaths.StandardLocation.AppDataLocation)
            root = pathlib.Path(p)

        self.root: pathlib.Path = pathlib.Path(root)
        logging.debug(f'Using app data directory: {self.root}')

        self.config_dir: pathlib.Path = self.root / 'config'
        self.settings_path: pathlib.Path = self.config_dir / SETTINGS_FILE_NAME

        self._verify_and_prepare()

    def _verify_and_prepare(self) -> None:
        """Create the config directory when missing."""
        if not self.config_dir.exists():
            logging.debug(f'Creating config directory: {self.config_dir}')
            self.config_dir.mkdir(parents=True, exist_ok=True)

    def presets_dir(self, folder: str) -> pathlib.Path:
        """Return the preset directory for a ``preset_folder`` setting.

        Relative folders are resolved against the application data directory.
        """
        path = pathlib.Path(folder or DEFAULT_PRESET_FOLDER)
        if path.is_absolute():
            return path
        return self.root / path


class SettingsContext(QtCore.QObject):
    """The live settings of the running application.

    One context is created per process and passed explicitly to the applier, the
    staging buffer and the mapping tables. Reads return copies; every mutation is
    validated and announced with a single ``settingsChanged`` emission listing the
    changed keys. ``save()`` persists the whole bundle to settings.json.

    All access is serialised by ``lock`` so worker threads can read safely.
    """

    settingsChanged = QtCore.Signal(list)
    settingsSaved = QtCore.Signal()

    def __init__(self, paths: Optional[ConfigPaths] = None, parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent)
        self.paths: Optional[ConfigPaths] = paths
        self.lock = threading.RLock()
        self._signals_blocked: bool = False
        self._data: Dict[str, Any] = baseline_settings()

        if self.paths is not None:
            self.load()

    def __getitem__(self, key: str) -> Any:
        if key not in SETTINGS_SCHEMA:
            raise KeyError(f'Invalid settings key: {key}')
        with self.lock:
            return copy.deepcopy(self._data[key])

    def __setitem__(self, key: str, value: Any) -> None:
        self.update({key: value})

    def __contains__(self, key: str) -> bool:
        return key in SETTINGS_SCHEMA

    def get(self, key: str, default: Any = None) -> Any:
        if key not in SETTINGS_SCHEMA:
            return default
        return self[key]

    def block_signals(self, v: bool) -> None:
        """Enable or disable emission of settingsChanged.

        Args:
            v: True to block signals, False to allow signals to emit.
        """
        self._signals_blocked = v

    def snapshot(self) -> Dict[str, Any]:
        """Return a deep copy of the full live bundle."""
        with self.lock:
            return copy.deepcopy(self._data)

    def preset_settings(self) -> Dict[str, Any]:
        """Return the preset-scoped subset of the live bundle."""
        return strip_non_preset_keys(self.snapshot())

    def global_settings(self) -> Dict[str, Any]:
        """Return the global-key subset of the live bundle."""
        return global_subset(self.snapshot())

    def update(self, values: Dict[str, Any]) -> List[str]:
        """Validate and assign several values, then emit one change notification.

        Nothing is assigned if any value is invalid.

        Args:
            values: Mapping of settings keys to new values.

        Returns:
            The keys whose value actually changed.

        Raises:
            status.InvalidSettingException: If a key is unknown or a value is invalid.
        """
        validated = {k: clamp_value(k, validate_value(k, v)) for k, v in values.items()}
        with self.lock:
            changed = [k for k, v in validated.items() if self._data.get(k) != v]
            for k in changed:
                self._data[k] = validated[k]
        self._emit_changed(changed)
        return changed

    def replace(self, data: Dict[str, Any]) -> List[str]:
        """Replace the whole bundle. Keys missing from ``data`` reset to the baseline.

        Returns:
            The keys whose value changed.
        """
        full = baseline_settings()
        full.update(data)
        return self.update(full)

    def _emit_changed(self, changed: List[str]) -> None:
        if not changed or self._signals_blocked:
            return
        logging.debug(f'Settings changed: {changed}')
        self.settingsChanged.emit(list(changed))

        from ..ui.actions import signals
        signals.settingsChanged.emit(list(changed))

    def load(self) -> Dict[str, Any]:
        """Load settings.json, filling missing keys from the baseline template.

        A missing file is created from the baseline. Unreadable files and invalid values
        are reported and replaced by baseline values, so startup never fails here.

        Returns:
            A copy of the loaded bundle.
        """
        if self.paths is None:
            return self.snapshot()

        path = self.paths.settings_path
        logging.debug(f'Loading settings from "{path}"')

        data = baseline_settings()
        if not path.exists():
            logging.debug(f'Settings file not found, writing baseline to "{path}"')
            with self.lock:
                self._data = data
            self.save()
            return self.snapshot()

        try:
            with path.open('r', encoding='utf-8') as f:
                loaded = json.load(f)
            if not isinstance(loaded, dict):
                raise ValueError('settings.json must contain an object.')
        except (OSError, ValueError) as ex:
            logging.error(f'Failed to read settings from "{path}": {ex}. Using baseline settings.')
            loaded = {}

        for k, v in loaded.items():
            if k not in SETTINGS_SCHEMA:
                logging.warning(f'Ignoring unknown settings key "{k}" in {path}')
                continue
            try:
                data[k] = clamp_value(k, validate_value(k, v))
            except status.InvalidSettingException:
                logging.warning(f'Resetting "{k}" to its default value.')

        with self.lock:
            self._data = data
        return self.snapshot()

    def save(self) -> None:
        """Persist the full bundle to settings.json.

        Raises:
            OSError: If the file cannot be written.
        """
        if self.paths is None:
            self.settingsSaved.emit()
            return

        path = self.paths.settings_path
        logging.debug(f'Saving settings to "{path}"')
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(path.name + '.tmp')
        with tmp_path.open('w', encoding='utf-8') as f:
            json.dump(self.snapshot(), f, indent=4, ensure_ascii=False)
        tmp_path.replace(path)

        self.settingsSaved.emit()
        if not self._signals_blocked:
            from ..ui.actions import signals
            signals.settingsSaved.emit()
