"""The Preset value type and its JSON representation."""
import copy
import json
from dataclasses import dataclass, field
from typing import Any, Dict

from .. import lib
from ...status import status

DEFAULT_PRESET: str = lib.DEFAULT_PRESET
DEFAULT_DESCRIPTION: str = 'Default settings.'


@dataclass
class Preset:
    """A named bundle of preset-scoped settings.

    Attributes:
        name: Unique preset name.
        settings: Preset-scoped settings. Never contains global or bookkeeping keys.
        description: Free text shown in the preset list.
        is_default: True only for the built-in default preset.
    """
    name: str
    settings: Dict[str, Any] = field(default_factory=dict)
    description: str = ''
    is_default: bool = False

    def __post_init__(self) -> None:
        self.settings = lib.strip_non_preset_keys(self.settings)

    @classmethod
    def default(cls) -> 'Preset':
        """Return the default preset, built from the baseline template."""
        return cls(DEFAULT_PRESET, lib.baseline_preset_settings(), DEFAULT_DESCRIPTION, True)

    def copy(self) -> 'Preset':
        return copy.deepcopy(self)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'description': self.description,
            'settings': copy.deepcopy(self.settings),
            'is_default': self.is_default,
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=4, ensure_ascii=False)

    @classmethod
    def from_dict(cls, data: Any) -> 'Preset':
        """Build a preset from its stored representation.

        Raises:
            status.PresetCorruptException: If ``name`` or ``settings`` is missing or of the wrong type.
        """
        if not isinstance(data, dict):
            raise status.PresetCorruptException(f'Expected an object, got {type(data).__name__}.')
        name = data.get('name')
        settings = data.get('settings')
        if not isinstance(name, str) or not name:
            raise status.PresetCorruptException('"name" is missing.')
        if not isinstance(settings, dict):
            raise status.PresetCorruptException(f'"settings" of "{name}" is missing.')

        description = data.get('description') or ''
        if not isinstance(description, str):
            description = str(description)

        return cls(
            name=name,
            settings=lib.sanitize_bundle(lib.strip_non_preset_keys(settings)),
            description=description,
            is_default=name == DEFAULT_PRESET,
        )

    @classmethod
    def from_json(cls, text: str) -> 'Preset':
        try:
            data = json.loads(text)
        except json.JSONDecodeError as ex:
            raise status.PresetCorruptException(f'Malformed JSON: {ex}') from ex
        return cls.from_dict(data)
