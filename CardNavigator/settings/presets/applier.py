"""Merge presets into the live settings.

The merged bundle is built in this order, later layers winning:

    baseline template
    preset settings (global and bookkeeping keys stripped)
    {'last_active_preset': name}
    global keys of the live settings, captured just before the merge

so applying a preset never touches folder, tag or global bindings.
"""
import logging
from typing import Any, Dict

from .. import lib
from .preset import DEFAULT_PRESET, Preset
from .store import PresetStore
from ...status import status
from ...ui.actions import signals


def merge(name: str, preset: Preset, live_globals: Dict[str, Any]) -> Dict[str, Any]:
    """Return the full settings bundle resulting from applying ``preset``.

    Args:
        name: Name recorded as the last active preset.
        preset: The preset to apply.
        live_globals: Global keys to preserve.
    """
    leaked = sorted(k for k in preset.settings if k in lib.NON_PRESET_KEYS)
    if leaked:
        logging.warning(f'Preset "{name}" contains global settings, ignoring them: {leaked}')

    data = lib.baseline_settings()
    data.update(lib.strip_non_preset_keys(preset.settings))
    data['last_active_preset'] = name
    data.update(lib.global_subset(live_globals))
    return data


class PresetApplier:
    """Apply stored presets to a :class:`~CardNavigator.settings.lib.SettingsContext`."""

    def __init__(self, context: lib.SettingsContext, store: PresetStore) -> None:
        self.context = context
        self.store = store

    def apply_preset(self, name: str, preset: Preset) -> None:
        """Merge an already loaded preset into the live settings and persist them.

        Emits one settings change notification.

        Raises:
            OSError: If settings.json cannot be written.
        """
        signals.presetAboutToBeActivated.emit(name)
        with self.context.lock:
            data = merge(name, preset, self.context.global_settings())
            self.context.replace(data)
        self.context.save()
        logging.info(f'Applied preset "{name}"')
        signals.presetActivated.emit(name)

    @status.outcome
    def apply(self, name: str) -> str:
        """Load and apply the named preset.

        On NotFound or Corrupt the live settings are left untouched and the failure is
        returned; the notice is raised through ``signals.error``.

        Returns:
            Outcome whose value is the applied preset name.
        """
        result = self.store.read(name)
        if not result:
            return result
        self.apply_preset(name, result.value)
        return name

    @status.outcome
    def apply_with_fallback(self, name: str) -> str:
        """Apply ``name``, or the default preset when ``name`` is missing or unreadable.

        Returns:
            Outcome whose value is the preset name that was applied.
        """
        result = self.apply(name)
        if result or name == DEFAULT_PRESET:
            return result
        if result.status not in (status.Status.NotFound, status.Status.Corrupt):
            return result
        logging.warning(f'Falling back to "{DEFAULT_PRESET}" because "{name}" could not be applied')
        return self.apply(DEFAULT_PRESET)
