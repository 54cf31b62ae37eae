# tests/test_applier.py
"""
Unit tests for CardNavigator.settings.presets.applier.

Run with:
    python -m unittest tests.test_applier
"""
import json

from CardNavigator.core.storage import FileBackend
from CardNavigator.settings import lib
from CardNavigator.settings.mapping import MappingTables
from CardNavigator.settings.presets.applier import PresetApplier, merge
from CardNavigator.settings.presets.cache import PresetCache
from CardNavigator.settings.presets.preset import Preset
from CardNavigator.settings.presets.store import PresetStore
from CardNavigator.status import status
from CardNavigator.ui.actions import signals
from tests.base import BaseTestCase, SignalRecorder, mute_ui_signals


class MergeTests(BaseTestCase):

    def test_merge_order(self):
        live_globals = {'global_preset': 'G', 'tag_presets': {'t': 'T'}, 'card_width': 480}
        preset = Preset('compact', {'card_width': 200})
        data = merge('compact', preset, live_globals)

        self.assertEqual(data['card_width'], 200)
        self.assertEqual(data['show_body'], lib.SETTINGS_SCHEMA['show_body']['default'])
        self.assertEqual(data['last_active_preset'], 'compact')
        self.assertEqual(data['global_preset'], 'G')
        self.assertEqual(data['tag_presets'], {'t': 'T'})
        self.assertEqual(set(data), set(lib.SETTINGS_SCHEMA))

    def test_merge_ignores_leaked_global_keys(self):
        preset = Preset('leaky')
        # Bypass the constructor's stripping to simulate a hand-edited payload
        preset.settings = {'card_width': 300, 'global_preset': 'evil', 'folder_presets': {'x': ['y']}}
        data = merge('leaky', preset, {'global_preset': 'G', 'folder_presets': {}})
        self.assertEqual(data['global_preset'], 'G')
        self.assertEqual(data['folder_presets'], {})
        self.assertEqual(data['card_width'], 300)


class PresetApplierTests(BaseTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.context = lib.SettingsContext(self.config_paths)
        self.store = PresetStore(FileBackend(self.root_dir / 'presets'), PresetCache())
        self.mapping = MappingTables(self.context)
        self.applier = PresetApplier(self.context, self.store)

        self.store.write('default', Preset.default())
        self.store.write('compact', Preset('compact', {'card_width': 200, 'show_body': False}))

    def test_apply_merges_and_preserves_globals(self):
        self.mapping.set_active_folder_preset('A', 'compact')
        self.mapping.set_global_preset('compact')
        self.context['auto_apply_tag_presets'] = False
        globals_before = self.context.global_settings()

        result = self.applier.apply('compact')
        self.assertTrue(result.ok)
        self.assertEqual(result.value, 'compact')
        self.assertEqual(self.context['card_width'], 200)
        self.assertFalse(self.context['show_body'])
        self.assertEqual(self.context['last_active_preset'], 'compact')
        self.assertEqual(self.context.global_settings(), globals_before)

    def test_apply_persists_settings(self):
        self.applier.apply('compact')
        data = json.loads(self.config_paths.settings_path.read_text(encoding='utf-8'))
        self.assertEqual(data['card_width'], 200)
        self.assertEqual(data['last_active_preset'], 'compact')

    def test_apply_emits_single_refresh(self):
        changed = SignalRecorder(self.context.settingsChanged)
        activated = SignalRecorder(signals.presetActivated)
        about = SignalRecorder(signals.presetAboutToBeActivated)
        try:
            self.applier.apply('compact')
        finally:
            activated.disconnect()
            about.disconnect()
        self.assertEqual(changed.count, 1)
        self.assertEqual(activated.calls, [('compact',)])
        self.assertEqual(about.calls, [('compact',)])

    def test_apply_resets_keys_missing_from_preset(self):
        self.context.update({'sort_order': 'desc'})
        self.applier.apply('compact')
        self.assertEqual(self.context['sort_order'], 'asc')

    def test_apply_missing_leaves_settings_untouched(self):
        self.context.update({'card_width': 333})
        before = self.context.snapshot()
        errors = SignalRecorder(signals.error)
        try:
            result = self.applier.apply('missing')
        finally:
            errors.disconnect()
        self.assertIs(result.status, status.Status.NotFound)
        self.assertEqual(self.context.snapshot(), before)
        self.assertEqual(errors.count, 1)

    def test_apply_corrupt_leaves_settings_untouched(self):
        (self.root_dir / 'presets' / 'broken.json').write_text('nope', encoding='utf-8')
        before = self.context.snapshot()
        with mute_ui_signals():
            result = self.applier.apply('broken')
        self.assertIs(result.status, status.Status.Corrupt)
        self.assertEqual(self.context.snapshot(), before)

    def test_apply_with_fallback(self):
        self.context.update({'card_width': 333})
        with mute_ui_signals():
            result = self.applier.apply_with_fallback('missing')
        self.assertTrue(result.ok)
        self.assertEqual(result.value, 'default')
        self.assertEqual(self.context['card_width'], 250)
        self.assertEqual(self.context['last_active_preset'], 'default')

    def test_global_key_isolation(self):
        self.mapping.add_preset_to_folder('A', 'compact')
        self.mapping.set_active_folder_preset('A', 'compact')
        self.mapping.set_tag_preset('work', 'compact')
        self.context.update({'preset_folder': 'Elsewhere', 'auto_apply_presets': False})
        globals_before = self.context.global_settings()

        for name in ('compact', 'default', 'compact'):
            self.applier.apply(name)
            self.assertEqual(self.context.global_settings(), globals_before)
