# tests/test_engine.py
"""
Tests for CardNavigator.core.engine
(subject dispatch, generation ordering, auto-apply switches and editing sessions).

Run with:
    python -m unittest tests.test_engine
"""
import threading

from CardNavigator.core.engine import PresetEngine
from CardNavigator.core.storage import FileBackend
from CardNavigator.status import status
from tests.base import BaseEngineTestCase, SignalRecorder, mute_ui_signals


class SlowBackend(FileBackend):
    """File backend that blocks reads of selected presets until released."""

    def __init__(self, folder) -> None:
        super().__init__(folder)
        self.slow_names = set()
        self.release = threading.Event()
        self.entered = threading.Event()

    def read(self, name: str) -> str:
        if name in self.slow_names:
            self.entered.set()
            self.release.wait(5.0)
        return super().read(name)



class ReadThenBlockBackend(SlowBackend):
    """File backend that finishes reading selected presets, then blocks until released."""

    def read(self, name: str) -> str:
        text = FileBackend.read(self, name)
        if name in self.slow_names:
            self.entered.set()
            self.release.wait(5.0)
        return text

class EngineTests(BaseEngineTestCase):

    def setUp(self) -> None:
        super().setUp()
        self.context = self.engine.context
        self.mapping = self.engine.mapping
        self.make_preset('P1', {'card_width': 210})
        self.make_preset('P2', {'card_width': 220})
        self.make_preset('G', {'card_width': 300})

    def test_initialize_applies_last_active(self):
        self.engine.applier.apply('P1')
        engine = PresetEngine(paths=self.config_paths)
        try:
            result = engine.initialize()
            self.assertEqual(result.value, 'P1')
            self.assertEqual(engine.context['card_width'], 210)
        finally:
            engine.shutdown()
            engine.deleteLater()

    def test_initialize_falls_back_when_last_active_is_missing(self):
        self.context.update({'last_active_preset': 'missing'})
        self.context.save()
        engine = PresetEngine(paths=self.config_paths)
        try:
            with mute_ui_signals():
                result = engine.initialize()
            self.assertEqual(result.value, 'default')
        finally:
            engine.shutdown()
            engine.deleteLater()

    def test_subject_changed_sync(self):
        self.mapping.set_active_folder_preset('A', 'P1')
        self.mapping.set_active_folder_preset('A/B', 'P2')
        self.mapping.set_global_preset('G')

        self.assertEqual(self.engine.subject_changed_sync('A/B/C').value, 'P2')
        self.assertEqual(self.context['card_width'], 220)
        self.assertEqual(self.engine.subject_changed_sync('A/X').value, 'P1')
        self.assertEqual(self.engine.subject_changed_sync('Z').value, 'G')
        self.assertEqual(self.context['last_active_preset'], 'G')

    def test_generation_is_monotonic(self):
        first = self.engine.next_generation()
        second = self.engine.next_generation()
        self.assertGreater(second, first)
        self.assertTrue(self.engine.is_current(second))
        self.assertFalse(self.engine.is_current(first))

    def test_missing_preset_applies_default(self):
        self.mapping.set_active_folder_preset('A', 'ghost')
        self.context.update({'card_width': 333})
        with mute_ui_signals():
            result = self.engine.subject_changed_sync('A/B')
        self.assertEqual(result.value, 'default')
        self.assertEqual(self.context['card_width'], 250)
        self.assertEqual(self.mapping.active_preset_for_folder('A'), 'ghost')

    def test_missing_default_is_regenerated(self):
        self.engine.backend.path('default').unlink()
        self.engine.cache.clear()
        with mute_ui_signals():
            result = self.engine.subject_changed_sync('Anything')
        self.assertTrue(result.ok, result.message)
        self.assertEqual(result.value, 'default')
        self.assertTrue(self.engine.backend.path('default').exists())
        self.assertEqual(self.context['card_width'], 250)

    def test_notices_explain_fallback(self):
        self.mapping.set_active_folder_preset('A', 'ghost')
        with mute_ui_signals():
            self.engine.subject_changed_sync('A')
        notices = self.engine.notices()
        self.assertTrue(any('"ghost"' in m for m in notices))
        self.assertFalse(any('Applied preset' in m for m in notices))

    def test_globals_survive_subject_changes(self):
        self.mapping.set_active_folder_preset('A', 'P1')
        self.mapping.set_tag_preset('work', 'P2')
        self.mapping.set_global_preset('G')
        before = self.context.global_settings()
        for subject in ('A', 'B', '#work', None):
            self.engine.subject_changed_sync(subject)
            self.assertEqual(self.context.global_settings(), before)

    def test_preset_apply_mode(self):
        self.mapping.set_active_folder_preset('A', 'P1')
        self.mapping.set_tag_preset('work', 'P2')
        self.assertEqual(self.context['preset_apply_mode'], 'folder_first')
        self.assertEqual(self.engine.subject_changed_sync('A', ['#work']).value, 'P1')
        self.assertEqual(self.engine.subject_changed_sync('B', ['#work']).value, 'P2')

        self.context.update({'preset_apply_mode': 'tag_first'})
        self.assertEqual(self.engine.subject_changed_sync('A', ['#work']).value, 'P2')
        self.assertEqual(self.engine.subject_changed_sync('A', ['#misc']).value, 'P1')

        self.context.update({'preset_apply_mode': 'folder_only'})
        self.assertEqual(self.engine.subject_changed_sync('B', ['#work']).value, 'default')

        self.context.update({'preset_apply_mode': 'tag_only'})
        self.assertEqual(self.engine.subject_changed_sync('A', ['#misc']).value, 'default')
        self.assertEqual(self.engine.subject_changed_sync('#work').value, 'P2')

    def test_request_subject_applies_on_main_thread(self):
        self.mapping.set_active_folder_preset('A', 'P1')
        applied = SignalRecorder(self.engine.subjectApplied)
        result = self.engine.request_subject('A/B')
        self.assertTrue(result.ok)
        self.assertTrue(self.wait_until(lambda: applied.count == 1 and self.engine.is_idle()))
        self.assertEqual(applied.calls[0], (result.value, 'P1'))
        self.assertEqual(self.context['card_width'], 210)

    def test_stale_completion_is_discarded(self):
        self.mapping.set_active_folder_preset('A', 'P1')
        self.mapping.set_active_folder_preset('B', 'P2')
        result = self.engine.complete(
            self.engine.next_generation(), 'A', self.engine.resolver.resolve_detailed('A'),
            self.engine.store.read('P1')
        )
        self.assertEqual(result.value, 'P1')

        stale = self.engine.next_generation()
        self.engine.next_generation()
        discarded = SignalRecorder(self.engine.subjectDiscarded)
        result = self.engine.complete(
            stale, 'B', self.engine.resolver.resolve_detailed('B'), self.engine.store.read('P2')
        )
        self.assertIs(result.status, status.Status.Superseded)
        self.assertEqual(discarded.calls, [(stale, 'P2')])
        self.assertEqual(self.context['last_active_preset'], 'P1')

    def test_auto_apply_disabled(self):
        self.mapping.set_active_folder_preset('A', 'P1')
        self.context.update({'auto_apply_folder_presets': False})
        self.assertIs(self.engine.subject_changed_sync('A').status, status.Status.Ignored)
        self.assertIs(self.engine.request_subject('A').status, status.Status.Ignored)
        self.assertEqual(self.context['last_active_preset'], 'default')

        self.context.update({'auto_apply_folder_presets': True, 'auto_apply_presets': False})
        self.assertIs(self.engine.subject_changed_sync('A').status, status.Status.Ignored)

    def test_tag_presets_disabled(self):
        self.mapping.set_active_folder_preset('A', 'P1')
        self.mapping.set_tag_preset('work', 'P2')
        self.context.update({'auto_apply_tag_presets': False})
        self.assertEqual(self.engine.subject_changed_sync('A', ['#work']).value, 'P1')
        self.assertIs(self.engine.subject_changed_sync('#work').status, status.Status.Ignored)

    def test_session_pauses_and_replays(self):
        self.mapping.set_active_folder_preset('A', 'P1')
        self.mapping.set_active_folder_preset('B', 'P2')
        self.assertTrue(self.engine.open_session().ok)

        self.assertIs(self.engine.subject_changed_sync('A').status, status.Status.Deferred)
        self.assertIs(self.engine.request_subject('B').status, status.Status.Deferred)
        self.engine.staging.update_field('show_body', False)
        self.assertEqual(self.context['last_active_preset'], 'default')

        applied = SignalRecorder(self.engine.subjectApplied)
        result = self.engine.close_session()
        self.assertTrue(result.ok)
        self.assertTrue(self.wait_until(lambda: applied.count == 1 and self.engine.is_idle()))
        self.assertEqual(applied.calls[0][1], 'P2')
        self.assertEqual(self.context['card_width'], 220)

    def test_close_session_with_discard(self):
        self.engine.open_session()
        self.engine.staging.update_field('card_width', 480)
        result = self.engine.close_session(discard=True)
        self.assertTrue(result.ok)
        self.assertEqual(self.context['card_width'], 250)
        with mute_ui_signals():
            self.assertIs(self.engine.close_session().status, status.Status.SessionNotOpen)

    def test_set_preset_folder(self):
        result = self.engine.set_preset_folder('OtherPresets')
        self.assertTrue(result.ok)
        folder = self.root_dir / 'OtherPresets'
        self.assertEqual(self.engine.store.folder, folder)
        self.assertTrue((folder / 'default.json').exists())
        self.assertEqual(self.context['preset_folder'], 'OtherPresets')
        self.assertEqual(len(self.engine.cache), 1)
        with mute_ui_signals():
            self.assertIs(self.engine.set_preset_folder('  ').status, status.Status.InvalidSetting)


class RaceTests(BaseEngineTestCase):
    """A slow lookup issued first must not overwrite a faster lookup issued later."""

    def setUp(self) -> None:
        super().setUp()
        self.make_preset('slow', {'card_width': 410})
        self.make_preset('fast', {'card_width': 420})
        self.engine.shutdown()
        self.engine.deleteLater()

        self.backend = SlowBackend(self.root_dir / 'CardNavigatorPresets')
        self.engine = PresetEngine(paths=self.config_paths, backend=self.backend, debounce_ms=self.debounce_ms)
        self.assertTrue(self.engine.initialize().ok)
        self.engine.mapping.set_active_folder_preset('Slow', 'slow')
        self.engine.mapping.set_active_folder_preset('Fast', 'fast')

    def tearDown(self) -> None:
        self.backend.release.set()
        super().tearDown()

    def test_stale_generation_is_discarded(self):
        self.backend.slow_names.add('slow')
        applied = SignalRecorder(self.engine.subjectApplied)
        discarded = SignalRecorder(self.engine.subjectDiscarded)

        first = self.engine.request_subject('Slow/Note').value
        self.assertTrue(self.backend.entered.wait(5.0))
        second = self.engine.request_subject('Fast/Note').value
        self.assertGreater(second, first)

        self.assertTrue(self.wait_until(lambda: applied.count == 1))
        self.assertEqual(applied.calls, [(second, 'fast')])
        self.assertEqual(self.engine.context['card_width'], 420)

        self.backend.release.set()
        self.assertTrue(self.wait_until(lambda: discarded.count == 1 and self.engine.is_idle()))
        self.assertEqual(discarded.calls, [(first, 'slow')])
        self.assertEqual(applied.count, 1)
        self.assertEqual(self.engine.context['card_width'], 420)
        self.assertEqual(self.engine.context['last_active_preset'], 'fast')

    def test_latest_request_wins_when_responses_arrive_in_order(self):
        applied = SignalRecorder(self.engine.subjectApplied)
        discarded = SignalRecorder(self.engine.subjectDiscarded)
        self.engine.request_subject('Slow/Note')
        last = self.engine.request_subject('Fast/Note').value

        self.assertTrue(self.wait_until(lambda: applied.count + discarded.count == 2 and self.engine.is_idle()))
        self.assertEqual(applied.calls[-1], (last, 'fast'))
        self.assertEqual(self.engine.context['last_active_preset'], 'fast')


class CacheRaceTests(BaseEngineTestCase):
    """Edits made while a lookup is reading a preset must not be undone by that lookup."""

    def setUp(self) -> None:
        super().setUp()
        self.make_preset('slow', {'card_width': 410})
        self.engine.shutdown()
        self.engine.deleteLater()

        self.backend = ReadThenBlockBackend(self.root_dir / 'CardNavigatorPresets')
        self.backend.slow_names.add('slow')
        self.engine = PresetEngine(paths=self.config_paths, backend=self.backend, debounce_ms=self.debounce_ms)
        self.assertTrue(self.engine.initialize().ok)
        self.engine.mapping.set_active_folder_preset('Slow', 'slow')
        self.engine.cache.clear()

    def tearDown(self) -> None:
        self.backend.release.set()
        super().tearDown()

    def test_save_during_lookup(self):
        self.engine.request_subject('Slow/Note')
        self.assertTrue(self.backend.entered.wait(5.0))

        self.assertTrue(self.engine.presets.save('slow', {'card_width': 450}, 'Wider').ok)
        self.backend.release.set()
        self.assertTrue(self.wait_until(self.engine.is_idle))

        self.assertEqual(self.engine.store.read('slow').value.settings['card_width'], 450)
        self.engine.cache.clear()
        self.assertEqual(self.engine.store.read('slow').value.settings['card_width'], 450)

    def test_delete_during_lookup(self):
        self.engine.request_subject('Slow/Note')
        self.assertTrue(self.backend.entered.wait(5.0))

        self.assertTrue(self.engine.presets.delete('slow').ok)
        self.backend.release.set()
        self.assertTrue(self.wait_until(self.engine.is_idle))

        self.assertFalse(self.engine.store.exists('slow'))
        with mute_ui_signals():
            self.assertIs(self.engine.store.read('slow').status, status.Status.NotFound)
