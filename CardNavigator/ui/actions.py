"""Application-wide Qt signals for CardNavigator.

This module provides:
    - Signals: the signal bus shared by the preset engine and the view layer. The view
      layer subscribes to settingsChanged to refresh cards and to error to show notices.
"""
import logging

from PySide6 import QtCore


class Signals(QtCore.QObject):
    """Centralized Qt signals for settings, presets and notices."""
    settingsChanged = QtCore.Signal(list)  # Changed keys
    settingsSaved = QtCore.Signal()

    presetsChanged = QtCore.Signal()
    presetAboutToBeActivated = QtCore.Signal(str)
    presetActivated = QtCore.Signal(str)
    presetRemoved = QtCore.Signal(str)

    sessionOpened = QtCore.Signal()
    sessionClosed = QtCore.Signal()

    error = QtCore.Signal(str)

    def __init__(self):
        super().__init__()
        self._connect_signals()

    def _connect_signals(self):
        @QtCore.Slot(str)
        def preset_activated(name: str) -> None:
            logging.debug(f'Preset activated: "{name}"')

        self.presetActivated.connect(preset_activated)


signals = Signals()
