"""
CardNavigator: preset resolution and staging engine for a card-based note browser.

This package provides:

- :mod:`CardNavigator.core` – The preset engine, the file storage backend and the lookup worker.
- :mod:`CardNavigator.settings` – Settings schema and live context, folder and tag bindings, and presets.
- :mod:`CardNavigator.status` – Status codes, exceptions and the Outcome result type.
- :mod:`CardNavigator.log` – Logging setup and the in-memory notice buffer.
- :mod:`CardNavigator.ui` – The application signal bus.

Use :class:`CardNavigator.core.engine.PresetEngine` to create an engine.
"""
import sys

# Fail on Python < 3.11
if not (sys.version_info.major == 3 and sys.version_info.minor >= 11):
    raise RuntimeError('CardNavigator requires Python 3.11 or higher.')

__version__ = '0.1.0'
__license__ = 'GPL-3.0'
__description__ = 'CardNavigator: preset resolution and staging engine for a card-based note browser.'

from .log import log

log.setup_logging()
