"""
Core package for CardNavigator providing the preset engine services.

This package includes:

- :mod:`CardNavigator.core.storage` – File backend storing one JSON blob per preset.
- :mod:`CardNavigator.core.worker` – QThread worker running blocking lookups off the main thread.
- :mod:`CardNavigator.core.engine` – Wires the preset components together and dispatches subject changes.
"""
