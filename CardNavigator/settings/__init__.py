"""
Settings package: configuration API, mapping tables and presets.

This package provides:

- :mod:`CardNavigator.settings.lib` – Settings schema, validation and the live settings context.
- :mod:`CardNavigator.settings.mapping` – Folder, tag and global preset bindings.
- :mod:`CardNavigator.settings.presets` – Preset storage, caching, resolution, application and staging.
"""
