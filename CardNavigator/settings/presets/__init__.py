"""Presets subpackage: named bundles of display settings.

This package provides:
    - preset: the Preset value type
    - store: persistence of presets through a storage backend, mirrored into the cache
    - cache: bounded least-recently-used preset cache
    - resolver: maps a note path or tag to the preset that governs it
    - applier: merges a preset into the live settings
    - staging: the editing session buffer with debounced mirroring
    - lib: the preset management API (create, rename, clone, delete, import, export)
"""
