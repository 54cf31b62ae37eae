"""
UI package: the signal bus consumed by the card view layer.

- :mod:`CardNavigator.ui.actions` – Application-wide Qt signals (refresh, presets, notices).
"""
