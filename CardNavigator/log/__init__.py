"""
Logging subsystem: root logger setup and the in-memory notice buffer.

Modules:

- :mod:`CardNavigator.log.log` – Log handlers integrating with Python logging and Qt messages.
"""
