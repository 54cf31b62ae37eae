"""Status definitions, exceptions and outcomes for CardNavigator.

This module provides:
    - Status: enumeration of preset engine outcome codes
    - STATUS_MESSAGE: user-facing messages for each status
    - get_message: retrieve the message for a status
    - BaseStatusException: base exception carrying a Status
    - Specific exceptions (e.g., PresetNotFoundException) raised inside the engine
    - Outcome: the value every public entry point returns instead of raising
    - outcome: decorator turning status exceptions into Outcome values
"""
import enum
import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict


class Status(enum.StrEnum):
    """Enumeration of preset engine status codes."""
    UnknownStatus = enum.auto()
    Okay = enum.auto()

    # Preset status
    NotFound = enum.auto()
    Corrupt = enum.auto()
    AlreadyExists = enum.auto()
    Protected = enum.auto()
    InvalidName = enum.auto()
    InvalidImport = enum.auto()

    # Settings status
    InvalidSetting = enum.auto()
    StorageError = enum.auto()

    # Request status
    Superseded = enum.auto()
    Deferred = enum.auto()
    Ignored = enum.auto()
    SessionNotOpen = enum.auto()


STATUS_MESSAGE: Dict[Status, str] = {
    Status.UnknownStatus: 'Unknown status.',
    Status.Okay: 'Everything is okay.',

    Status.NotFound: 'Preset not found.',
    Status.Corrupt: 'The preset file could not be read, or is missing required fields.',
    Status.AlreadyExists: 'A preset with this name already exists.',
    Status.Protected: 'The default preset cannot be renamed, edited or deleted.',
    Status.InvalidName: 'The preset name is empty or contains invalid characters.',
    Status.InvalidImport: 'The imported preset is malformed.',

    Status.InvalidSetting: 'The setting is unknown or has an invalid value.',
    Status.StorageError: 'Could not access the preset folder.',

    Status.Superseded: 'A newer request replaced this one.',
    Status.Deferred: 'Postponed until the settings editor is closed.',
    Status.Ignored: 'Automatic preset switching is disabled.',
    Status.SessionNotOpen: 'No settings editing session is open.',
}


def get_message(status: Status) -> str:
    """
    Get the message for a given status.

    Args:
        status (Status): The status enum.

    Returns:
        str: The message associated with the status.
    """
    return STATUS_MESSAGE.get(status, 'Unknown status')


class BaseStatusException(Exception):
    """Base exception for status-based errors in CardNavigator.

    Constructing the exception logs it and emits ``signals.error``, which the view
    layer shows as a notice.

    Attributes:
        status (Status): Status code associated with this error.
        status_message (str): User-facing message for the status.

    Args:
        message (str): Optional additional context for the error.
    """
    status = Status.UnknownStatus

    def __init__(self, message: str = None):
        self.status_message = get_message(self.status)
        self.detail = message or ''
        exception_message = f'{self.status_message} {message}' if message else self.status_message
        super().__init__(exception_message)

        logging.error(exception_message)

        from ..ui.actions import signals
        signals.error.emit(exception_message)


class UnknownException(BaseStatusException):
    """Exception for an unknown error."""
    pass


class PresetNotFoundException(BaseStatusException):
    """Exception raised when a preset has no backing file."""
    status = Status.NotFound


class PresetCorruptException(BaseStatusException):
    """Exception raised when a preset file cannot be parsed or lacks required fields."""
    status = Status.Corrupt


class PresetAlreadyExistsException(BaseStatusException):
    """Exception raised when creating a preset whose name is taken."""
    status = Status.AlreadyExists


class PresetProtectedException(BaseStatusException):
    """Exception raised when the default preset would be renamed, edited or deleted."""
    status = Status.Protected


class InvalidPresetNameException(BaseStatusException):
    """Exception raised for empty preset names or names that are not filesystem safe."""
    status = Status.InvalidName


class InvalidImportException(BaseStatusException):
    """Exception raised when an import payload is malformed."""
    status = Status.InvalidImport


class InvalidSettingException(BaseStatusException):
    """Exception raised for unknown settings keys or values of the wrong type."""
    status = Status.InvalidSetting


class StorageErrorException(BaseStatusException):
    """Exception raised when the preset folder cannot be read or written."""
    status = Status.StorageError


class SessionNotOpenException(BaseStatusException):
    """Exception raised when the staging buffer is used without an open session."""
    status = Status.SessionNotOpen


@dataclass(frozen=True)
class Outcome:
    """Result of a public engine operation.

    Attributes:
        status: Okay, or the failure code.
        message: Human-readable detail, empty on success.
        value: Payload of a successful operation (a preset, a name, a list...).
    """
    status: Status = Status.Okay
    message: str = ''
    value: Any = None

    @property
    def ok(self) -> bool:
        return self.status is Status.Okay

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, value: Any = None) -> 'Outcome':
        return cls(Status.Okay, '', value)

    @classmethod
    def failure(cls, status: Status, message: str = '') -> 'Outcome':
        return cls(status, message or get_message(status))

    @classmethod
    def from_exception(cls, ex: BaseStatusException) -> 'Outcome':
        return cls(ex.status, str(ex))


def outcome(func: Callable[..., Any]) -> Callable[..., Outcome]:
    """Decorator that keeps status exceptions and I/O errors inside the call boundary.

    The wrapped function may return a plain value (wrapped as a successful Outcome) or
    an Outcome, and may raise any BaseStatusException or OSError.
    """

    @functools.wraps(func)
    def wrapper(*args: Any, **kwargs: Any) -> Outcome:
        try:
            result = func(*args, **kwargs)
        except BaseStatusException as ex:
            return Outcome.from_exception(ex)
        except OSError as ex:
            return Outcome.from_exception(StorageErrorException(str(ex)))
        if isinstance(result, Outcome):
            return result
        return Outcome.success(result)

    return wrapper
