"""Worker thread for blocking preset lookups."""
import logging
from typing import Any, Callable

from PySide6 import QtCore


class AsyncWorker(QtCore.QThread):
    """
    Generic worker thread running a blocking function once.

    Failures are reported, not retried; retrying is left to the user.

    Signals:
        resultReady (object): Emitted with the function's result on success.
        errorOccurred (object): Emitted with the exception on failure.
    """
    resultReady = QtCore.Signal(object)
    errorOccurred = QtCore.Signal(object)

    def __init__(self, func: Callable[..., Any], *args: Any, **kwargs: Any) -> None:
        super().__init__()
        self.func = func
        self.args = args
        self.kwargs = kwargs

    def run(self) -> None:
        try:
            result = self.func(*self.args, **self.kwargs)
        except Exception as ex:
            logging.error(f'Worker failed: {ex}')
            self.errorOccurred.emit(ex)
            return
        self.resultReady.emit(result)
