from __future__ import annotations
import logging
from contextlib import contextmanager
from typing import Callable, Iterator, List

from core.errors import OperationInProgressError

log = logging.getLogger(__name__)


class BusyGate:
    """
    Single-flight flag (is_processing). Entering while busy raises
    OperationInProgressError; the flag is always released on exit.
    """

    def __init__(self, name: str = "operation"):
        self.name = name
        self._busy = False
        self._listeners: List[Callable[[bool], None]] = []

    @property
    def is_processing(self) -> bool:
        return self._busy

    def subscribe(self, callback: Callable[[bool], None]) -> None:
        self._listeners.append(callback)

    def _notify(self) -> None:
        for cb in list(self._listeners):
            cb(self._busy)

    @contextmanager
    def hold(self) -> Iterator[None]:
        if self._busy:
            log.info("%s already in progress, request ignored", self.name)
            raise OperationInProgressError(self.name)
        self._busy = True
        self._notify()
        try:
            yield
        finally:
            self._busy = False
            self._notify()
