"""
Single-assignment completion shared by the callback listener and the poller.
"""

from __future__ import annotations

from concurrent.futures import Future, InvalidStateError
from concurrent.futures import TimeoutError as FutureTimeout
from typing import Generic, TypeVar


T = TypeVar("T")


class Completion(Generic[T]):
    """
    Outcome slot written at most once.

    The first call to resolve() or reject() wins; later calls are no-ops and
    return False.
    """

    def __init__(self) -> None:
        self._future: Future[T] = Future()

    @property
    def done(self) -> bool:
        return self._future.done()

    def resolve(self, value: T) -> bool:
        try:
            self._future.set_result(value)
        except InvalidStateError:
            return False
        return True

    def reject(self, error: BaseException) -> bool:
        try:
            self._future.set_exception(error)
        except InvalidStateError:
            return False
        return True

    def wait(self, timeout: float | None = None) -> T:
        """
        Block until written and return the value (or raise the stored error).

        Raises:
            TimeoutError: If nothing was written within ``timeout`` seconds
        """
        try:
            return self._future.result(timeout=timeout)
        except FutureTimeout as e:
            raise TimeoutError(f"No outcome within {timeout}s") from e
