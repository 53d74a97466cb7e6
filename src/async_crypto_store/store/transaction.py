"""Grouping of asynchronous store operations.

The crypto store's callers open a "transaction", issue any number of reads
and writes against it, and expect to be told once, when all of them have
finished, whether any failed.  ``Transaction`` provides exactly that and
nothing more.

Known limitation: this is a completion aggregator, not a database
transaction.  Operations run directly against the backend as soon as they
are scheduled; there is no write buffering, no isolation from other open
transactions and no rollback of operations that completed before a later
one failed.

Classes
-------
- TransactionClosedError  — an operation was registered after settlement
- Transaction             — in-flight counter with a single completion signal
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)

Operation = Callable[[], Awaitable[Any]]


class TransactionClosedError(RuntimeError):
    """Raised when ``execute`` is called on a transaction that has settled."""

    def __init__(self) -> None:
        super().__init__("Tried to start a new operation on a completed transaction")


class Transaction:
    """Track a group of operations and settle once all have finished.

    The transaction moves from *open* (nothing scheduled yet) to *draining*
    (operations in flight) to *settled*.  It settles the first time the
    number of in-flight operations drops back to zero: rejected with the
    first recorded error if any operation raised or was cancelled, resolved
    otherwise.

    A transaction on which ``execute`` is never called never settles.

    Must be created while an event loop is running.
    """

    def __init__(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._completion: asyncio.Future[None] = self._loop.create_future()
        self._in_flight = 0
        self._error: BaseException | None = None
        # The loop only keeps weak references to tasks.
        self._tasks: set[asyncio.Task[None]] = set()

    @property
    def in_flight(self) -> int:
        return self._in_flight

    @property
    def settled(self) -> bool:
        return self._completion.done()

    @property
    def tasks(self) -> frozenset[asyncio.Task[None]]:
        """Tasks of the operations that have not finished yet."""
        return frozenset(self._tasks)

    @property
    def completion(self) -> asyncio.Future[None]:
        """The single completion signal for this transaction."""
        return self._completion

    def execute(self, operation: Operation) -> asyncio.Task[None]:
        """Schedule ``operation`` as part of this transaction.

        Parameters
        ----------
        operation:
            Zero-argument callable returning an awaitable.  It is called
            from a new task on the running loop.

        Returns
        -------
        asyncio.Task
            The task running ``operation``.  Its failures are reported
            through the transaction, never through the task.

        Raises
        ------
        TransactionClosedError
            If the transaction has already settled.
        """
        if self.settled:
            raise TransactionClosedError()
        self._in_flight += 1
        task = self._loop.create_task(self._run(operation))
        self._tasks.add(task)
        task.add_done_callback(self._task_done)
        return task

    async def wait(self) -> None:
        """Wait for settlement, raising the first recorded error if any.

        If an operation was cancelled and that was the first failure, the
        completion signal is cancelled and this raises
        ``asyncio.CancelledError``.
        """
        await self._completion

    async def _run(self, operation: Operation) -> None:
        try:
            await operation()
        except asyncio.CancelledError as exc:
            self._record_error(exc)
            raise
        except Exception as exc:
            self._record_error(exc)
        finally:
            self._operation_ended(asyncio.current_task())

    def _record_error(self, exc: BaseException) -> None:
        if self._error is None:
            self._error = exc
        else:
            logger.debug("Transaction: dropping subsequent error %r", exc)

    def _task_done(self, task: asyncio.Task[None]) -> None:
        # Still tracked only if the task was cancelled before ``_run`` started.
        if task in self._tasks:
            self._record_error(asyncio.CancelledError())
            self._operation_ended(task)

    def _operation_ended(self, task: asyncio.Task[Any] | None) -> None:
        if task is not None:
            self._tasks.discard(task)
        self._in_flight -= 1
        if self._in_flight > 0:
            return
        if isinstance(self._error, asyncio.CancelledError):
            self._completion.cancel()
        elif self._error is not None:
            self._completion.set_exception(self._error)
        else:
            self._completion.set_result(None)

    def __repr__(self) -> str:
        return f"Transaction(in_flight={self._in_flight}, settled={self.settled})"


__all__ = ["Operation", "Transaction", "TransactionClosedError"]
