"""Actors, mailboxes and cooperative cancellation.

An actor owns private state and processes the events in its mailbox one at
a time. Invoked services wrap a single asynchronous call: they settle exactly
once, reporting ``invocation.done`` or ``invocation.error`` to their parent,
and go silent once stopped.
"""

from __future__ import annotations

import asyncio
import inspect
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Deque, Optional

from spectacular.machine.events import InvocationDone, InvocationError
from spectacular.utils.logging import get_logger

logger = get_logger("machine.actor")


class InvocationCancelled(Exception):
    """The call was aborted through its cancel signal."""

    def __init__(self, reason: str = "cancelled") -> None:
        self.reason = reason
        super().__init__(f"Invocation cancelled: {reason}")


class ActorNotProvidedError(Exception):
    """A machine invoked a placeholder actor that was never provided."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(
            f"Actor '{name}' has no implementation; supply one with definition.provide()"
        )


class CancelSignal:
    """
    Cooperative abort flag shared between an actor and the call it wraps.

    Wrapped calls either poll ``aborted`` / ``raise_if_aborted()`` or await
    ``wait()`` alongside their own work (see ``run_cancellable``).
    """

    def __init__(self) -> None:
        self._aborted = False
        self.reason: Optional[str] = None
        self._waiters: list[asyncio.Future] = []

    @property
    def aborted(self) -> bool:
        return self._aborted

    def abort(self, reason: str = "cancelled") -> None:
        if self._aborted:
            return
        self._aborted = True
        self.reason = reason
        for waiter in self._waiters:
            if not waiter.done():
                waiter.set_result(reason)
        self._waiters.clear()

    def raise_if_aborted(self) -> None:
        if self._aborted:
            raise InvocationCancelled(self.reason or "cancelled")

    async def wait(self) -> str:
        """Block until the signal is aborted; returns the reason."""
        if self._aborted:
            return self.reason or "cancelled"
        waiter = asyncio.get_running_loop().create_future()
        self._waiters.append(waiter)
        try:
            return await waiter
        finally:
            if waiter in self._waiters:
                self._waiters.remove(waiter)


async def run_cancellable(awaitable: Awaitable[Any], signal: Optional[CancelSignal]) -> Any:
    """
    Await ``awaitable`` unless ``signal`` aborts first.

    On abort the underlying task is cancelled and InvocationCancelled raised.
    """
    if signal is None:
        return await awaitable

    task = asyncio.ensure_future(awaitable)
    if signal.aborted:
        task.cancel()
        raise InvocationCancelled(signal.reason or "cancelled")

    waiter = asyncio.ensure_future(signal.wait())
    try:
        await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        task.cancel()
        waiter.cancel()
        raise

    if task.done():
        waiter.cancel()
        return task.result()

    task.cancel()
    raise InvocationCancelled(signal.reason or "cancelled")


class Mailbox:
    """
    FIFO event queue drained one item at a time.

    Items enqueued while an item is being processed (including sends an
    actor makes to itself, or children reporting back) wait their turn.
    The mailbox starts suspended and begins draining on ``resume()``.
    """

    def __init__(self, process: Callable[[Any], None]) -> None:
        self._process = process
        self._queue: Deque[Any] = deque()
        self._suspended = True
        self._draining = False
        self._closed = False

    def __len__(self) -> int:
        return len(self._queue)

    def enqueue(self, item: Any) -> None:
        if self._closed:
            return
        self._queue.append(item)
        self._drain()

    def resume(self) -> None:
        self._suspended = False
        self._drain()

    def close(self) -> None:
        self._closed = True
        self._queue.clear()

    def _drain(self) -> None:
        if self._suspended or self._draining:
            return
        self._draining = True
        try:
            while self._queue and not self._closed:
                self._process(self._queue.popleft())
        finally:
            self._draining = False


class Actor:
    """Base class for everything that can receive events."""

    def __init__(
        self,
        actor_id: str,
        parent: Optional["Actor"] = None,
        logger: Any = None,
    ) -> None:
        self.id = actor_id
        self.parent = parent
        self.logger = logger if logger is not None else get_logger("machine")
        self._mailbox = Mailbox(self._process)

    def start(self) -> "Actor":
        raise NotImplementedError

    def stop(self) -> None:
        raise NotImplementedError

    def send(self, event: Any) -> None:
        """Queue an event; processed after everything already queued."""
        self._mailbox.enqueue(event)

    def _process(self, event: Any) -> None:
        pass

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.id!r})"


@dataclass(frozen=True)
class ServiceLogic:
    """
    Actor logic for one asynchronous call.

    ``fn`` is called as ``fn(input, signal)``, or ``fn(input, signal, parent)``
    when ``pass_parent`` is set, and must return an awaitable.
    """

    fn: Callable[..., Awaitable[Any]]
    pass_parent: bool = False
    name: str = ""


def from_async(
    fn: Callable[..., Awaitable[Any]],
    pass_parent: bool = False,
) -> ServiceLogic:
    """Wrap an async callable as invokable actor logic."""
    return ServiceLogic(fn=fn, pass_parent=pass_parent, name=getattr(fn, "__name__", ""))


def not_provided(name: str) -> ServiceLogic:
    """Placeholder logic that fails until a real implementation is provided."""

    async def missing(input: Any, signal: CancelSignal) -> Any:
        raise ActorNotProvidedError(name)

    return ServiceLogic(fn=missing, name=name)


async def _noop(input: Any, signal: CancelSignal) -> None:
    return None


noop = ServiceLogic(fn=_noop, name="noop")


class ServiceActor(Actor):
    """Runs a ServiceLogic call as a task and reports its outcome once."""

    def __init__(
        self,
        logic: ServiceLogic,
        input: Any,
        actor_id: str,
        parent: Optional[Actor] = None,
        logger: Any = None,
    ) -> None:
        super().__init__(actor_id, parent=parent, logger=logger)
        self.logic = logic
        self.input = input
        self.signal = CancelSignal()
        self._task: Optional[asyncio.Task] = None
        self._settled = False

    @property
    def running(self) -> bool:
        return self._task is not None and not self._settled

    def start(self) -> "ServiceActor":
        if self._task is not None:
            return self
        self._task = asyncio.get_running_loop().create_task(self._run())
        self._task.add_done_callback(self._settle)
        return self

    async def _run(self) -> Any:
        if self.logic.pass_parent:
            result = self.logic.fn(self.input, self.signal, self.parent)
        else:
            result = self.logic.fn(self.input, self.signal)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _settle(self, task: asyncio.Task) -> None:
        if task.cancelled():
            error: Optional[BaseException] = InvocationCancelled("task cancelled")
        else:
            error = task.exception()

        if self._settled:
            if error is not None and not isinstance(error, InvocationCancelled):
                self.logger.debug(
                    "discarded_late_failure",
                    actor=self.id,
                    error=str(error),
                )
            return
        self._settled = True

        if self.parent is None:
            return
        if error is not None:
            self.parent.send(InvocationError(invoke_id=self.id, error=error))
        else:
            self.parent.send(InvocationDone(invoke_id=self.id, output=task.result()))

    def stop(self) -> None:
        """Abort the wrapped call; its eventual outcome is never reported."""
        if self._settled:
            return
        self._settled = True
        self.signal.abort("stopped")
