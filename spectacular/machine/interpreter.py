"""Machine instances.

A ``MachineActor`` runs one MachineDefinition. It occupies exactly one state
at a time, processes its mailbox strictly in order, and only changes context
inside transition and entry actions. Completions of invoked actors arrive as
``invocation.done`` / ``invocation.error`` events tagged with the invocation
id; completions from a state that was already left are ignored.
"""

from __future__ import annotations

import asyncio
import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Sequence

from spectacular.machine.actor import Actor, ServiceActor, ServiceLogic
from spectacular.machine.events import (
    InvocationDone,
    InvocationError,
    StartEvent,
    event_type,
)
from spectacular.machine.states import (
    Action,
    Invoke,
    Log,
    MachineDefinition,
    SendParent,
    Transition,
    apply_updates,
)
from spectacular.utils.logging import get_logger


class Status(str, Enum):
    """Lifecycle of a machine instance."""

    ACTIVE = "active"
    DONE = "done"
    ERROR = "error"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Snapshot:
    """Immutable view of an instance at one point in time."""

    value: str
    context: Any
    status: Status = Status.ACTIVE
    output: Any = None
    error: Optional[BaseException] = None

    def matches(self, *states: str) -> bool:
        return self.value in states

    @property
    def done(self) -> bool:
        return self.status is not Status.ACTIVE


class MachineStoppedError(Exception):
    """A waited-for condition can no longer happen because the machine stopped."""

    def __init__(self, snapshot: Snapshot) -> None:
        self.snapshot = snapshot
        super().__init__(
            f"Machine stopped in state '{snapshot.value}' with status {snapshot.status.value}"
        )


Observer = Callable[[Snapshot], None]


def spawn(
    logic: Any,
    input: Any,
    actor_id: str,
    parent: Optional[Actor] = None,
    logger: Any = None,
) -> Actor:
    """Create (but do not start) an actor for the given logic."""
    if isinstance(logic, MachineDefinition):
        return MachineActor(logic, input, parent=parent, actor_id=actor_id, logger=logger)
    if isinstance(logic, ServiceLogic):
        return ServiceActor(logic, input, actor_id=actor_id, parent=parent, logger=logger)
    raise TypeError(f"Cannot spawn actor from {type(logic).__name__}")


class MachineActor(Actor):
    """
    A running instance of a machine definition.

    Args:
        definition: The machine to run
        input: Input passed to the definition's context function
        parent: Actor notified when this instance finishes
        actor_id: Identifier (defaults to the definition id)
        logger: Logger collaborator (defaults to the "machine" logger)
    """

    def __init__(
        self,
        definition: MachineDefinition,
        input: Any = None,
        parent: Optional[Actor] = None,
        actor_id: Optional[str] = None,
        logger: Any = None,
    ) -> None:
        super().__init__(
            actor_id or definition.id,
            parent=parent,
            logger=logger if logger is not None else get_logger("machine"),
        )
        self.definition = definition
        self._input = input
        self._snapshot: Optional[Snapshot] = None
        self._child: Optional[Actor] = None
        self._invoke_id: Optional[str] = None
        self._invoke_count = 0
        self._observers: list[Observer] = []
        self._done_callbacks: list[Callable[[Any], None]] = []
        self._finished: Optional[asyncio.Future] = None

    # -- public API -------------------------------------------------------

    def start(self) -> "MachineActor":
        """Compute the initial context, enter the initial state, begin processing."""
        if self._snapshot is not None:
            return self

        self._finished = asyncio.get_running_loop().create_future()
        initial = self.definition.initial
        self._snapshot = Snapshot(value=initial, context=None)

        try:
            context = self.definition.context(self._input)
            self._snapshot = Snapshot(value=initial, context=context)
            self.logger.debug("machine_started", machine=self.id, state=initial)
            self._enter(initial, StartEvent(input=self._input))
        except Exception as e:
            self._fail(e)

        self._notify()
        self._mailbox.resume()
        return self

    def stop(self) -> None:
        """Stop the instance and every invoked child without reporting to the parent."""
        if self._snapshot is None or self._snapshot.done:
            self._mailbox.close()
            return
        self._stop_child()
        self._snapshot = dataclasses.replace(self._snapshot, status=Status.STOPPED)
        self._mailbox.close()
        self.logger.debug("machine_stopped", machine=self.id, state=self._snapshot.value)
        self._resolve()
        self._notify()

    def get_snapshot(self) -> Snapshot:
        if self._snapshot is None:
            raise RuntimeError(f"Machine '{self.id}' has not been started")
        return self._snapshot

    def subscribe(
        self,
        observer: Observer,
        on_done: Optional[Callable[[Any], None]] = None,
    ) -> Callable[[], None]:
        """
        Register an observer called with the snapshot after every processed event.

        ``on_done`` is called once with the output when a final state is reached.
        Returns a function that removes both callbacks.
        """
        self._observers.append(observer)
        if on_done is not None:
            self._done_callbacks.append(on_done)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)
            if on_done is not None and on_done in self._done_callbacks:
                self._done_callbacks.remove(on_done)

        return unsubscribe

    async def done(self) -> Any:
        """Wait for the instance to finish; return its output or raise its error."""
        if self._finished is None:
            raise RuntimeError(f"Machine '{self.id}' has not been started")
        snapshot = await asyncio.shield(self._finished)
        if snapshot.status is Status.ERROR and snapshot.error is not None:
            raise snapshot.error
        return snapshot.output

    @property
    def child(self) -> Optional[Actor]:
        """The actor invoked by the current state, if any."""
        return self._child

    # -- event processing -------------------------------------------------

    def _process(self, event: Any) -> None:
        snapshot = self._snapshot
        if snapshot is None or snapshot.done:
            return

        tag = event_type(event)
        node = self.definition.states[snapshot.value]

        if isinstance(event, (InvocationDone, InvocationError)):
            if event.invoke_id != self._invoke_id or node.invoke is None:
                self.logger.debug(
                    "stale_completion_ignored",
                    machine=self.id,
                    state=snapshot.value,
                    invoke_id=event.invoke_id,
                )
                self._notify()
                return
            self._child = None
            self._invoke_id = None
            if isinstance(event, InvocationDone):
                candidates: Sequence[Transition] = node.invoke.on_done
            else:
                candidates = node.invoke.on_error
                self.logger.warning(
                    "invocation_failed",
                    machine=self.id,
                    state=snapshot.value,
                    actor=node.invoke.src,
                    error=str(event.error),
                    error_type=type(event.error).__name__,
                )
        else:
            candidates = node.handlers_for(tag)

        try:
            transition = self._select(candidates, snapshot.context, event)
            if transition is not None:
                self._take(transition, event)
        except Exception as e:
            self._fail(e)

        self._notify()

    @staticmethod
    def _select(
        candidates: Sequence[Transition],
        context: Any,
        event: Any,
    ) -> Optional[Transition]:
        """First candidate whose guard passes wins."""
        for transition in candidates:
            if transition.enabled(context, event):
                return transition
        return None

    def _take(self, transition: Transition, event: Any) -> None:
        snapshot = self._snapshot
        assert snapshot is not None

        if transition.target is None:
            context = self._run_actions(transition.actions, snapshot.context, event)
            if context is not snapshot.context:
                self._snapshot = dataclasses.replace(snapshot, context=context)
            return

        source = snapshot.value
        self._stop_child()
        context = self._run_actions(transition.actions, snapshot.context, event)
        self._snapshot = Snapshot(value=transition.target, context=context)

        self.logger.debug(
            "machine_transition",
            machine=self.id,
            from_state=source,
            to_state=transition.target,
            trigger=event_type(event),
        )
        self._enter(transition.target, event)

    def _enter(self, name: str, event: Any) -> None:
        node = self.definition.states[name]
        snapshot = self._snapshot
        assert snapshot is not None

        context = self._run_actions(node.entry, snapshot.context, event)
        if context is not snapshot.context:
            self._snapshot = dataclasses.replace(snapshot, context=context)

        if node.final:
            self._finish()
        elif node.invoke is not None:
            self._start_invocation(name, node.invoke)

    def _run_actions(self, actions: Sequence[Action], context: Any, event: Any) -> Any:
        for action in actions:
            if isinstance(action, SendParent):
                if self.parent is not None:
                    self.parent.send(action.build(context, event))
                continue
            if isinstance(action, Log):
                getattr(self.logger, action.level)(
                    action.event_name, machine=self.id, **action.build(context, event)
                )
                continue
            updates = action(context, event)
            if updates:
                context = apply_updates(context, updates)
        return context

    # -- invocations ------------------------------------------------------

    def _start_invocation(self, state: str, invoke: Invoke) -> None:
        snapshot = self._snapshot
        assert snapshot is not None

        self._invoke_count += 1
        invoke_id = f"{self.id}.{state}.{self._invoke_count}"
        logic = self.definition.actors[invoke.src]
        child = spawn(
            logic,
            invoke.input(snapshot.context),
            actor_id=invoke_id,
            parent=self,
            logger=self.logger,
        )
        self._child = child
        self._invoke_id = invoke_id
        child.start()

    def _stop_child(self) -> None:
        child = self._child
        self._child = None
        self._invoke_id = None
        if child is not None:
            child.stop()

    # -- completion -------------------------------------------------------

    def _finish(self) -> None:
        snapshot = self._snapshot
        assert snapshot is not None

        self._stop_child()
        output = self.definition.output(snapshot.context)
        self._snapshot = dataclasses.replace(snapshot, status=Status.DONE, output=output)
        self._mailbox.close()
        self.logger.info("machine_done", machine=self.id, state=snapshot.value)

        for callback in list(self._done_callbacks):
            callback(output)
        if self.parent is not None:
            self.parent.send(InvocationDone(invoke_id=self.id, output=output))
        self._resolve()

    def _fail(self, error: BaseException) -> None:
        snapshot = self._snapshot
        assert snapshot is not None

        self._stop_child()
        self._snapshot = dataclasses.replace(snapshot, status=Status.ERROR, error=error)
        self._mailbox.close()
        self.logger.error(
            "machine_error",
            machine=self.id,
            state=snapshot.value,
            error=str(error),
            error_type=type(error).__name__,
        )
        if self.parent is not None:
            self.parent.send(InvocationError(invoke_id=self.id, error=error))
        self._resolve()

    def _resolve(self) -> None:
        if self._finished is not None and not self._finished.done():
            self._finished.set_result(self._snapshot)

    def _notify(self) -> None:
        snapshot = self._snapshot
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                self.logger.exception("observer_failed", machine=self.id)


# -- functional contract ---------------------------------------------------


def start(
    definition: MachineDefinition,
    input: Any = None,
    logger: Any = None,
    observer: Optional[Observer] = None,
) -> MachineActor:
    """Start a new instance; ``observer`` (if given) sees the initial snapshot too."""
    actor = MachineActor(definition, input, logger=logger)
    if observer is not None:
        actor.subscribe(observer)
    return actor.start()


def send(actor: Actor, event: Any) -> None:
    actor.send(event)


def subscribe(
    actor: MachineActor,
    observer: Observer,
    on_done: Optional[Callable[[Any], None]] = None,
) -> Callable[[], None]:
    return actor.subscribe(observer, on_done)


def get_snapshot(actor: MachineActor) -> Snapshot:
    return actor.get_snapshot()


async def wait_for(
    actor: MachineActor,
    predicate: Callable[[Snapshot], bool],
    timeout: Optional[float] = None,
) -> Snapshot:
    """
    Wait until ``predicate(snapshot)`` holds.

    Raises MachineStoppedError if the instance finishes without satisfying
    the predicate, and asyncio.TimeoutError when ``timeout`` elapses.
    """
    snapshot = actor.get_snapshot()
    if predicate(snapshot):
        return snapshot
    if snapshot.done:
        raise MachineStoppedError(snapshot)

    future: asyncio.Future = asyncio.get_running_loop().create_future()

    def observe(current: Snapshot) -> None:
        if future.done():
            return
        if predicate(current):
            future.set_result(current)
        elif current.done:
            future.set_exception(MachineStoppedError(current))

    unsubscribe = actor.subscribe(observe)
    try:
        return await asyncio.wait_for(future, timeout)
    finally:
        unsubscribe()
