"""Declarative machine definitions.

A ``MachineDefinition`` is immutable and shared by every instance started
from it. It describes states, their entry actions, event handlers, and at
most one invoked actor per state.

    definition = MachineDefinition(
        id="example",
        initial="Idle",
        context=lambda input: ExampleContext(),
        states={
            "Idle": StateNode(on={"user.message": Transition(target="Busy")}),
            "Busy": StateNode(invoke=Invoke(src="work", on_done=Transition(target="Done"))),
            "Done": StateNode(final=True),
        },
        actors={"work": from_async(do_work)},
    )
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Iterable, Mapping, Optional, Sequence, Type, Union

# (context, event) -> mapping of context updates, or None for side effects only
Action = Callable[[Any, Any], Optional[Mapping[str, Any]]]
# (context, event) -> bool
Guard = Callable[[Any, Any], bool]


class DefinitionError(Exception):
    """A machine definition is structurally invalid."""

    pass


@dataclass(frozen=True)
class Transition:
    """One guarded candidate target for an event."""

    target: Optional[str] = None
    guard: Optional[Guard] = None
    actions: Sequence[Action] = ()
    description: str = ""

    def __post_init__(self) -> None:
        if callable(self.actions):
            object.__setattr__(self, "actions", (self.actions,))
        else:
            object.__setattr__(self, "actions", tuple(self.actions))

    def enabled(self, context: Any, event: Any) -> bool:
        return self.guard is None or bool(self.guard(context, event))


TransitionSpec = Union[Transition, Sequence[Transition]]


def _as_transitions(spec: Optional[TransitionSpec]) -> tuple[Transition, ...]:
    if spec is None:
        return ()
    if isinstance(spec, Transition):
        return (spec,)
    return tuple(spec)


def _no_input(context: Any) -> Any:
    return None


@dataclass(frozen=True)
class Invoke:
    """An actor started on entering a state and stopped on leaving it."""

    src: str
    input: Callable[[Any], Any] = _no_input
    on_done: TransitionSpec = ()
    on_error: TransitionSpec = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "on_done", _as_transitions(self.on_done))
        object.__setattr__(self, "on_error", _as_transitions(self.on_error))


@dataclass(frozen=True)
class StateNode:
    """A single state of a machine."""

    entry: Sequence[Action] = ()
    on: Mapping[str, TransitionSpec] = field(default_factory=dict)
    invoke: Optional[Invoke] = None
    final: bool = False
    description: str = ""

    def __post_init__(self) -> None:
        if callable(self.entry):
            object.__setattr__(self, "entry", (self.entry,))
        else:
            object.__setattr__(self, "entry", tuple(self.entry))
        object.__setattr__(
            self,
            "on",
            {tag: _as_transitions(spec) for tag, spec in self.on.items()},
        )

    def handlers_for(self, tag: str) -> tuple[Transition, ...]:
        return self.on.get(tag, ())


@dataclass(frozen=True)
class SendParent:
    """Action that forwards an event to the instance's parent."""

    build: Callable[[Any, Any], Any]

    def __call__(self, context: Any, event: Any) -> None:
        # Executed by the interpreter, which knows the parent
        return None


def send_parent(build: Callable[[Any, Any], Any]) -> SendParent:
    """Create an action forwarding ``build(context, event)`` to the parent."""
    return SendParent(build)


@dataclass(frozen=True)
class Log:
    """Action that writes an event through the instance's injected logger."""

    event_name: str
    level: str = "info"
    fields: Optional[Callable[[Any, Any], Mapping[str, Any]]] = None

    def build(self, context: Any, event: Any) -> dict[str, Any]:
        return dict(self.fields(context, event)) if self.fields is not None else {}

    def __call__(self, context: Any, event: Any) -> None:
        # Executed by the interpreter, which owns the logger
        return None


def log(
    event_name: str,
    level: str = "info",
    fields: Optional[Callable[[Any, Any], Mapping[str, Any]]] = None,
    **static: Any,
) -> Log:
    """
    Create an action logging ``event_name`` through the machine's logger.

    Args:
        event_name: Event name
        level: Logger method to call
        fields: Optional ``fn(context, event)`` returning extra key/values
        static: Key/values added to every entry
    """
    if fields is None and not static:
        return Log(event_name, level)

    def build(context: Any, event: Any) -> dict[str, Any]:
        values = dict(static)
        if fields is not None:
            values.update(fields(context, event))
        return values

    return Log(event_name, level, build)


def assign(**updaters: Callable[[Any, Any], Any]) -> Action:
    """
    Create an action that updates context fields.

    Each keyword maps a context field to ``fn(context, event)``. All updaters
    see the same pre-action context.
    """

    def action(context: Any, event: Any) -> dict[str, Any]:
        return {name: fn(context, event) for name, fn in updaters.items()}

    action.__name__ = "assign_" + "_".join(updaters)
    return action


def apply_updates(context: Any, updates: Mapping[str, Any]) -> Any:
    """Return a new context with ``updates`` applied."""
    if not updates:
        return context
    if dataclasses.is_dataclass(context):
        return dataclasses.replace(context, **updates)
    if isinstance(context, Mapping):
        return {**context, **updates}
    raise TypeError(f"Cannot update context of type {type(context).__name__}")


def exhaustive(
    enum_cls: Type[Enum],
    key: Callable[[Any, Any], Enum],
    targets: Mapping[Enum, Union[str, Transition]],
    actions: Sequence[Action] = (),
) -> tuple[Transition, ...]:
    """
    Build one guarded transition per member of ``enum_cls``.

    Raises DefinitionError when ``targets`` misses a member, so a verdict
    with no matching transition cannot exist at runtime.
    """
    missing = [member for member in enum_cls if member not in targets]
    if missing:
        names = ", ".join(member.name for member in missing)
        raise DefinitionError(f"No transition for {enum_cls.__name__} members: {names}")

    transitions = []
    for member in enum_cls:
        spec = targets[member]
        if isinstance(spec, str):
            spec = Transition(target=spec)

        def guard(context: Any, event: Any, _member: Enum = member) -> bool:
            return key(context, event) is _member

        transitions.append(
            Transition(
                target=spec.target,
                guard=guard,
                actions=tuple(actions) + tuple(spec.actions),
                description=spec.description or member.name.lower(),
            )
        )
    return tuple(transitions)


def _identity(value: Any) -> Any:
    return value


def _no_output(context: Any) -> Any:
    return None


class MachineDefinition:
    """
    Immutable machine description.

    Args:
        id: Machine identifier, used in logs and actor ids
        initial: Name of the initial state
        states: Mapping of state name to StateNode
        context: Function computing the initial context from the input
        output: Function computing the output from the final context
        actors: Named actor implementations referenced by ``Invoke.src``
        description: Human readable summary
    """

    def __init__(
        self,
        id: str,
        initial: str,
        states: Mapping[str, StateNode],
        context: Callable[[Any], Any] = _identity,
        output: Callable[[Any], Any] = _no_output,
        actors: Optional[Mapping[str, Any]] = None,
        description: str = "",
    ) -> None:
        self.id = id
        self.initial = initial
        self.states: dict[str, StateNode] = dict(states)
        self.context = context
        self.output = output
        self.actors: dict[str, Any] = dict(actors or {})
        self.description = description
        self.validate()

    def validate(self) -> None:
        """Check the definition for unreachable or dangling references."""
        if self.initial not in self.states:
            raise DefinitionError(f"{self.id}: initial state '{self.initial}' is not defined")

        for name, node in self.states.items():
            if node.final and (node.on or node.invoke):
                raise DefinitionError(
                    f"{self.id}: final state '{name}' cannot handle events or invoke actors"
                )

            for transition in self._transitions_of(node):
                if transition.target is not None and transition.target not in self.states:
                    raise DefinitionError(
                        f"{self.id}: state '{name}' targets unknown state '{transition.target}'"
                    )

            if node.invoke is None:
                continue
            if node.invoke.src not in self.actors:
                raise DefinitionError(
                    f"{self.id}: state '{name}' invokes unknown actor '{node.invoke.src}'"
                )
            if not node.invoke.on_error:
                raise DefinitionError(
                    f"{self.id}: state '{name}' invokes '{node.invoke.src}' without an error target"
                )

    @staticmethod
    def _transitions_of(node: StateNode) -> Iterable[Transition]:
        for candidates in node.on.values():
            yield from candidates
        if node.invoke is not None:
            yield from node.invoke.on_done
            yield from node.invoke.on_error

    def provide(self, actors: Mapping[str, Any]) -> "MachineDefinition":
        """Return a copy of this definition with actor implementations replaced."""
        unknown = set(actors) - set(self.actors)
        if unknown:
            raise DefinitionError(f"{self.id}: unknown actors provided: {sorted(unknown)}")

        return MachineDefinition(
            id=self.id,
            initial=self.initial,
            states=self.states,
            context=self.context,
            output=self.output,
            actors={**self.actors, **actors},
            description=self.description,
        )

    def state(self, name: str) -> StateNode:
        return self.states[name]

    def __repr__(self) -> str:
        return f"MachineDefinition(id={self.id!r}, states={list(self.states)})"
