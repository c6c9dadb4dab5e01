"""State machine and actor engine."""

from spectacular.machine.actor import (
    Actor,
    ActorNotProvidedError,
    CancelSignal,
    InvocationCancelled,
    Mailbox,
    ServiceActor,
    ServiceLogic,
    from_async,
    noop,
    not_provided,
    run_cancellable,
)
from spectacular.machine.events import (
    Cancel,
    Event,
    InvocationDone,
    InvocationError,
    StartEvent,
    StreamChunk,
    StreamError,
    UserMessage,
    event_type,
)
from spectacular.machine.interpreter import (
    MachineActor,
    MachineStoppedError,
    Snapshot,
    Status,
    get_snapshot,
    send,
    spawn,
    start,
    subscribe,
    wait_for,
)
from spectacular.machine.states import (
    DefinitionError,
    Invoke,
    Log,
    MachineDefinition,
    SendParent,
    StateNode,
    Transition,
    assign,
    exhaustive,
    log,
    send_parent,
)

__all__ = [
    # Definitions
    "MachineDefinition",
    "StateNode",
    "Transition",
    "Invoke",
    "SendParent",
    "Log",
    "assign",
    "log",
    "send_parent",
    "exhaustive",
    "DefinitionError",
    # Events
    "Event",
    "StartEvent",
    "UserMessage",
    "Cancel",
    "StreamChunk",
    "StreamError",
    "InvocationDone",
    "InvocationError",
    "event_type",
    # Actors
    "Actor",
    "Mailbox",
    "CancelSignal",
    "ServiceActor",
    "ServiceLogic",
    "from_async",
    "not_provided",
    "noop",
    "run_cancellable",
    "InvocationCancelled",
    "ActorNotProvidedError",
    # Instances
    "MachineActor",
    "MachineStoppedError",
    "Snapshot",
    "Status",
    "spawn",
    "start",
    "send",
    "subscribe",
    "get_snapshot",
    "wait_for",
]
