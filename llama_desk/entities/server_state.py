from enum import Enum


class ServerState(str, Enum):
    """Lifecycle state of the supervised local inference server."""

    DISCONNECTED = "disconnected"
    LOADING = "loading"
    READY = "ready"
    GENERATING = "generating"
    ERROR = "error"


# Any state may also move to ERROR or DISCONNECTED.
ALLOWED_TRANSITIONS: dict[ServerState, frozenset[ServerState]] = {
    ServerState.DISCONNECTED: frozenset({ServerState.LOADING}),
    ServerState.LOADING: frozenset({ServerState.READY}),
    ServerState.READY: frozenset({ServerState.GENERATING}),
    ServerState.GENERATING: frozenset({ServerState.READY}),
    ServerState.ERROR: frozenset({ServerState.LOADING}),
}


def can_transition(current: ServerState, target: ServerState) -> bool:
    if target in (ServerState.ERROR, ServerState.DISCONNECTED):
        return True
    return target in ALLOWED_TRANSITIONS[current]
