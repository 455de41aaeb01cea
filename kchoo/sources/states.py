"""Source lifecycle states and the legal transitions between them.

    pending -> populating -> standby -> refreshing -> standby -> ...

Any state may move to error. Error sources are left for an operator.
"""

from enum import Enum


class SourceState(str, Enum):
    """Processing state of a source."""

    PENDING = "pending"
    POPULATING = "populating"
    STANDBY = "standby"
    REFRESHING = "refreshing"
    ERROR = "error"


# populating -> populating is the crash-recovery re-claim of an abandoned source.
TRANSITIONS: dict[SourceState, frozenset[SourceState]] = {
    SourceState.PENDING: frozenset({SourceState.POPULATING, SourceState.ERROR}),
    SourceState.POPULATING: frozenset({
        SourceState.POPULATING,
        SourceState.STANDBY,
        SourceState.ERROR,
    }),
    SourceState.STANDBY: frozenset({SourceState.REFRESHING, SourceState.ERROR}),
    SourceState.REFRESHING: frozenset({SourceState.STANDBY, SourceState.ERROR}),
    SourceState.ERROR: frozenset({SourceState.ERROR}),
}

IN_PROGRESS_STATES: tuple[SourceState, ...] = (
    SourceState.POPULATING,
    SourceState.REFRESHING,
)


def parse_state(value: str | SourceState) -> SourceState:
    """Validate a raw state value read from the store or the caller."""
    try:
        return SourceState(value)
    except ValueError:
        raise ValueError(
            f"Invalid source state {value!r}. "
            f"Must be one of: {[s.value for s in SourceState]}"
        ) from None


def can_transition(src: SourceState, dst: SourceState) -> bool:
    """Whether a source in ``src`` may move to ``dst``."""
    return dst in TRANSITIONS[src]


def sources_of(dst: SourceState) -> tuple[SourceState, ...]:
    """States from which ``dst`` is reachable, in declaration order."""
    return tuple(src for src in SourceState if dst in TRANSITIONS[src])


def state_values(states: tuple[SourceState, ...]) -> list[str]:
    """Plain string values, ready to bind as a ``text[]`` parameter."""
    return [state.value for state in states]
