"""Data models for the sources module."""

from dataclasses import dataclass, field
from datetime import datetime

from kchoo.sources.states import IN_PROGRESS_STATES, SourceState, parse_state


@dataclass
class Source:
    """A tracked remote account or feed.

    ``(site, remote_identifier)`` is unique. ``state`` is always a
    ``SourceState``; raw strings are validated on construction.
    """

    id: int
    site: str
    remote_identifier: str
    state: SourceState = SourceState.PENDING
    earliest_processed_marker: str | None = None
    latest_processed_marker: str | None = None
    last_refreshed_at: datetime | None = None
    claimed_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def __post_init__(self) -> None:
        self.state = parse_state(self.state)

    @property
    def in_progress(self) -> bool:
        return self.state in IN_PROGRESS_STATES


@dataclass(frozen=True)
class PopulateClaim:
    """A source handed out for initial ingestion.

    ``earliest_marker`` is the cursor left by a previous, unfinished claim
    so the worker can resume instead of restarting.
    """

    id: int
    remote_identifier: str
    earliest_marker: str | None = None


@dataclass(frozen=True)
class RefreshClaim:
    """A settled source handed out for incremental re-ingestion."""

    id: int
    remote_identifier: str
    latest_marker: str | None = None
    last_refreshed_at: datetime | None = None


@dataclass
class OperationSummary:
    """Outcome of a bulk state transition.

    Attributes:
        action: Caller-supplied label (e.g. "initial", "refresh", "error").
        requested: Number of distinct ids passed in.
        affected: Number of rows the store actually changed.
        ids: Ids the store reported as changed.
    """

    action: str
    requested: int = 0
    affected: int = 0
    ids: list[int] = field(default_factory=list)

    @property
    def skipped(self) -> int:
        return self.requested - self.affected
