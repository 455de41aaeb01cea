"""Sources: state-machine work queue for remote accounts and feeds.

Components:
- SourceState / TRANSITIONS: Closed set of lifecycle states and legal moves
- Source, PopulateClaim, RefreshClaim, OperationSummary: Dataclasses
- SourcesConfig: Pydantic settings for claim sizing and abandonment
- SourcesRepository: Atomic claim/report-back operations
"""

from kchoo.sources.config import SourcesConfig
from kchoo.sources.repository import SourcesRepository
from kchoo.sources.schemas import (
    OperationSummary,
    PopulateClaim,
    RefreshClaim,
    Source,
)
from kchoo.sources.states import (
    IN_PROGRESS_STATES,
    TRANSITIONS,
    SourceState,
    can_transition,
)

__all__ = [
    "IN_PROGRESS_STATES",
    "OperationSummary",
    "PopulateClaim",
    "RefreshClaim",
    "Source",
    "SourceState",
    "SourcesConfig",
    "SourcesRepository",
    "TRANSITIONS",
    "can_transition",
]
