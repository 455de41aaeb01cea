"""Source lifecycle manager: creation, claims and report-back transitions.

Each operation is a single SQL statement, so the predicate that selects
rows and the state change applied to them are indivisible for concurrent
callers. Claims lock their candidates with ``FOR UPDATE SKIP LOCKED`` so
concurrent claims partition the matching rows instead of queueing on them.
Id sets are bound as ``bigint[]`` parameters.
"""

import logging
from collections.abc import Iterable
from typing import Any

from kchoo.observability.metrics import get_metrics
from kchoo.sources.config import SourcesConfig
from kchoo.sources.schemas import (
    OperationSummary,
    PopulateClaim,
    RefreshClaim,
    Source,
)
from kchoo.sources.states import (
    IN_PROGRESS_STATES,
    SourceState,
    sources_of,
    state_values,
)
from kchoo.storage import schema
from kchoo.storage.database import Database, affected_rows
from kchoo.storage.errors import NotFound

logger = logging.getLogger(__name__)

_REGISTER_SITE_SQL = """
INSERT INTO sites (name) VALUES ($1)
ON CONFLICT (name) DO UPDATE SET name = EXCLUDED.name
RETURNING id
"""

# An unknown site yields a NULL site_id, which the NOT NULL constraint rejects.
_CREATE_SOURCE_SQL = """
INSERT INTO sources (site_id, state, remote_identifier)
VALUES ((SELECT id FROM sites WHERE name = $1), $2, $3)
RETURNING id
"""

_CLAIM_TO_POPULATE_SQL = """
WITH candidates AS (
    SELECT id
    FROM sources
    WHERE site_id = (SELECT id FROM sites WHERE name = $1)
      AND (state = $3 OR state = $4)
    ORDER BY id
    LIMIT $2
    FOR UPDATE SKIP LOCKED
), claimed AS (
    UPDATE sources
    SET state = $4,
        claimed_at = NOW(),
        updated_at = NOW()
    FROM candidates
    WHERE sources.id = candidates.id
    RETURNING sources.id, sources.remote_identifier,
              sources.earliest_processed_marker
)
SELECT * FROM claimed ORDER BY id
"""

_CLAIM_TO_REFRESH_SQL = """
WITH candidates AS (
    SELECT id
    FROM sources
    WHERE state = $1
    ORDER BY last_refreshed_at ASC NULLS FIRST, id
    FOR UPDATE SKIP LOCKED
), claimed AS (
    UPDATE sources
    SET state = $2,
        claimed_at = NOW(),
        updated_at = NOW()
    FROM candidates
    WHERE sources.id = candidates.id
    RETURNING sources.id, sources.remote_identifier,
              sources.latest_processed_marker, sources.last_refreshed_at
)
SELECT * FROM claimed ORDER BY last_refreshed_at ASC NULLS FIRST, id
"""

_REPORT_PROGRESS_SQL = """
UPDATE sources
SET earliest_processed_marker = COALESCE($2, earliest_processed_marker),
    latest_processed_marker = COALESCE($3, latest_processed_marker),
    updated_at = NOW()
WHERE id = $1 AND state = ANY($4::text[])
"""

_FINISH_SQL = """
UPDATE sources
SET state = $2,
    last_refreshed_at = CASE WHEN state = $3 THEN NOW()
                             ELSE last_refreshed_at END,
    claimed_at = NULL,
    updated_at = NOW()
WHERE id = ANY($1::bigint[]) AND state = ANY($4::text[])
RETURNING id
"""

_MARK_ERRORS_SQL = """
UPDATE sources
SET state = $2,
    claimed_at = NULL,
    updated_at = NOW()
WHERE id = ANY($1::bigint[]) AND state = ANY($3::text[])
RETURNING id
"""

_GET_SOURCE_SQL = """
SELECT s.*, sites.name AS site
FROM sources s
JOIN sites ON sites.id = s.site_id
WHERE s.id = $1
"""


def _record_to_source(record: Any) -> Source:
    """Convert an asyncpg Record to a Source dataclass."""
    return Source(
        id=record["id"],
        site=record["site"],
        remote_identifier=record["remote_identifier"],
        state=record["state"],
        earliest_processed_marker=record["earliest_processed_marker"],
        latest_processed_marker=record["latest_processed_marker"],
        last_refreshed_at=record["last_refreshed_at"],
        claimed_at=record["claimed_at"],
        created_at=record["created_at"],
        updated_at=record["updated_at"],
    )


def _unique_ids(ids: Iterable[int]) -> list[int]:
    return list(dict.fromkeys(int(i) for i in ids))


class SourcesRepository:
    """Owns every state change of the ``sources`` table.

    The repository keeps no state of its own; the database is the single
    source of truth, and store errors propagate unchanged to the caller.
    """

    def __init__(
        self,
        database: Database,
        config: SourcesConfig | None = None,
    ) -> None:
        self._db = database
        self._config = config or SourcesConfig()

    async def create_tables(self) -> None:
        """Create the queue schema (idempotent)."""
        await schema.create_tables(self._db)

    async def register_site(self, name: str) -> int:
        """Ensure a site exists and return its id."""
        site_id = await self._db.fetchval(_REGISTER_SITE_SQL, name)
        logger.debug("Site %s registered with id %d", name, site_id)
        return site_id

    async def create_source(self, site: str, remote_identifier: str) -> int:
        """Register a new source in the ``pending`` state.

        Raises:
            ConstraintViolation: If the site is unknown or the source is
                already registered for that site.
        """
        source_id = await self._db.fetchval(
            _CREATE_SOURCE_SQL,
            site,
            SourceState.PENDING.value,
            remote_identifier,
        )
        logger.info("Created source %d (%s/%s)", source_id, site, remote_identifier)
        return source_id

    async def claim_sources_to_populate(
        self,
        site: str,
        count: int | None = None,
    ) -> list[PopulateClaim]:
        """Claim up to ``count`` sources of ``site`` for initial ingestion.

        Matches sources that were never populated and sources still
        ``populating``, so a worker that crashed mid-population is recovered
        by the next claim and resumes from the earliest marker it reported.
        Rows locked by an in-flight claim are skipped. Claimed rows are
        returned in id order together with their earliest marker.
        """
        count = count if count is not None else self._config.claim_batch_size
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")

        rows = await self._db.fetch(
            _CLAIM_TO_POPULATE_SQL,
            site,
            count,
            SourceState.PENDING.value,
            SourceState.POPULATING.value,
        )
        claims = [
            PopulateClaim(
                id=row["id"],
                remote_identifier=row["remote_identifier"],
                earliest_marker=row["earliest_processed_marker"],
            )
            for row in rows
        ]

        if claims:
            get_metrics().record_sources_claimed(site, "populate", len(claims))
        logger.info(
            "Claimed %d/%d sources of %s for populating", len(claims), count, site
        )
        return claims

    async def claim_sources_to_refresh(self) -> list[RefreshClaim]:
        """Claim every ``standby`` source for refreshing.

        Never-refreshed sources come first, then the stalest. The sweep is
        unbounded; callers that want pacing batch the returned list.
        """
        rows = await self._db.fetch(
            _CLAIM_TO_REFRESH_SQL,
            SourceState.STANDBY.value,
            SourceState.REFRESHING.value,
        )
        claims = [
            RefreshClaim(
                id=row["id"],
                remote_identifier=row["remote_identifier"],
                latest_marker=row["latest_processed_marker"],
                last_refreshed_at=row["last_refreshed_at"],
            )
            for row in rows
        ]

        if claims:
            get_metrics().record_sources_claimed("all", "refresh", len(claims))
        logger.info("Claimed %d sources for refreshing", len(claims))
        return claims

    async def report_progress(
        self,
        source_id: int,
        earliest_marker: str | None = None,
        latest_marker: str | None = None,
    ) -> None:
        """Save ingestion cursors for a claimed source.

        A marker left as None keeps its stored value.

        Raises:
            NotFound: If no claimed source has this id.
        """
        if earliest_marker is None and latest_marker is None:
            return

        status = await self._db.execute(
            _REPORT_PROGRESS_SQL,
            source_id,
            earliest_marker,
            latest_marker,
            state_values(IN_PROGRESS_STATES),
        )
        if affected_rows(status) == 0:
            raise NotFound("claimed source", source_id)

        logger.debug(
            "Source %d progress: earliest=%s latest=%s",
            source_id,
            earliest_marker,
            latest_marker,
        )

    async def finish_processing(
        self,
        ids: Iterable[int],
        action_label: str,
    ) -> OperationSummary:
        """Settle claimed sources into ``standby``.

        Sources leaving ``refreshing`` get ``last_refreshed_at`` stamped;
        sources leaving ``populating`` keep it null until their first
        refresh. Ids that are not in progress are skipped, not errors.
        """
        unique = _unique_ids(ids)
        summary = OperationSummary(action=action_label, requested=len(unique))
        if not unique:
            return summary

        rows = await self._db.fetch(
            _FINISH_SQL,
            unique,
            SourceState.STANDBY.value,
            SourceState.REFRESHING.value,
            state_values(sources_of(SourceState.STANDBY)),
        )
        summary.ids = [row["id"] for row in rows]
        summary.affected = len(summary.ids)

        get_metrics().record_sources_finished(action_label, summary.affected)
        logger.info(
            "Finished %s for %d/%d sources",
            action_label,
            summary.affected,
            summary.requested,
        )
        return summary

    async def mark_errors(self, ids: Iterable[int]) -> OperationSummary:
        """Move sources to ``error`` whatever their current state."""
        unique = _unique_ids(ids)
        summary = OperationSummary(action="error", requested=len(unique))
        if not unique:
            return summary

        rows = await self._db.fetch(
            _MARK_ERRORS_SQL,
            unique,
            SourceState.ERROR.value,
            state_values(sources_of(SourceState.ERROR)),
        )
        summary.ids = [row["id"] for row in rows]
        summary.affected = len(summary.ids)

        get_metrics().record_sources_errored(summary.affected)
        logger.warning(
            "Marked %d/%d sources as errored: %s",
            summary.affected,
            summary.requested,
            summary.ids,
        )
        return summary

    async def get_source(self, source_id: int) -> Source | None:
        """Fetch a single source by id."""
        row = await self._db.fetchrow(_GET_SOURCE_SQL, source_id)
        return _record_to_source(row) if row else None

    async def count_by_state(self, site: str | None = None) -> dict[SourceState, int]:
        """Number of sources per state, zero-filled for every state."""
        if site is None:
            rows = await self._db.fetch(
                "SELECT state, COUNT(*) AS n FROM sources GROUP BY state"
            )
        else:
            rows = await self._db.fetch(
                """
                SELECT s.state, COUNT(*) AS n
                FROM sources s
                JOIN sites ON sites.id = s.site_id
                WHERE sites.name = $1
                GROUP BY s.state
                """,
                site,
            )

        counts = {state: 0 for state in SourceState}
        for row in rows:
            counts[SourceState(row["state"])] = row["n"]
        return counts
