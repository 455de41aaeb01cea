"""DDL for the work-queue tables.

Source states are stored as text guarded by a CHECK constraint built from
``SourceState``, so the store can never hold a state the code does not know.
"""

import logging

from kchoo.sources.states import SourceState
from kchoo.storage.database import Database

logger = logging.getLogger(__name__)

_STATE_VALUES = ", ".join(f"'{state.value}'" for state in SourceState)

CREATE_TABLES_SQL = f"""
CREATE TABLE IF NOT EXISTS sites (
    id   SERIAL PRIMARY KEY,
    name TEXT NOT NULL UNIQUE
);

CREATE TABLE IF NOT EXISTS sources (
    id                        BIGSERIAL PRIMARY KEY,
    site_id                   INTEGER NOT NULL REFERENCES sites(id),
    remote_identifier         TEXT NOT NULL,
    state                     TEXT NOT NULL DEFAULT '{SourceState.PENDING.value}'
                              CHECK (state IN ({_STATE_VALUES})),
    earliest_processed_marker TEXT,
    latest_processed_marker   TEXT,
    last_refreshed_at         TIMESTAMPTZ,
    claimed_at                TIMESTAMPTZ,
    created_at                TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    updated_at                TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (site_id, remote_identifier)
);

CREATE INDEX IF NOT EXISTS idx_sources_site_state
    ON sources(site_id, state, id);
CREATE INDEX IF NOT EXISTS idx_sources_standby_refresh
    ON sources(last_refreshed_at NULLS FIRST, id)
    WHERE state = '{SourceState.STANDBY.value}';

CREATE TABLE IF NOT EXISTS images (
    id         BIGSERIAL PRIMARY KEY,
    source_id  BIGINT NOT NULL REFERENCES sources(id),
    source_url TEXT NOT NULL,
    stored_url TEXT,
    claimed_at TIMESTAMPTZ,
    created_at TIMESTAMPTZ NOT NULL DEFAULT NOW(),
    UNIQUE (source_id, source_url)
);

CREATE INDEX IF NOT EXISTS idx_images_pending_storage
    ON images(id) WHERE stored_url IS NULL;
"""


async def create_tables(database: Database) -> None:
    """Create sites, sources and images tables with indexes (idempotent)."""
    await database.execute(CREATE_TABLES_SQL)
    logger.info("Work queue tables ensured")
