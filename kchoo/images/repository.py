"""Image ingestion ledger.

Records image urls discovered per source and hands unstored images to the
downloader pool. Discovery is idempotent through the
``(source_id, source_url)`` unique constraint.
"""

import logging
from collections.abc import Iterable
from typing import Any

from kchoo.images.config import ImagesConfig
from kchoo.images.schemas import ImageRecordSummary, PendingImage
from kchoo.observability.metrics import get_metrics
from kchoo.storage.database import Database, affected_rows
from kchoo.storage.errors import NotFound

logger = logging.getLogger(__name__)

_RECORD_DISCOVERED_SQL = """
INSERT INTO images (source_id, source_url)
SELECT $1::bigint, url FROM unnest($2::text[]) AS url
ON CONFLICT (source_id, source_url) DO NOTHING
RETURNING id
"""

_LIST_PENDING_SQL = """
SELECT id, source_id, source_url
FROM images
WHERE stored_url IS NULL
ORDER BY id
"""

_CLAIM_PENDING_SQL = """
WITH candidates AS (
    SELECT id
    FROM images
    WHERE stored_url IS NULL
      AND (claimed_at IS NULL
           OR claimed_at < NOW() - make_interval(secs => $2))
    ORDER BY id
    LIMIT $1
    FOR UPDATE SKIP LOCKED
), claimed AS (
    UPDATE images
    SET claimed_at = NOW()
    FROM candidates
    WHERE images.id = candidates.id
    RETURNING images.id, images.source_id, images.source_url
)
SELECT * FROM claimed ORDER BY id
"""

_RECORD_STORED_SQL = """
UPDATE images
SET stored_url = $2,
    claimed_at = NULL
WHERE id = $1
"""


def _record_to_pending(record: Any) -> PendingImage:
    return PendingImage(
        id=record["id"],
        source_id=record["source_id"],
        source_url=record["source_url"],
    )


class ImagesRepository:
    """Operations on the ``images`` table."""

    def __init__(
        self,
        database: Database,
        config: ImagesConfig | None = None,
    ) -> None:
        self._db = database
        self._config = config or ImagesConfig()

    async def record_discovered_images(
        self,
        source_id: int,
        urls: Iterable[str],
    ) -> ImageRecordSummary:
        """Insert one row per new url; urls already known are ignored.

        Raises:
            ConstraintViolation: If ``source_id`` does not exist.
        """
        urls = list(urls)
        summary = ImageRecordSummary(source_id=source_id, urls=urls)
        if not urls:
            return summary

        unique = list(dict.fromkeys(urls))
        rows = await self._db.fetch(_RECORD_DISCOVERED_SQL, source_id, unique)
        summary.inserted = len(rows)

        get_metrics().record_images_discovered(summary.inserted)
        logger.info(
            "Recorded %d/%d discovered images for source %d",
            summary.inserted,
            len(urls),
            source_id,
        )
        return summary

    async def list_images_pending_storage(self) -> list[PendingImage]:
        """Every image without a stored location. Read-only, no leasing."""
        rows = await self._db.fetch(_LIST_PENDING_SQL)
        return [_record_to_pending(row) for row in rows]

    async def claim_images_pending_storage(
        self,
        count: int | None = None,
    ) -> list[PendingImage]:
        """Lease up to ``count`` unstored images to one downloader.

        An image stays reserved for ``lease_seconds``; after that it is
        handed out again, which covers downloaders that die mid-transfer.
        """
        count = count if count is not None else self._config.claim_batch_size
        if count < 1:
            raise ValueError(f"count must be positive, got {count}")

        rows = await self._db.fetch(
            _CLAIM_PENDING_SQL,
            count,
            float(self._config.lease_seconds),
        )
        images = [_record_to_pending(row) for row in rows]
        logger.info("Leased %d/%d images pending storage", len(images), count)
        return images

    async def record_stored_location(self, image_id: int, url: str) -> None:
        """Set the archived location of one image (last write wins).

        Raises:
            ValueError: If ``url`` is empty.
            NotFound: If no image has this id.
        """
        if not url:
            raise ValueError("stored url must be non-empty")

        status = await self._db.execute(_RECORD_STORED_SQL, image_id, url)
        if affected_rows(status) == 0:
            raise NotFound("image", image_id)

        get_metrics().record_images_stored()
        logger.debug("Image %d stored at %s", image_id, url)

    async def count_pending_storage(self) -> int:
        """Number of images without a stored location."""
        count = await self._db.fetchval(
            "SELECT COUNT(*) FROM images WHERE stored_url IS NULL"
        )
        count = count or 0
        get_metrics().set_pending_images(count)
        return count
