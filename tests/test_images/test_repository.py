"""Tests for ImagesRepository."""

from unittest.mock import AsyncMock

import pytest

from kchoo.images.config import ImagesConfig
from kchoo.images.repository import ImagesRepository
from kchoo.storage.errors import ConstraintViolation, NotFound


@pytest.fixture
def repo(mock_database: AsyncMock) -> ImagesRepository:
    return ImagesRepository(mock_database, ImagesConfig(claim_batch_size=20, lease_seconds=120))


class TestRecordDiscoveredImages:
    """Tests for idempotent discovery inserts."""

    @pytest.mark.asyncio
    async def test_empty_urls_skip_store(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        summary = await repo.record_discovered_images(1, [])

        assert summary.inserted == 0
        assert summary.urls == []
        mock_database.fetch.assert_not_called()

    @pytest.mark.asyncio
    async def test_collapses_duplicates_and_ignores_conflicts(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        mock_database.fetch.return_value = [{"id": 10}, {"id": 11}]

        summary = await repo.record_discovered_images(1, ["u1", "u1", "u2"])

        args = mock_database.fetch.call_args[0]
        sql = args[0]
        assert "unnest($2::text[])" in sql
        assert "ON CONFLICT (source_id, source_url) DO NOTHING" in sql
        assert args[1] == 1
        assert args[2] == ["u1", "u2"]
        assert summary.inserted == 2
        assert summary.urls == ["u1", "u1", "u2"]

    @pytest.mark.asyncio
    async def test_repeat_pass_inserts_nothing(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        mock_database.fetch.return_value = []

        summary = await repo.record_discovered_images(1, ["u1", "u2"])

        assert summary.inserted == 0
        assert summary.duplicates == 2

    @pytest.mark.asyncio
    async def test_unknown_source_propagates(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        mock_database.fetch.side_effect = ConstraintViolation("foreign key")

        with pytest.raises(ConstraintViolation):
            await repo.record_discovered_images(999, ["u1"])


class TestListImagesPendingStorage:
    """Tests for the read-only pending listing."""

    @pytest.mark.asyncio
    async def test_maps_rows(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        mock_database.fetch.return_value = [
            {"id": 1, "source_id": 5, "source_url": "https://example.com/a.jpg"},
        ]

        images = await repo.list_images_pending_storage()

        assert len(images) == 1
        assert images[0].source_id == 5
        assert images[0].source_url == "https://example.com/a.jpg"
        sql = mock_database.fetch.call_args[0][0]
        assert "stored_url IS NULL" in sql
        assert "FOR UPDATE" not in sql


class TestClaimImagesPendingStorage:
    """Tests for leasing images to downloaders."""

    @pytest.mark.asyncio
    async def test_leases_with_skip_locked(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        mock_database.fetch.return_value = [
            {"id": 1, "source_id": 5, "source_url": "u1"},
            {"id": 2, "source_id": 5, "source_url": "u2"},
        ]

        images = await repo.claim_images_pending_storage(2)

        args = mock_database.fetch.call_args[0]
        assert "FOR UPDATE SKIP LOCKED" in args[0]
        assert "SET claimed_at = NOW()" in args[0]
        assert args[1:] == (2, 120.0)
        assert [i.id for i in images] == [1, 2]

    @pytest.mark.asyncio
    async def test_defaults_to_config_batch_size(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        await repo.claim_images_pending_storage()
        assert mock_database.fetch.call_args[0][1] == 20

    @pytest.mark.asyncio
    async def test_rejects_non_positive_count(self, repo: ImagesRepository) -> None:
        with pytest.raises(ValueError):
            await repo.claim_images_pending_storage(-1)


class TestRecordStoredLocation:
    """Tests for point updates of the stored url."""

    @pytest.mark.asyncio
    async def test_updates_one_row(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        mock_database.execute.return_value = "UPDATE 1"

        await repo.record_stored_location(1, "s3://bucket/a.jpg")

        args = mock_database.execute.call_args[0]
        assert "SET stored_url = $2" in args[0]
        assert args[1:] == (1, "s3://bucket/a.jpg")

    @pytest.mark.asyncio
    async def test_unknown_id_raises_not_found(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        mock_database.execute.return_value = "UPDATE 0"

        with pytest.raises(NotFound) as exc_info:
            await repo.record_stored_location(404, "s3://bucket/a.jpg")
        assert exc_info.value.key == 404

    @pytest.mark.asyncio
    async def test_empty_url_rejected(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        with pytest.raises(ValueError):
            await repo.record_stored_location(1, "")
        mock_database.execute.assert_not_called()


class TestCountPendingStorage:
    """Tests for pending count."""

    @pytest.mark.asyncio
    async def test_returns_count(
        self, repo: ImagesRepository, mock_database: AsyncMock
    ) -> None:
        mock_database.fetchval.return_value = 12
        assert await repo.count_pending_storage() == 12

    @pytest.mark.asyncio
    async def test_none_is_zero(self, repo: ImagesRepository) -> None:
        assert await repo.count_pending_storage() == 0
