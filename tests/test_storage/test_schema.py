"""Tests for the queue DDL."""

from unittest.mock import AsyncMock

import pytest

from kchoo.sources.states import SourceState
from kchoo.storage.schema import CREATE_TABLES_SQL, create_tables


class TestSchema:
    """Tests for table definitions."""

    def test_state_check_lists_every_state(self) -> None:
        for state in SourceState:
            assert f"'{state.value}'" in CREATE_TABLES_SQL

    def test_uniqueness_constraints(self) -> None:
        assert "UNIQUE (site_id, remote_identifier)" in CREATE_TABLES_SQL
        assert "UNIQUE (source_id, source_url)" in CREATE_TABLES_SQL

    @pytest.mark.asyncio
    async def test_create_tables_executes_ddl(self, mock_database: AsyncMock) -> None:
        await create_tables(mock_database)
        mock_database.execute.assert_awaited_once_with(CREATE_TABLES_SQL)
