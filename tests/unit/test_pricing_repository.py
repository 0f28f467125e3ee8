import uuid
from unittest.mock import Mock

import pytest

from cakegenie.domain.errors import ConfigurationError, DatabaseError
from cakegenie.infrastructure.database.repositories import pricing_repository
from cakegenie.infrastructure.database.repositories.pricing_repository import PricingRepository


@pytest.mark.asyncio
async def test_insert_creates_unpriced_row():
    repo = PricingRepository(None)
    row = await repo.insert("/local-storage/uploads/1-abc.webp", "cake.jpg")

    uuid.UUID(row.row_id)
    assert row.image_url == "/local-storage/uploads/1-abc.webp"
    assert row.keyword == "cake.jpg"
    assert row.created_at is not None

    record = await repo.get(row.row_id)
    assert record.row_id == row.row_id
    assert record.image_url == row.image_url
    assert not record.has_pricing


@pytest.mark.asyncio
async def test_keyword_defaults_to_uploaded_image():
    row = await PricingRepository(None).insert("/local-storage/uploads/2-def.jpg")
    assert row.keyword == "uploaded_image"


@pytest.mark.asyncio
async def test_update_pricing_is_visible_to_reads():
    repo = PricingRepository(None)
    row = await repo.insert("/local-storage/uploads/3-ghi.webp", "cake.jpg")

    updated = repo.update_pricing(row.row_id, 150, "Buttercream roses", "Round", "Standard")
    assert updated.has_pricing

    record = await repo.get(row.row_id)
    assert record.price_addon == 150
    assert record.info_addon == "Buttercream roses"
    assert record.cake_type == "Round"


@pytest.mark.asyncio
async def test_unknown_row_reads_as_none():
    repo = PricingRepository(None)
    assert await repo.get("missing") is None
    assert repo.update_pricing("missing", 100) is None


@pytest.mark.asyncio
async def test_supabase_mode_without_client_raises_configuration_error(supabase_enabled):
    repo = PricingRepository(None)
    with pytest.raises(ConfigurationError) as exc:
        await repo.insert("https://cdn.example/uploads/1.webp")
    assert "SUPABASE_URL is missing" in exc.value.errors


class TestLocalPostgresMode:
    @pytest.fixture()
    def pg_client(self, monkeypatch):
        client = Mock()
        monkeypatch.setenv("USE_LOCAL_DB", "1")
        monkeypatch.setattr(pricing_repository, "get_postgres_client", lambda: client)
        return client

    @pytest.mark.asyncio
    async def test_insert_uses_returning_row(self, pg_client):
        pg_client.fetch_one.side_effect = lambda query, params: {
            "rowid": params[0],
            "image": params[1],
            "keyword": params[2],
            "created_at": params[3],
        }
        repo = PricingRepository(None)
        row = await repo.insert("/local/uploads/1.webp", "cake.jpg")

        pg_client.ensure_pricing_table.assert_called_with("uploadpricing2")
        query, params = pg_client.fetch_one.call_args.args
        assert query.strip().startswith("INSERT INTO uploadpricing2")
        assert params[0] == row.row_id
        assert row.keyword == "cake.jpg"

    @pytest.mark.asyncio
    async def test_get_maps_pricing_columns(self, pg_client, monkeypatch):
        monkeypatch.setenv("PRICING_TABLE", "pricing_local")
        pg_client.fetch_one.return_value = {"rowid": "r1", "image": "u", "priceaddon": 80, "type": "Square"}

        record = await PricingRepository(None).get("r1")

        assert record.price_addon == 80
        assert record.cake_type == "Square"
        assert "FROM pricing_local WHERE rowid = %s" in pg_client.fetch_one.call_args.args[0]

    @pytest.mark.asyncio
    async def test_driver_errors_become_database_errors(self, pg_client):
        pg_client.fetch_one.side_effect = RuntimeError("connection refused")
        with pytest.raises(DatabaseError, match="connection refused"):
            await PricingRepository(None).get("r1")
