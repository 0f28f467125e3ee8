from __future__ import annotations

import asyncio
import logging
import os
import uuid
from datetime import UTC, datetime

import httpx
from supabase import Client

from cakegenie.domain.entities.pricing_record import PricingRecord
from cakegenie.domain.entities.upload_record import UploadRow
from cakegenie.domain.errors import DatabaseError, NetworkError
from cakegenie.infrastructure.database.postgres_client import get_postgres_client
from cakegenie.infrastructure.database.supabase_client import is_disabled, require_client

logger = logging.getLogger("cakegenie.repository")

SELECT_COLUMNS = "rowid, image, priceaddon, infoaddon, type, thickness, keyword"

# module-level in-memory store for disabled mode
_MEM_ROWS: dict[str, dict] = {}


def clear_memory_rows() -> None:
    _MEM_ROWS.clear()


class PricingRepository:
    """Reads and writes the pricing table the out-of-band AI process fills in.

    A row is inserted when a photo is uploaded, with only ``rowid``, ``image``
    and ``keyword`` set. The AI later writes ``priceaddon``, ``infoaddon``,
    ``type`` and ``thickness``.
    """

    def __init__(self, client: Client | None) -> None:
        self.client = client
        self.table = os.getenv("PRICING_TABLE", "uploadpricing2")
        self.disabled = is_disabled()
        self.use_local_db = os.getenv("USE_LOCAL_DB", "0") == "1"
        self.pg_client = get_postgres_client() if self.use_local_db else None

    def _pg_fetch(self, action: str, query: str, params: tuple) -> dict | None:
        try:
            self.pg_client.ensure_pricing_table(self.table)
            return self.pg_client.fetch_one(query, params)
        except Exception as exc:
            raise DatabaseError(f"PostgreSQL {action} failed: {exc}") from exc

    @staticmethod
    def _row_to_upload(row: dict) -> UploadRow:
        created_at = row.get("created_at")
        if isinstance(created_at, str):
            created_at = datetime.fromisoformat(created_at)
        return UploadRow(
            row_id=str(row["rowid"]),
            image_url=row["image"],
            keyword=row.get("keyword"),
            created_at=created_at,
        )

    async def insert(self, image_url: str, keyword: str | None = None) -> UploadRow:
        return await asyncio.to_thread(self.insert_sync, image_url, keyword)

    def insert_sync(self, image_url: str, keyword: str | None = None) -> UploadRow:
        row_id = str(uuid.uuid4())
        keyword = keyword if isinstance(keyword, str) and keyword else "uploaded_image"

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = f"""
                INSERT INTO {self.table} (rowid, image, keyword, created_at)
                VALUES (%s, %s, %s, %s)
                RETURNING rowid, image, keyword, created_at
            """
            row = self._pg_fetch("insert pricing row", query, (row_id, image_url, keyword, datetime.now(UTC)))
            if row is None:
                raise DatabaseError("PostgreSQL insert pricing row returned no data")
            return self._row_to_upload(row)

        # In-memory mode
        if self.disabled:
            row = {
                "rowid": row_id,
                "image": image_url,
                "keyword": keyword,
                "priceaddon": None,
                "infoaddon": None,
                "type": None,
                "thickness": None,
                "created_at": datetime.now(UTC),
            }
            _MEM_ROWS[row_id] = row
            return self._row_to_upload(row)

        # Supabase mode
        client = require_client(self.client)
        try:  # pragma: no cover - network
            res = (
                client.table(self.table)
                .insert({"rowid": row_id, "image": image_url, "keyword": keyword})
                .execute()
            )
            rows = res.data or []
            if not rows:
                raise DatabaseError("DB insert pricing row returned no data")
            return self._row_to_upload(rows[0])
        except DatabaseError:  # pragma: no cover
            raise
        except httpx.TransportError as exc:  # pragma: no cover
            raise NetworkError(f"DB insert pricing row failed: {exc}") from exc
        except Exception as exc:  # pragma: no cover
            raise DatabaseError(f"DB insert pricing row failed: {exc}") from exc

    async def get(self, row_id: str) -> PricingRecord | None:
        return await asyncio.to_thread(self.get_sync, row_id)

    def get_sync(self, row_id: str) -> PricingRecord | None:
        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = f"SELECT {SELECT_COLUMNS} FROM {self.table} WHERE rowid = %s"
            row = self._pg_fetch("fetch pricing", query, (row_id,))
            return PricingRecord.from_row(row) if row else None

        # In-memory mode
        if self.disabled:
            row = _MEM_ROWS.get(row_id)
            return PricingRecord.from_row(row) if row else None

        # Supabase mode
        client = require_client(self.client)
        try:  # pragma: no cover - network
            res = client.table(self.table).select(SELECT_COLUMNS).eq("rowid", row_id).limit(1).execute()
        except httpx.TransportError as exc:  # pragma: no cover
            raise NetworkError(f"DB fetch pricing failed: {exc}") from exc
        except Exception as exc:  # pragma: no cover
            raise DatabaseError(f"DB fetch pricing failed: {exc}") from exc
        rows = res.data or []  # pragma: no cover
        return PricingRecord.from_row(rows[0]) if rows else None  # pragma: no cover

    def update_pricing(
        self,
        row_id: str,
        price_addon: int | float | str,
        info_addon: str | None = None,
        cake_type: str | None = None,
        thickness: str | None = None,
    ) -> PricingRecord | None:
        """Write the AI's result onto a row. Used by offline demos and tests."""
        values = {
            "priceaddon": price_addon,
            "infoaddon": info_addon,
            "type": cake_type,
            "thickness": thickness,
        }

        # PostgreSQL mode
        if self.use_local_db and self.pg_client:
            query = f"""
                UPDATE {self.table}
                SET priceaddon = %s, infoaddon = %s, type = %s, thickness = %s
                WHERE rowid = %s
                RETURNING {SELECT_COLUMNS}
            """
            row = self._pg_fetch("update pricing", query, (price_addon, info_addon, cake_type, thickness, row_id))
            return PricingRecord.from_row(row) if row else None

        # In-memory mode
        if self.disabled:
            row = _MEM_ROWS.get(row_id)
            if row is None:
                return None
            row.update(values)
            return PricingRecord.from_row(row)

        # Supabase mode
        client = require_client(self.client)
        try:  # pragma: no cover - network
            res = client.table(self.table).update(values).eq("rowid", row_id).execute()
        except Exception as exc:  # pragma: no cover
            raise DatabaseError(f"DB update pricing failed: {exc}") from exc
        rows = res.data or []  # pragma: no cover
        return PricingRecord.from_row(rows[0]) if rows else None  # pragma: no cover
