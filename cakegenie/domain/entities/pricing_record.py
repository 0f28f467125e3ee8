from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class PricingRecord:
    row_id: str
    price_addon: Any | None = None  # filled in out-of-band by the AI process
    info_addon: str | None = None
    cake_type: str | None = None
    thickness: str | None = None
    image_url: str | None = None
    keyword: str | None = None

    @property
    def has_pricing(self) -> bool:
        return self.price_addon is not None

    @classmethod
    def from_row(cls, row: dict) -> PricingRecord:
        return cls(
            row_id=str(row["rowid"]),
            price_addon=row.get("priceaddon"),
            info_addon=row.get("infoaddon"),
            cake_type=row.get("type"),
            thickness=row.get("thickness"),
            image_url=row.get("image"),
            keyword=row.get("keyword"),
        )
