"""Payloads handed to the presentation layer."""
from __future__ import annotations

from pydantic import BaseModel, Field

from cakegenie.config import PRICE_CURRENCY_SYMBOL
from cakegenie.domain.entities.compression_result import CompressionResult
from cakegenie.domain.entities.pricing_record import PricingRecord
from cakegenie.domain.services.compression_service import format_file_size


class PriceResult(BaseModel):
    """Price estimate for an uploaded cake photo, as shown to the user."""
    price_addon: str = Field(..., description="Formatted price add-on", examples=["+150"])
    cake_design_details: str = Field(..., description="Description of the design elements found by the AI")
    cake_type: str = Field(..., description="Detected cake type", examples=["Custom"])
    height: str = Field(..., description="Detected cake height/thickness", examples=["Standard"])
    row_id: str | None = Field(None, description="Row identifier of the pricing record")
    public_url: str | None = Field(None, description="Public URL of the uploaded photo")
    has_real_data: bool = Field(False, description="True once the AI has written the price")
    needs_refresh: bool = Field(False, description="True when polling gave up and a manual refresh is offered")

    @classmethod
    def placeholder(cls, row_id: str, public_url: str | None) -> PriceResult:
        return cls(
            price_addon="Processing...",
            cake_design_details="AI is analyzing your design...",
            cake_type="Determining...",
            height="Calculating...",
            row_id=row_id,
            public_url=public_url,
        )

    @classmethod
    def from_record(
        cls,
        record: PricingRecord,
        public_url: str | None,
        currency: str = PRICE_CURRENCY_SYMBOL,
    ) -> PriceResult:
        return cls(
            price_addon=f"+{currency}{record.price_addon}",
            cake_design_details=record.info_addon or "Design analyzed",
            cake_type=record.cake_type or "Custom",
            height=record.thickness or "Standard",
            row_id=record.row_id,
            public_url=public_url,
            has_real_data=True,
        )

    @classmethod
    def still_processing(cls, row_id: str, public_url: str | None) -> PriceResult:
        return cls(
            price_addon="Still processing...",
            cake_design_details="Analysis taking longer than expected - please refresh",
            cake_type="Still processing...",
            height="Still processing...",
            row_id=row_id,
            public_url=public_url,
            needs_refresh=True,
        )

    @classmethod
    def polling_error(cls, row_id: str, public_url: str | None) -> PriceResult:
        return cls(
            price_addon="Error",
            cake_design_details="Please refresh to try again",
            cake_type="Error",
            height="Error",
            row_id=row_id,
            public_url=public_url,
            needs_refresh=True,
        )


class CompressionInfo(BaseModel):
    """Before/after metrics of the compression step."""
    original_size: int = Field(..., ge=0, description="Size of the selected file in bytes")
    compressed_size: int = Field(..., ge=0, description="Size of the uploaded artifact in bytes")
    ratio: float = Field(..., ge=0, description="original_size / compressed_size")
    width: int | None = Field(None, description="Output width in pixels, None when skipped")
    height: int | None = Field(None, description="Output height in pixels, None when skipped")
    ext: str = Field(..., description="Extension of the uploaded artifact", examples=["webp"])
    error: str | None = Field(None, description="Why compression fell back to the original bytes")

    @classmethod
    def from_result(cls, result: CompressionResult) -> CompressionInfo:
        return cls(
            original_size=result.original_size,
            compressed_size=result.compressed_size,
            ratio=result.compression_ratio,
            width=result.width,
            height=result.height,
            ext=result.ext,
            error=result.error,
        )

    def summary(self) -> str:
        return (
            f"{format_file_size(self.original_size)} -> {format_file_size(self.compressed_size)}"
            f" ({self.ratio:.1f}x)"
        )
