from cakegenie.application.dtos.pricing_dto import CompressionInfo, PriceResult
from cakegenie.domain.entities.compression_result import CompressionResult
from cakegenie.domain.entities.pricing_record import PricingRecord
from cakegenie.domain.errors import (
    USER_MESSAGES,
    ConfigurationError,
    DatabaseError,
    ErrorCategory,
    NetworkError,
    StorageError,
    classify_error,
)


def test_classify_error_categories():
    assert classify_error(ConfigurationError("x"))[0] is ErrorCategory.CONFIGURATION
    assert classify_error(NetworkError("x"))[0] is ErrorCategory.NETWORK
    assert classify_error(StorageError("x"))[0] is ErrorCategory.STORAGE
    assert classify_error(DatabaseError("x"))[0] is ErrorCategory.DATABASE
    assert classify_error(RuntimeError("x")) == (ErrorCategory.GENERIC, "Upload failed. Please try again.")


def test_every_category_has_a_message():
    assert set(USER_MESSAGES) == set(ErrorCategory)


def test_price_from_record_defaults():
    record = PricingRecord.from_row({"rowid": "r1", "priceaddon": 150, "image": "https://cdn.example/a.webp"})
    result = PriceResult.from_record(record, record.image_url)

    assert result.price_addon == "+150"
    assert result.cake_design_details == "Design analyzed"
    assert result.cake_type == "Custom"
    assert result.height == "Standard"
    assert result.has_real_data
    assert not result.needs_refresh


def test_placeholder_payload():
    result = PriceResult.placeholder("r1", None)
    assert result.price_addon == "Processing..."
    assert result.cake_type == "Determining..."
    assert not result.has_real_data


def test_compression_info_summary():
    result = CompressionResult(
        data=b"x",
        ext="webp",
        media_type="image/webp",
        original_size=4 * 1024 * 1024,
        compressed_size=512 * 1024,
        compression_ratio=8.0,
        width=1800,
        height=1200,
        attempts=1,
    )
    info = CompressionInfo.from_result(result)
    assert info.summary() == "4 MB -> 512 KB (8.0x)"
    assert info.ext == "webp"
