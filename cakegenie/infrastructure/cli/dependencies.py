from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from supabase import Client

from cakegenie.application.session import EstimateSession
from cakegenie.application.state import EstimateStateMachine
from cakegenie.application.use_cases.poll_pricing import PollPricingUseCase
from cakegenie.application.use_cases.upload_image import UploadImageUseCase
from cakegenie.domain.errors import ConfigurationError
from cakegenie.domain.services.compression_service import CompressionService
from cakegenie.domain.services.image_codec import ImageCodecAdapter
from cakegenie.infrastructure.database.repositories.pricing_repository import PricingRepository
from cakegenie.infrastructure.database.supabase_client import get_supabase_client
from cakegenie.infrastructure.storage.supabase_storage import SupabaseStorage

logger = logging.getLogger("cakegenie.cli")


def get_client() -> Client | None:
    # Configuration problems surface as an upload error, not at startup
    try:
        return get_supabase_client()
    except ConfigurationError as exc:
        logger.warning("Supabase configuration issues detected: %s", "; ".join(exc.errors) or exc)
        return None


def get_storage() -> SupabaseStorage:
    return SupabaseStorage(get_client())


def get_pricing_repo() -> PricingRepository:
    return PricingRepository(get_client())


def get_compression_service() -> CompressionService:
    return CompressionService(ImageCodecAdapter())


def get_poller(sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> PollPricingUseCase:
    return PollPricingUseCase(get_pricing_repo(), sleep=sleep)


def build_session(sleep: Callable[[float], Awaitable[None]] = asyncio.sleep) -> EstimateSession:
    machine = EstimateStateMachine()
    codec = ImageCodecAdapter()
    repo = get_pricing_repo()
    uploader = UploadImageUseCase(
        storage=get_storage(),
        pricing_repo=repo,
        compressor=CompressionService(codec),
        machine=machine,
        codec=codec,
        sleep=sleep,
    )
    poller = PollPricingUseCase(repo, sleep=sleep)
    return EstimateSession(uploader, poller, machine)
