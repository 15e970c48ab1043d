"""Application bootstrap/wiring."""

import logging
from dataclasses import dataclass, field

from asin_tracker.application.services import (
    ImportService,
    JobTracker,
    ProcessingService,
    ProgressStore,
)
from asin_tracker.config import ProgressStoreBackend, RepositoryBackend, Settings
from asin_tracker.domain.ports import EligibilityClient, KeyValueStore
from asin_tracker.infrastructure.amazon import (
    LwaTokenProvider,
    SellingPartnerEligibilityClient,
    SigV4RequestSigner,
    UnconfiguredEligibilityClient,
)
from asin_tracker.infrastructure.imports import ImportErrorArtifactStore, KeepaCsvParser
from asin_tracker.infrastructure.progress import InMemoryKeyValueStore, PostgresKeyValueStore
from asin_tracker.infrastructure.repositories import (
    InMemoryProductRepository,
    PostgresProductRepository,
)
from asin_tracker.infrastructure.runtime import ChunkedBatchExecutor

logger = logging.getLogger(__name__)

ProductStore = InMemoryProductRepository | PostgresProductRepository


@dataclass(slots=True)
class ApplicationServices:
    """Service graph shared by API routes."""

    job_tracker: JobTracker
    import_service: ImportService
    processing_service: ProcessingService
    repository: ProductStore
    key_value_store: KeyValueStore
    closables: list[PostgresProductRepository | PostgresKeyValueStore] = field(
        default_factory=list
    )

    async def shutdown(self) -> None:
        """Stop background jobs and close connection pools."""

        await self.job_tracker.shutdown()
        for closable in self.closables:
            await closable.close()


def _build_repository(settings: Settings) -> ProductStore:
    if settings.repository_backend == RepositoryBackend.POSTGRES:
        if settings.postgres_dsn is None:
            raise ValueError(
                "ASIN_TRACKER_POSTGRES_DSN is required when "
                "ASIN_TRACKER_REPOSITORY_BACKEND=postgres."
            )
        return PostgresProductRepository(
            dsn=settings.postgres_dsn,
            min_pool_size=settings.postgres_pool_min_size,
            max_pool_size=settings.postgres_pool_max_size,
        )
    return InMemoryProductRepository()


def _build_key_value_store(settings: Settings) -> KeyValueStore:
    if settings.progress_store_backend == ProgressStoreBackend.POSTGRES:
        if settings.postgres_dsn is None:
            raise ValueError(
                "ASIN_TRACKER_POSTGRES_DSN is required when "
                "ASIN_TRACKER_PROGRESS_STORE_BACKEND=postgres."
            )
        return PostgresKeyValueStore(
            dsn=settings.postgres_dsn,
            min_pool_size=settings.postgres_pool_min_size,
            max_pool_size=settings.postgres_pool_max_size,
        )
    return InMemoryKeyValueStore()


def _build_eligibility_client(settings: Settings) -> EligibilityClient:
    if not settings.sp_api_credentials_configured:
        logger.warning(
            "SP-API credentials are incomplete (ASIN_TRACKER_LWA_* / ASIN_TRACKER_AWS_*). "
            "Eligibility lookups will fail and ASINs stay unchecked."
        )
        return UnconfiguredEligibilityClient()

    assert settings.lwa_client_id is not None
    assert settings.lwa_client_secret is not None
    assert settings.lwa_refresh_token is not None
    assert settings.aws_access_key_id is not None
    assert settings.aws_secret_access_key is not None
    token_provider = LwaTokenProvider(
        token_url=settings.lwa_token_url,
        client_id=settings.lwa_client_id,
        client_secret=settings.lwa_client_secret,
        refresh_token=settings.lwa_refresh_token,
        refresh_margin_seconds=settings.lwa_token_refresh_margin_seconds,
        timeout_seconds=settings.sp_api_timeout_seconds,
    )
    signer = SigV4RequestSigner(
        access_key_id=settings.aws_access_key_id,
        secret_access_key=settings.aws_secret_access_key,
        region=settings.aws_region,
    )
    return SellingPartnerEligibilityClient(
        endpoint=settings.sp_api_endpoint,
        marketplace_id=settings.sp_api_marketplace_id,
        token_provider=token_provider,
        signer=signer,
        timeout_seconds=settings.sp_api_timeout_seconds,
        max_attempts=settings.sp_api_max_attempts,
        initial_backoff_seconds=settings.sp_api_initial_backoff_seconds,
        max_backoff_seconds=settings.sp_api_max_backoff_seconds,
    )


def build_application_services(settings: Settings) -> ApplicationServices:
    """Compose service graph."""

    repository = _build_repository(settings)
    key_value_store = _build_key_value_store(settings)
    job_tracker = JobTracker(
        ProgressStore(key_value_store, namespace=settings.progress_key_namespace),
        job_ttl_seconds=settings.job_ttl_seconds,
        finished_slot_linger_seconds=settings.finished_slot_linger_seconds,
        cancel_flag_ttl_seconds=settings.cancel_flag_ttl_seconds,
    )

    import_service = ImportService(
        job_tracker=job_tracker,
        product_repository=repository,
        tag_repository=repository,
        import_history_repository=repository,
        error_artifacts=ImportErrorArtifactStore(settings.import_errors_dir),
        parser=KeepaCsvParser(),
        batch_size=settings.import_batch_size,
        error_preview_limit=settings.import_error_preview_limit,
        max_file_bytes=settings.import_max_file_bytes,
        hazmat_tag_name=settings.hazmat_tag_name,
    )
    processing_service = ProcessingService(
        job_tracker=job_tracker,
        product_repository=repository,
        seller_status_repository=repository,
        eligibility_client=_build_eligibility_client(settings),
        executor=ChunkedBatchExecutor(
            concurrency=settings.processing_concurrency,
            inter_chunk_delay_seconds=settings.processing_inter_chunk_delay_seconds,
        ),
    )

    closables: list[PostgresProductRepository | PostgresKeyValueStore] = [
        component
        for component in (repository, key_value_store)
        if isinstance(component, (PostgresProductRepository, PostgresKeyValueStore))
    ]
    return ApplicationServices(
        job_tracker=job_tracker,
        import_service=import_service,
        processing_service=processing_service,
        repository=repository,
        key_value_store=key_value_store,
        closables=closables,
    )


__all__ = ["ApplicationServices", "build_application_services"]
