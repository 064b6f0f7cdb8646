"""
Dependency injection setup for FastAPI.
Provides dependency providers for core services with lifecycle management.
"""

from fastapi import Depends, Request, HTTPException
from typing import Any, Awaitable, Callable, Dict, Optional
import asyncio
import logging

import httpx

from menuscan.config.settings import Settings, get_settings
from menuscan.core.cache_client import CacheClient
from menuscan.core.concurrency_manager import ConcurrencyManager
from menuscan.core.processing_pipeline import ScanPipeline
from menuscan.core.retry import RetryPolicy
from menuscan.services.dish_image_service import DishImageCache, DishImageService
from menuscan.services.image_intake import ImageIntake
from menuscan.services.menu_parser import MenuParser
from menuscan.services.model_client import ExtractionClient, ModelApiClient
from menuscan.services.prompt_builder import PromptBuilder
from menuscan.services.translation_service import TranslationOrchestrator

logger = logging.getLogger(__name__)


class ServiceContainer:
    """
    Owns the application's services and their startup/shutdown order.

    ``transport``, ``sleep`` and ``clock`` are passed through to the model
    client, the retry loop and the dish image cache so tests can replace
    the network, real delays and wall-clock time.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
        clock: Optional[Callable[[], float]] = None
    ):
        self.settings = settings or get_settings()
        self._transport = transport
        self._sleep = sleep
        self._clock = clock

        self._concurrency_manager: Optional[ConcurrencyManager] = None
        self._api_client: Optional[ModelApiClient] = None
        self._cache_client: Optional[CacheClient] = None
        self._scan_pipeline: Optional[ScanPipeline] = None
        self._translation_orchestrator: Optional[TranslationOrchestrator] = None
        self._dish_image_cache: Optional[DishImageCache] = None
        self._dish_image_service: Optional[DishImageService] = None
        self._initialized = False
        self._initialization_lock = asyncio.Lock()

    async def initialize_services(self) -> None:
        """
        Initialize all services with proper dependency order.
        """
        async with self._initialization_lock:
            if self._initialized:
                return

            logger.info("Initializing service container")
            settings = self.settings

            self._concurrency_manager = ConcurrencyManager(settings.concurrency)

            client_options: Dict[str, Any] = {"transport": self._transport}
            if self._sleep is not None:
                client_options["sleep"] = self._sleep
            self._api_client = ModelApiClient(
                settings.model_api,
                RetryPolicy.from_settings(settings.retry),
                self._concurrency_manager,
                **client_options
            )
            await self._api_client.initialize()

            prompt_builder = PromptBuilder(settings.model_api)
            parser = MenuParser()

            self._scan_pipeline = ScanPipeline(
                intake=ImageIntake(settings.intake),
                prompt_builder=prompt_builder,
                extraction_client=ExtractionClient(self._api_client, settings.model_api),
                parser=parser,
            )
            self._translation_orchestrator = TranslationOrchestrator(
                self._api_client, prompt_builder, parser, settings.model_api
            )

            if settings.dish_images.use_redis:
                self._cache_client = CacheClient(settings.redis.url)
                if not await self._cache_client.connect():
                    logger.warning("Redis unavailable, dish image cache is in-memory only")

            cache_options: Dict[str, Any] = {}
            if self._clock is not None:
                cache_options["clock"] = self._clock
            self._dish_image_cache = DishImageCache(
                settings.dish_images, store=self._cache_client, **cache_options
            )
            self._dish_image_service = DishImageService(self._api_client, self._dish_image_cache)

            if not settings.model_api.is_configured:
                logger.warning("MODEL_API_API_KEY is not set; model calls will be rejected")

            self._initialized = True
            logger.info("Service container initialization completed")

    async def cleanup_services(self) -> None:
        """
        Cleanup all services in reverse dependency order.
        """
        logger.info("Cleaning up service container")
        try:
            if self._dish_image_cache:
                await self._dish_image_cache.shutdown()
            if self._cache_client:
                await self._cache_client.disconnect()
            if self._api_client:
                await self._api_client.close()
        finally:
            self._dish_image_service = None
            self._dish_image_cache = None
            self._translation_orchestrator = None
            self._scan_pipeline = None
            self._cache_client = None
            self._api_client = None
            self._concurrency_manager = None
            self._initialized = False
            logger.info("Service container cleanup completed")

    def _require(self, service: Any, name: str) -> Any:
        if not self._initialized or service is None:
            raise RuntimeError(f"{name} not initialized")
        return service

    def get_scan_pipeline(self) -> ScanPipeline:
        return self._require(self._scan_pipeline, "Scan pipeline")

    def get_translation_orchestrator(self) -> TranslationOrchestrator:
        return self._require(self._translation_orchestrator, "Translation orchestrator")

    def get_dish_image_service(self) -> DishImageService:
        return self._require(self._dish_image_service, "Dish image service")

    def get_dish_image_cache(self) -> DishImageCache:
        return self._require(self._dish_image_cache, "Dish image cache")

    def get_concurrency_manager(self) -> ConcurrencyManager:
        return self._require(self._concurrency_manager, "Concurrency manager")

    def get_cache_client(self) -> Optional[CacheClient]:
        return self._cache_client

    @property
    def is_initialized(self) -> bool:
        return self._initialized


def get_service_container(request: Request) -> ServiceContainer:
    """
    Get the service container from application state.

    Raises:
        HTTPException: If service container is not available
    """
    container = getattr(request.app.state, 'service_container', None)
    if container is None or not container.is_initialized:
        logger.error("Service container not initialized")
        raise HTTPException(
            status_code=503,
            detail="Service container not available"
        )
    return container


def get_scan_pipeline(
    container: ServiceContainer = Depends(get_service_container)
) -> ScanPipeline:
    return container.get_scan_pipeline()


def get_translation_orchestrator(
    container: ServiceContainer = Depends(get_service_container)
) -> TranslationOrchestrator:
    return container.get_translation_orchestrator()


def get_dish_image_service(
    container: ServiceContainer = Depends(get_service_container)
) -> DishImageService:
    return container.get_dish_image_service()


def get_request_id(request: Request) -> str:
    """
    Get request ID from request state.
    """
    return getattr(request.state, 'request_id', 'unknown')
