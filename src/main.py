import logging
import sys

import aiohttp
from aiohttp import web
from dotenv import load_dotenv

from src.api import create_app
from src.application.change_applier import ChangeApplier
from src.application.consolidation import ConsolidationSynthesizer
from src.application.fleet_orchestrator import FleetOrchestrator
from src.application.intelligence_service import IntelligenceService
from src.application.repository_analyzer import RepositoryAnalyzer
from src.config import Settings
from src.domain.fleet import default_fleet, load_fleet
from src.infrastructure.backend_client import BackendServiceAdapter
from src.infrastructure.database import InMemoryResultStore, PostgresResultStore
from src.infrastructure.github_client import GitHubRestClient

logger = logging.getLogger(__name__)

# Headroom so per-repository timeouts fire after the inner sub-analysis timeouts
TIMEOUT_MARGIN = 5.0


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
        handlers=[
            logging.StreamHandler(sys.stdout)
        ]
    )


def build_service(settings: Settings) -> IntelligenceService:
    """Wires clients, pipeline stages and the result store from settings."""
    registry = load_fleet(settings.fleet_registry_path) if settings.fleet_registry_path else default_fleet()

    github_client = GitHubRestClient(
        token=settings.github_token,
        owner=settings.github_owner,
        api_url=settings.github_api_url,
        timeout=aiohttp.ClientTimeout(total=settings.request_timeout, connect=min(10, settings.request_timeout)),
    )
    backend_adapter = BackendServiceAdapter(
        backends=settings.backend_map(),
        max_retries=settings.backend_max_retries,
        timeout=settings.request_timeout,
    )

    if settings.database_url:
        result_store = PostgresResultStore(db_url=settings.database_url)
    else:
        logger.warning("DATABASE_URL is not set; fleet analyses are kept in memory only.")
        result_store = InMemoryResultStore()

    analyzer = RepositoryAnalyzer(github_client, backend_adapter, task_timeout=settings.task_timeout)
    return IntelligenceService(
        registry=registry,
        # The repository budget covers the metadata fetch plus the sub-analysis budget, with margin.
        orchestrator=FleetOrchestrator(
            registry, analyzer,
            task_timeout=settings.task_timeout + settings.request_timeout + TIMEOUT_MARGIN,
        ),
        synthesizer=ConsolidationSynthesizer(backend_adapter, timeout=settings.task_timeout),
        change_applier=ChangeApplier(github_client, webhook_url=settings.intelligence_webhook_url),
        result_store=result_store,
        task_timeout=settings.task_timeout,
    )


def main():
    # Load environment variables from .env file
    load_dotenv()
    configure_logging()

    try:
        settings = Settings.from_env()
    except ValueError as e:
        logger.error(str(e))
        sys.exit(1)

    logging.getLogger().setLevel(settings.log_level)
    service = build_service(settings)

    async def init_store(app: web.Application) -> None:
        try:
            await service.result_store.initialize()
        except Exception:
            logger.exception("Result store initialization failed; results will not be persisted.")

    async def close_store(app: web.Application) -> None:
        await service.result_store.close()

    app = create_app(service)
    app.on_startup.append(init_store)
    app.on_cleanup.append(close_store)

    logger.info(f"Serving fleet intelligence for {len(service.registry)} repositories on {settings.host}:{settings.port}.")
    web.run_app(app, host=settings.host, port=settings.port, print=None)


if __name__ == "__main__":
    main()
