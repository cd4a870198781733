from __future__ import annotations

import structlog
from dependency_injector import containers, providers

from core.settings import SETTINGS
from infra.llm import OpenAIChatModel
from infra.resources import DatabaseResource, RedisResource
from infra.storage import InMemoryStorage, RedisStorage, SqlStorage


logger = structlog.get_logger("chat_relay")


class InfrastructureContainer(containers.DeclarativeContainer):
    config = providers.Configuration()
    settings = providers.Object(SETTINGS)
    logger = providers.Object(logger)

    # Database (STORE_BACKEND=sql)
    database = providers.Resource(
        DatabaseResource,
        database_url=str(SETTINGS.DATABASE.DATABASE_URL),
    )

    # Redis (STORE_BACKEND=redis)
    redis_db = providers.Resource(
        RedisResource,
        redis_url=str(SETTINGS.REDIS.REDIS_URL),
    )

    storage = providers.Selector(
        config.STORE.STORE_BACKEND,
        memory=providers.Singleton(InMemoryStorage),
        redis=providers.Singleton(
            RedisStorage,
            redis_resource=redis_db,
            lock_timeout=SETTINGS.STORE.STORE_LOCK_TIMEOUT_SECONDS,
        ),
        sql=providers.Singleton(SqlStorage, database=database),
    )

    llm = providers.Singleton(
        OpenAIChatModel,
        api_key=SETTINGS.OPENAI.OPENAI_API_KEY.get_secret_value(),
        base_url=SETTINGS.OPENAI.OPENAI_BASE_URL,
        model=SETTINGS.OPENAI.OPENAI_MODEL,
        timeout=SETTINGS.OPENAI.OPENAI_TIMEOUT_SECONDS,
    )


class ServiceContainer(containers.DeclarativeContainer):
    """Application services - depends on infrastructure."""

    infrastructure = providers.DependenciesContainer()

    # One store per process: it owns the per-conversation lock table
    conversation_store = providers.Singleton(
        "api.features.conversation.repository.ConversationStore",
        storage=infrastructure.storage,
    )

    chat_agent = providers.Singleton(
        "api.features.chat.service.ChatAgent",
        llm=infrastructure.llm,
        history_window=SETTINGS.CHAT.CHAT_HISTORY_WINDOW,
        max_tokens=SETTINGS.CHAT.CHAT_MAX_TOKENS,
        temperature=SETTINGS.CHAT.CHAT_TEMPERATURE,
        title_max_tokens=SETTINGS.CHAT.TITLE_MAX_TOKENS,
        title_temperature=SETTINGS.CHAT.TITLE_TEMPERATURE,
    )

    chat_service = providers.Factory(
        "api.features.chat.service.ChatService",
        store=conversation_store,
        agent=chat_agent,
    )

    # Workflows
    conversation_workflow = providers.Factory(
        "relay.pipeline.conversation_workflow.ConversationWorkflow",
        storage=infrastructure.storage,
        store=conversation_store,
        agent=chat_agent,
        response_delay_ms=SETTINGS.CHAT.WORKFLOW_RESPONSE_DELAY_MS,
    )

    analysis_workflow = providers.Factory(
        "relay.pipeline.analysis_workflow.ConversationAnalysisWorkflow",
        storage=infrastructure.storage,
        store=conversation_store,
        llm=infrastructure.llm,
        max_tokens=SETTINGS.CHAT.ANALYSIS_MAX_TOKENS,
        temperature=SETTINGS.CHAT.ANALYSIS_TEMPERATURE,
        analysis_delay_ms=SETTINGS.CHAT.WORKFLOW_ANALYSIS_DELAY_MS,
    )


class ControllerContainer(containers.DeclarativeContainer):
    """Controller-specific dependencies."""

    services = providers.DependenciesContainer()

    conversation_controller = providers.Factory(
        "api.features.conversation.controller.ConversationController",
        store=services.conversation_store,
        agent=services.chat_agent,
    )

    chat_controller = providers.Factory(
        "api.features.chat.controller.ChatController",
        chat_service=services.chat_service,
    )

    analysis_controller = providers.Factory(
        "api.features.analysis.controller.AnalysisController",
        analysis_workflow=services.analysis_workflow,
    )


class ApplicationContainer(containers.DeclarativeContainer):
    """Main application container composing all sub-containers."""

    # Wired explicitly by the API; worker processes never wire
    wiring_config = containers.WiringConfiguration(
        modules=[
            "api.features.chat.router",
            "api.features.conversation.router",
            "api.features.analysis.router",
        ],
        auto_wire=False,
    )

    infrastructure = providers.Container(InfrastructureContainer)
    services = providers.Container(ServiceContainer, infrastructure=infrastructure)
    controllers = providers.Container(ControllerContainer, services=services)


def build_container() -> ApplicationContainer:
    container = ApplicationContainer()
    container.infrastructure.config.from_dict(SETTINGS.model_dump())
    return container


async def init_storage(container: ApplicationContainer) -> None:
    """Open the connections the configured store backend needs."""
    backend = container.infrastructure.config.STORE.STORE_BACKEND()
    if backend == "redis":
        redis_resource = container.infrastructure.redis_db()
        await redis_resource.init()
        await redis_resource.connect()
    elif backend == "sql":
        db_resource = container.infrastructure.database()
        await db_resource.init()
        await container.infrastructure.storage().create_schema()
    logger.info("storage.initialized", backend=backend)


async def shutdown_storage(container: ApplicationContainer) -> None:
    backend = container.infrastructure.config.STORE.STORE_BACKEND()
    if backend == "redis":
        await container.infrastructure.redis_db().disconnect()
    elif backend == "sql":
        await container.infrastructure.database().shutdown()
