"""MCP server implementation using fastmcp"""

import asyncio
import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from apscheduler.schedulers.background import BackgroundScheduler
from fastmcp import FastMCP
from fastmcp.exceptions import McpError
from mcp.types import ErrorData
from starlette.responses import JSONResponse

from src.config import AppConfig, get_config
from src.services.backfill import BackfillJob
from src.services.backfill_scheduler import BackfillScheduler
from src.services.chat import ChatService, ConversationNotFoundError
from src.services.db_manager import DatabaseManager, IntegrityCheckError
from src.services.embedder import Embedder
from src.services.embedding_store import EmbeddingStore
from src.services.embedding_tasks import EmbeddingTaskRunner
from src.services.message_store import MessageStore
from src.services.search import QueryValidationError, SearchService
from src.services.telemetry import get_telemetry_service

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)

mcp = FastMCP(name="chat-semantic-search", version="1.0.0")


@dataclass
class Services:
    """Service graph shared by all tool calls"""

    config: AppConfig
    db: DatabaseManager
    embedder: Embedder
    embedding_store: EmbeddingStore
    message_store: MessageStore
    task_runner: EmbeddingTaskRunner
    search_service: SearchService
    chat_service: ChatService
    backfill_job: BackfillJob


def build_services(config: AppConfig) -> Services:
    """Wire the services for one configuration"""
    db = DatabaseManager(config.db_path)
    embedder = Embedder(config)
    embedding_store = EmbeddingStore(db)
    message_store = MessageStore(db)
    task_runner = EmbeddingTaskRunner(
        embedder, embedding_store, max_concurrent=config.embedding_max_concurrent_tasks
    )
    return Services(
        config=config,
        db=db,
        embedder=embedder,
        embedding_store=embedding_store,
        message_store=message_store,
        task_runner=task_runner,
        search_service=SearchService(config, embedder, embedding_store, message_store),
        chat_service=ChatService(config, message_store, task_runner),
        backfill_job=BackfillJob(config, embedder, embedding_store),
    )


# Initialized on first request
_services: Services | None = None
_services_lock = asyncio.Lock()

# Background backfill sweep
_backfill_scheduler: BackfillScheduler | None = None
_scheduler: BackgroundScheduler | None = None


async def _get_services() -> Services:
    """Get or initialize services"""
    global _services

    async with _services_lock:
        if _services is None:
            services = build_services(get_config())
            await services.db.initialize()
            _services = services

    return _services


def _tool_error(code: int, message: str) -> McpError:
    return McpError(ErrorData(code=code, message=message))


@mcp.tool()
async def search_messages(user_id: int, query: str) -> dict[str, Any]:
    """Search a user's chat history by meaning, falling back to keyword matching

    Args:
        user_id: Owner of the conversations to search
        query: Free-text query (at least 3 characters)

    Returns:
        dict: Matching messages grouped by conversation, with search type
    """
    services = await _get_services()
    telemetry = get_telemetry_service(services.config)
    error: Exception | None = None
    response = None

    try:
        try:
            result = await services.search_service.search(user_id, query)
        except QueryValidationError as e:
            error = e
            raise _tool_error(-32602, str(e)) from e
        except sqlite3.Error as e:
            error = e
            raise _tool_error(-32603, f"Failed to search messages: {e}") from e

        response = result.model_dump(by_alias=True, mode="json")
        return response

    finally:
        telemetry.log_tool_call(
            tool_name="search_messages",
            parameters={"user_id": user_id},
            response=response,
            error=error,
        )


@mcp.tool()
async def save_chat_messages(
    user_id: int,
    user_message: str,
    ai_message: str,
    conversation_id: int | None = None,
    model_used: str | None = None,
) -> dict[str, Any]:
    """Save a user message and the AI reply; embeddings are generated in the background

    Args:
        user_id: Owner of the conversation
        user_message: Text sent by the user
        ai_message: Reply produced by the chat model
        conversation_id: Existing conversation (a new one is created if omitted)
        model_used: Chat model that produced the reply

    Returns:
        dict: Saved ids, model used and embeddingStatus="generating"
    """
    services = await _get_services()
    telemetry = get_telemetry_service(services.config)
    error: Exception | None = None
    response = None

    try:
        try:
            result = await services.chat_service.save_chat_messages(
                user_id,
                user_message,
                ai_message,
                conversation_id=conversation_id,
                model_used=model_used,
            )
        except ConversationNotFoundError as e:
            error = e
            raise _tool_error(-32002, str(e)) from e
        except sqlite3.Error as e:
            error = e
            raise _tool_error(-32603, f"Failed to save messages: {e}") from e

        response = result.model_dump(by_alias=True, mode="json")
        return response

    finally:
        telemetry.log_tool_call(
            tool_name="save_chat_messages",
            parameters={"user_id": user_id},
            response=response,
            error=error,
        )


@mcp.tool()
async def generate_missing_embeddings(user_id: int, limit: int | None = None) -> dict[str, Any]:
    """Generate embeddings for a user's messages that have none yet

    Args:
        user_id: Owner of the messages
        limit: Maximum number of messages to process (default: 100)

    Returns:
        dict: Processed, succeeded and failed counts with up to 5 errors
    """
    services = await _get_services()
    telemetry = get_telemetry_service(services.config)
    error: Exception | None = None
    response = None

    try:
        if limit is not None and limit < 1:
            error = ValueError(f"limit must be positive, got: {limit}")
            raise _tool_error(-32602, str(error))

        try:
            result = await services.backfill_job.run(user_id, limit=limit)
        except sqlite3.Error as e:
            error = e
            raise _tool_error(-32603, f"Failed to generate embeddings: {e}") from e

        response = result.model_dump(by_alias=True, mode="json", exclude_none=True)
        return response

    finally:
        telemetry.log_tool_call(
            tool_name="generate_missing_embeddings",
            parameters={"user_id": user_id, "limit": limit},
            response=response,
            error=error,
        )


@mcp.tool()
async def get_embedding_stats(user_id: int) -> dict[str, Any]:
    """Report how many of a user's messages have embeddings, per model

    Args:
        user_id: Owner of the messages

    Returns:
        dict: Totals, coverage percentage and per-model counts
    """
    services = await _get_services()
    telemetry = get_telemetry_service(services.config)
    error: Exception | None = None
    response = None

    try:
        try:
            stats = await services.embedding_store.get_stats(
                user_id, current_model=services.embedder.model_name
            )
        except sqlite3.Error as e:
            error = e
            raise _tool_error(-32603, f"Failed to fetch stats: {e}") from e

        response = stats.model_dump(mode="json")
        return response

    finally:
        telemetry.log_tool_call(
            tool_name="get_embedding_stats",
            parameters={"user_id": user_id},
            response=response,
            error=error,
        )


# Both routes (/ and /health) point to the same function
@mcp.custom_route("/", methods=["GET"])
@mcp.custom_route("/health", methods=["GET"])
async def health_check(request):
    services = await _get_services()
    try:
        services.db.check_integrity()
    except (IntegrityCheckError, sqlite3.Error) as e:
        return JSONResponse({"status": "error", "error": str(e)}, status_code=503)
    return JSONResponse({"status": "ok"})


def _startup_sync(config: AppConfig) -> None:
    """Start the periodic backfill sweep if enabled"""
    global _backfill_scheduler, _scheduler

    if not config.backfill_schedule_enabled:
        logger.info("Scheduled embedding backfill is disabled")
        return

    try:
        logger.info("Initializing scheduled embedding backfill")
        _scheduler = BackgroundScheduler()
        _backfill_scheduler = BackfillScheduler(config)
        _backfill_scheduler.configure_scheduler_sync(
            scheduler=_scheduler,
            interval_hours=config.backfill_interval_hours,
        )
        _scheduler.start()
        logger.info("Scheduled embedding backfill started successfully")
    except Exception as e:
        # The server is still useful without the sweep
        logger.error(f"Failed to start scheduled embedding backfill: {e}")


def _shutdown_sync() -> None:
    """Gracefully shutdown the backfill scheduler"""
    if _backfill_scheduler:
        try:
            _backfill_scheduler.stop_scheduler_sync()
        except Exception as e:
            logger.error(f"Error shutting down backfill scheduler: {e}")

    if _scheduler:
        try:
            logger.info("Shutting down backfill scheduler")
            _scheduler.shutdown(wait=False)
        except Exception as e:
            logger.error(f"Error shutting down scheduler: {e}")


def main() -> None:
    """Entry point for the MCP server"""
    config = get_config()
    _startup_sync(config)

    try:
        mcp.run(transport="streamable-http", host=config.mcp_host, port=config.mcp_port)
    finally:
        _shutdown_sync()


if __name__ == "__main__":
    main()
