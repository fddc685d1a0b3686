"""TradePilot API — FastAPI application entry point.

Invariants:
    - Routes registered explicitly (no auto-discovery)
    - Global error handlers map TradePilotError → structured JSON responses
    - CORS configured from settings (not hardcoded)
    - Database, Anthropic client, registry and workflow built once in the lifespan
      and shared through app.state

Design Decisions:
    - Lifespan over @app.on_event: cleaner startup/shutdown pairing
    - Tool handlers come from the host via the tool_handlers setting; with none bound
      the API still serves health, catalogue and journal endpoints
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from tradepilot.api.error_handlers import register_error_handlers
from tradepilot.api.routes import health, runs, system, tools
from tradepilot.config import get_settings
from tradepilot.core.checklist_guard import ChecklistGuard
from tradepilot.core.daily_loss import DailyLossTracker
from tradepilot.core.phase_machine import default_phase_configs
from tradepilot.infrastructure.anthropic_client import ResilientAnthropicClient
from tradepilot.infrastructure.checklist_config import load_checklist_config
from tradepilot.infrastructure.database import init_db
from tradepilot.infrastructure.observability import setup_logging
from tradepilot.services.phased_workflow import PhasedWorkflow
from tradepilot.services.tool_catalog import build_registry, load_handlers

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup/shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.log_level, settings.log_format)
    manager = init_db(
        settings.database_url,
        pool_size=settings.database_pool_size,
        max_overflow=settings.database_max_overflow,
    )
    await manager.create_tables()

    client = ResilientAnthropicClient(
        api_key=settings.anthropic_api_key,
        max_retries=settings.anthropic_max_retries,
        base_delay_ms=settings.anthropic_base_delay_ms,
        max_delay_ms=settings.anthropic_max_delay_ms,
        timeout_seconds=settings.anthropic_timeout_seconds,
    )
    registry = build_registry(load_handlers(settings.tool_handlers), settings.dry_run)
    tracker = DailyLossTracker(max_daily_loss=settings.max_daily_loss)
    app.state.registry = registry
    app.state.loss_tracker = tracker
    app.state.workflow = PhasedWorkflow(
        client, registry,
        ChecklistGuard(load_checklist_config(settings.checklist_config_path)),
        mode=settings.trading_mode,
        model=settings.agent_model,
        max_tokens=settings.agent_max_tokens,
        correction_threshold=settings.correction_threshold,
        max_llm_calls=settings.max_llm_calls,
        phase_configs=default_phase_configs(
            settings.analysis_max_steps,
            settings.validation_max_steps,
            settings.execution_max_steps,
        ),
        kill_state_provider=tracker.kill_switch_fields,
    )
    logger.info(
        f"TradePilot API started ({len(registry)} tools, dry_run={settings.dry_run})",
    )
    yield
    await manager.dispose()
    logger.info("TradePilot API shutting down")


app = FastAPI(title="TradePilot API", version="0.1.0", lifespan=lifespan)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health.router)
app.include_router(runs.router)
app.include_router(tools.router)
app.include_router(system.router)

register_error_handlers(app)
