"""
Ticket Automation - Main Application
====================================

Workflow, auto-assignment and SLA automation for the ticketing platform.

Modules:
- Workflows: Condition-driven action templates run on ticket and asset events
- Auto-Assignment: Rule-based routing of new tickets to technicians
- SLA Tracking: Business-hours deadlines, warnings, breaches and escalation

The HTTP surface only administers definitions and reads state. Ticket
mutations in the host application reach the engines through the
TicketAutomation facade kept on app.state.automation.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

# Configuration and Core
from ticket_automation.config import settings
from ticket_automation.core import (
    InvalidDefinitionException,
    ResourceNotFoundException,
    ValidationException,
)

# Infrastructure
from ticket_automation.infrastructure.container import SessionServicesFactory
from ticket_automation.infrastructure.database import init_database, close_database, create_tables
from ticket_automation.infrastructure.messaging import WhatsAppGateway
from ticket_automation.lifecycle import TicketAutomation
from ticket_automation.shared.infrastructure.dispatch import TaskDispatcher
from ticket_automation.sla.infrastructure import SLAScheduler

# Module Routers
from ticket_automation.workflows.interfaces import workflows_router
from ticket_automation.assignment.interfaces import assignment_router
from ticket_automation.sla.interfaces import sla_router

# Middleware and Logging
from ticket_automation.shared.api.middleware import (
    CorrelationIDMiddleware,
    LoggingMiddleware,
    global_exception_handler,
    invalid_definition_handler,
    not_found_handler,
    validation_handler,
)
from ticket_automation.shared.infrastructure.logging import setup_logging, get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan manager.

    STARTUP:
    1. Setup structured logging
    2. Initialize database and create tables
    3. Create the WhatsApp gateway and the task dispatcher
    4. Start the SLA sweep scheduler

    SHUTDOWN:
    1. Stop the scheduler
    2. Wait for in-flight automation tasks
    3. Close the gateway and database connections
    """
    # === STARTUP ===
    setup_logging(level=settings.log_level, environment=settings.environment)
    logger.info("Starting Ticket Automation", extra={
        "version": settings.app_version,
        "environment": settings.environment
    })

    init_database()

    # Use migrations in production
    logger.info("Creating database tables")
    try:
        await create_tables()
    except Exception as e:
        logger.warning(f"Database not available - running in degraded mode: {e}")

    messaging = WhatsAppGateway(
        phone_number_id=settings.whatsapp_phone_number_id,
        access_token=settings.whatsapp_access_token,
        api_version=settings.whatsapp_api_version,
        timeout_seconds=settings.whatsapp_timeout_seconds,
    )
    dispatcher = TaskDispatcher(
        max_attempts=settings.automation_max_attempts,
        backoff_seconds=settings.automation_retry_backoff,
        dead_letter_capacity=settings.dead_letter_capacity,
    )
    automation = TicketAutomation(SessionServicesFactory(messaging, settings), dispatcher)

    scheduler = SLAScheduler(
        interval_seconds=settings.sla_check_interval,
        run_on_start=settings.sla_sweep_on_start,
    )
    await scheduler.start(automation.check_all_slas)

    app.state.settings = settings
    app.state.messaging = messaging
    app.state.automation = automation
    app.state.sla_scheduler = scheduler

    logger.info("Ticket Automation started successfully")

    yield  # Application runs here

    # === SHUTDOWN ===
    logger.info("Shutting down Ticket Automation")

    await scheduler.stop()
    await dispatcher.drain()
    await messaging.close()
    await close_database()

    logger.info("Ticket Automation shutdown complete")


def create_app() -> FastAPI:
    app = FastAPI(
        title="Ticket Automation API",
        description="""
        ## Ticket Automation Engine

        ### ⚙️ Workflows
        - `GET/POST /workflows/templates` - Manage workflow templates
        - `PATCH /workflows/templates/{id}/toggle` - Enable or disable a template
        - `GET /workflows/executions` - Execution history

        ### 👥 Auto-Assignment
        - `GET/POST /workflows/assignment-rules` - Manage assignment rules
        - `GET /workflows/assignment-stats` - Technician workload

        ### ⏱️ SLA Tracking
        - `GET/POST /workflows/sla-policies` - Manage SLA policies
        - `GET /workflows/ticket-sla/{ticket_id}` - SLA state of a ticket
        - `GET /workflows/sla-stats` - Compliance statistics
        """,
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # === CORS Middleware ===
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(LoggingMiddleware)
    app.add_middleware(CorrelationIDMiddleware)
    app.add_exception_handler(ResourceNotFoundException, not_found_handler)
    app.add_exception_handler(ValidationException, validation_handler)
    app.add_exception_handler(InvalidDefinitionException, invalid_definition_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    # === Include Module Routers ===
    app.include_router(workflows_router)
    app.include_router(assignment_router)
    app.include_router(sla_router)

    app.add_api_route("/health", health_check, methods=["GET"], tags=["Health"])
    app.add_api_route("/", root, methods=["GET"], tags=["Root"])
    return app


async def health_check(request: Request):
    """
    Health check endpoint for load balancers and orchestrators.

    Reports scheduler state and the automation task backlog.
    """
    scheduler = getattr(request.app.state, "sla_scheduler", None)
    automation = getattr(request.app.state, "automation", None)
    messaging = getattr(request.app.state, "messaging", None)

    checks = {
        "sla_scheduler": "running" if scheduler and scheduler.is_running else "stopped",
        "whatsapp": "configured" if messaging and messaging.is_configured else "not_configured",
    }
    if scheduler and scheduler.next_run_at:
        checks["next_sla_sweep"] = scheduler.next_run_at.isoformat()
    if scheduler and scheduler.last_summary is not None:
        checks["last_sla_sweep"] = scheduler.last_summary
    if automation is not None:
        checks["pending_tasks"] = automation.dispatcher.pending
        checks["dead_letters"] = len(automation.dispatcher.dead_letters)

    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
        "checks": checks
    }


async def root():
    """Root endpoint with API information."""
    return {
        "service": "Ticket Automation",
        "version": settings.app_version,
        "modules": ["workflows", "auto_assignment", "sla_tracking"],
        "docs": "/docs",
        "health": "/health"
    }


app = create_app()


# === Development Entry Point ===

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "ticket_automation.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.environment == "development",
        log_level="info"
    )
