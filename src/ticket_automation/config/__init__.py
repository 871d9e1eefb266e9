"""
Configuration Module
====================

Application settings and configuration management using Pydantic.
"""

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, field_validator
from functools import lru_cache
from typing import List, Optional


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.

    Uses Pydantic for validation and type safety.
    """

    # ========== Application ==========
    app_name: str = Field(default="ticket-automation", description="Application name")
    app_version: str = Field(default="1.0.0", description="Application version")
    environment: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Enable debug mode")
    log_level: str = Field(default="INFO", description="Root log level")

    # ========== Server ==========
    host: str = Field(default="0.0.0.0", description="Server host")
    port: int = Field(default=8000, description="Server port", ge=1, le=65535)

    # ========== Database ==========
    database_url: str = Field(
        default="postgresql+asyncpg://localhost:5432/assets",
        description="PostgreSQL connection URL (async)"
    )
    db_pool_size: int = Field(default=5, description="Database connection pool size", ge=1)
    db_max_overflow: int = Field(default=10, description="Max overflow connections", ge=0)

    # ========== SLA Tracking ==========
    sla_check_interval: int = Field(
        default=60,
        description="Seconds between SLA sweeps",
        ge=10
    )
    sla_sweep_on_start: bool = Field(
        default=True,
        description="Run the first SLA sweep at startup instead of one interval later"
    )
    business_hours_start: int = Field(default=9, description="Business day opening hour", ge=0, le=23)
    business_hours_end: int = Field(default=17, description="Business day closing hour", ge=1, le=24)
    business_timezone: str = Field(
        default="UTC",
        description="IANA time zone used for business-hours arithmetic"
    )

    # ========== Notifications ==========
    notification_dedupe_seconds: float = Field(
        default=5.0,
        description="Window in which an identical notification is not created twice",
        ge=0
    )

    # ========== Automation Dispatch ==========
    automation_max_attempts: int = Field(
        default=3,
        description="Attempts per automation task before it is dead-lettered",
        ge=1,
        le=10
    )
    automation_retry_backoff: float = Field(
        default=0.5,
        description="Base seconds for exponential retry backoff",
        ge=0
    )
    dead_letter_capacity: int = Field(
        default=500,
        description="Dead letters kept in memory for inspection",
        ge=1
    )

    # ========== WhatsApp Cloud API ==========
    whatsapp_phone_number_id: Optional[str] = Field(
        default=None,
        description="WhatsApp Business phone number ID"
    )
    whatsapp_access_token: Optional[str] = Field(
        default=None,
        description="WhatsApp Cloud API access token"
    )
    whatsapp_api_version: str = Field(default="v21.0", description="Graph API version")
    whatsapp_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout for WhatsApp API calls",
        ge=0.1,
        le=120
    )

    # ========== CORS ==========
    cors_origins: List[str] = Field(
        default=["http://localhost:3000", "http://localhost:5173"],
        description="Allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        """Ensure environment is one of allowed values."""
        allowed = {"development", "staging", "production"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @field_validator("business_hours_end")
    @classmethod
    def validate_business_hours(cls, v: int, info) -> int:
        """Closing hour must come after opening hour."""
        start = info.data.get("business_hours_start")
        if start is not None and v <= start:
            raise ValueError("business_hours_end must be after business_hours_start")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Returns cached Settings instance."""
    return Settings()


# Global settings instance
settings = get_settings()


# ========== Constants ==========

class EntityType(str):
    """Entities that workflows can be attached to."""
    TICKET = "ticket"
    ASSET = "asset"


class WorkflowTrigger(str):
    """Lifecycle events that fire workflows."""
    CREATED = "created"
    STATUS_CHANGED = "status_changed"
    ASSIGNED = "assigned"
    PRIORITY_CHANGED = "priority_changed"
    UPDATED = "updated"


class ConditionOperator(str):
    """Operators available in workflow and assignment conditions."""
    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    IN = "in"
    NOT_IN = "not_in"


class ActionType(str):
    """Workflow action types."""
    ASSIGN = "assign"
    CHANGE_STATUS = "change_status"
    CHANGE_PRIORITY = "change_priority"
    ADD_COMMENT = "add_comment"
    SEND_NOTIFICATION = "send_notification"
    SEND_WHATSAPP = "send_whatsapp"


class ExecutionStatus(str):
    """Workflow execution states."""
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


class AssignmentType(str):
    """Auto-assignment policies."""
    ROUND_ROBIN = "round_robin"
    LEAST_BUSY = "least_busy"
    SKILL_BASED = "skill_based"
    LOCATION_BASED = "location_based"
    SPECIFIC_USER = "specific_user"


class Priority(str):
    """Ticket priority levels."""
    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class TicketStatus(str):
    """Ticket lifecycle statuses."""
    OPEN = "open"
    IN_PROGRESS = "in_progress"
    RESOLVED = "resolved"
    CLOSED = "closed"


class UserRole(str):
    """User roles."""
    ADMIN = "ADMIN"
    TECHNICIAN = "TECHNICIAN"
    USER = "USER"


class SLAType(str):
    """Types of SLA clocks."""
    RESPONSE = "response"
    RESOLUTION = "resolution"


class SLAStatus(str):
    """Overall SLA status of a ticket."""
    ON_TRACK = "on_track"
    AT_RISK = "at_risk"
    BREACHED = "breached"


class NotificationType(str):
    """In-app notification types raised by automation."""
    WORKFLOW_ACTION = "workflow_action"
    SLA_WARNING = "sla_warning"
    SLA_BREACH = "sla_breach"
    SLA_ESCALATION = "sla_escalation"


# ========== Lists for validation ==========

VALID_ENTITY_TYPES = [EntityType.TICKET, EntityType.ASSET]
VALID_TRIGGERS = [
    WorkflowTrigger.CREATED, WorkflowTrigger.STATUS_CHANGED,
    WorkflowTrigger.ASSIGNED, WorkflowTrigger.PRIORITY_CHANGED,
    WorkflowTrigger.UPDATED
]
VALID_PRIORITIES = [
    Priority.CRITICAL, Priority.HIGH,
    Priority.MEDIUM, Priority.LOW
]
ACTIVE_TICKET_STATUSES = [TicketStatus.OPEN, TicketStatus.IN_PROGRESS]
CLOSED_TICKET_STATUSES = [TicketStatus.RESOLVED, TicketStatus.CLOSED]
VALID_SLA_STATUSES = [SLAStatus.ON_TRACK, SLAStatus.AT_RISK, SLAStatus.BREACHED]
