"""Record, reminder and filter models shared by both record kinds."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, TypeVar

import pydantic
from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from .errors import ValidationError

# =============================================================================
# Enumerations
# =============================================================================


class IdeaCategory(str, Enum):
    STRATEGY = "strategy"
    PRODUCT = "product"
    SALES = "sales"
    PARTNERSHIPS = "partnerships"
    COMPETITIVE = "competitive"
    MARKET = "market"
    TEAM = "team"
    OPERATIONS = "operations"


class IdeaPriority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"


class IdeaStatus(str, Enum):
    ACTIVE = "active"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"


class ReminderType(str, Enum):
    ONCE = "once"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


# =============================================================================
# Time helpers
# =============================================================================


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    """Naive datetimes are taken to be UTC."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


# =============================================================================
# Reminders
# =============================================================================


class ReminderInput(BaseModel):
    """A reminder to attach to a record on create or update."""

    model_config = ConfigDict(extra="forbid")

    type: ReminderType = ReminderType.ONCE
    scheduled_for: datetime
    message: str | None = None


class Reminder(BaseModel):
    id: str
    record_id: str
    type: ReminderType
    scheduled_for: datetime
    message: str | None = None
    is_active: bool = True
    is_sent: bool = False
    created_at: datetime
    updated_at: datetime


# =============================================================================
# Records
# =============================================================================


class BaseRecord(BaseModel):
    """Fields common to every record kind. The vector is never part of it."""

    id: str
    tags: list[str] = Field(default_factory=list)
    owner_id: str | None = None
    conversation_id: int | None = None
    created_at: datetime
    updated_at: datetime
    reminders: list[Reminder] = Field(default_factory=list)


class Idea(BaseRecord):
    title: str
    content: str
    category: IdeaCategory
    priority: IdeaPriority
    status: IdeaStatus
    owner_id: str


class Memory(BaseRecord):
    content: str
    category: str | None = None
    importance: int = 1
    source: str | None = None


def _require_text(value: str) -> str:
    if not value.strip():
        raise ValueError("must not be blank")
    return value


Text = Annotated[str, AfterValidator(_require_text)]


class IdeaCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Text
    content: Text
    category: IdeaCategory = IdeaCategory.STRATEGY
    priority: IdeaPriority = IdeaPriority.MEDIUM
    status: IdeaStatus = IdeaStatus.ACTIVE
    tags: list[str] = Field(default_factory=list)
    owner_id: Text
    conversation_id: int | None = None
    reminders: list[ReminderInput] | None = None


class IdeaUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    title: Text | None = None
    content: Text | None = None
    category: IdeaCategory | None = None
    priority: IdeaPriority | None = None
    status: IdeaStatus | None = None
    tags: list[str] | None = None
    reminders: list[ReminderInput] | None = None


class MemoryCreate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: Text
    category: str | None = None
    importance: int = 1
    source: str | None = None
    tags: list[str] = Field(default_factory=list)
    owner_id: str | None = None
    conversation_id: int | None = None
    reminders: list[ReminderInput] | None = None


class MemoryUpdate(BaseModel):
    model_config = ConfigDict(extra="forbid")

    content: Text | None = None
    category: str | None = None
    importance: int | None = None
    source: str | None = None
    tags: list[str] | None = None
    reminders: list[ReminderInput] | None = None


# =============================================================================
# Queries
# =============================================================================


class RecordFilter(BaseModel):
    """Conjunction of optional predicates. Unset fields do not constrain."""

    model_config = ConfigDict(extra="forbid")

    owner_id: str | None = None
    conversation_id: int | None = None
    category: str | None = None
    priority: str | None = None
    status: str | None = None
    tags: list[str] | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None

    @field_validator("category", "priority", "status", mode="before")
    @classmethod
    def _enum_value(cls, value: Any) -> Any:
        if isinstance(value, Enum):
            return value.value
        return value


@dataclass(frozen=True)
class SearchResult:
    record: BaseRecord
    score: float
    distance: float


ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_model(model: type[ModelT], data: ModelT | dict[str, Any] | None) -> ModelT:
    """Coerce ``data`` into ``model``, raising this package's ValidationError."""
    if isinstance(data, model):
        return data
    if data is None:
        data = {}
    if isinstance(data, BaseModel):
        data = data.model_dump(exclude_unset=True)
    try:
        return model.model_validate(data)
    except pydantic.ValidationError as exc:
        first = exc.errors()[0]
        loc = ".".join(str(part) for part in first.get("loc", ())) or "input"
        raise ValidationError(f"Invalid {model.__name__}: {loc}: {first.get('msg')}", field=loc) from exc
