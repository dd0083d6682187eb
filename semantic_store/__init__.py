"""Semantic record store: ideas and memories with filtered cosine search on LanceDB."""

from .config import ProvisionPolicy, StoreConfig
from .embedding import (
    EmbeddingAdapter,
    EmbeddingProvider,
    EmbeddingResult,
    GoogleEmbeddingProvider,
    HashEmbeddingProvider,
    OllamaEmbeddingProvider,
    create_provider,
)
from .errors import (
    ConfigurationError,
    EmbeddingDimensionMismatch,
    EmbeddingFailed,
    ProviderError,
    StoreError,
    StoreUnavailable,
    ValidationError,
)
from .kinds import IDEAS, MEMORIES, RecordKind
from .logging_config import configure_logging
from .models import (
    Idea,
    IdeaCategory,
    IdeaPriority,
    IdeaStatus,
    Memory,
    RecordFilter,
    Reminder,
    ReminderInput,
    ReminderType,
    SearchResult,
)
from .store import SemanticStore, idea_store, memory_store

__version__ = "0.1.0"

__all__ = [
    "IDEAS",
    "MEMORIES",
    "ConfigurationError",
    "EmbeddingAdapter",
    "EmbeddingDimensionMismatch",
    "EmbeddingFailed",
    "EmbeddingProvider",
    "EmbeddingResult",
    "GoogleEmbeddingProvider",
    "HashEmbeddingProvider",
    "Idea",
    "IdeaCategory",
    "IdeaPriority",
    "IdeaStatus",
    "Memory",
    "OllamaEmbeddingProvider",
    "ProviderError",
    "ProvisionPolicy",
    "RecordFilter",
    "RecordKind",
    "Reminder",
    "ReminderInput",
    "ReminderType",
    "SearchResult",
    "SemanticStore",
    "StoreConfig",
    "StoreError",
    "StoreUnavailable",
    "ValidationError",
    "configure_logging",
    "create_provider",
    "idea_store",
    "memory_store",
]
