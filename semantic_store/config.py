"""Store configuration loaded from the environment."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .errors import ConfigurationError

EMBEDDING_PROVIDERS = frozenset({"ollama", "google", "hash"})


class ProvisionPolicy(str, Enum):
    """What to do when the record table already exists at startup."""

    IDEMPOTENT = "idempotent"  # keep existing table and data
    RECREATE = "recreate"  # drop and rebuild, discards all rows


def _env(key: str, default: str | None = None) -> str | None:
    raw = os.environ.get(key)
    if raw is None or raw.strip() == "":
        return default
    return raw.strip()


def _get_google_api_key() -> str | None:
    """Get API key from environment or secrets file."""
    key = _env("GOOGLE_API_KEY") or _env("GEMINI_API_KEY")
    if key:
        return key
    secrets_path = Path.home() / ".secrets" / "GOOGLE_API_KEY"
    if secrets_path.exists():
        return secrets_path.read_text().strip()
    return None


@dataclass(frozen=True, slots=True)
class StoreConfig:
    """Configuration for one store instance (one record table).

    Required values are checked at construction so a misconfigured
    process fails at startup rather than on its first write.
    """

    uri: str
    table_name: str
    vector_dimension: int
    embedding_model: str
    embedding_provider: str = "ollama"  # ollama | google | hash
    ollama_base_url: str = "http://localhost:11434"
    google_api_key: str | None = field(default=None, repr=False)
    api_key: str | None = field(default=None, repr=False)  # LanceDB Cloud only
    region: str | None = None
    provision_policy: ProvisionPolicy = ProvisionPolicy.IDEMPOTENT
    default_threshold: float = 0.1
    default_search_limit: int = 10
    default_list_limit: int = 50
    max_limit: int = 100
    ann_min_rows: int = 256

    def __post_init__(self) -> None:
        if not self.uri or not str(self.uri).strip():
            raise ConfigurationError("uri (store connection string) is required")
        if not self.table_name or not self.table_name.strip():
            raise ConfigurationError("table_name (index name) is required")
        if not self.table_name.replace("_", "").replace("-", "").isalnum():
            raise ConfigurationError(f"Invalid table_name '{self.table_name}'")
        if not isinstance(self.vector_dimension, int) or self.vector_dimension <= 0:
            raise ConfigurationError(
                f"vector_dimension must be a positive integer, got {self.vector_dimension!r}"
            )
        if not self.embedding_model or not self.embedding_model.strip():
            raise ConfigurationError("embedding_model is required")
        if self.embedding_provider not in EMBEDDING_PROVIDERS:
            raise ConfigurationError(
                f"Invalid embedding_provider '{self.embedding_provider}'. "
                f"Valid: {sorted(EMBEDDING_PROVIDERS)}"
            )
        if not isinstance(self.provision_policy, ProvisionPolicy):
            raise ConfigurationError(f"Invalid provision_policy {self.provision_policy!r}")
        if not 0 < self.default_search_limit <= self.max_limit:
            raise ConfigurationError("default_search_limit must be within (0, max_limit]")
        if not 0 < self.default_list_limit <= self.max_limit:
            raise ConfigurationError("default_list_limit must be within (0, max_limit]")
        if not -1.0 <= self.default_threshold <= 1.0:
            raise ConfigurationError("default_threshold must be within [-1, 1]")

    @classmethod
    def from_env(cls, default_table: str) -> StoreConfig:
        """Build a config from environment variables.

        The table name can be overridden per kind, e.g. ``SEMANTIC_STORE_IDEAS_TABLE``.
        """
        table_key = f"SEMANTIC_STORE_{default_table.upper()}_TABLE"
        dim_raw = _env("EMBEDDING_DIM")
        if dim_raw is None:
            raise ConfigurationError("EMBEDDING_DIM is required")
        if not dim_raw.isdigit():
            raise ConfigurationError(f"EMBEDDING_DIM must be an integer, got '{dim_raw}'")
        policy_raw = (_env("SEMANTIC_STORE_PROVISION", ProvisionPolicy.IDEMPOTENT.value) or "").lower()
        try:
            policy = ProvisionPolicy(policy_raw)
        except ValueError as exc:
            raise ConfigurationError(
                f"Invalid SEMANTIC_STORE_PROVISION '{policy_raw}'. "
                f"Valid: {[p.value for p in ProvisionPolicy]}"
            ) from exc

        provider = (_env("EMBEDDING_PROVIDER", "ollama") or "ollama").lower()
        return cls(
            uri=_env("SEMANTIC_STORE_URI") or "",
            table_name=_env(table_key, default_table) or default_table,
            vector_dimension=int(dim_raw),
            embedding_model=_env("EMBEDDING_MODEL") or "",
            embedding_provider=provider,
            ollama_base_url=_env("OLLAMA_BASE_URL", "http://localhost:11434") or "",
            google_api_key=_get_google_api_key() if provider == "google" else None,
            api_key=_env("LANCEDB_API_KEY"),
            region=_env("LANCEDB_REGION"),
            provision_policy=policy,
        )
