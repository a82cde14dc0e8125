"""Pydantic models for ``db.toml`` configuration."""

from pydantic import BaseModel, Field


# ============================================================================
# Configuration Models
# ============================================================================


class DatabaseProfile(BaseModel):
    """Database connection profile from db.toml."""

    url: str
    description: str = ""
    db_password: str | None = None  # For [YOUR-PASSWORD] placeholder substitution
    maintenance_db: str = "postgres"  # Cluster-wide objects are read from here


class ExportSettings(BaseModel):
    """``[export]`` section."""

    memory_ceiling_bytes: int = Field(default=8 * 1024 * 1024, gt=0)
    compression: str = "plain"


class ImportSettings(BaseModel):
    """``[import]`` section."""

    session_ttl_seconds: int = Field(default=3600, gt=0)
    session_store: str = "memory"  # "memory" or an async SQLAlchemy URL
    stall_limit: int = Field(default=3, ge=1)
    target_profile: str | None = None  # Used when a chunk omits ``server``


class ApiSettings(BaseModel):
    """``[api]`` section."""

    token: str | None = None


class PorterConfig(BaseModel):
    """Complete configuration from db.toml."""

    profiles: dict[str, DatabaseProfile] = Field(default_factory=dict)
    export: ExportSettings = Field(default_factory=ExportSettings)
    import_: ImportSettings = Field(default_factory=ImportSettings, alias="import")
    api: ApiSettings = Field(default_factory=ApiSettings)

    model_config = {"populate_by_name": True}
