"""Profile resolution and connection factories.

Profiles live in ``db.toml``. The active one is an explicit name, else the
``{PREFIX}DB_PROFILE`` env var (``PG_PORTER_DB_PROFILE`` by default), else
the only profile when exactly one is configured.

Usage:
    config = load_config()
    name, profile = get_profile(config)
    connect = catalog_factory(profile)
    with connect("appdb") as catalog:
        ...
"""

import os
from urllib.parse import quote, urlsplit, urlunsplit

from pg_porter.adapters.postgres import PsycopgImportTarget
from pg_porter.catalog.introspector import PgCatalog
from pg_porter.config.models import DatabaseProfile, ImportSettings, PorterConfig
from pg_porter.dump.exporter import CatalogFactory
from pg_porter.errors import ProfileNotFoundError
from pg_porter.importer.sessions import (
    ImportSessionStore,
    MemorySessionStore,
    SqlSessionStore,
)

DEFAULT_ENV_PREFIX = "PG_PORTER_"


# ============================================================================
# Profile Resolution
# ============================================================================


def get_active_profile_name(config: PorterConfig, env_prefix: str = DEFAULT_ENV_PREFIX) -> str:
    """Get active profile name.

    Priority:
    1. {env_prefix}DB_PROFILE env var (PG_PORTER_DB_PROFILE by default)
    2. The only profile in db.toml, if there is exactly one
    3. Raise ProfileNotFoundError

    Raises:
        ProfileNotFoundError: If no profile can be chosen
    """
    env_var = f"{env_prefix}DB_PROFILE"
    env_profile = os.environ.get(env_var)
    if env_profile:
        return env_profile
    if len(config.profiles) == 1:
        return next(iter(config.profiles))
    raise ProfileNotFoundError(
        "No database profile selected.\n"
        f"Pass --profile or set {env_var}=<name>.\n"
        f"Available profiles: {', '.join(config.profiles) or '(none)'}"
    )


def get_profile(
    config: PorterConfig,
    name: str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
) -> tuple[str, DatabaseProfile]:
    """Return ``(name, profile)`` for ``name`` or the active profile.

    Raises:
        ProfileNotFoundError: If the profile is not configured
    """
    if name is None:
        name = get_active_profile_name(config, env_prefix)
    if name not in config.profiles:
        raise ProfileNotFoundError(
            f"Profile '{name}' not found in db.toml.\n"
            f"Available profiles: {', '.join(config.profiles) or '(none)'}"
        )
    return name, config.profiles[name]


def resolve_url(profile: DatabaseProfile) -> str:
    """Resolve profile URL with password substitution."""
    url = profile.url
    if profile.db_password and "[YOUR-PASSWORD]" in url:
        url = url.replace("[YOUR-PASSWORD]", quote(profile.db_password, safe=""))
    return url


def with_database(url: str, database: str) -> str:
    """Return ``url`` pointing at ``database`` instead of its own dbname."""
    parts = urlsplit(url)
    return urlunsplit(parts._replace(path="/" + quote(database, safe="")))


# ============================================================================
# Connection Factories
# ============================================================================


def catalog_factory(profile: DatabaseProfile) -> CatalogFactory:
    """Build the ``connect(database)`` callable the server exporter expects.

    ``connect(None)`` opens the profile's maintenance database.
    """
    base_url = resolve_url(profile)

    def connect(database: str | None) -> PgCatalog:
        return PgCatalog(with_database(base_url, database or profile.maintenance_db))

    return connect


def open_catalog(profile: DatabaseProfile, database: str | None = None) -> PgCatalog:
    """Catalog on the profile's own database, or on ``database`` if given."""
    url = resolve_url(profile)
    return PgCatalog(with_database(url, database) if database else url)


def open_import_target(profile: DatabaseProfile, database: str | None = None) -> PsycopgImportTarget:
    url = resolve_url(profile)
    return PsycopgImportTarget(with_database(url, database) if database else url)


async def create_session_store(settings: ImportSettings) -> ImportSessionStore:
    """Memory store for ``session_store = "memory"``, otherwise a SQL store on that URL."""
    if settings.session_store == "memory":
        return MemorySessionStore(ttl_seconds=settings.session_ttl_seconds)
    store = SqlSessionStore(settings.session_store, ttl_seconds=settings.session_ttl_seconds)
    await store.init()
    return store
