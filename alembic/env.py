from __future__ import annotations

import os
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

from common_core.config import settings
from common_core.db import Base

# MIGRATION_TARGET selects the database: "site" (producer queue + credential),
# "monitor" (receiver + dashboards) or "all" for a single shared dev database.
_migration_target = os.environ.get("MIGRATION_TARGET", "monitor").lower()

if _migration_target in ("site", "all"):
    from apps.site_agent import models as site_models  # noqa: F401
if _migration_target in ("monitor", "all"):
    from apps.monitor_backend import models as monitor_models  # noqa: F401

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name, disable_existing_loggers=False)

target_metadata = Base.metadata


def get_url() -> str:
    url = os.environ.get("SQLALCHEMY_DATABASE_URL")
    if url:
        return url
    return settings.site_db_url if _migration_target == "site" else settings.monitor_db_url


def run_migrations_offline() -> None:
    context.configure(
        url=get_url(),
        target_metadata=target_metadata,
        literal_binds=True,
        compare_type=True,
        dialect_opts={"paramstyle": "named"},
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    configuration = config.get_section(config.config_ini_section) or {}
    configuration["sqlalchemy.url"] = get_url()

    connectable = engine_from_config(configuration, prefix="sqlalchemy.", poolclass=pool.NullPool)

    with connectable.connect() as connection:
        context.configure(connection=connection, target_metadata=target_metadata, compare_type=True)

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
