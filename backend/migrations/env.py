import os
import sys
from logging.config import fileConfig

from sqlalchemy import engine_from_config, pool
from alembic import context

# backend/ 를 import 경로에 추가 (urchin 패키지)
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from urchin.config import DATABASE_URL  # noqa: E402
from urchin.db import Base  # noqa: E402
from urchin import models  # noqa: E402,F401

config = context.config
if config.config_file_name is not None:
    fileConfig(config.config_file_name)


def store_url() -> str:
    """
    Explicit `sqlalchemy.url` first, then ALEMBIC_DB_URL, then the client's own
    store URL. Migrations run synchronously, so the aiosqlite driver is dropped.
    """
    url = config.get_main_option("sqlalchemy.url") or os.getenv("ALEMBIC_DB_URL") or DATABASE_URL
    return url.replace("+aiosqlite", "")


# SQLite 는 ALTER 가 제한적이라 batch 모드로 생성
MIGRATION_OPTIONS = {"target_metadata": Base.metadata, "render_as_batch": True}


if context.is_offline_mode():
    context.configure(
        url=store_url(),
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        **MIGRATION_OPTIONS,
    )
    with context.begin_transaction():
        context.run_migrations()
else:
    section = config.get_section(config.config_ini_section) or {}
    section["sqlalchemy.url"] = store_url()
    engine = engine_from_config(section, prefix="sqlalchemy.", poolclass=pool.NullPool)
    with engine.connect() as connection:
        context.configure(connection=connection, **MIGRATION_OPTIONS)
        with context.begin_transaction():
            context.run_migrations()
