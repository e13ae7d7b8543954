from logging.config import fileConfig

from alembic import context
from sqlalchemy import engine_from_config, pool

from consultbook.config import settings
from consultbook.database import Base
from consultbook import models  # noqa: F401 - registers every table on Base.metadata

config = context.config

if config.config_file_name is not None:
    fileConfig(config.config_file_name)

# An explicit -x url=... wins over the application settings.
database_url = context.get_x_argument(as_dictionary=True).get("url") or settings.DATABASE_URL

# ConfigParser interpolates %, so escape it before storing the URL.
config.set_main_option("sqlalchemy.url", database_url.replace("%", "%%"))

target_metadata = Base.metadata

# SQLite cannot ALTER constraints in place; batch mode rebuilds the table.
render_as_batch = database_url.startswith("sqlite")


def include_object(obj, name, type_, reflected, compare_to):
    # The overlap exclusion constraint is hand-written in the migrations and
    # has no model counterpart; keep autogenerate from dropping it.
    if type_ == "constraint" and name == "ex_appointment_no_overlap":
        return False
    return True


def run_migrations_offline() -> None:
    context.configure(
        url=config.get_main_option("sqlalchemy.url"),
        target_metadata=target_metadata,
        literal_binds=True,
        dialect_opts={"paramstyle": "named"},
        compare_type=True,
        render_as_batch=render_as_batch,
        include_object=include_object,
    )

    with context.begin_transaction():
        context.run_migrations()


def run_migrations_online() -> None:
    connectable = engine_from_config(
        config.get_section(config.config_ini_section, {}),
        prefix="sqlalchemy.",
        poolclass=pool.NullPool,
    )

    with connectable.connect() as connection:
        context.configure(
            connection=connection,
            target_metadata=target_metadata,
            compare_type=True,
            render_as_batch=render_as_batch,
            include_object=include_object,
        )

        with context.begin_transaction():
            context.run_migrations()


if context.is_offline_mode():
    run_migrations_offline()
else:
    run_migrations_online()
