"""
The Alembic baseline builds the same schema as the ORM models.
"""
from sqlalchemy import create_engine, inspect

from leadmarket.db.base import Base
from leadmarket.db.migrate import run_migrations


def test_upgrade_head_creates_all_model_tables(tmp_path, settings):
    url = f"sqlite:///{tmp_path / 'migrated.db'}"

    run_migrations(settings.with_overrides(database_url=url))

    engine = create_engine(url)
    inspector = inspect(engine)
    tables = set(inspector.get_table_names())
    migrated_columns = {name: {col["name"] for col in inspector.get_columns(name)} for name in Base.metadata.tables}
    engine.dispose()
    assert set(Base.metadata.tables) <= tables
    assert "alembic_version" in tables
    for table in Base.metadata.sorted_tables:
        assert set(table.columns.keys()) <= migrated_columns[table.name], table.name


def test_upgrade_is_repeatable(tmp_path, settings):
    url = f"sqlite:///{tmp_path / 'twice.db'}"
    migrated = settings.with_overrides(database_url=url)

    run_migrations(migrated)
    run_migrations(migrated)
