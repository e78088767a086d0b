"""Test Alembic migrations: upgrade, downgrade, and structural checks.

Runs against a throwaway SQLite file so no database server is needed.
"""

import os

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import create_engine, inspect

from ums.db.base import Base
import ums.db.models  # noqa: F401


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

ALEMBIC_INI = os.path.join(os.path.dirname(__file__), "..", "..", "alembic.ini")

EXPECTED_TABLES = {
    "organizations",
    "departments",
    "roles",
    "users",
    "user_roles",
    "course_tabs",
    "courses",
    "course_tab_approvals",
    "course_enrollments",
    "course_enrollment_approvals",
    "course_enrollment_history",
    "enrollment_email_history",
}


@pytest.fixture
def database_url(tmp_path):
    return f"sqlite:///{tmp_path / 'migrations.db'}"


@pytest.fixture
def alembic_cfg(database_url) -> Config:
    cfg = Config(ALEMBIC_INI)
    cfg.set_main_option("sqlalchemy.url", database_url)
    cfg.attributes["configure_logger"] = False
    return cfg


def _table_names(url: str) -> set:
    engine = create_engine(url)
    try:
        return set(inspect(engine).get_table_names()) - {"alembic_version"}
    finally:
        engine.dispose()


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


@pytest.mark.integration
class TestMigrations:
    """Run upgrade, verify, downgrade, verify."""

    def test_upgrade_creates_all_tables(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")

        assert _table_names(database_url) == EXPECTED_TABLES

    def test_migrated_columns_match_models(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")

        engine = create_engine(database_url)
        try:
            inspector = inspect(engine)
            for name, table in Base.metadata.tables.items():
                migrated = {c["name"] for c in inspector.get_columns(name)}
                assert migrated == set(table.columns.keys()), name
        finally:
            engine.dispose()

    def test_models_and_migrations_declare_same_tables(self):
        assert set(Base.metadata.tables) == EXPECTED_TABLES

    def test_enrollment_uniqueness_survives_migration(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")

        engine = create_engine(database_url)
        try:
            constraints = inspect(engine).get_unique_constraints("course_enrollments")
        finally:
            engine.dispose()

        assert any(set(c["column_names"]) == {"course_id", "user_id"} for c in constraints)

    def test_downgrade_removes_all_tables(self, alembic_cfg, database_url):
        command.upgrade(alembic_cfg, "head")
        command.downgrade(alembic_cfg, "base")

        assert _table_names(database_url) == set()
