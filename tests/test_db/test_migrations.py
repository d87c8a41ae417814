"""
Tests for the Alembic migrations.
"""

from sqlalchemy import create_engine, inspect

from goldsphere.db.commands import current_revision, downgrade_database, main, upgrade_database

HEAD = "3c1f9a2e7b10"
TABLES = {"users", "product", "portfolio", "orders", "order_items", "position"}


def table_names(url):
    engine = create_engine(url)
    try:
        return set(inspect(engine).get_table_names())
    finally:
        engine.dispose()


class TestMigrations:

    def test_upgrade_creates_schema(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'migrated.db'}"

        upgrade_database(url)

        assert TABLES <= table_names(url)
        assert current_revision(url) == HEAD

    def test_schema_matches_models(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'migrated.db'}"
        upgrade_database(url)

        engine = create_engine(url)
        try:
            columns = {c["name"] for c in inspect(engine).get_columns("position")}
        finally:
            engine.dispose()

        assert {
            "id", "user_id", "product_id", "portfolio_id", "purchase_date",
            "purchase_price", "market_price", "quantity", "status",
            "custody_service_id", "closed_date", "notes",
        } <= columns

    def test_downgrade_removes_schema(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'migrated.db'}"
        upgrade_database(url)

        downgrade_database(url)

        assert not (TABLES & table_names(url))
        assert current_revision(url) is None

    def test_cli(self, tmp_path):
        url = f"sqlite:///{tmp_path / 'cli.db'}"

        assert main(["--url", url, "upgrade"]) == 0
        assert current_revision(url) == HEAD
