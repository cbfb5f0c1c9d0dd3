import os
import sqlite3
import unittest

from app import create_app
from app.config import Config
from app.db import close_db
from app.db_migrations import to_sqlalchemy_url
from tests.helpers.temp_db import TempDbSandbox


def _table_exists(db_path: str, table_name: str) -> bool:
    conn = sqlite3.connect(db_path)
    try:
        row = conn.execute(
            "SELECT name FROM sqlite_master WHERE type='table' AND name = ?",
            (table_name,),
        ).fetchone()
        return row is not None
    finally:
        conn.close()


class DbMigrationsTest(unittest.TestCase):
    def setUp(self) -> None:
        self._temp_db = TempDbSandbox(prefix="lifecycle_migrations")
        self.db_path = self._temp_db.db_path
        self._prev_env = os.environ.get("FLASK_ENV")
        os.environ["FLASK_ENV"] = "development"

    def tearDown(self) -> None:
        if self._prev_env is None:
            os.environ.pop("FLASK_ENV", None)
        else:
            os.environ["FLASK_ENV"] = self._prev_env
        self._temp_db.cleanup()

    def _build_app(self, *, testing: bool, db_auto_init: bool):
        return create_app(self._temp_db.make_config(Config, TESTING=testing, DB_AUTO_INIT=db_auto_init))

    def test_schema_not_created_by_default(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        with app.app_context():
            close_db()

        self.assertFalse(_table_exists(self.db_path, "purchase_requests"))

    def test_schema_created_with_explicit_dev_flag(self) -> None:
        app = self._build_app(testing=False, db_auto_init=True)
        with app.app_context():
            close_db()

        for table in ("purchase_requests", "negotiation_proposals", "negotiation_finalizations", "status_events"):
            self.assertTrue(_table_exists(self.db_path, table), table)

    def test_status_check_constraint(self) -> None:
        self._build_app(testing=False, db_auto_init=True)
        conn = sqlite3.connect(self.db_path)
        try:
            with self.assertRaises(sqlite3.IntegrityError):
                conn.execute("INSERT INTO purchase_requests (key, status) VALUES ('PR-X', 'Archived')")
        finally:
            conn.close()

    def test_flask_db_upgrade_and_downgrade(self) -> None:
        app = self._build_app(testing=False, db_auto_init=False)
        runner = app.test_cli_runner()

        upgrade_result = runner.invoke(args=["db", "upgrade"])
        self.assertEqual(upgrade_result.exit_code, 0, msg=upgrade_result.output)
        self.assertTrue(_table_exists(self.db_path, "negotiation_proposals"))

        downgrade_result = runner.invoke(args=["db", "downgrade", "base"])
        self.assertEqual(downgrade_result.exit_code, 0, msg=downgrade_result.output)
        self.assertFalse(_table_exists(self.db_path, "purchase_requests"))

        reupgrade_result = runner.invoke(args=["db", "upgrade"])
        self.assertEqual(reupgrade_result.exit_code, 0, msg=reupgrade_result.output)
        self.assertTrue(_table_exists(self.db_path, "purchase_requests"))

    def test_sqlalchemy_url_conversion(self) -> None:
        self.assertEqual(to_sqlalchemy_url("postgres://u:p@h/db"), "postgresql://u:p@h/db")
        self.assertTrue(to_sqlalchemy_url(self.db_path).startswith("sqlite:///"))
        with self.assertRaises(RuntimeError):
            to_sqlalchemy_url("")


if __name__ == "__main__":
    unittest.main()
