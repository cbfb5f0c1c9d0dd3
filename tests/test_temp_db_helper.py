import os
import sqlite3
import tempfile
import unittest

from app.config import Config
from tests.helpers.temp_db import TempDbSandbox, assert_safe_temp_db_path


class TempDbHelperTest(unittest.TestCase):
    def test_temp_db_create_and_cleanup(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_sanity")
        db_path = sandbox.db_path
        temp_dir = sandbox.temp_dir

        self.assertTrue(os.path.exists(temp_dir))
        self.assertTrue(os.path.realpath(db_path).startswith(os.path.realpath(tempfile.gettempdir())))

        conn = sqlite3.connect(db_path)
        try:
            conn.execute("CREATE TABLE IF NOT EXISTS sanity (id INTEGER PRIMARY KEY, value TEXT)")
            conn.execute("INSERT INTO sanity (value) VALUES ('ok')")
            row = conn.execute("SELECT COUNT(*) FROM sanity").fetchone()
            self.assertEqual(int(row[0]), 1)
        finally:
            conn.close()

        sandbox.cleanup()
        self.assertFalse(os.path.exists(db_path))
        self.assertFalse(os.path.exists(temp_dir))

    def test_make_config_points_at_sandbox(self) -> None:
        sandbox = TempDbSandbox(prefix="temp_db_config")
        try:
            config_class = sandbox.make_config(Config, TESTING=True)
            self.assertTrue(issubclass(config_class, Config))
            self.assertEqual(config_class.DB_PATH, sandbox.db_path)
            self.assertFalse(config_class.LOG_JSON)
            self.assertTrue(config_class.TESTING)
        finally:
            sandbox.cleanup()

    def test_disallow_workspace_paths(self) -> None:
        workspace_db = os.path.join(os.getcwd(), "procurement_lifecycle_test.db")
        with self.assertRaises(ValueError):
            assert_safe_temp_db_path(workspace_db)


if __name__ == "__main__":
    unittest.main()
