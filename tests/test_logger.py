import os
import sys
import tempfile
import unittest
from unittest.mock import patch

ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
src_path = os.path.join(ROOT, "src")
if src_path not in sys.path:
    sys.path.insert(0, src_path)

from utils import config  # noqa: E402
from utils import logger as market_logger  # noqa: E402


class LogFileTestCase(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.log_path = os.path.join(self.temp_dir.name, "market.log")

    def tearDown(self):
        market_logger.close_log_file()
        self.temp_dir.cleanup()

    def test_file_is_opened_on_first_logger_and_closed_on_request(self):
        with patch.object(config, "LOG_FILE", self.log_path):
            market_logger.close_log_file()
            self.assertFalse(os.path.exists(self.log_path))

            log = market_logger.get_logger("market.logfile")
            log.info("first line")
            stream = market_logger._console.file
            self.assertFalse(stream.closed)

            market_logger.close_log_file()
            self.assertTrue(stream.closed)
            self.assertIsNone(market_logger._console)
            self.assertEqual(log.handlers, [])

        with open(self.log_path, encoding="utf-8") as f:
            self.assertIn("first line", f.read())

    def test_a_new_logger_after_close_reopens_the_file(self):
        with patch.object(config, "LOG_FILE", self.log_path):
            market_logger.get_logger("market.reopen").info("before")
            market_logger.close_log_file()

            log = market_logger.get_logger("market.reopen")
            log.info("after")
            self.assertFalse(market_logger._console.file.closed)
            market_logger.close_log_file()

        with open(self.log_path, encoding="utf-8") as f:
            text = f.read()
        self.assertIn("before", text)
        self.assertIn("after", text)

    def test_without_log_file_nothing_is_opened(self):
        with patch.object(config, "LOG_FILE", ""):
            market_logger.close_log_file()
            log = market_logger.get_logger("market.stderr")
            self.assertIsNone(market_logger._console)
            self.assertEqual(len(log.handlers), 1)
            market_logger.close_log_file()
            # stderr handlers are left alone
            self.assertEqual(len(log.handlers), 1)


if __name__ == "__main__":
    unittest.main()
