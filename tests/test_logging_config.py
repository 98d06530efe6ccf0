from __future__ import annotations

import logging
import unittest

from backoffice.logging_config import configure_logging


class ConfigureLoggingTests(unittest.TestCase):
    def setUp(self) -> None:
        logger = logging.getLogger('backoffice')
        level = logger.level
        self.addCleanup(logger.setLevel, level)

    def test_only_the_backoffice_logger_gets_a_handler(self) -> None:
        root_handlers = list(logging.getLogger().handlers)

        configure_logging('INFO')

        logger = logging.getLogger('backoffice')
        self.assertFalse(logger.propagate)
        self.assertTrue(any(isinstance(handler, logging.StreamHandler) for handler in logger.handlers))
        self.assertEqual(logging.getLogger().handlers, root_handlers)

    def test_later_calls_only_change_the_level(self) -> None:
        configure_logging('INFO')
        handlers = list(logging.getLogger('backoffice').handlers)

        configure_logging('debug')

        logger = logging.getLogger('backoffice')
        self.assertEqual(logger.level, logging.DEBUG)
        self.assertEqual(logger.handlers, handlers)


if __name__ == '__main__':
    unittest.main()
