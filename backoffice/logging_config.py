"""Process-wide logging setup for the cash office service."""

from __future__ import annotations

import logging
from logging.config import dictConfig

from backoffice.config import settings

LOG_FORMAT = '%(asctime)s %(levelname)s [%(name)s] %(message)s'

_configured = False


def configure_logging(level: str | None = None) -> None:
    """Attach a console handler to the ``backoffice`` logger once.

    The root logger is left alone and ``backoffice`` records do not propagate
    to it.  Later calls only adjust the level.
    """
    global _configured
    resolved = (level or settings.log_level).upper()
    if _configured:
        logging.getLogger('backoffice').setLevel(resolved)
        return

    dictConfig(
        {
            'version': 1,
            'disable_existing_loggers': False,
            'formatters': {
                'standard': {'format': LOG_FORMAT},
            },
            'handlers': {
                'console': {
                    'class': 'logging.StreamHandler',
                    'formatter': 'standard',
                },
            },
            'loggers': {
                'backoffice': {'handlers': ['console'], 'level': resolved, 'propagate': False},
            },
        }
    )
    _configured = True
