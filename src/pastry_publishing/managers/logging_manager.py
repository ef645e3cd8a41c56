"""
# Logging Manager

Central factory for application loggers. Every module obtains its logger through
`get_logger()` so that formatting and level come from one place.

Loggers may carry a **prefix** (e.g. `"[InteractionLedger]"`) that is prepended to every
message, which keeps component output greppable in aggregated logs.

## Usage Example

```python
from pastry_publishing.managers.logging_manager import get_logger

logger = get_logger(prefix="[ContentLifecycle]")
logger.info("Published content %s", content_id)
```
"""

import logging
import sys
from typing import Any, Dict, MutableMapping, Tuple

from pastry_publishing.config import settings

DEFAULT_LOGGER_NAME = "PastryPublishing"
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

_configured: Dict[str, logging.Logger] = {}


class PrefixedLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that prepends a fixed prefix to each message."""

    def process(self, msg: Any, kwargs: MutableMapping[str, Any]) -> Tuple[Any, MutableMapping[str, Any]]:
        prefix = self.extra.get("prefix") if self.extra else None
        if prefix:
            return f"{prefix} {msg}", kwargs
        return msg, kwargs


def _base_logger(name: str) -> logging.Logger:
    if name in _configured:
        return _configured[name]

    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO))
    logger.propagate = True
    _configured[name] = logger
    return logger


def get_logger(name: str = DEFAULT_LOGGER_NAME, prefix: str = "") -> logging.LoggerAdapter:
    """
    Return a configured logger, optionally with a message prefix.

    Args:
        name (str): Logger name. Defaults to the application logger.
        prefix (str): Text prepended to every message, e.g. `"[DATABASE]"`.

    Returns:
        logging.LoggerAdapter: Adapter over the shared named logger.
    """
    return PrefixedLoggerAdapter(_base_logger(name), {"prefix": prefix})
