"""
Logging for the governance core.

Every core module logs through get_logger(<component>). Records carry the
component and the correlation id of the request that caused them, so one
HTTP call can be followed from the router through the boundary into the
ledger. Authority changes also go to the audit logger as one key=value
line each.
"""

import logging
import logging.config
import sys
import uuid
from contextvars import ContextVar
from typing import Optional

from relay.core.config import LOG_LEVEL

COMPONENTS = ('authority', 'transitions', 'boundary', 'ledger', 'confidence', 'router', 'audit')

# Set per request by the router; "-" outside a request
correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


class CorrelationFilter(logging.Filter):
    """Stamp the correlation id, and a component for loggers outside relay.*"""

    def filter(self, record):
        record.correlation_id = correlation_id.get() or "-"
        if not hasattr(record, "component"):
            record.component = record.name
        return True


class ComponentAdapter(logging.LoggerAdapter):
    """Logger adapter that adds component context."""

    def __init__(self, logger, component: str):
        super().__init__(logger, {'component': component})

    def process(self, msg, kwargs):
        kwargs.setdefault('extra', {})['component'] = self.extra['component']
        return msg, kwargs


def setup_logging(level: str = LOG_LEVEL) -> None:
    """Send every relay.* record to stdout with its component and correlation id."""
    config = {
        'version': 1,
        'disable_existing_loggers': False,
        'filters': {
            'correlation': {'()': CorrelationFilter},
        },
        'formatters': {
            'relay': {
                'format': '[%(levelname)s] %(component)s %(correlation_id)s - %(message)s',
            },
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'level': level,
                'formatter': 'relay',
                'stream': sys.stdout,
                'filters': ['correlation'],
            },
        },
        'root': {
            'level': level,
            'handlers': ['console'],
        },
        'loggers': {
            f'relay.{component}': {'level': level, 'propagate': True}
            for component in COMPONENTS
        },
    }
    logging.config.dictConfig(config)


def get_logger(component: str) -> ComponentAdapter:
    """
    Get a logger for a specific component.

    Args:
        component: One of COMPONENTS (e.g., 'authority', 'ledger')

    Returns:
        Logger adapter with component context
    """
    return ComponentAdapter(logging.getLogger(f'relay.{component}'), component)


def set_correlation_id(value: Optional[str] = None) -> str:
    """Bind a correlation id to the current context, minting one if needed."""
    value = value or uuid.uuid4().hex[:12]
    correlation_id.set(value)
    return value


_audit = get_logger('audit')


def log_authority_event(event_type: str, severity: str = "INFO",
                        authority_ref: Optional[str] = None, **fields) -> None:
    """
    Write one audit line for an authority change.

    The line records a decision that has already been made; nothing reads
    it back.
    """
    level = logging.getLevelName(severity.upper())
    if not isinstance(level, int):
        level = logging.INFO
    details = "".join(f" {key}={value}" for key, value in sorted(fields.items()))
    _audit.log(level, f"{event_type} ref={authority_ref or '-'}{details}")
