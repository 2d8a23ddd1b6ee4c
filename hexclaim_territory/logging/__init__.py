"""
Structured Logging for hexclaim
===============================

Bounded Context: Observability

Public API
----------
    LogEvent: Typed event names (enum)
    StructuredLogger: JSON logger implementation
    create_logger: Factory function

Example:
    >>> from hexclaim_territory.logging import StructuredLogger, LogEvent
    >>> logger = StructuredLogger(component="engine")
    >>> logger.info(
    ...     event=LogEvent.RUN_VALIDATED,
    ...     message="Run accepted",
    ...     metadata={'run_id': 'r-1', 'distance_m': 1240.5}
    ... )
"""

from .events import LogEvent
from .structured import StructuredLogger, create_logger

__all__ = [
    'LogEvent',
    'StructuredLogger',
    'create_logger',
]
