"""Infrastructure layer exports."""

from .scheduler import (
    AtScheduler,
    InMemoryScheduler,
    SchedulerBinding,
    configure_scheduler,
    get_scheduler,
    parse_queue_listing,
)

__all__ = [
    "AtScheduler",
    "InMemoryScheduler",
    "SchedulerBinding",
    "configure_scheduler",
    "get_scheduler",
    "parse_queue_listing",
]
