"""Built-in event entry points for use from YAML configs."""

from kakama_events.logging_config import get_logger
from kakama_events.models.event import ScheduledEventParameters


async def log_fire(params: ScheduledEventParameters, message: str = "tick", **kwargs: object) -> None:
    log = get_logger(event_id=params.event_id)
    log.info(
        "log_fire",
        message=message,
        fire_time=params.fire_time_utc.isoformat(),
        scheduled=params.scheduled_fire_time_utc.isoformat(),
        **kwargs,
    )
