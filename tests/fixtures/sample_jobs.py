"""Job targets imported by ModuleEvent tests."""

RECORDED: list[tuple] = []


def record(params, tag: str = "sync", **kwargs: object) -> None:
    RECORDED.append((params.event_id, tag, params.fire_time_utc))


async def record_async(params, tag: str = "async", **kwargs: object) -> None:
    RECORDED.append((params.event_id, tag, params.fire_time_utc))


def boom(params, **kwargs: object) -> None:
    raise RuntimeError("boom")
