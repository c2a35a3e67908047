from uuid import UUID

from pydantic import BaseModel


class FeedTaskParams(BaseModel):
    """Payload of a process-feed job; the consumer only needs the feed id."""

    id: UUID
    pass_id: str


def feed_job_id(feed_id: UUID, pass_id: str) -> str:
    return f"feed:{pass_id}:{feed_id}"


def parse_feed_job_id(job_id: str) -> tuple[str, UUID] | None:
    """Return (pass_id, feed_id) for a job id built by feed_job_id."""
    parts = job_id.split(":")
    if len(parts) != 3 or parts[0] != "feed":
        return None

    try:
        return parts[1], UUID(parts[2])
    except ValueError:
        return None
