from datetime import datetime, timezone

from app.connections.stages import DEADLINE_STAGES, Stage
from app.connections.variants import VariantConfig


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Attach UTC to naive datetimes read back from the database."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def stage_deadline(
    stage: Stage, started_at: datetime, variant: VariantConfig
) -> datetime | None:
    """Deadline for a stage entered at ``started_at``.

    ``chat_open`` and terminal stages carry no deadline.
    """
    if stage not in DEADLINE_STAGES:
        return None
    return as_utc(started_at) + variant.stage_timeout


def is_expired(connection, now: datetime) -> bool:
    if Stage(connection.stage) not in DEADLINE_STAGES:
        return False
    expires_at = as_utc(connection.stage_expires_at)
    if expires_at is None:
        return False
    return as_utc(now) > expires_at


def within_undo_window(connection, now: datetime, variant: VariantConfig) -> bool:
    if not variant.undo_enabled:
        return False
    ended_at = as_utc(connection.ended_at)
    if ended_at is None:
        return False
    return as_utc(now) - ended_at <= variant.undo_window
