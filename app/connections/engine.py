"""Stage transition engine for buyer/seller connections.

Every function here is pure: it reads the connection, validates the action
payload, and returns a :class:`Transition` describing the field updates,
the notifications to send, and what should happen to the listing lock.
Nothing is written until the caller applies the transition, so a rejected
action never leaves a partial write behind.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from app.connections import aggregator
from app.connections.errors import (
    AlreadySubmitted,
    NotAuthorized,
    StageClosed,
    ValidationError,
)
from app.connections.expiry import stage_deadline, within_undo_window
from app.connections.stages import Kind, Role, Stage, can_transition
from app.connections.variants import VariantConfig

LOCK = "lock"
RELEASE = "release"

MIN_RATING = 1
MAX_RATING = 5


@dataclass(frozen=True)
class Notice:
    recipient: Role
    event_type: str


@dataclass
class Transition:
    updates: dict[str, Any] = field(default_factory=dict)
    notices: list[Notice] = field(default_factory=list)
    listing: str | None = None
    answers: dict[int, str] | None = None

    @property
    def stage(self) -> Stage | None:
        value = self.updates.get("stage")
        return Stage(value) if value is not None else None

    def notify(self, recipient: Role, event_type: str) -> None:
        self.notices.append(Notice(recipient, event_type))

    def notify_both(self, event_type: str) -> None:
        self.notify(Role.BUYER, event_type)
        self.notify(Role.SELLER, event_type)

    def apply_to(self, connection) -> None:
        for name, value in self.updates.items():
            setattr(connection, name, value)


def _enter(
    transition: Transition,
    connection,
    target: Stage,
    now: datetime,
    variant: VariantConfig,
    check_graph: bool = True,
) -> None:
    current = Stage(connection.stage)
    if check_graph and not can_transition(current, target):
        raise StageClosed(f"Cannot move from {current.value} to {target.value}.")
    transition.updates["stage"] = target.value
    transition.updates["stage_started_at"] = now
    transition.updates["stage_expires_at"] = stage_deadline(target, now, variant)


def _own(role: Role, suffix: str) -> str:
    return f"{role.value}_{suffix}"


def validate_answers(question_ids: list[int] | None, answers: dict[int, str]) -> dict[int, str]:
    """Check that every question id is answered with non-empty text.

    Returns:
        The answers keyed by question id with surrounding whitespace removed.
    """
    if not question_ids:
        raise ValidationError("No bonding questions are set for this connection.")
    if len(answers) != len(question_ids) or set(answers) != set(question_ids):
        raise ValidationError(
            f"Please answer all {len(question_ids)} bonding questions."
        )
    cleaned = {}
    for question_id in question_ids:
        text = (answers[question_id] or "").strip()
        if not text:
            raise ValidationError("Bonding answers cannot be empty.")
        cleaned[question_id] = text
    return cleaned


def respond_as_seller(
    connection,
    accept: bool,
    now: datetime,
    variant: VariantConfig,
    question_ids: list[int] | None = None,
    seller_social_share: bool | None = None,
) -> Transition:
    transition = Transition()
    if not accept:
        _enter(transition, connection, Stage.DECLINED, now, variant)
        transition.listing = RELEASE
        transition.notify(Role.BUYER, "connection_declined")
        return transition

    if connection.buyer_want_social_share is not None and variant.kind is Kind.MERCH:
        if seller_social_share is None:
            raise ValidationError("Please choose whether to share socials with this buyer.")
    if seller_social_share is not None:
        transition.updates["seller_want_social_share"] = seller_social_share

    if not connection.bonding_question_ids:
        if not question_ids or len(question_ids) != variant.bonding_question_count:
            raise ValidationError("Not enough bonding questions are available.")
        transition.updates["bonding_question_ids"] = list(question_ids)

    target = variant.accept_stage
    if connection.buyer_bonding_submitted_at is not None:
        target = Stage.BONDING
    _enter(transition, connection, target, now, variant)
    transition.notify(Role.BUYER, "connection_accepted")
    return transition


def submit_bonding_answers(
    connection,
    role: Role,
    answers: dict[int, str],
    now: datetime,
    variant: VariantConfig,
) -> Transition:
    submitted_field = _own(role, "bonding_submitted_at")
    if getattr(connection, submitted_field) is not None:
        raise AlreadySubmitted("You have already submitted your bonding answers.")

    transition = Transition()
    transition.answers = validate_answers(connection.bonding_question_ids, answers)
    transition.updates[submitted_field] = now
    transition.notify(role.other, "bonding_submitted")

    stage = Stage(connection.stage)
    if stage is Stage.BUYER_BONDING_V2:
        _enter(transition, connection, Stage.BONDING, now, variant)
        return transition

    other_submitted = getattr(connection, _own(role.other, "bonding_submitted_at"))
    if other_submitted is not None:
        _enter(transition, connection, Stage.PREVIEW, now, variant)
        transition.notify_both("preview_ready")
    return transition


def set_comfort_decision(
    connection, role: Role, comfort: bool, now: datetime, variant: VariantConfig
) -> Transition:
    comfort_field = _own(role, "comfort")
    if getattr(connection, comfort_field) is not None:
        raise AlreadySubmitted("You have already answered the comfort question.")

    transition = Transition()
    transition.updates[comfort_field] = comfort
    decisions = {
        "buyer_comfort": connection.buyer_comfort,
        "seller_comfort": connection.seller_comfort,
        comfort_field: comfort,
    }
    outcome = aggregator.comfort_outcome(
        decisions["buyer_comfort"], decisions["seller_comfort"]
    )
    if outcome is Stage.ENDED:
        _enter(transition, connection, Stage.ENDED, now, variant)
        transition.listing = RELEASE
        transition.notify(role.other, "comfort_declined")
        return transition

    transition.notify(role.other, "comfort_submitted")
    if outcome is Stage.SOCIAL:
        _enter(transition, connection, Stage.SOCIAL, now, variant)
        transition.notify_both("social_ready")
    return transition


def set_social_share_decision(
    connection, role: Role, share: bool, now: datetime, variant: VariantConfig
) -> Transition:
    share_field = _own(role, "social_share")
    if getattr(connection, share_field) is not None:
        raise AlreadySubmitted("You have already made your social sharing choice.")

    transition = Transition()
    transition.updates[share_field] = share
    transition.notify(role.other, "social_submitted")

    other_share = getattr(connection, _own(role.other, "social_share"))
    if aggregator.social_ready(share, other_share):
        _enter(transition, connection, Stage.AGREEMENT, now, variant)
        transition.notify_both("agreement_ready")
    return transition


def accept_agreement(
    connection, role: Role, now: datetime, variant: VariantConfig
) -> Transition:
    agreed_field = _own(role, "agreed")
    if getattr(connection, agreed_field):
        raise AlreadySubmitted("You have already confirmed the match message.")

    transition = Transition()
    transition.updates[agreed_field] = True
    transition.notify(role.other, "agreement_accepted")

    if getattr(connection, _own(role.other, "agreed")):
        _enter(transition, connection, Stage.CHAT_OPEN, now, variant)
        transition.notify_both("match_confirmed")
    return transition


def end_connection(
    connection,
    role: Role,
    actor_id: int,
    now: datetime,
    variant: VariantConfig,
    reason: str | None = None,
) -> Transition:
    stage = Stage(connection.stage)
    transition = Transition()
    transition.updates.update(
        ended_by=actor_id,
        ended_at=now,
        stage_before_ended=stage.value,
        ended_reason=reason,
    )
    _enter(transition, connection, Stage.ENDED, now, variant)
    transition.listing = RELEASE
    if stage is Stage.PENDING_SELLER and role is Role.BUYER:
        transition.notify(role.other, "connection_cancelled")
    else:
        transition.notify(role.other, "connection_ended")
    return transition


def undo_end(
    connection, role: Role, actor_id: int, now: datetime, variant: VariantConfig
) -> Transition:
    if not variant.undo_enabled:
        raise StageClosed("This connection cannot be restored.")
    if connection.ended_by is None or connection.stage_before_ended is None:
        raise StageClosed("This connection cannot be restored.")
    if connection.ended_by != actor_id:
        raise NotAuthorized("Only the person who ended this connection can restore it.")
    if not within_undo_window(connection, now, variant):
        raise StageClosed("The time to restore this connection has passed.")

    transition = Transition()
    _enter(
        transition,
        connection,
        Stage(connection.stage_before_ended),
        now,
        variant,
        check_graph=False,
    )
    transition.updates.update(
        ended_by=None,
        ended_at=None,
        stage_before_ended=None,
        ended_reason=None,
    )
    transition.listing = LOCK
    transition.notify(role.other, "connection_restored")
    return transition


def expire(connection, now: datetime, variant: VariantConfig) -> Transition:
    transition = Transition()
    _enter(transition, connection, Stage.EXPIRED, now, variant)
    transition.listing = RELEASE
    transition.notify_both("connection_expired")
    return transition


def rate_seller(connection, rating: int, variant: VariantConfig) -> Transition:
    if not variant.ratings_enabled:
        raise StageClosed("Ratings are not available for this connection.")
    if not (connection.buyer_agreed and connection.seller_agreed):
        raise StageClosed("You can rate the seller once the chat has opened.")
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f"Rating must be between {MIN_RATING} and {MAX_RATING}.")
    transition = Transition()
    transition.notify(Role.SELLER, "rating_received")
    return transition
