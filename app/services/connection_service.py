"""Connection workflow service.

Runs one action per call against a single connection: load it under a row
lock, expire it if its deadline lapsed, check the actor, compute the
transition, then apply it together with its answers, notifications and
listing lock changes. The caller owns the transaction.
"""

import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any

from sqlalchemy.orm import Session

from app.connections import aggregator, engine
from app.connections.errors import (
    AlreadySubmitted,
    ConflictExpired,
    NotAuthorized,
    NotFound,
    StageClosed,
    ValidationError,
)
from app.connections.expiry import as_utc, is_expired, stage_deadline, utcnow
from app.connections.guard import authorize, role_of
from app.connections.repository import ConnectionRepository
from app.connections.stages import Action, Kind, Role, Stage
from app.connections.variants import variant_for
from app.models.connection import Connection
from app.models.listing import Listing
from app.models.user import User

logger = logging.getLogger(__name__)


class ConnectionService:
    """Service for driving connections through their stages."""

    def __init__(self, db: Session, clock: Callable[[], datetime] = utcnow) -> None:
        """Initialize the service.

        Args:
            db: Database session; the request transaction wraps every call.
            clock: Source of the current time, UTC-aware.
        """
        self.db = db
        self.repo = ConnectionRepository(db)
        self.clock = clock

    def now(self) -> datetime:
        return as_utc(self.clock())

    # -- loading -----------------------------------------------------------

    def _load(self, connection_id: int, kind: Kind | None) -> Connection:
        connection = self.repo.get_for_update(connection_id)
        if connection is None or (kind is not None and connection.kind != kind.value):
            raise NotFound()
        return connection

    def _expire(self, connection: Connection, now: datetime) -> None:
        deadline = connection.stage_expires_at
        transition = engine.expire(connection, now, variant_for(connection.kind))
        self._apply(connection, transition, actor_id=None, now=now)
        logger.info("Connection %s expired (deadline %s)", connection.id, deadline)

    def _refresh_expiry(self, connection: Connection, now: datetime) -> Connection:
        if is_expired(connection, now):
            self._expire(connection, now)
            self.repo.flush()
        return connection

    def _authorize(
        self, connection: Connection, actor_id: int, action: Action, now: datetime
    ) -> Role:
        try:
            return authorize(connection, actor_id, action, now)
        except ConflictExpired:
            self._expire(connection, now)
            self.repo.flush()
            raise

    # -- applying ----------------------------------------------------------

    def _apply(
        self,
        connection: Connection,
        transition: engine.Transition,
        actor_id: int | None,
        now: datetime,
    ) -> None:
        previous = connection.stage
        listing = None
        if transition.listing == engine.LOCK:
            listing = self.repo.get_listing_for_update(connection.listing_id)
            if listing is None or not listing.is_available:
                raise StageClosed("This listing is no longer available.")
        transition.apply_to(connection)

        if transition.answers is not None and actor_id is not None:
            self.repo.save_answers(connection, actor_id, transition.answers)

        if transition.listing == engine.RELEASE:
            self.repo.release_listing(connection)
        elif listing is not None:
            self.repo.lock_listing(listing, connection, now)

        for notice in transition.notices:
            self.repo.record_event(connection, notice.recipient, notice.event_type)

        if transition.stage is not None and transition.stage.value != previous:
            logger.info(
                "Connection %s moved %s -> %s",
                connection.id,
                previous,
                transition.stage.value,
            )

    def _run(
        self,
        connection_id: int,
        actor_id: int,
        action: Action,
        kind: Kind | None,
        build: Callable[[Connection, Role, datetime], engine.Transition],
    ) -> Connection:
        now = self.now()
        connection = self._load(connection_id, kind)
        role = self._authorize(connection, actor_id, action, now)
        try:
            transition = build(connection, role, now)
            self._apply(connection, transition, actor_id, now)
        except (AlreadySubmitted, ValidationError, StageClosed, NotAuthorized) as exc:
            logger.warning(
                "Rejected %s on connection %s by user %s: %s",
                action.value,
                connection.id,
                actor_id,
                exc.message,
            )
            raise
        self.repo.flush()
        return connection

    # -- operations --------------------------------------------------------

    def connect(
        self,
        buyer: User,
        listing_id: int,
        kind: Kind,
        want_social_share: bool | None = None,
        bonding_answers: dict[int, str] | None = None,
        question_ids: list[int] | None = None,
    ) -> Connection:
        """Create a connection on an available listing and lock the listing.

        Merch buyers may answer their bonding questions up front by passing
        both ``question_ids`` and ``bonding_answers``.

        Raises:
            NotFound: The listing does not exist or is of another kind.
            NotAuthorized: The buyer owns the listing.
            StageClosed: The listing is sold, removed or already locked.
            ValidationError: Up-front bonding answers are malformed.
        """
        now = self.now()
        variant = variant_for(kind.value)
        listing = self.repo.get_listing_for_update(listing_id)
        if listing is None or listing.kind != kind.value:
            raise NotFound("Listing not found.")
        if listing.seller_id == buyer.id:
            raise NotAuthorized("You cannot connect to your own listing.")
        if not listing.is_available:
            raise StageClosed("This listing is not available right now.")

        cleaned: dict[int, str] | None = None
        if question_ids or bonding_answers:
            if kind is not Kind.MERCH:
                raise ValidationError("Bonding answers are collected after the seller accepts.")
            if not question_ids or len(question_ids) != variant.bonding_question_count:
                raise ValidationError(
                    f"Please answer {variant.bonding_question_count} bonding questions."
                )
            if self.repo.active_question_ids(question_ids) != set(question_ids):
                raise ValidationError("Unknown bonding question.")
            cleaned = engine.validate_answers(question_ids, bonding_answers or {})

        connection = Connection(
            kind=kind.value,
            listing_id=listing.id,
            buyer_id=buyer.id,
            seller_id=listing.seller_id,
            stage=Stage.PENDING_SELLER.value,
            stage_started_at=now,
            stage_expires_at=stage_deadline(Stage.PENDING_SELLER, now, variant),
            buyer_want_social_share=want_social_share,
            buyer_agreed=False,
            seller_agreed=False,
        )
        if cleaned is not None:
            connection.bonding_question_ids = list(question_ids)
            connection.buyer_bonding_submitted_at = now
        self.repo.add(connection)

        if cleaned is not None:
            self.repo.save_answers(connection, buyer.id, cleaned)
        self.repo.lock_listing(listing, connection, now)
        self.repo.record_event(connection, Role.SELLER, "connection_requested")
        self.repo.flush()
        logger.info(
            "User %s connected to %s listing %s (connection %s)",
            buyer.id,
            kind.value,
            listing.id,
            connection.id,
        )
        return connection

    def seller_respond(
        self,
        connection_id: int,
        actor_id: int,
        accept: bool,
        kind: Kind | None = None,
        seller_social_share: bool | None = None,
    ) -> Connection:
        def build(connection, role, now):
            variant = variant_for(connection.kind)
            question_ids = None
            if accept and not connection.bonding_question_ids:
                question_ids = self.repo.draw_question_ids(variant.bonding_question_count)
            return engine.respond_as_seller(
                connection,
                accept,
                now,
                variant,
                question_ids=question_ids,
                seller_social_share=seller_social_share,
            )

        return self._run(connection_id, actor_id, Action.SELLER_RESPOND, kind, build)

    def submit_bonding_answers(
        self,
        connection_id: int,
        actor_id: int,
        answers: dict[int, str],
        kind: Kind | None = None,
    ) -> Connection:
        def build(connection, role, now):
            return engine.submit_bonding_answers(
                connection, role, answers, now, variant_for(connection.kind)
            )

        return self._run(connection_id, actor_id, Action.SUBMIT_BONDING, kind, build)

    def set_comfort_decision(
        self, connection_id: int, actor_id: int, comfort: bool, kind: Kind | None = None
    ) -> Connection:
        def build(connection, role, now):
            return engine.set_comfort_decision(
                connection, role, comfort, now, variant_for(connection.kind)
            )

        return self._run(connection_id, actor_id, Action.SET_COMFORT, kind, build)

    def set_social_share_decision(
        self, connection_id: int, actor_id: int, share: bool, kind: Kind | None = None
    ) -> Connection:
        def build(connection, role, now):
            return engine.set_social_share_decision(
                connection, role, share, now, variant_for(connection.kind)
            )

        return self._run(connection_id, actor_id, Action.SET_SOCIAL_SHARE, kind, build)

    def accept_agreement(
        self, connection_id: int, actor_id: int, kind: Kind | None = None
    ) -> Connection:
        def build(connection, role, now):
            return engine.accept_agreement(
                connection, role, now, variant_for(connection.kind)
            )

        return self._run(connection_id, actor_id, Action.ACCEPT_AGREEMENT, kind, build)

    def end_connection(
        self,
        connection_id: int,
        actor_id: int,
        kind: Kind | None = None,
        reason: str | None = None,
    ) -> Connection:
        def build(connection, role, now):
            return engine.end_connection(
                connection, role, actor_id, now, variant_for(connection.kind), reason
            )

        return self._run(connection_id, actor_id, Action.END, kind, build)

    def undo_end(
        self, connection_id: int, actor_id: int, kind: Kind | None = None
    ) -> Connection:
        def build(connection, role, now):
            return engine.undo_end(
                connection, role, actor_id, now, variant_for(connection.kind)
            )

        return self._run(connection_id, actor_id, Action.UNDO_END, kind, build)

    def submit_rating(
        self, connection_id: int, actor_id: int, rating: int, kind: Kind | None = None
    ) -> Connection:
        def build(connection, role, now):
            if self.repo.get_rating(connection) is not None:
                raise AlreadySubmitted("You have already rated this seller.")
            return engine.rate_seller(connection, rating, variant_for(connection.kind))

        connection = self._run(connection_id, actor_id, Action.RATE, kind, build)
        self.repo.add_rating(connection, rating)
        self.repo.flush()
        return connection

    # -- reads -------------------------------------------------------------

    def get_for_participant(self, connection_id: int, actor_id: int) -> Connection:
        connection = self._load(connection_id, None)
        if role_of(connection, actor_id) is Role.NONE:
            raise NotAuthorized("You are not part of this connection.")
        return self._refresh_expiry(connection, self.now())

    def list_for_user(self, user_id: int) -> list[Connection]:
        now = self.now()
        connections = self.repo.list_for_user(user_id)
        for connection in connections:
            if is_expired(connection, now):
                # re-read under the row lock; another request may have moved it on
                self._refresh_expiry(self.repo.get_for_update(connection.id), now)
        return connections

    def get_buyer_profile_for_seller(
        self, connection_id: int, actor_id: int, kind: Kind | None = None
    ) -> dict[str, Any]:
        """Show the seller who is asking before they accept or decline.

        Only the seller may look, and only while the request is pending.
        Bonding answers are present when a merch buyer answered up front.
        """
        now = self.now()
        connection = self._load(connection_id, kind)
        self._refresh_expiry(connection, now)
        authorize(connection, actor_id, Action.BUYER_PROFILE, now)

        buyer = self.db.get(User, connection.buyer_id)
        answers = [
            {
                "question_id": question.id,
                "prompt": question.prompt,
                "answer": answer.answer,
            }
            for answer, question in self.repo.answers_for(connection)
            if answer.user_id == buyer.id
        ]
        return {
            "connection_id": connection.id,
            "id": buyer.id,
            "username": buyer.username,
            "country": buyer.country,
            "want_social_share": connection.buyer_want_social_share,
            "bonding_answers": answers,
        }

    def get_preview(
        self, connection_id: int, actor_id: int, kind: Kind | None = None
    ) -> dict[str, Any]:
        """Build the preview both parties see before the comfort decision.

        Social handles are only included for a party once both chose to
        share socials and that party has accepted the agreement.
        """
        now = self.now()
        connection = self._load(connection_id, kind)
        self._refresh_expiry(connection, now)
        role = authorize(connection, actor_id, Action.PREVIEW, now)
        if not aggregator.bonding_complete(connection):
            raise StageClosed("The preview is not available yet.")

        listing = self.db.get(Listing, connection.listing_id)
        buyer = self.db.get(User, connection.buyer_id)
        seller = self.db.get(User, connection.seller_id)
        show_socials = aggregator.socials_visible(connection, role)

        answers: dict[int, list[dict[str, Any]]] = {buyer.id: [], seller.id: []}
        for answer, question in self.repo.answers_for(connection):
            answers.setdefault(answer.user_id, []).append(
                {
                    "question_id": question.id,
                    "prompt": question.prompt,
                    "answer": answer.answer,
                }
            )

        def party(user: User) -> dict[str, Any]:
            return {
                "id": user.id,
                "username": user.username,
                "country": user.country,
                "bonding_answers": answers.get(user.id, []),
                "socials": user.socials if show_socials else None,
            }

        return {
            "connection_id": connection.id,
            "stage": connection.stage,
            "listing": {
                "id": listing.id,
                "kind": listing.kind,
                "title": listing.title,
            },
            "buyer": party(buyer),
            "seller": party(seller),
            "buyer_social_share": connection.buyer_social_share,
            "seller_social_share": connection.seller_social_share,
            "both_want_socials": aggregator.both_want_socials(connection),
            "socials_visible": show_socials,
        }

    # -- sweep -------------------------------------------------------------

    def sweep_expired(self) -> int:
        """Expire every connection whose stage deadline already passed.

        Returns:
            Number of connections moved to expired.
        """
        now = self.now()
        lapsed = self.repo.lapsed(now)
        for connection in lapsed:
            self._expire(connection, now)
        self.repo.flush()
        logger.info("Expired %d lapsed connection(s)", len(lapsed))
        return len(lapsed)
