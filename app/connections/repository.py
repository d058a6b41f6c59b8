import random
from datetime import datetime

from sqlalchemy import or_, select
from sqlalchemy.orm import Session

from app.connections.stages import DEADLINE_STAGES, Role
from app.models.bonding_answer import BondingAnswer
from app.models.bonding_question import BondingQuestion
from app.models.connection import Connection
from app.models.connection_event import ConnectionEvent
from app.models.connection_rating import ConnectionRating
from app.models.listing import Listing


class ConnectionRepository:
    """Read/write access to connections and the rows that hang off them."""

    def __init__(self, db: Session) -> None:
        self.db = db

    def get_for_update(self, connection_id: int) -> Connection | None:
        """Load a connection holding its row lock until the transaction ends.

        The row is re-read even when the session already holds it, so the
        caller never acts on a copy loaded before the lock was taken.
        """
        return self.db.execute(
            select(Connection)
            .where(Connection.id == connection_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def list_for_user(self, user_id: int) -> list[Connection]:
        return list(
            self.db.execute(
                select(Connection)
                .where(
                    or_(
                        Connection.buyer_id == user_id,
                        Connection.seller_id == user_id,
                    )
                )
                .order_by(Connection.id.desc())
            ).scalars().all()
        )

    def lapsed(self, now: datetime) -> list[Connection]:
        return list(
            self.db.execute(
                select(Connection)
                .where(
                    Connection.stage.in_([stage.value for stage in DEADLINE_STAGES]),
                    Connection.stage_expires_at.is_not(None),
                    Connection.stage_expires_at < now,
                )
                .with_for_update(skip_locked=True)
            ).scalars().all()
        )

    def add(self, connection: Connection) -> Connection:
        self.db.add(connection)
        self.db.flush()
        return connection

    def get_listing_for_update(self, listing_id: int) -> Listing | None:
        return self.db.execute(
            select(Listing)
            .where(Listing.id == listing_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def lock_listing(self, listing: Listing, connection: Connection, now: datetime) -> None:
        listing.locked_by_connection_id = connection.id
        listing.locked_at = now
        listing.status = "locked"

    def release_listing(self, connection: Connection) -> None:
        listing = self.get_listing_for_update(connection.listing_id)
        if listing is None or listing.locked_by_connection_id != connection.id:
            return
        listing.locked_by_connection_id = None
        listing.locked_at = None
        if listing.status == "locked":
            listing.status = "active"

    def draw_question_ids(self, count: int) -> list[int]:
        ids = list(
            self.db.execute(
                select(BondingQuestion.id).where(BondingQuestion.is_active.is_(True))
            ).scalars().all()
        )
        if len(ids) < count:
            return ids
        return random.sample(ids, count)

    def active_question_ids(self, question_ids: list[int]) -> set[int]:
        return set(
            self.db.execute(
                select(BondingQuestion.id).where(
                    BondingQuestion.id.in_(question_ids),
                    BondingQuestion.is_active.is_(True),
                )
            ).scalars().all()
        )

    def save_answers(self, connection: Connection, user_id: int, answers: dict[int, str]) -> None:
        for question_id, text in answers.items():
            self.db.add(
                BondingAnswer(
                    connection_id=connection.id,
                    user_id=user_id,
                    question_id=question_id,
                    answer=text,
                )
            )

    def answers_for(self, connection: Connection) -> list[tuple[BondingAnswer, BondingQuestion]]:
        return list(
            self.db.execute(
                select(BondingAnswer, BondingQuestion)
                .join(BondingQuestion, BondingQuestion.id == BondingAnswer.question_id)
                .where(BondingAnswer.connection_id == connection.id)
                .order_by(BondingAnswer.id)
            ).all()
        )

    def get_rating(self, connection: Connection) -> ConnectionRating | None:
        return self.db.execute(
            select(ConnectionRating).where(
                ConnectionRating.connection_id == connection.id
            )
        ).scalar_one_or_none()

    def add_rating(self, connection: Connection, rating: int) -> ConnectionRating:
        row = ConnectionRating(
            connection_id=connection.id,
            buyer_id=connection.buyer_id,
            seller_id=connection.seller_id,
            rating=rating,
        )
        self.db.add(row)
        return row

    def record_event(self, connection: Connection, recipient: Role, event_type: str) -> None:
        recipient_id = (
            connection.buyer_id if recipient is Role.BUYER else connection.seller_id
        )
        self.db.add(
            ConnectionEvent(
                connection_id=connection.id,
                recipient_id=recipient_id,
                event_type=event_type,
            )
        )

    def flush(self) -> None:
        self.db.flush()
