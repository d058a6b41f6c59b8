from app.models.user import User
from app.models.listing import Listing
from app.models.bonding_question import BondingQuestion
from app.models.connection import Connection
from app.models.bonding_answer import BondingAnswer
from app.models.connection_rating import ConnectionRating
from app.models.connection_event import ConnectionEvent

__all__ = [
    "User",
    "Listing",
    "BondingQuestion",
    "Connection",
    "BondingAnswer",
    "ConnectionRating",
    "ConnectionEvent",
]
