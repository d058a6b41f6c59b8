from datetime import datetime

from pydantic import BaseModel, Field


class ConnectRequest(BaseModel):
    listing_id: int
    want_social_share: bool | None = None


class MerchConnectRequest(BaseModel):
    merch_listing_id: int
    want_social_share: bool
    bonding_answers: dict[int, str] | None = None
    question_ids: list[int] | None = None


class ConnectResponse(BaseModel):
    connection_id: int


class ConnectionIdRequest(BaseModel):
    connection_id: int


class SellerRespondRequest(ConnectionIdRequest):
    accept: bool
    seller_social_share: bool | None = None


class BondingAnswersRequest(ConnectionIdRequest):
    answers: dict[int, str]


class ComfortRequest(ConnectionIdRequest):
    comfort: bool


class SocialShareRequest(ConnectionIdRequest):
    share: bool


class EndConnectionRequest(ConnectionIdRequest):
    ended_reason: str | None = Field(default=None, max_length=500)


class RatingRequest(ConnectionIdRequest):
    rating: int


class ConnectionRead(BaseModel):
    id: int
    kind: str
    listing_id: int
    buyer_id: int
    seller_id: int
    stage: str
    stage_expires_at: datetime | None
    bonding_question_ids: list[int] | None
    buyer_bonding_submitted_at: datetime | None
    seller_bonding_submitted_at: datetime | None
    buyer_comfort: bool | None
    seller_comfort: bool | None
    buyer_social_share: bool | None
    seller_social_share: bool | None
    buyer_want_social_share: bool | None
    seller_want_social_share: bool | None
    buyer_agreed: bool
    seller_agreed: bool
    ended_by: int | None
    ended_at: datetime | None
    stage_before_ended: str | None
    my_role: str
    waiting_on_other: bool
    socials_visible: bool
    can_undo: bool


class BondingAnswerRead(BaseModel):
    question_id: int
    prompt: str
    answer: str


class BuyerProfileRead(BaseModel):
    connection_id: int
    id: int
    username: str
    country: str | None
    want_social_share: bool | None
    bonding_answers: list[BondingAnswerRead]


class PreviewPartyRead(BaseModel):
    id: int
    username: str
    country: str | None
    bonding_answers: list[BondingAnswerRead]
    socials: dict[str, str | None] | None


class PreviewListingRead(BaseModel):
    id: int
    kind: str
    title: str


class PreviewRead(BaseModel):
    connection_id: int
    stage: str
    listing: PreviewListingRead
    buyer: PreviewPartyRead
    seller: PreviewPartyRead
    buyer_social_share: bool | None
    seller_social_share: bool | None
    both_want_socials: bool
    socials_visible: bool


class SweepResponse(BaseModel):
    expired: int
