from fastapi import APIRouter, status

from app.connections.stages import Kind
from app.dependencies import AdminUser, Connections, CurrentUser
from app.routers.connections import build_response
from app.schemas.common import ErrorResponse
from app.schemas.connection import (
    BondingAnswersRequest,
    BuyerProfileRead,
    ComfortRequest,
    ConnectionIdRequest,
    ConnectionRead,
    ConnectRequest,
    ConnectResponse,
    EndConnectionRequest,
    MerchConnectRequest,
    PreviewRead,
    RatingRequest,
    SellerRespondRequest,
    SocialShareRequest,
    SweepResponse,
)

router = APIRouter(
    prefix="/rpc",
    tags=["rpc"],
    responses={
        403: {"model": ErrorResponse},
        404: {"model": ErrorResponse},
        409: {"model": ErrorResponse},
        422: {"model": ErrorResponse},
    },
)


# -- ticket connections ----------------------------------------------------


@router.post(
    "/connect_to_listing",
    response_model=ConnectResponse,
    status_code=status.HTTP_201_CREATED,
)
def connect_to_listing(request: ConnectRequest, user: CurrentUser, service: Connections):
    connection = service.connect(
        user, request.listing_id, Kind.TICKET, want_social_share=request.want_social_share
    )
    return {"connection_id": connection.id}


@router.post("/seller_respond_connection", response_model=ConnectionRead)
def seller_respond_connection(
    request: SellerRespondRequest, user: CurrentUser, service: Connections
):
    connection = service.seller_respond(
        request.connection_id,
        user.id,
        request.accept,
        kind=Kind.TICKET,
        seller_social_share=request.seller_social_share if request.accept else None,
    )
    return build_response(connection, user, service)


@router.post("/submit_bonding_answers", response_model=ConnectionRead)
def submit_bonding_answers(
    request: BondingAnswersRequest, user: CurrentUser, service: Connections
):
    connection = service.submit_bonding_answers(
        request.connection_id, user.id, request.answers, kind=Kind.TICKET
    )
    return build_response(connection, user, service)


@router.post("/set_comfort_decision", response_model=ConnectionRead)
def set_comfort_decision(request: ComfortRequest, user: CurrentUser, service: Connections):
    connection = service.set_comfort_decision(
        request.connection_id, user.id, request.comfort, kind=Kind.TICKET
    )
    return build_response(connection, user, service)


@router.post("/set_social_share_decision", response_model=ConnectionRead)
def set_social_share_decision(
    request: SocialShareRequest, user: CurrentUser, service: Connections
):
    connection = service.set_social_share_decision(
        request.connection_id, user.id, request.share, kind=Kind.TICKET
    )
    return build_response(connection, user, service)


@router.post("/accept_connection_agreement", response_model=ConnectionRead)
def accept_connection_agreement(
    request: ConnectionIdRequest, user: CurrentUser, service: Connections
):
    connection = service.accept_agreement(request.connection_id, user.id, kind=Kind.TICKET)
    return build_response(connection, user, service)


@router.post("/end_connection", response_model=ConnectionRead)
def end_connection(request: EndConnectionRequest, user: CurrentUser, service: Connections):
    connection = service.end_connection(
        request.connection_id, user.id, kind=Kind.TICKET, reason=request.ended_reason
    )
    return build_response(connection, user, service)


@router.post("/get_connection_buyer_profile_for_seller", response_model=BuyerProfileRead)
def get_connection_buyer_profile_for_seller(
    request: ConnectionIdRequest, user: CurrentUser, service: Connections
):
    return service.get_buyer_profile_for_seller(
        request.connection_id, user.id, kind=Kind.TICKET
    )


@router.post("/get_connection_preview", response_model=PreviewRead)
def get_connection_preview(
    request: ConnectionIdRequest, user: CurrentUser, service: Connections
):
    return service.get_preview(request.connection_id, user.id, kind=Kind.TICKET)


@router.post("/submit_connection_rating", response_model=ConnectionRead)
def submit_connection_rating(request: RatingRequest, user: CurrentUser, service: Connections):
    connection = service.submit_rating(
        request.connection_id, user.id, request.rating, kind=Kind.TICKET
    )
    return build_response(connection, user, service)


# -- merch connections -----------------------------------------------------


@router.post(
    "/connect_to_merch_listing_v2",
    response_model=ConnectResponse,
    status_code=status.HTTP_201_CREATED,
)
def connect_to_merch_listing_v2(
    request: MerchConnectRequest, user: CurrentUser, service: Connections
):
    connection = service.connect(
        user,
        request.merch_listing_id,
        Kind.MERCH,
        want_social_share=request.want_social_share,
        bonding_answers=request.bonding_answers,
        question_ids=request.question_ids,
    )
    return {"connection_id": connection.id}


@router.post("/seller_respond_merch_connection", response_model=ConnectionRead)
def seller_respond_merch_connection(
    request: SellerRespondRequest, user: CurrentUser, service: Connections
):
    connection = service.seller_respond(
        request.connection_id,
        user.id,
        request.accept,
        kind=Kind.MERCH,
        seller_social_share=request.seller_social_share if request.accept else None,
    )
    return build_response(connection, user, service)


@router.post("/submit_merch_bonding_answers", response_model=ConnectionRead)
def submit_merch_bonding_answers(
    request: BondingAnswersRequest, user: CurrentUser, service: Connections
):
    connection = service.submit_bonding_answers(
        request.connection_id, user.id, request.answers, kind=Kind.MERCH
    )
    return build_response(connection, user, service)


@router.post("/set_merch_comfort_decision", response_model=ConnectionRead)
def set_merch_comfort_decision(
    request: ComfortRequest, user: CurrentUser, service: Connections
):
    connection = service.set_comfort_decision(
        request.connection_id, user.id, request.comfort, kind=Kind.MERCH
    )
    return build_response(connection, user, service)


@router.post("/set_merch_social_share_decision", response_model=ConnectionRead)
def set_merch_social_share_decision(
    request: SocialShareRequest, user: CurrentUser, service: Connections
):
    connection = service.set_social_share_decision(
        request.connection_id, user.id, request.share, kind=Kind.MERCH
    )
    return build_response(connection, user, service)


@router.post("/accept_merch_connection_agreement", response_model=ConnectionRead)
def accept_merch_connection_agreement(
    request: ConnectionIdRequest, user: CurrentUser, service: Connections
):
    connection = service.accept_agreement(request.connection_id, user.id, kind=Kind.MERCH)
    return build_response(connection, user, service)


@router.post("/end_merch_connection", response_model=ConnectionRead)
def end_merch_connection(
    request: EndConnectionRequest, user: CurrentUser, service: Connections
):
    connection = service.end_connection(
        request.connection_id, user.id, kind=Kind.MERCH, reason=request.ended_reason
    )
    return build_response(connection, user, service)


@router.post("/undo_merch_connection", response_model=ConnectionRead)
def undo_merch_connection(
    request: ConnectionIdRequest, user: CurrentUser, service: Connections
):
    connection = service.undo_end(request.connection_id, user.id, kind=Kind.MERCH)
    return build_response(connection, user, service)


@router.post(
    "/get_merch_connection_buyer_profile_for_seller", response_model=BuyerProfileRead
)
def get_merch_connection_buyer_profile_for_seller(
    request: ConnectionIdRequest, user: CurrentUser, service: Connections
):
    return service.get_buyer_profile_for_seller(
        request.connection_id, user.id, kind=Kind.MERCH
    )


@router.post("/get_merch_connection_preview", response_model=PreviewRead)
def get_merch_connection_preview(
    request: ConnectionIdRequest, user: CurrentUser, service: Connections
):
    return service.get_preview(request.connection_id, user.id, kind=Kind.MERCH)


@router.post("/submit_merch_connection_rating", response_model=ConnectionRead)
def submit_merch_connection_rating(
    request: RatingRequest, user: CurrentUser, service: Connections
):
    connection = service.submit_rating(
        request.connection_id, user.id, request.rating, kind=Kind.MERCH
    )
    return build_response(connection, user, service)


# -- maintenance -----------------------------------------------------------


@router.post("/process_connection_timeouts", response_model=SweepResponse)
def process_connection_timeouts(admin: AdminUser, service: Connections):
    return {"expired": service.sweep_expired()}
