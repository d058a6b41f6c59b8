from fastapi import APIRouter

from app.connections import aggregator
from app.connections.expiry import within_undo_window
from app.connections.guard import role_of
from app.connections.stages import Role, Stage
from app.connections.variants import variant_for
from app.dependencies import Connections, CurrentUser
from app.models.connection import Connection
from app.models.user import User
from app.schemas.connection import ConnectionRead
from app.services.connection_service import ConnectionService

router = APIRouter(prefix="/connections", tags=["connections"])


def build_response(
    connection: Connection, current_user: User, service: ConnectionService
) -> dict:
    """Build a ConnectionRead-compatible dict from the current user's side.

    Parameters:
        connection: The connection record.
        current_user: The authenticated user.
        service: Connection service, used for the current time.

    Returns:
        Dict matching ConnectionRead schema.
    """
    role: Role = role_of(connection, current_user.id)
    can_undo: bool = (
        connection.stage == Stage.ENDED.value
        and connection.ended_by == current_user.id
        and within_undo_window(connection, service.now(), variant_for(connection.kind))
    )
    return {
        "id": connection.id,
        "kind": connection.kind,
        "listing_id": connection.listing_id,
        "buyer_id": connection.buyer_id,
        "seller_id": connection.seller_id,
        "stage": connection.stage,
        "stage_expires_at": connection.stage_expires_at,
        "bonding_question_ids": connection.bonding_question_ids,
        "buyer_bonding_submitted_at": connection.buyer_bonding_submitted_at,
        "seller_bonding_submitted_at": connection.seller_bonding_submitted_at,
        "buyer_comfort": connection.buyer_comfort,
        "seller_comfort": connection.seller_comfort,
        "buyer_social_share": connection.buyer_social_share,
        "seller_social_share": connection.seller_social_share,
        "buyer_want_social_share": connection.buyer_want_social_share,
        "seller_want_social_share": connection.seller_want_social_share,
        "buyer_agreed": bool(connection.buyer_agreed),
        "seller_agreed": bool(connection.seller_agreed),
        "ended_by": connection.ended_by,
        "ended_at": connection.ended_at,
        "stage_before_ended": connection.stage_before_ended,
        "my_role": role.value,
        "waiting_on_other": aggregator.waiting_on_other(connection, role),
        "socials_visible": aggregator.socials_visible(connection, role),
        "can_undo": can_undo,
    }


@router.get("", response_model=list[ConnectionRead])
def list_connections(user: CurrentUser, service: Connections) -> list[dict]:
    """List every connection the current user buys or sells in.

    Parameters:
        user: The authenticated user.
        service: Connection service.

    Returns:
        Connections, newest first, with lapsed ones already expired.
    """
    connections: list[Connection] = service.list_for_user(user.id)
    return [build_response(c, user, service) for c in connections]


@router.get("/{connection_id}", response_model=ConnectionRead)
def get_connection(connection_id: int, user: CurrentUser, service: Connections) -> dict:
    """Fetch one connection from the current user's side.

    Parameters:
        connection_id: The connection to fetch.
        user: The authenticated user.
        service: Connection service.

    Returns:
        The connection, expired first if its deadline passed.

    Raises:
        NotFound: Unknown connection.
        NotAuthorized: The user is not a participant.
    """
    connection: Connection = service.get_for_participant(connection_id, user.id)
    return build_response(connection, user, service)
