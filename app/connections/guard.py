"""Participant checks run before any connection action.

The guard re-checks the stage deadline on its own so a client holding a
stale view can never act on a connection whose deadline already passed,
whether or not the periodic sweep has run.
"""

from datetime import datetime

from app.connections.errors import ConflictExpired, NotAuthorized, StageClosed
from app.connections.expiry import is_expired
from app.connections.stages import Action, Role, Stage, TERMINAL_STAGES, PREVIEW_STAGES

_BOTH = frozenset({Role.BUYER, Role.SELLER})
_BUYER = frozenset({Role.BUYER})
_SELLER = frozenset({Role.SELLER})

_NON_TERMINAL = frozenset(Stage) - TERMINAL_STAGES

# action -> {stage: roles allowed to perform it there}
PERMISSIONS: dict[Action, dict[Stage, frozenset[Role]]] = {
    Action.SELLER_RESPOND: {Stage.PENDING_SELLER: _SELLER},
    Action.SUBMIT_BONDING: {
        Stage.BUYER_BONDING_V2: _BUYER,
        Stage.BONDING: _BOTH,
    },
    Action.SET_COMFORT: {Stage.PREVIEW: _BOTH},
    Action.SET_SOCIAL_SHARE: {Stage.SOCIAL: _BOTH},
    Action.ACCEPT_AGREEMENT: {Stage.AGREEMENT: _BOTH},
    Action.END: {stage: _BOTH for stage in _NON_TERMINAL},
    Action.UNDO_END: {Stage.ENDED: _BOTH},
    Action.RATE: {Stage.CHAT_OPEN: _BUYER, Stage.ENDED: _BUYER},
    Action.PREVIEW: {stage: _BOTH for stage in PREVIEW_STAGES},
    Action.BUYER_PROFILE: {Stage.PENDING_SELLER: _SELLER},
}

_STAGE_MESSAGES = {
    Stage.DECLINED: "The seller declined this connection.",
    Stage.ENDED: "This connection has ended.",
    Stage.EXPIRED: "This connection has expired.",
}

# Read-only actions never trip the deadline check.
_READ_ONLY = frozenset({Action.PREVIEW, Action.BUYER_PROFILE})


def role_of(connection, actor_id: int | None) -> Role:
    if actor_id is None:
        return Role.NONE
    if actor_id == connection.buyer_id:
        return Role.BUYER
    if actor_id == connection.seller_id:
        return Role.SELLER
    return Role.NONE


def authorize(connection, actor_id: int | None, action: Action, now: datetime) -> Role:
    """Return the actor's role if it may perform ``action`` right now.

    Raises:
        NotAuthorized: Actor is not a participant or has the wrong role.
        ConflictExpired: The current stage's deadline has passed.
        StageClosed: The action is not valid in the current stage.
    """
    role = role_of(connection, actor_id)
    if role is Role.NONE:
        raise NotAuthorized("You are not part of this connection.")

    if action not in _READ_ONLY and is_expired(connection, now):
        raise ConflictExpired()

    stage = Stage(connection.stage)
    allowed = PERMISSIONS[action]
    if stage not in allowed:
        if stage in TERMINAL_STAGES:
            raise StageClosed(_STAGE_MESSAGES[stage])
        raise StageClosed(f"This action is not available while the connection is in {stage.value}.")
    if role not in allowed[stage]:
        raise NotAuthorized(f"The {role.value} cannot do this while the connection is in {stage.value}.")
    return role
