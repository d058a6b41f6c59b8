"""Rules that combine the two parties' independent answers.

Comfort short-circuits on a single "no"; social sharing only waits for both
answers and never looks at their values when deciding to advance.
"""

from app.connections.stages import Role, Stage


def bonding_complete(connection) -> bool:
    return (
        connection.buyer_bonding_submitted_at is not None
        and connection.seller_bonding_submitted_at is not None
    )


def comfort_outcome(buyer_comfort: bool | None, seller_comfort: bool | None) -> Stage | None:
    """Stage the comfort gate resolves to, or ``None`` while still undecided."""
    if buyer_comfort is False or seller_comfort is False:
        return Stage.ENDED
    if buyer_comfort is True and seller_comfort is True:
        return Stage.SOCIAL
    return None


def social_ready(buyer_share: bool | None, seller_share: bool | None) -> bool:
    return buyer_share is not None and seller_share is not None


def both_want_socials(connection) -> bool:
    return connection.buyer_social_share is True and connection.seller_social_share is True


def socials_visible(connection, role: Role) -> bool:
    if role is Role.BUYER:
        agreed = connection.buyer_agreed
    elif role is Role.SELLER:
        agreed = connection.seller_agreed
    else:
        return False
    return both_want_socials(connection) and bool(agreed)


def _party_fields(stage: Stage) -> tuple[str, str] | None:
    if stage in (Stage.BONDING, Stage.BUYER_BONDING_V2):
        return "buyer_bonding_submitted_at", "seller_bonding_submitted_at"
    if stage is Stage.PREVIEW:
        return "buyer_comfort", "seller_comfort"
    if stage is Stage.SOCIAL:
        return "buyer_social_share", "seller_social_share"
    if stage is Stage.AGREEMENT:
        return "buyer_agreed", "seller_agreed"
    return None


def _is_set(stage: Stage, value) -> bool:
    # agreement flags default to False rather than None
    if stage is Stage.AGREEMENT:
        return bool(value)
    return value is not None


def waiting_on_other(connection, role: Role) -> bool:
    """True when ``role`` has answered the current stage and the other party has not."""
    if role is Role.NONE:
        return False
    stage = Stage(connection.stage)
    if stage is Stage.PENDING_SELLER:
        return role is Role.BUYER
    if stage is Stage.BUYER_BONDING_V2:
        return role is Role.SELLER
    fields = _party_fields(stage)
    if fields is None:
        return False
    buyer_field, seller_field = fields
    mine, theirs = (
        (buyer_field, seller_field) if role is Role.BUYER else (seller_field, buyer_field)
    )
    return _is_set(stage, getattr(connection, mine)) and not _is_set(
        stage, getattr(connection, theirs)
    )
