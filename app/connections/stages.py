from enum import Enum


class Stage(str, Enum):
    PENDING_SELLER = "pending_seller"
    BUYER_BONDING_V2 = "buyer_bonding_v2"
    BONDING = "bonding"
    PREVIEW = "preview"
    SOCIAL = "social"
    AGREEMENT = "agreement"
    CHAT_OPEN = "chat_open"
    ENDED = "ended"
    EXPIRED = "expired"
    DECLINED = "declined"


class Kind(str, Enum):
    TICKET = "ticket"
    MERCH = "merch"


class Role(str, Enum):
    BUYER = "buyer"
    SELLER = "seller"
    NONE = "none"

    @property
    def other(self) -> "Role":
        if self is Role.BUYER:
            return Role.SELLER
        if self is Role.SELLER:
            return Role.BUYER
        return Role.NONE


class Action(str, Enum):
    SELLER_RESPOND = "seller_respond"
    SUBMIT_BONDING = "submit_bonding"
    SET_COMFORT = "set_comfort"
    SET_SOCIAL_SHARE = "set_social_share"
    ACCEPT_AGREEMENT = "accept_agreement"
    END = "end"
    UNDO_END = "undo_end"
    RATE = "rate"
    PREVIEW = "preview"
    BUYER_PROFILE = "buyer_profile"


TERMINAL_STAGES = frozenset({Stage.ENDED, Stage.EXPIRED, Stage.DECLINED})

# Stages whose deadline lapse moves the connection to expired.
DEADLINE_STAGES = frozenset(
    {
        Stage.PENDING_SELLER,
        Stage.BUYER_BONDING_V2,
        Stage.BONDING,
        Stage.PREVIEW,
        Stage.SOCIAL,
        Stage.AGREEMENT,
    }
)

PREVIEW_STAGES = frozenset(
    {
        Stage.PREVIEW,
        Stage.SOCIAL,
        Stage.AGREEMENT,
        Stage.CHAT_OPEN,
        Stage.ENDED,
        Stage.EXPIRED,
    }
)

# Directed graph of legal moves; terminal stages only leave through undo.
STAGE_GRAPH: dict[Stage, frozenset[Stage]] = {
    Stage.PENDING_SELLER: frozenset(
        {Stage.BONDING, Stage.BUYER_BONDING_V2, Stage.DECLINED, Stage.ENDED, Stage.EXPIRED}
    ),
    Stage.BUYER_BONDING_V2: frozenset({Stage.BONDING, Stage.ENDED, Stage.EXPIRED}),
    Stage.BONDING: frozenset({Stage.PREVIEW, Stage.ENDED, Stage.EXPIRED}),
    Stage.PREVIEW: frozenset({Stage.SOCIAL, Stage.ENDED, Stage.EXPIRED}),
    Stage.SOCIAL: frozenset({Stage.AGREEMENT, Stage.ENDED, Stage.EXPIRED}),
    Stage.AGREEMENT: frozenset({Stage.CHAT_OPEN, Stage.ENDED, Stage.EXPIRED}),
    Stage.CHAT_OPEN: frozenset({Stage.ENDED}),
    Stage.ENDED: frozenset(),
    Stage.EXPIRED: frozenset(),
    Stage.DECLINED: frozenset(),
}


def can_transition(current: Stage, target: Stage) -> bool:
    """Check whether moving from current to target follows the stage graph."""
    return target in STAGE_GRAPH.get(current, frozenset())
