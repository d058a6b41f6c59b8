from dataclasses import dataclass
from datetime import timedelta

from app.config import settings
from app.connections.stages import Kind, Stage


@dataclass(frozen=True)
class VariantConfig:
    """Per-listing-type knobs of the connection workflow.

    Attributes:
        kind: Listing type the variant applies to.
        accept_stage: Stage entered when the seller accepts.
        bonding_question_count: Number of bonding questions drawn.
        stage_timeout: Deadline length of every deadline-bearing stage.
        undo_window: How long the ending party may restore an ended
            connection; ``None`` disables undo.
        ratings_enabled: Whether the buyer may rate the seller.
    """

    kind: Kind
    accept_stage: Stage
    bonding_question_count: int
    stage_timeout: timedelta
    undo_window: timedelta | None = None
    ratings_enabled: bool = True

    @property
    def undo_enabled(self) -> bool:
        return self.undo_window is not None


TICKET = VariantConfig(
    kind=Kind.TICKET,
    accept_stage=Stage.BONDING,
    bonding_question_count=3,
    stage_timeout=timedelta(hours=settings.stage_timeout_hours),
)

MERCH = VariantConfig(
    kind=Kind.MERCH,
    accept_stage=Stage.BUYER_BONDING_V2,
    bonding_question_count=2,
    stage_timeout=timedelta(hours=settings.stage_timeout_hours),
    undo_window=timedelta(minutes=settings.undo_window_minutes),
)

VARIANTS: dict[Kind, VariantConfig] = {Kind.TICKET: TICKET, Kind.MERCH: MERCH}


def variant_for(kind: str) -> VariantConfig:
    return VARIANTS[Kind(kind)]
