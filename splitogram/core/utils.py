from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Tuple

MICRO_PER_USDT = 1_000_000
CENTS = Decimal("0.01")


def qround(d: Decimal) -> Decimal:
    return d.quantize(CENTS, rounding=ROUND_HALF_UP)


def format_amount(micro_usdt: int) -> str:
    """Render a micro-USDT amount for humans, e.g. 1_500_000 -> "$1.50"."""
    return f"${qround(Decimal(micro_usdt) / MICRO_PER_USDT)}"


def split_equally(amount: int, participant_ids: List[int]) -> List[Tuple[int, int]]:
    """
    Split ``amount`` into integer shares, one per participant.

    Every participant gets ``amount // n``; the first listed participant also
    absorbs the remainder so the shares always sum to ``amount``.
    """
    count = len(participant_ids)
    base_share = amount // count
    remainder = amount - base_share * count

    return [
        (user_id, base_share + remainder if idx == 0 else base_share)
        for idx, user_id in enumerate(participant_ids)
    ]


def utcnow() -> datetime:
    return datetime.now(timezone.utc)
