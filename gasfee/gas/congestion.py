# /gasfee/gas/congestion.py
from decimal import Decimal

from gasfee.core.logger import get_logger
from gasfee.gas.fee_history import fetch_fee_history as default_fetch_fee_history
from gasfee.gas.models import FeeHistory
from gasfee.gas.units import EXACT

log = get_logger(__name__)

CONGESTION_WINDOW_BLOCKS = 100
CONGESTION_PERCENTILE = 50
CONGESTION_SPREAD = Decimal("1.1")


def is_congested(fee_history: FeeHistory, percentile: int = CONGESTION_PERCENTILE) -> bool:
    """
    True when the most expensive median-tier tip in the window is at least 10%
    above the cheapest one. Blocks without the percentile are ignored.
    """
    priority_fees = sorted(
        block.priority_fees_by_percentile[percentile]
        for block in fee_history.blocks
        if percentile in block.priority_fees_by_percentile
    )
    if not priority_fees:
        return False
    return Decimal(priority_fees[-1]) >= EXACT.multiply(Decimal(priority_fees[0]), CONGESTION_SPREAD)


async def fetch_network_congestion(client, fetch_fee_history=default_fetch_fee_history) -> bool:
    fee_history = await fetch_fee_history(client, CONGESTION_WINDOW_BLOCKS, [CONGESTION_PERCENTILE])
    congested = is_congested(fee_history)
    log.debug("NETWORK_CONGESTION_EVALUATED", blocks=len(fee_history.blocks), congested=congested)
    return congested
