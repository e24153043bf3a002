# /gasfee/gas/estimates.py
# Local EIP-1559 estimates derived from recent fee history, used when the
# hosted gas API is not configured.

from decimal import Decimal
from typing import Dict, Sequence

from pydantic import BaseModel, ConfigDict

from gasfee.core.errors import EmptyFeeHistoryError, MalformedFeeHistoryError
from gasfee.core.logger import get_logger
from gasfee.gas.fee_history import fetch_fee_history as default_fetch_fee_history
from gasfee.gas.models import BlockFeeHistory, Eip1559GasFee, GasFeeEstimates
from gasfee.gas.units import EXACT, wei_to_gwei_str

log = get_logger(__name__)

NUMBER_OF_RECENT_BLOCKS = 5
PRIORITY_LEVELS = ("low", "medium", "high")
PERCENTILES = (10, 20, 30)


class PrioritySettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    percentile: int
    priority_fee_reduction: Decimal
    min_suggested_max_priority_fee_per_gas: int  # wei
    base_fee_multiplier: Decimal
    min_wait_time_estimate: int  # milliseconds
    max_wait_time_estimate: int  # milliseconds


SETTINGS_BY_PRIORITY_LEVEL: Dict[str, PrioritySettings] = {
    "low": PrioritySettings(
        percentile=10,
        priority_fee_reduction=Decimal("0.06"),
        min_suggested_max_priority_fee_per_gas=1_000_000_000,
        base_fee_multiplier=Decimal("1.2"),
        min_wait_time_estimate=15_000,
        max_wait_time_estimate=30_000,
    ),
    "medium": PrioritySettings(
        percentile=20,
        priority_fee_reduction=Decimal("0.03"),
        min_suggested_max_priority_fee_per_gas=1_500_000_000,
        base_fee_multiplier=Decimal("1.3"),
        min_wait_time_estimate=15_000,
        max_wait_time_estimate=45_000,
    ),
    "high": PrioritySettings(
        percentile=30,
        priority_fee_reduction=Decimal("0.02"),
        min_suggested_max_priority_fee_per_gas=2_000_000_000,
        base_fee_multiplier=Decimal("1.4"),
        min_wait_time_estimate=15_000,
        max_wait_time_estimate=60_000,
    ),
}


def median_of(numbers: Sequence[int]) -> Decimal:
    """
    Midpoint of an odd-length list, or the mean of the two central values of an
    even-length one. The input does not need to be sorted.
    """
    if not numbers:
        raise ValueError("median_of() requires at least one value")
    ordered = sorted(numbers)
    middle = len(ordered) // 2
    if len(ordered) % 2 == 0:
        return EXACT.divide(EXACT.add(Decimal(ordered[middle - 1]), Decimal(ordered[middle])), 2)
    return Decimal(ordered[middle])


def calculate_gas_estimates_for_priority_level(
    priority_level: str,
    latest_base_fee_per_gas: int,
    blocks: Sequence[BlockFeeHistory],
) -> Eip1559GasFee:
    settings = SETTINGS_BY_PRIORITY_LEVEL[priority_level]

    adjusted_base_fee = EXACT.multiply(Decimal(latest_base_fee_per_gas), settings.base_fee_multiplier)
    try:
        priority_fees = [block.priority_fees_by_percentile[settings.percentile] for block in blocks]
    except KeyError as e:
        raise MalformedFeeHistoryError(f"Fee history is missing percentile {settings.percentile}") from e
    median_priority_fee = median_of(priority_fees)
    adjusted_priority_fee = EXACT.multiply(
        median_priority_fee, EXACT.subtract(Decimal(1), settings.priority_fee_reduction)
    )
    suggested_max_priority_fee_per_gas = max(
        adjusted_priority_fee, Decimal(settings.min_suggested_max_priority_fee_per_gas)
    )
    suggested_max_fee_per_gas = EXACT.add(adjusted_base_fee, suggested_max_priority_fee_per_gas)

    return Eip1559GasFee(
        min_wait_time_estimate=settings.min_wait_time_estimate,
        max_wait_time_estimate=settings.max_wait_time_estimate,
        suggested_max_priority_fee_per_gas=wei_to_gwei_str(suggested_max_priority_fee_per_gas),
        suggested_max_fee_per_gas=wei_to_gwei_str(suggested_max_fee_per_gas),
    )


def calculate_gas_estimates_for_all_priority_levels(
    latest_base_fee_per_gas: int,
    blocks: Sequence[BlockFeeHistory],
) -> Dict[str, Eip1559GasFee]:
    return {
        level: calculate_gas_estimates_for_priority_level(level, latest_base_fee_per_gas, blocks)
        for level in PRIORITY_LEVELS
    }


async def fetch_gas_estimates_via_fee_history(client, fetch_fee_history=default_fetch_fee_history) -> GasFeeEstimates:
    """
    Builds low/medium/high fee suggestions from the last few blocks.

    The latest 5 blocks are read at the 10th, 20th and 30th percentiles. Each
    priority level scales the latest base fee by its multiplier and adds a tip
    derived from the median fee at its percentile, floored at a per-level
    minimum.

    Raises:
        EmptyFeeHistoryError: The node returned no blocks.
    """
    fee_history = await fetch_fee_history(client, NUMBER_OF_RECENT_BLOCKS, PERCENTILES)
    if not fee_history.blocks:
        raise EmptyFeeHistoryError(
            f"No fee history returned starting at block {fee_history.start_block_id}"
        )

    latest_block = fee_history.blocks[-1]
    levels = calculate_gas_estimates_for_all_priority_levels(latest_block.base_fee_per_gas, fee_history.blocks)
    log.debug("FEE_HISTORY_ESTIMATES_CALCULATED", blocks=len(fee_history.blocks), latest_base_fee=latest_block.base_fee_per_gas)

    return GasFeeEstimates(
        **levels,
        estimated_base_fee=wei_to_gwei_str(latest_block.base_fee_per_gas),
    )
