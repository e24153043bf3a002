# /gasfee/gas/models.py
# Immutable value types shared by the fee history, estimate and state layers.
# Field names are snake_case in Python and camelCase on the wire.

from enum import Enum
from typing import Dict, Literal, Tuple, Union
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class GasEstimateType(str, Enum):
    """Source of the estimate currently held in state."""
    FEE_MARKET = "fee-market"
    LEGACY = "legacy"
    ETH_GASPRICE = "eth_gasPrice"
    NONE = "none"


class WireModel(BaseModel):
    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)


class BlockFeeHistory(WireModel):
    """
    Historical gas fee data for a single block.

    ``priority_fees_by_percentile`` maps each requested percentile to the
    priority fee (wei) paid by the transaction that crossed that share of the
    block's gas used.
    """
    base_fee_per_gas: int = Field(ge=0)
    gas_used_ratio: float
    priority_fees_by_percentile: Dict[int, int]


class FeeHistory(WireModel):
    """Fee data for a range of blocks, ordered oldest to newest."""
    start_block_id: str
    blocks: Tuple[BlockFeeHistory, ...] = ()


class Eip1559GasFee(WireModel):
    min_wait_time_estimate: int  # milliseconds
    max_wait_time_estimate: int  # milliseconds
    suggested_max_priority_fee_per_gas: str  # decimal gwei
    suggested_max_fee_per_gas: str  # decimal gwei


class GasFeeEstimates(WireModel):
    low: Eip1559GasFee
    medium: Eip1559GasFee
    high: Eip1559GasFee
    estimated_base_fee: str  # decimal gwei, next block


class LegacyGasPriceEstimate(WireModel):
    low: str
    medium: str
    high: str


class EthGasPriceEstimate(WireModel):
    gas_price: str


class EstimatedGasFeeTimeBounds(WireModel):
    lower_time_bound: int | None
    upper_time_bound: Union[int, Literal["unknown"]]


EstimateShape = Union[GasFeeEstimates, LegacyGasPriceEstimate, EthGasPriceEstimate]

ESTIMATE_SHAPES = {
    GasEstimateType.FEE_MARKET: GasFeeEstimates,
    GasEstimateType.LEGACY: LegacyGasPriceEstimate,
    GasEstimateType.ETH_GASPRICE: EthGasPriceEstimate,
    GasEstimateType.NONE: type(None),
}
