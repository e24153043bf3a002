# /gasfee/gas/gas_util.py
# Remote estimate sources (hosted gas API over aiohttp, eth_gasPrice over the
# node's RPC) and the wait-time banding used for fee-market estimates.

import aiohttp

from gasfee.core.config import settings
from gasfee.core.logger import get_logger
from gasfee.gas.models import (
    Eip1559GasFee,
    EstimatedGasFeeTimeBounds,
    EthGasPriceEstimate,
    GasFeeEstimates,
    LegacyGasPriceEstimate,
)
from gasfee.gas.units import gwei_to_wei, hex_to_int, normalize_gwei_decimal, wei_to_gwei_str

log = get_logger(__name__)


async def _get_json(url: str, client_id: str | None = None, session: aiohttp.ClientSession | None = None) -> dict:
    headers = {"X-Client-Id": client_id} if client_id else {}
    if session is None:
        timeout = aiohttp.ClientTimeout(total=settings.HTTP_TIMEOUT_SECONDS)
        async with aiohttp.ClientSession(timeout=timeout) as owned_session:
            return await _get_json(url, client_id, owned_session)
    async with session.get(url, headers=headers) as resp:
        resp.raise_for_status()
        return await resp.json()


def _normalize_gas_fee(fee: dict) -> Eip1559GasFee:
    return Eip1559GasFee(
        min_wait_time_estimate=int(fee["minWaitTimeEstimate"]),
        max_wait_time_estimate=int(fee["maxWaitTimeEstimate"]),
        suggested_max_priority_fee_per_gas=normalize_gwei_decimal(fee["suggestedMaxPriorityFeePerGas"]),
        suggested_max_fee_per_gas=normalize_gwei_decimal(fee["suggestedMaxFeePerGas"]),
    )


async def fetch_gas_estimates(url: str, client_id: str | None = None, session: aiohttp.ClientSession | None = None) -> GasFeeEstimates:
    """Reads EIP-1559 low/medium/high suggestions from the hosted gas API."""
    data = await _get_json(url, client_id, session)
    estimates = GasFeeEstimates(
        low=_normalize_gas_fee(data["low"]),
        medium=_normalize_gas_fee(data["medium"]),
        high=_normalize_gas_fee(data["high"]),
        estimated_base_fee=normalize_gwei_decimal(data["estimatedBaseFee"]),
    )
    log.debug("GAS_API_ESTIMATES_FETCHED", url=url)
    return estimates


async def fetch_legacy_gas_price_estimates(url: str, client_id: str | None = None, session: aiohttp.ClientSession | None = None) -> LegacyGasPriceEstimate:
    """Reads pre-London style gas prices (safe/propose/fast) from the legacy API."""
    data = await _get_json(url, client_id, session)
    estimates = LegacyGasPriceEstimate(
        low=normalize_gwei_decimal(data["SafeGasPrice"]),
        medium=normalize_gwei_decimal(data["ProposeGasPrice"]),
        high=normalize_gwei_decimal(data["FastGasPrice"]),
    )
    log.debug("LEGACY_GAS_API_ESTIMATES_FETCHED", url=url)
    return estimates


async def fetch_eth_gas_price_estimate(client) -> EthGasPriceEstimate:
    gas_price = await client.request("eth_gasPrice", [])
    return EthGasPriceEstimate(gas_price=wei_to_gwei_str(hex_to_int(gas_price)))


def calculate_time_estimate(
    max_priority_fee_per_gas: str,
    max_fee_per_gas: str,
    gas_fee_estimates: GasFeeEstimates,
) -> EstimatedGasFeeTimeBounds:
    """
    Places a (tip, max fee) pair into one of the estimate's priority bands and
    returns that band's wait window. The effective tip is capped by what the
    max fee leaves over the estimated base fee.
    """
    low = gas_fee_estimates.low
    medium = gas_fee_estimates.medium
    high = gas_fee_estimates.high

    effective_priority_fee = min(
        gwei_to_wei(max_priority_fee_per_gas),
        gwei_to_wei(max_fee_per_gas) - gwei_to_wei(gas_fee_estimates.estimated_base_fee),
    )
    low_priority_fee = gwei_to_wei(low.suggested_max_priority_fee_per_gas)
    medium_priority_fee = gwei_to_wei(medium.suggested_max_priority_fee_per_gas)
    high_priority_fee = gwei_to_wei(high.suggested_max_priority_fee_per_gas)

    if effective_priority_fee < low_priority_fee:
        return EstimatedGasFeeTimeBounds(lower_time_bound=None, upper_time_bound="unknown")
    if effective_priority_fee < medium_priority_fee:
        band = low
    elif effective_priority_fee < high_priority_fee:
        band = medium
    elif effective_priority_fee == high_priority_fee:
        band = high
    else:
        # Above the high tip there is no useful lower bound.
        return EstimatedGasFeeTimeBounds(lower_time_bound=0, upper_time_bound=high.max_wait_time_estimate)
    return EstimatedGasFeeTimeBounds(
        lower_time_bound=band.min_wait_time_estimate,
        upper_time_bound=band.max_wait_time_estimate,
    )
