# /gasfee/gas/source_chain.py
# Ordered gas estimate sources: fee-market first, then the legacy gas price
# API, with eth_gasPrice as the catch-all fallback.

from dataclasses import dataclass
from typing import Awaitable, Callable, List

from gasfee.core.errors import GasEstimationFailedError
from gasfee.core.logger import get_logger, ESTIMATES_FETCHED
from gasfee.core.state import EstimateResult
from gasfee.gas.estimates import fetch_gas_estimates_via_fee_history as default_fetch_gas_estimates_via_fee_history
from gasfee.gas.gas_util import (
    calculate_time_estimate,
    fetch_eth_gas_price_estimate as default_fetch_eth_gas_price_estimate,
    fetch_gas_estimates as default_fetch_gas_estimates,
    fetch_legacy_gas_price_estimates as default_fetch_legacy_gas_price_estimates,
)
from gasfee.gas.models import GasEstimateType

log = get_logger(__name__)

CHAIN_ID_PLACEHOLDER = "<chain_id>"


async def _always() -> bool:
    return True


@dataclass(frozen=True)
class EstimateSource:
    estimate_type: GasEstimateType
    is_available: Callable[[], Awaitable[bool]]
    produce: Callable[[int], Awaitable[EstimateResult]]


class GasEstimateSourceChain:
    """
    Picks the first primary source whose availability check passes and tries
    it. If that attempt raises, or no primary source is available, the
    eth_gasPrice fallback runs instead; a failed fee-market attempt never
    falls through to the legacy API.
    """
    def __init__(
        self,
        *,
        get_client: Callable[[], object],
        is_eip1559_compatible: Callable[[], Awaitable[bool]],
        is_legacy_gas_api_compatible: Callable[[], bool],
        eip1559_api_endpoint: str,
        legacy_api_endpoint: str,
        client_id: str | None = None,
        use_fee_history: bool = False,
        fetch_gas_estimates=default_fetch_gas_estimates,
        fetch_legacy_gas_price_estimates=default_fetch_legacy_gas_price_estimates,
        fetch_eth_gas_price_estimate=default_fetch_eth_gas_price_estimate,
        fetch_gas_estimates_via_fee_history=default_fetch_gas_estimates_via_fee_history,
    ):
        self.get_client = get_client
        self.is_eip1559_compatible = is_eip1559_compatible
        self.is_legacy_gas_api_compatible = is_legacy_gas_api_compatible
        self.eip1559_api_endpoint = eip1559_api_endpoint
        self.legacy_api_endpoint = legacy_api_endpoint
        self.client_id = client_id
        self.use_fee_history = use_fee_history
        self.fetch_gas_estimates = fetch_gas_estimates
        self.fetch_legacy_gas_price_estimates = fetch_legacy_gas_price_estimates
        self.fetch_eth_gas_price_estimate = fetch_eth_gas_price_estimate
        self.fetch_gas_estimates_via_fee_history = fetch_gas_estimates_via_fee_history

        self.primary_sources: List[EstimateSource] = [
            EstimateSource(GasEstimateType.FEE_MARKET, self.is_eip1559_compatible, self._fetch_fee_market),
            EstimateSource(GasEstimateType.LEGACY, self._legacy_available, self._fetch_legacy),
        ]
        self.fallback = EstimateSource(GasEstimateType.ETH_GASPRICE, _always, self._fetch_eth_gas_price)

    async def _legacy_available(self) -> bool:
        return bool(self.is_legacy_gas_api_compatible())

    async def _check(self, source: EstimateSource) -> bool:
        try:
            return bool(await source.is_available())
        except Exception as e:
            log.warning("GAS_SOURCE_AVAILABILITY_CHECK_FAILED", source=source.estimate_type.value, error=str(e))
            return False

    async def estimate(self, chain_id: int) -> EstimateResult:
        """
        Raises:
            GasEstimationFailedError: The fallback source failed too.
        """
        for source in self.primary_sources:
            if not await self._check(source):
                continue
            try:
                result = await source.produce(chain_id)
                ESTIMATES_FETCHED.labels(source.estimate_type.value).inc()
                return result
            except Exception as e:
                log.warning("GAS_SOURCE_FAILED_USING_FALLBACK", source=source.estimate_type.value, chain_id=chain_id, error=str(e))
            break
        else:
            log.info("NO_PRIMARY_GAS_SOURCE_AVAILABLE", chain_id=chain_id)

        try:
            result = await self.fallback.produce(chain_id)
        except Exception as e:
            log.error("ALL_GAS_SOURCES_FAILED", chain_id=chain_id, error=str(e))
            raise GasEstimationFailedError(f"Gas fee/price estimation failed. Message: {e}") from e
        ESTIMATES_FETCHED.labels(self.fallback.estimate_type.value).inc()
        return result

    async def _fetch_fee_market(self, chain_id: int) -> EstimateResult:
        if self.use_fee_history:
            estimates = await self.fetch_gas_estimates_via_fee_history(self.get_client())
        else:
            url = self.eip1559_api_endpoint.replace(CHAIN_ID_PLACEHOLDER, str(chain_id))
            estimates = await self.fetch_gas_estimates(url, self.client_id)
        time_bounds = calculate_time_estimate(
            estimates.medium.suggested_max_priority_fee_per_gas,
            estimates.medium.suggested_max_fee_per_gas,
            estimates,
        )
        return EstimateResult(
            gas_estimate_type=GasEstimateType.FEE_MARKET,
            gas_fee_estimates=estimates,
            estimated_gas_fee_time_bounds=time_bounds,
        )

    async def _fetch_legacy(self, chain_id: int) -> EstimateResult:
        url = self.legacy_api_endpoint.replace(CHAIN_ID_PLACEHOLDER, str(chain_id))
        estimates = await self.fetch_legacy_gas_price_estimates(url, self.client_id)
        return EstimateResult(gas_estimate_type=GasEstimateType.LEGACY, gas_fee_estimates=estimates)

    async def _fetch_eth_gas_price(self, chain_id: int) -> EstimateResult:
        estimates = await self.fetch_eth_gas_price_estimate(self.get_client())
        return EstimateResult(gas_estimate_type=GasEstimateType.ETH_GASPRICE, gas_fee_estimates=estimates)
