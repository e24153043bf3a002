# /gasfee/gas/controller.py
# Host for the gas fee engine: owns the state container, the estimate source
# chain and the polling scheduler.

from typing import Awaitable, Callable, Literal

from gasfee.core.config import settings
from gasfee.core.logger import get_logger, STALE_RESULTS_DISCARDED
from gasfee.core.poller import PollingScheduler
from gasfee.core.state import EstimateResult, GasFeeState, StateContainer
from gasfee.gas.congestion import fetch_network_congestion
from gasfee.gas.estimates import fetch_gas_estimates_via_fee_history
from gasfee.gas.fee_history import fetch_fee_history as default_fetch_fee_history
from gasfee.gas.gas_util import (
    calculate_time_estimate,
    fetch_eth_gas_price_estimate as default_fetch_eth_gas_price_estimate,
    fetch_gas_estimates as default_fetch_gas_estimates,
    fetch_legacy_gas_price_estimates as default_fetch_legacy_gas_price_estimates,
)
from gasfee.gas.models import EstimatedGasFeeTimeBounds, GasEstimateType
from gasfee.gas.source_chain import GasEstimateSourceChain
from gasfee.gas.units import ChainId, normalize_chain_id

log = get_logger(__name__)

PollableItem = Literal["gasFeeEstimates", "isNetworkCongested"]
POLLABLE_ITEMS = ("gasFeeEstimates", "isNetworkCongested")


def with_normalized_chain_id(get_chain_id: Callable[[], ChainId]) -> Callable[[], int]:
    """Wraps a chain id getter so that it always yields an int."""
    def get_normalized_chain_id() -> int:
        return normalize_chain_id(get_chain_id())
    return get_normalized_chain_id


class GasFeeController:
    """
    Retrieves gas fee estimates and network congestion and keeps them fresh
    by polling on a fixed interval.

    Every fetch records the network it started on. If the provider or chain
    changes before the fetch finishes, its result is returned to a direct
    caller but never written to state.
    """
    def __init__(
        self,
        *,
        client,
        get_chain_id: Callable[[], ChainId],
        get_network_eip1559_compatibility: Callable[[], Awaitable[bool]],
        get_network_legacy_gas_api_compatibility: Callable[[], bool],
        get_account_eip1559_compatibility: Callable[[], bool] | None = None,
        interval_ms: int = settings.GAS_POLL_INTERVAL_MS,
        state: GasFeeState | None = None,
        eip1559_api_endpoint: str = settings.EIP1559_API_ENDPOINT,
        legacy_api_endpoint: str = settings.LEGACY_API_ENDPOINT,
        client_id: str | None = settings.GAS_API_CLIENT_ID,
        use_fee_history: bool = settings.USE_FEE_HISTORY_ESTIMATES,
        fetch_gas_estimates=default_fetch_gas_estimates,
        fetch_legacy_gas_price_estimates=default_fetch_legacy_gas_price_estimates,
        fetch_eth_gas_price_estimate=default_fetch_eth_gas_price_estimate,
        fetch_fee_history=default_fetch_fee_history,
    ):
        self.client = client
        self.get_chain_id = with_normalized_chain_id(get_chain_id)
        self.get_network_eip1559_compatibility = get_network_eip1559_compatibility
        self.get_account_eip1559_compatibility = get_account_eip1559_compatibility
        self.fetch_fee_history = fetch_fee_history
        self.store = StateContainer(state)
        self._network_generation = 0

        self.source_chain = GasEstimateSourceChain(
            get_client=lambda: self.client,
            is_eip1559_compatible=self.get_eip1559_compatibility,
            is_legacy_gas_api_compatible=get_network_legacy_gas_api_compatibility,
            eip1559_api_endpoint=eip1559_api_endpoint,
            legacy_api_endpoint=legacy_api_endpoint,
            client_id=client_id,
            use_fee_history=use_fee_history,
            fetch_gas_estimates=fetch_gas_estimates,
            fetch_legacy_gas_price_estimates=fetch_legacy_gas_price_estimates,
            fetch_eth_gas_price_estimate=fetch_eth_gas_price_estimate,
            fetch_gas_estimates_via_fee_history=self._fetch_gas_estimates_via_fee_history,
        )
        self.scheduler = PollingScheduler(
            {
                "gasFeeEstimates": self._fetch_gas_fee_estimate_data,
                "isNetworkCongested": self.determine_network_congestion,
            },
            interval_ms=interval_ms,
        )
        log.info("GAS_FEE_CONTROLLER_INITIALIZED", interval_ms=interval_ms, use_fee_history=use_fee_history)

    @property
    def state(self) -> GasFeeState:
        return self.store.state

    @property
    def poll_queue(self):
        return self.scheduler.poll_queue

    async def fetch_gas_fee_estimates(self, should_update_state: bool = True) -> EstimateResult:
        """
        One-off estimate. Errors propagate to the caller. Pass
        ``should_update_state=False`` to leave the polled state untouched.
        """
        return await self._fetch_gas_fee_estimate_data(should_update_state=should_update_state)

    async def get_gas_fee_estimates_and_start_polling(self, _polling_token: str | None = None) -> str:
        """Deprecated: use ``update_with_and_start_polling_for("gasFeeEstimates")``."""
        await self.update_with_and_start_polling_for("gasFeeEstimates")
        return "gasFeeEstimates"

    async def update_with_and_start_polling_for(self, item: PollableItem) -> None:
        """
        Fetches the item once, writing the result to state, then keeps it
        fresh on the polling interval.
        """
        await self.scheduler.subscribe(item)

    def stop_polling_for(self, item: PollableItem) -> None:
        self.scheduler.unsubscribe(item)

    def disconnect_poller(self, item: PollableItem) -> None:
        """Deprecated: use ``stop_polling_for``."""
        self.stop_polling_for(item)

    def stop_polling(self) -> None:
        self.scheduler.stop_all()

    def destroy(self) -> None:
        self.scheduler.destroy()

    def on_network_state_change(self, client) -> None:
        """Swaps in the provider for a newly selected network."""
        self.client = client
        self._network_generation += 1
        log.info("GAS_FEE_NETWORK_CHANGED", generation=self._network_generation)

    async def get_eip1559_compatibility(self) -> bool:
        try:
            network_compatible = await self.get_network_eip1559_compatibility()
            account_compatible = (
                self.get_account_eip1559_compatibility()
                if self.get_account_eip1559_compatibility is not None
                else True
            )
            return bool(network_compatible and account_compatible)
        except Exception as e:
            log.warning("EIP1559_COMPATIBILITY_CHECK_FAILED", error=str(e))
            return False

    def get_time_estimate(self, max_priority_fee_per_gas: str, max_fee_per_gas: str) -> EstimatedGasFeeTimeBounds | None:
        """Wait window for a custom fee pair; ``None`` unless state holds fee-market estimates."""
        state = self.state
        if state.gas_estimate_type != GasEstimateType.FEE_MARKET:
            return None
        return calculate_time_estimate(max_priority_fee_per_gas, max_fee_per_gas, state.gas_fee_estimates)

    async def determine_network_congestion(self) -> bool:
        """
        Flags the network as congested when recent median tips are spread by
        10% or more. Non-EIP-1559 networks report False without a request and
        without touching state.
        """
        if not await self.get_eip1559_compatibility():
            return False

        generation, chain_id = self._network_generation, self.get_chain_id()
        is_network_congested = await fetch_network_congestion(self.client, fetch_fee_history=self.fetch_fee_history)
        if self._is_stale(generation, chain_id):
            STALE_RESULTS_DISCARDED.labels("isNetworkCongested").inc()
            log.warning("STALE_CONGESTION_RESULT_DISCARDED", chain_id=chain_id)
            return is_network_congested

        self.store.update(is_network_congested=is_network_congested)
        return is_network_congested

    async def _fetch_gas_fee_estimate_data(self, should_update_state: bool = True) -> EstimateResult:
        generation, chain_id = self._network_generation, self.get_chain_id()
        result = await self.source_chain.estimate(chain_id)

        if should_update_state:
            if self._is_stale(generation, chain_id):
                STALE_RESULTS_DISCARDED.labels("gasFeeEstimates").inc()
                log.warning("STALE_GAS_ESTIMATE_DISCARDED", chain_id=chain_id, gas_estimate_type=result.gas_estimate_type.value)
            else:
                self.store.update(**result.estimate_fields())
                log.info("GAS_FEE_ESTIMATES_UPDATED", chain_id=chain_id, gas_estimate_type=result.gas_estimate_type.value)
        return result

    async def _fetch_gas_estimates_via_fee_history(self, client):
        return await fetch_gas_estimates_via_fee_history(client, fetch_fee_history=self.fetch_fee_history)

    def _is_stale(self, generation: int, chain_id: int) -> bool:
        if generation != self._network_generation:
            return True
        try:
            return self.get_chain_id() != chain_id
        except Exception as e:
            log.warning("CHAIN_ID_RECHECK_FAILED", error=str(e))
            return True
