import pytest

from gasfee.gas.gas_util import (
    calculate_time_estimate,
    fetch_eth_gas_price_estimate,
    fetch_gas_estimates,
    fetch_legacy_gas_price_estimates,
)
from gasfee.gas.models import Eip1559GasFee, GasFeeEstimates
from fakes import FakeEthClient


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def raise_for_status(self):
        pass

    async def json(self):
        return self.payload


class FakeSession:
    def __init__(self, payload):
        self.payload = payload
        self.requests = []

    def get(self, url, headers=None):
        self.requests.append((url, headers))
        return FakeResponse(self.payload)


def make_estimates():
    return GasFeeEstimates(
        low=Eip1559GasFee(min_wait_time_estimate=15_000, max_wait_time_estimate=30_000,
                          suggested_max_priority_fee_per_gas="1", suggested_max_fee_per_gas="35"),
        medium=Eip1559GasFee(min_wait_time_estimate=15_000, max_wait_time_estimate=45_000,
                             suggested_max_priority_fee_per_gas="2", suggested_max_fee_per_gas="40"),
        high=Eip1559GasFee(min_wait_time_estimate=15_000, max_wait_time_estimate=60_000,
                           suggested_max_priority_fee_per_gas="3", suggested_max_fee_per_gas="50"),
        estimated_base_fee="30",
    )


@pytest.mark.parametrize("priority_fee, max_fee, lower, upper", [
    ("0.5", "40", None, "unknown"),
    ("1.5", "40", 15_000, 30_000),
    ("2", "40", 15_000, 45_000),
    ("3", "40", 15_000, 60_000),
    ("5", "40", 0, 60_000),
    # the max fee leaves only 1.5 gwei above the base fee for the tip
    ("5", "31.5", 15_000, 30_000),
])
def test_time_estimate_bands(priority_fee, max_fee, lower, upper):
    bounds = calculate_time_estimate(priority_fee, max_fee, make_estimates())
    assert (bounds.lower_time_bound, bounds.upper_time_bound) == (lower, upper)


@pytest.mark.asyncio
async def test_fetch_gas_estimates_normalizes_and_sends_client_id():
    fee = {
        "suggestedMaxPriorityFeePerGas": "1.0000000001234",
        "suggestedMaxFeePerGas": "35.5",
        "minWaitTimeEstimate": 15000,
        "maxWaitTimeEstimate": 30000,
    }
    session = FakeSession({"low": fee, "medium": fee, "high": fee, "estimatedBaseFee": "30.0"})

    estimates = await fetch_gas_estimates("https://gas.test/networks/1/suggestedGasFees", "wallet", session=session)

    assert session.requests == [("https://gas.test/networks/1/suggestedGasFees", {"X-Client-Id": "wallet"})]
    assert estimates.low.suggested_max_priority_fee_per_gas == "1"
    assert estimates.high.suggested_max_fee_per_gas == "35.5"
    assert estimates.estimated_base_fee == "30"


@pytest.mark.asyncio
async def test_fetch_legacy_gas_price_estimates_maps_price_levels():
    session = FakeSession({"SafeGasPrice": "22", "ProposeGasPrice": "25", "FastGasPrice": "30"})

    estimates = await fetch_legacy_gas_price_estimates("https://gas.test/networks/56/gasPrices", session=session)

    assert session.requests == [("https://gas.test/networks/56/gasPrices", {})]
    assert (estimates.low, estimates.medium, estimates.high) == ("22", "25", "30")


@pytest.mark.asyncio
async def test_fetch_eth_gas_price_estimate_converts_to_gwei():
    client = FakeEthClient({"eth_gasPrice": "0x12a05f200"})

    estimate = await fetch_eth_gas_price_estimate(client)

    assert estimate.gas_price == "5"
    assert client.calls == [("eth_gasPrice", [])]
