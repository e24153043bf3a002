# /gasfee/adapters/rpc.py
# Thin async JSON-RPC client over web3's AsyncHTTPProvider.

import aiohttp
from web3 import AsyncHTTPProvider, AsyncWeb3
from web3.types import RPCEndpoint

from gasfee.core.config import settings
from gasfee.core.decorators import retriable_startup_call
from gasfee.core.errors import RPCError
from gasfee.core.logger import get_logger

log = get_logger(__name__)


class EthClient:
    """
    Issues raw JSON-RPC calls and unwraps the ``result`` member. Errors
    reported by the node raise ``RPCError``; transport errors propagate as-is.
    """
    def __init__(self, url: str, timeout_seconds: float = settings.HTTP_TIMEOUT_SECONDS):
        self.url = url
        self.w3 = AsyncWeb3(
            AsyncHTTPProvider(url, request_kwargs={"timeout": aiohttp.ClientTimeout(total=timeout_seconds)})
        )

    async def request(self, method: str, params: list):
        response = await self.w3.provider.make_request(RPCEndpoint(method), params)
        if response.get("error"):
            log.warning("RPC_CALL_FAILED", method=method, error=response["error"])
            raise RPCError(method, response["error"])
        return response["result"]

    @retriable_startup_call
    async def connect(self) -> int:
        """Waits for the node to answer and returns its chain id."""
        chain_id = await self.request("eth_chainId", [])
        log.info("ETH_CLIENT_CONNECTED", chain_id=chain_id)
        return int(chain_id, 16)

    async def supports_eip1559(self) -> bool:
        """A network supports EIP-1559 once its latest block carries a base fee."""
        block = await self.request("eth_getBlockByNumber", ["latest", False])
        return block is not None and block.get("baseFeePerGas") is not None

    async def aclose(self) -> None:
        """Closes the provider's cached aiohttp session."""
        await self.w3.provider.disconnect()
        log.info("ETH_CLIENT_CLOSED")
