# /gasfee/gas/fee_history.py
from typing import Iterable

from gasfee.core.errors import MalformedFeeHistoryError
from gasfee.core.logger import get_logger
from gasfee.gas.models import BlockFeeHistory, FeeHistory
from gasfee.gas.units import hex_to_int, int_to_hex

log = get_logger(__name__)


async def fetch_fee_history(
    client,
    number_of_blocks: int,
    percentiles: Iterable[int],
    end_block: str = "latest",
) -> FeeHistory:
    """
    Uses ``eth_feeHistory`` (EIP-1559) to read gas fee data for a range of
    recent blocks and reorganizes it by block.

    For every block the node sorts transactions by priority fee and walks them
    while accumulating gas used; the fee of the transaction that crosses each
    requested percentile of the block's gas used is reported. Lower percentiles
    therefore correspond to cheaper tips.

    Args:
        client: Anything exposing ``await client.request(method, params)``.
        number_of_blocks: How many blocks, counting back from ``end_block``.
        percentiles: Values between 1 and 100; de-duplicated and sorted before
            the request is issued.
        end_block: A block tag ("latest", "pending") or a hex block number.

    Returns:
        The fee history, oldest block first. ``blocks`` is empty when the node
        returned no data.

    Raises:
        MalformedFeeHistoryError: The response has no ``oldestBlock`` or its
            arrays do not line up.
    """
    percentiles = sorted(set(percentiles))
    response = await client.request(
        "eth_feeHistory", [int_to_hex(number_of_blocks), end_block, percentiles]
    )

    if not isinstance(response, dict) or not response.get("oldestBlock"):
        raise MalformedFeeHistoryError(f"eth_feeHistory response has no oldestBlock: {response!r}")

    start_block_id = response["oldestBlock"]
    base_fees = response.get("baseFeePerGas") or []
    gas_used_ratios = response.get("gasUsedRatio") or []
    rewards = response.get("reward") or []

    if not (base_fees and gas_used_ratios and rewards):
        log.debug("FEE_HISTORY_EMPTY", start_block_id=start_block_id, number_of_blocks=number_of_blocks)
        return FeeHistory(start_block_id=start_block_id, blocks=())

    # baseFeePerGas carries one extra trailing entry: the computed base fee of
    # the block after the range. Nodes may return fewer blocks than requested
    # on short chains, so the block count comes from gasUsedRatio.
    block_count = len(gas_used_ratios)
    if block_count > number_of_blocks:
        raise MalformedFeeHistoryError(
            f"Requested {number_of_blocks} blocks, received {block_count}"
        )
    if len(base_fees) not in (block_count, block_count + 1) or len(rewards) != block_count:
        raise MalformedFeeHistoryError(
            f"Mismatched fee history arrays: baseFeePerGas={len(base_fees)} "
            f"gasUsedRatio={block_count} reward={len(rewards)}"
        )

    blocks = []
    for index, (base_fee, ratio, reward_row) in enumerate(
        zip(base_fees[:block_count], gas_used_ratios, rewards)
    ):
        if len(reward_row) != len(percentiles):
            raise MalformedFeeHistoryError(
                f"Block {index} reports {len(reward_row)} rewards for {len(percentiles)} percentiles"
            )
        blocks.append(
            BlockFeeHistory(
                base_fee_per_gas=hex_to_int(base_fee),
                gas_used_ratio=ratio,
                priority_fees_by_percentile={
                    percentile: hex_to_int(reward_row[position])
                    for position, percentile in enumerate(percentiles)
                },
            )
        )

    return FeeHistory(start_block_id=start_block_id, blocks=tuple(blocks))
