# /gasfee/gas/units.py
# Unit and encoding helpers. Wei amounts stay Python ints end to end; gwei
# amounts are Decimals evaluated under EXACT, which is wide enough that
# uint256 wei values and their gwei fractions never round.

from decimal import Context, Decimal, ROUND_DOWN, ROUND_HALF_EVEN, InvalidOperation
from typing import Union

from gasfee.core.errors import ChainIdNormalizationError

EXACT = Context(prec=256, rounding=ROUND_HALF_EVEN)
GWEI_DECIMALS = 9

ChainId = Union[str, int]


def hex_to_int(value: str) -> int:
    """Decodes a ``0x``-prefixed quantity into an int of any size."""
    if not isinstance(value, str):
        raise TypeError(f"Expected a hex string, got {type(value).__name__}")
    return int(value, 16)


def int_to_hex(value: int) -> str:
    return hex(value)


def format_decimal(value: Decimal) -> str:
    """Plain decimal notation: no exponent, no trailing fractional zeros."""
    return format(value.normalize(EXACT), "f")


def wei_to_gwei(wei: Union[int, Decimal]) -> Decimal:
    return EXACT.scaleb(Decimal(wei), -GWEI_DECIMALS)


def wei_to_gwei_str(wei: Union[int, Decimal]) -> str:
    return format_decimal(wei_to_gwei(wei))


def gwei_to_wei(gwei: Union[str, int, Decimal]) -> int:
    """Converts a decimal gwei amount to wei, dropping sub-wei digits."""
    try:
        amount = Decimal(str(gwei).replace(",", "").strip())
    except InvalidOperation as e:
        raise ValueError(f"Not a decimal gwei amount: {gwei!r}") from e
    return int(EXACT.scaleb(amount, GWEI_DECIMALS).to_integral_value(rounding=ROUND_DOWN))


def normalize_gwei_decimal(gwei: Union[str, int, Decimal]) -> str:
    """Clamps a decimal gwei amount to wei precision and re-renders it."""
    return wei_to_gwei_str(gwei_to_wei(gwei))


def normalize_chain_id(chain_id: ChainId) -> int:
    """
    Accepts a chain id expressed as a ``0x`` hex string, a decimal string or an
    int and returns it as an int.
    """
    if isinstance(chain_id, bool):
        raise ChainIdNormalizationError(f"Could not normalize chain id {chain_id!r}")
    if isinstance(chain_id, int):
        return chain_id
    if isinstance(chain_id, str):
        try:
            if chain_id[:2].lower() == "0x":
                return int(chain_id, 16)
            return int(chain_id, 10)
        except ValueError:
            pass
    raise ChainIdNormalizationError(f"Could not normalize chain id {chain_id!r}")
