# /gasfee/core/errors.py


class GasFeeError(Exception):
    """Base class for every error raised by the gas fee engine."""
    pass


class RPCError(GasFeeError):
    """The node answered a JSON-RPC call with an error object."""
    def __init__(self, method: str, error):
        self.method = method
        self.error = error
        super().__init__(f"{method} failed: {error}")


class MalformedFeeHistoryError(GasFeeError):
    """An eth_feeHistory response whose arrays do not line up with the request."""
    pass


class EmptyFeeHistoryError(GasFeeError):
    """Fee estimates were requested from a fee history that holds no blocks."""
    pass


class ChainIdNormalizationError(GasFeeError, ValueError):
    pass


class GasEstimationFailedError(GasFeeError):
    """Every gas estimate source failed, including the eth_gasPrice fallback."""
    pass


class SchedulerDestroyedError(GasFeeError):
    pass
