# /gasfee/core/state.py
from typing import Any, Callable, Dict, List, Optional
from pydantic import BaseModel, ConfigDict, model_validator

from gasfee.core.logger import get_logger
from gasfee.gas.models import (
    ESTIMATE_SHAPES,
    EstimatedGasFeeTimeBounds,
    EstimateShape,
    GasEstimateType,
)

log = get_logger(__name__)

StateListener = Callable[["GasFeeState", "GasFeeState"], None]


class EstimateResult(BaseModel):
    """
    One settled gas estimate. ``gas_estimate_type`` tags which shape
    ``gas_fee_estimates`` holds; a mismatched pair is rejected on construction.
    """
    model_config = ConfigDict(frozen=True)

    gas_estimate_type: GasEstimateType = GasEstimateType.NONE
    gas_fee_estimates: Optional[EstimateShape] = None
    estimated_gas_fee_time_bounds: Optional[EstimatedGasFeeTimeBounds] = None

    @model_validator(mode="after")
    def _check_shape(self):
        expected = ESTIMATE_SHAPES[self.gas_estimate_type]
        if not isinstance(self.gas_fee_estimates, expected):
            raise ValueError(
                f"gas_fee_estimates of type {type(self.gas_fee_estimates).__name__} "
                f"does not match estimate type {self.gas_estimate_type.value}"
            )
        if self.estimated_gas_fee_time_bounds is not None and self.gas_estimate_type != GasEstimateType.FEE_MARKET:
            raise ValueError("Only fee-market estimates carry time bounds")
        return self

    def estimate_fields(self) -> Dict[str, Any]:
        return {
            "gas_estimate_type": self.gas_estimate_type,
            "gas_fee_estimates": self.gas_fee_estimates,
            "estimated_gas_fee_time_bounds": self.estimated_gas_fee_time_bounds,
        }

    def to_dict(self) -> Dict[str, Any]:
        """camelCase rendering with ``{}`` standing in for absent estimates."""
        return {
            "gasFeeEstimates": self.gas_fee_estimates.model_dump(by_alias=True) if self.gas_fee_estimates else {},
            "estimatedGasFeeTimeBounds": (
                self.estimated_gas_fee_time_bounds.model_dump(by_alias=True)
                if self.estimated_gas_fee_time_bounds
                else {}
            ),
            "gasEstimateType": self.gas_estimate_type.value,
        }


class GasFeeState(EstimateResult):
    """Complete gas fee state: the latest estimate plus the congestion flag."""
    is_network_congested: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["isNetworkCongested"] = self.is_network_congested
        return data


class StateContainer:
    """
    Holds the current GasFeeState and swaps it wholesale on every update.
    Listeners receive ``(new_state, previous_state)`` after each swap.
    """
    def __init__(self, initial_state: GasFeeState | None = None):
        self._state = initial_state or GasFeeState()
        self._listeners: List[StateListener] = []

    @property
    def state(self) -> GasFeeState:
        return self._state

    def update(self, **fields) -> GasFeeState:
        """
        Replaces the given fields together. The candidate state is validated in
        full before it becomes visible, so a rejected update leaves the previous
        state in place.
        """
        previous = self._state
        candidate = GasFeeState(**{**dict(previous), **fields})
        self._state = candidate
        log.debug("GAS_FEE_STATE_UPDATED", fields=sorted(fields))
        for listener in list(self._listeners):
            try:
                listener(candidate, previous)
            except Exception as e:
                log.error("STATE_LISTENER_FAILED", listener=getattr(listener, "__name__", repr(listener)), error=str(e))
        return candidate

    def reset(self) -> GasFeeState:
        return self.update(**dict(GasFeeState()))

    def subscribe(self, listener: StateListener) -> Callable[[], None]:
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe
