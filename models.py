# models.py
from pydantic import BaseModel
from typing import List, Literal, Optional
from dataclasses import dataclass


# One stored observation; timestamp is the grid slot it was recorded for
@dataclass(frozen=True)
class PricePoint:
    value: int       # fixed point, scaled by fixed_point.UNIT
    timestamp: int   # epoch seconds


# --- Response models for the HTTP surface ---
# Fixed-point values are serialized as strings: they routinely exceed 2**53.

class PricePointResponse(BaseModel):
    value: str
    timestamp: int

    @classmethod
    def from_point(cls, point: PricePoint) -> "PricePointResponse":
        return cls(value=str(point.value), timestamp=point.timestamp)


class FeedResponse(BaseModel):
    name: str
    data_description: str
    update_interval: int
    next_earliest_update: int
    points: List[PricePointResponse]  # newest first


class OracleResponse(BaseModel):
    name: str
    kind: str
    data_description: str
    value: str


class TriggerResponse(BaseModel):
    name: str
    is_bullish: bool
    last_initial_trigger_timestamp: int
    trigger_flipped_index: int = 0
    pending_direction: Optional[Literal["BULLISH", "BEARISH"]] = None
    # evaluated at the service clock when the response is built
    can_initial_trigger: bool = False
    can_confirm_trigger: bool = False


class AllocationResponse(BaseModel):
    name: str
    allocation: Literal[0, 100]
    is_bullish: bool


class ErrorResponse(BaseModel):
    error: str
    detail: str
