"""
Pydantic schemas for API request/response models.
"""

from pydantic import BaseModel, ConfigDict, Field

from candle_replay.data.types import CandleWindow


# ============ Candle Schemas ============

class CandleSchema(BaseModel):
    """Single candle in upstream field naming."""
    time: str = Field(..., examples=["2024-03-01T10:05:00Z"])
    o: float
    h: float
    l: float
    c: float
    v: int = 0
    vb: int = 0
    vs: int = 0


class CandleWindowResponse(BaseModel):
    """Ascending candles plus whether older history exists."""
    model_config = ConfigDict(populate_by_name=True)

    candles: list[CandleSchema] = []
    has_more_past: bool = Field(default=False, alias="hasMorePast")

    @classmethod
    def from_window(cls, window: CandleWindow) -> "CandleWindowResponse":
        return cls(
            candles=[CandleSchema(**c.to_dict()) for c in window.candles],
            has_more_past=window.has_more_past,
        )
