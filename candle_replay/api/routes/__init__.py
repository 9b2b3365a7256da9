# Routes package
from candle_replay.api.routes.candles import router as candles_router
from candle_replay.api.routes.meta import router as meta_router

__all__ = ["candles_router", "meta_router"]
