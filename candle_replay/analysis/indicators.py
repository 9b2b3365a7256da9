"""
Technical indicators module.
Indicator calculations over candle closes using pandas and numpy.
"""

import numpy as np
import pandas as pd


# Value shown for points before the first computable RSI
RSI_DISPLAY_SENTINEL = 0.0


def _rsi_value(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    return 100.0 - 100.0 / (1.0 + rs)


def calculate_rsi(close: pd.Series, length: int = 14) -> pd.Series:
    """
    Calculate Wilder's RSI.

    The first value averages the first `length` price changes; every later
    value uses Wilder smoothing. A zero average loss gives 100.

    Returns:
        Series of len(close) - length values indexed like close[length:],
        or an empty series when fewer than length + 1 closes are given.
    """
    close = pd.Series(close, dtype=float)
    if length < 1 or len(close) < length + 1:
        return pd.Series(dtype=float, name=f"RSI_{length}")

    diff = np.diff(close.to_numpy())
    gains = np.where(diff > 0, diff, 0.0)
    losses = np.where(diff < 0, -diff, 0.0)

    avg_gain = gains[:length].sum() / length
    avg_loss = losses[:length].sum() / length

    values = np.empty(len(close) - length)
    values[0] = _rsi_value(avg_gain, avg_loss)
    for i in range(length, len(diff)):
        avg_gain = (avg_gain * (length - 1) + gains[i]) / length
        avg_loss = (avg_loss * (length - 1) + losses[i]) / length
        values[i - length + 1] = _rsi_value(avg_gain, avg_loss)

    return pd.Series(values, index=close.index[length:], name=f"RSI_{length}")


def rsi_display_series(close: pd.Series, length: int = 14) -> pd.Series:
    """
    RSI aligned to every input point for charting.

    The leading `length` points (and every point when RSI is unavailable)
    carry RSI_DISPLAY_SENTINEL. They are placeholders, not readings.
    """
    close = pd.Series(close, dtype=float)
    out = pd.Series(RSI_DISPLAY_SENTINEL, index=close.index, dtype=float, name=f"RSI_{length}")
    rsi = calculate_rsi(close, length)
    if not rsi.empty:
        out.iloc[length:] = rsi.to_numpy()
    return out
