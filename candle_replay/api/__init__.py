"""
HTTP query surface over the candle store.
"""
