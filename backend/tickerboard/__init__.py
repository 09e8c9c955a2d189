"""Tickerboard: watchlist dashboard backend."""
