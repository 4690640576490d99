"""
polymarket_lab — Polymarket data, cache, dashboard and CLI around the betsim core.
"""
