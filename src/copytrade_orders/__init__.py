"""
Copytrade Orders - resilient order-history fetcher for Binance copy-trading portfolios.

This package exposes a small HTTP service that walks the paginated order history of a
batch of lead portfolios, retrying and falling back across hosts when Binance refuses
automated traffic.
"""

__version__ = "1.0.0"
__author__ = "Copytrade Orders Team"
