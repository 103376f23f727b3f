"""Marketplace cart, checkout and order-settlement client for the livestock portal."""

__version__ = "1.0.0"
