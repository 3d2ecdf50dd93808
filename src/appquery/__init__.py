"""appquery: resource discovery and endpoint derivation for deployed applications."""

__version__ = "0.1.0"
