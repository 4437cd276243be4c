"""TCG Price Aggregator - multi-source card price lookup."""

__version__ = "0.1.0"
