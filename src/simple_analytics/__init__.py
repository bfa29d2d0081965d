"""simple-analytics: page-visit collector and aggregation API."""

__version__ = "0.1.0"
