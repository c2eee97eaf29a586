"""dsar - distributed sar over Prometheus metrics endpoints."""

__version__ = "0.1.0"
