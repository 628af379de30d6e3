"""Status aggregation engine: distributed probes and a central status aggregator."""

__version__ = "0.1.0"
