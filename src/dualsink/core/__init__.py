"""Core pipeline: models, ports, filter, transformer and aggregator."""
