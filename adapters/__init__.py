"""Adapters between external data sources and the engine."""
