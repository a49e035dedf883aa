"""Ingest sinks: the buffered database sink and the dual-write decorator."""

from dualsink.ingest.composite import CompositeIngest
from dualsink.ingest.database import DatabaseIngest

__all__ = ["CompositeIngest", "DatabaseIngest"]
