"""kchoo - state-machine work queue for source and image ingestion."""

__version__ = "0.1.0"
