"""Performance measurement harness for the ingest, index and search services."""

__version__ = "0.1.0"
