"""Spark worker: renders queued video jobs and records their outcome."""

__version__ = "0.1.0"
