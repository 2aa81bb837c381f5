"""
Data Ingestion Module
"""
from .raw_source import CsvRawSource, InMemoryRawSource, RawRecordSource

__all__ = [
    "CsvRawSource",
    "InMemoryRawSource",
    "RawRecordSource",
]
