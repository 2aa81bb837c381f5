"""
Workflow Module
"""
from .batch_etl import PipelineResult, export_reports, run_batch_etl

__all__ = [
    "PipelineResult",
    "export_reports",
    "run_batch_etl",
]
