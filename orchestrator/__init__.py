"""
Orchestration package for coordinating export pipeline phases.

This package sequences discovery, manifest persistence and Markdown export
for a Feishu workspace.
"""

from .export_orchestrator import ExportOrchestrator

__all__ = [
    'ExportOrchestrator'
]
