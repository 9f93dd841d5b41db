"""Services: orchestration, reconciliation, indexing engine, discovery."""

from __future__ import annotations

from code_search.services.engine import CodeIndexingEngine, collection_name_for
from code_search.services.indexing import IndexingOrchestrator
from code_search.services.jobs import JobRunner
from code_search.services.reconciliation import CloudReconciler
from code_search.services.tool_handlers import Backend, ToolHandlers

__all__ = [
    'Backend',
    'CloudReconciler',
    'CodeIndexingEngine',
    'IndexingOrchestrator',
    'JobRunner',
    'ToolHandlers',
    'collection_name_for',
]
