"""Workflow definitions module."""

from workflows.source_sync_workflow import SourceSyncWorkflow, SourceSyncInput, TASK_QUEUE

__all__ = ["SourceSyncWorkflow", "SourceSyncInput", "TASK_QUEUE"]
