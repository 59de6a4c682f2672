"""Orchestration layer - durable workflow engine and the image tagging state machine."""

from src.orchestration.engine import InstanceHandle, StepContext, WorkflowEngine, WorkflowRun
from src.orchestration.state_machine import (
    ImageTaggingWorkflow,
    WorkflowStage,
    create_workflow_engine,
)

__all__ = [
    "InstanceHandle",
    "StepContext",
    "WorkflowEngine",
    "WorkflowRun",
    "ImageTaggingWorkflow",
    "WorkflowStage",
    "create_workflow_engine",
]
