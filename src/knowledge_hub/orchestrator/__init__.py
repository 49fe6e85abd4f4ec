"""Orchestrator: fans user actions out to the backends and merges the results."""

from knowledge_hub.orchestrator.flows import Orchestrator, UploadRequest
from knowledge_hub.orchestrator.http_app import create_orchestrator_app
from knowledge_hub.orchestrator.steps import CriticalStepFailed, Step, StepRunner

__all__ = [
    "CriticalStepFailed",
    "Orchestrator",
    "Step",
    "StepRunner",
    "UploadRequest",
    "create_orchestrator_app",
]
