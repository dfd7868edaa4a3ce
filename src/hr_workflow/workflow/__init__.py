"""Record-kind configuration and the status transition table."""

from hr_workflow.workflow.loader import load_workflow_config
from hr_workflow.workflow.models import (
    DeletePolicy,
    EndpointTemplates,
    RecordKindConfig,
    TransitionRule,
    WorkflowConfig,
)
from hr_workflow.workflow.table import StatusTransitionTable, TransitionDecision

__all__ = [
    "DeletePolicy",
    "EndpointTemplates",
    "RecordKindConfig",
    "StatusTransitionTable",
    "TransitionDecision",
    "TransitionRule",
    "WorkflowConfig",
    "load_workflow_config",
]
