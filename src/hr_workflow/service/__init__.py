"""Record service client."""

from hr_workflow.service.client import RecordServiceClient

__all__ = ["RecordServiceClient"]
