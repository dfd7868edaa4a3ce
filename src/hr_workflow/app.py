"""Application context assembly."""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

import httpx

from hr_workflow.auth.principal import Principal
from hr_workflow.config import Settings, load_settings
from hr_workflow.notifications import ConfirmPrompt, Notifier
from hr_workflow.page import RecordPage
from hr_workflow.service.client import RecordServiceClient
from hr_workflow.workflow.loader import load_workflow_config
from hr_workflow.workflow.models import WorkflowConfig
from hr_workflow.workflow.table import StatusTransitionTable


@dataclass
class AppContext:
    """Process-wide configuration and the transition table built from it.

    Clients and pages are per session and created through the helpers below.
    """

    settings: Settings
    workflow: WorkflowConfig
    table: StatusTransitionTable

    def create_client(self, transport: httpx.AsyncBaseTransport | None = None) -> RecordServiceClient:
        service = self.settings.service
        return RecordServiceClient(
            service.base_url,
            timeout_seconds=service.timeout_seconds,
            api_token=service.api_token,
            transport=transport,
        )

    def open_page(
        self,
        kind_name: str,
        *,
        client: RecordServiceClient,
        principal: Principal,
        notifier: Notifier,
        confirm: ConfirmPrompt,
    ) -> RecordPage:
        return RecordPage(
            kind_name,
            table=self.table,
            client=client,
            principal=principal,
            notifier=notifier,
            confirm=confirm,
            refresh_interval_seconds=self.settings.refresh.interval_seconds,
            debounce_seconds=self.settings.filtering.debounce_seconds,
            auto_refresh=self.settings.refresh.enabled,
        )


@lru_cache(maxsize=1)
def get_app_context() -> AppContext:
    """Get or create the cached application context."""
    settings = load_settings()
    workflow = load_workflow_config(settings.workflow.config_path)
    return AppContext(
        settings=settings,
        workflow=workflow,
        table=StatusTransitionTable(workflow),
    )
