"""Loader for record-kind YAML configuration."""

from __future__ import annotations

from pathlib import Path

import yaml

from hr_workflow.workflow.models import WorkflowConfig

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parents[1] / "data" / "record_kinds.yaml"


def load_workflow_config(path: str | None = None) -> WorkflowConfig:
    config_path = Path(path) if path else DEFAULT_CONFIG_PATH
    if not config_path.exists():
        raise FileNotFoundError(f"Workflow config file not found: {config_path}")
    with config_path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    return WorkflowConfig.from_yaml(data)
