"""Record-kind configuration models."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from hr_workflow.auth.principal import Role


def _ensure_list(v: Any) -> list:
    """Convert None to empty list and a scalar to a one-item list."""
    if v is None:
        return []
    if isinstance(v, str):
        return [v]
    return v


class EndpointTemplates(BaseModel):
    """URL templates relative to the service base URL. ``{id}`` is substituted."""

    list_records: str
    create: str
    update: str
    status: str
    delete: str
    reschedule: str | None = None
    bulk_status: str | None = None
    export: str | None = None

    @field_validator("update", "status", "delete", "reschedule")
    @classmethod
    def _validate_id_placeholder(cls, v: str | None) -> str | None:
        if v is not None and "{id}" not in v:
            raise ValueError(f"Endpoint template '{v}' must contain an {{id}} placeholder")
        return v


class TransitionRule(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    from_statuses: list[str] = Field(alias="from")
    to: str
    writes_status: str | None = Field(
        default=None,
        description="Business status stored when the action name differs (force_approved -> approved).",
    )
    requires_remarks: bool = Field(default=False)
    roles: list[Role] = Field(default_factory=lambda: [Role.ANY])
    destructive: bool = Field(default=False)
    reschedule: bool = Field(default=False)
    force_approval: bool = Field(default=False)
    endpoint: str | None = Field(default=None)

    @field_validator("from_statuses", "roles", mode="before")
    @classmethod
    def _validate_lists(cls, v: Any) -> list:
        return _ensure_list(v)

    @property
    def result_status(self) -> str:
        return self.writes_status or self.to


class DeletePolicy(BaseModel):
    statuses: list[str] | None = Field(
        default=None,
        description="Statuses in which deletion is allowed; defaults to the initial statuses.",
    )
    roles: list[Role] = Field(
        default_factory=lambda: [Role.OWNER, Role.DEPARTMENT_MANAGER, Role.SUPER_ADMIN]
    )
    confirmation_message: str = Field(default="Are you sure you want to delete this record?")

    @field_validator("roles", mode="before")
    @classmethod
    def _validate_roles(cls, v: Any) -> list:
        return _ensure_list(v)


class RecordKindConfig(BaseModel):
    name: str
    label: str = ""
    collection_key: str
    record_key: str | None = Field(
        default=None,
        description="Key holding a single record in service responses (e.g. 'travelOrder').",
    )
    statuses: list[str]
    initial_statuses: list[str]
    start_field: str = Field(default="start_time")
    end_field: str = Field(default="end_time")
    participants_field: str | None = Field(default=None)
    department_field: str | None = Field(
        default=None,
        description="Dotted path of the owning department; makes department_manager rules scoped.",
    )
    searchable_fields: list[str] = Field(default_factory=list)
    bulk_ids_field: str = Field(default="ids")
    endpoints: EndpointTemplates
    transitions: list[TransitionRule] = Field(default_factory=list)
    delete: DeletePolicy = Field(default_factory=DeletePolicy)

    @field_validator("statuses", "initial_statuses", "searchable_fields", mode="before")
    @classmethod
    def _validate_lists(cls, v: Any) -> list:
        return _ensure_list(v)

    @model_validator(mode="after")
    def _validate_statuses(self) -> "RecordKindConfig":
        known = set(self.statuses)
        unknown_initial = set(self.initial_statuses) - known
        if unknown_initial:
            raise ValueError(
                f"{self.name}: initial statuses {sorted(unknown_initial)} are not declared"
            )
        for rule in self.transitions:
            unknown = set(rule.from_statuses) - known
            if unknown:
                raise ValueError(
                    f"{self.name}: transition to '{rule.to}' starts from undeclared "
                    f"statuses {sorted(unknown)}"
                )
            if rule.result_status not in known:
                raise ValueError(
                    f"{self.name}: transition '{rule.to}' writes undeclared status "
                    f"'{rule.result_status}'"
                )
            if rule.reschedule and not self.endpoints.reschedule and not rule.endpoint:
                raise ValueError(f"{self.name}: reschedule transition needs a reschedule endpoint")
        if self.delete.statuses is not None:
            unknown_delete = set(self.delete.statuses) - known
            if unknown_delete:
                raise ValueError(
                    f"{self.name}: delete policy names undeclared statuses {sorted(unknown_delete)}"
                )
        if not self.label:
            self.label = self.name.replace("_", " ").title()
        return self

    @property
    def deletable_statuses(self) -> frozenset[str]:
        if self.delete.statuses is None:
            return frozenset(self.initial_statuses)
        return frozenset(self.delete.statuses)

    @property
    def supports_bulk(self) -> bool:
        return self.endpoints.bulk_status is not None

    def rules_from(self, status: str) -> list[TransitionRule]:
        return [rule for rule in self.transitions if status in rule.from_statuses]

    def rule_for(self, from_status: str, to_status: str) -> TransitionRule | None:
        for rule in self.transitions:
            if rule.to == to_status and from_status in rule.from_statuses:
                return rule
        return None


class WorkflowConfig(BaseModel):
    version: int = Field(default=1)
    kinds: dict[str, RecordKindConfig] = Field(default_factory=dict)

    @field_validator("kinds", mode="before")
    @classmethod
    def _inject_kind_names(cls, v: Any) -> dict:
        if v is None:
            return {}
        if isinstance(v, dict):
            return {
                name: ({**data, "name": name} if isinstance(data, dict) else data)
                for name, data in v.items()
            }
        return v

    def kind(self, name: str) -> RecordKindConfig:
        try:
            return self.kinds[name]
        except KeyError:
            raise ValueError(
                f"Unknown record kind '{name}'. Known kinds: {', '.join(sorted(self.kinds))}"
            ) from None

    @classmethod
    def from_yaml(cls, data: dict[str, object]) -> "WorkflowConfig":
        return cls.model_validate(data)
