"""Status transition evaluation."""

from __future__ import annotations

from dataclasses import dataclass, field

from hr_workflow.auth.principal import Principal, Role
from hr_workflow.domain.records import Record, Schedule
from hr_workflow.workflow.models import RecordKindConfig, TransitionRule, WorkflowConfig


@dataclass
class TransitionDecision:
    allowed: bool
    reasons: list[str]
    rule: TransitionRule | None = None
    field_errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def requires_confirmation(self) -> bool:
        return bool(self.rule and self.rule.destructive)


class StatusTransitionTable:
    """Answers which status changes a principal may make on a record."""

    def __init__(self, config: WorkflowConfig) -> None:
        self._config = config

    @property
    def config(self) -> WorkflowConfig:
        return self._config

    def kind(self, name: str) -> RecordKindConfig:
        return self._config.kind(name)

    def is_legal_edge(self, kind_name: str, from_status: str, to_status: str) -> bool:
        kind = self.kind(kind_name)
        for rule in kind.transitions:
            if from_status in rule.from_statuses and rule.result_status == to_status:
                return True
        return False

    def available(self, record: Record, principal: Principal) -> list[TransitionRule]:
        kind = self.kind(record.kind)
        return [
            rule
            for rule in kind.rules_from(record.status)
            if self._roles_permit(rule.roles, record, principal, kind)
        ]

    def can_select(self, record: Record, principal: Principal) -> bool:
        return bool(self.available(record, principal))

    def evaluate(
        self,
        record: Record,
        to_status: str,
        principal: Principal,
        *,
        remarks: str | None = "",
        schedule: Schedule | None = None,
    ) -> TransitionDecision:
        kind = self.kind(record.kind)
        rule = kind.rule_for(record.status, to_status)
        if rule is None:
            return TransitionDecision(
                False,
                [f"{kind.label} cannot move from '{record.status}' to '{to_status}'"],
            )

        if not self._roles_permit(rule.roles, record, principal, kind):
            roles = ", ".join(role.value for role in rule.roles)
            return TransitionDecision(
                False,
                [f"Transition to '{to_status}' requires one of: {roles}"],
                rule,
            )

        reasons: list[str] = []
        field_errors: dict[str, list[str]] = {}
        if rule.requires_remarks and not (remarks or "").strip():
            reasons.append(f"Remarks are required to set status '{to_status}'")
            field_errors["remarks"] = ["Remarks are required."]

        if rule.reschedule:
            if schedule is None:
                reasons.append("A new start and end are required to reschedule")
                field_errors[kind.start_field] = ["Start is required."]
                field_errors[kind.end_field] = ["End is required."]
            elif schedule.end <= schedule.start:
                reasons.append("End must be after start")
                field_errors[kind.end_field] = ["End must be after start."]

        if reasons:
            return TransitionDecision(False, reasons, rule, field_errors)
        return TransitionDecision(True, [], rule)

    def can_delete(self, record: Record, principal: Principal) -> TransitionDecision:
        kind = self.kind(record.kind)
        if record.status not in kind.deletable_statuses:
            return TransitionDecision(
                False,
                [f"{kind.label} can only be deleted while {', '.join(sorted(kind.deletable_statuses))}"],
            )
        if not self._roles_permit(kind.delete.roles, record, principal, kind):
            return TransitionDecision(False, [f"You are not authorized to delete this {kind.label.lower()}"])
        return TransitionDecision(True, [])

    def _roles_permit(
        self,
        roles: list[Role],
        record: Record,
        principal: Principal,
        kind: RecordKindConfig,
    ) -> bool:
        return any(self._role_satisfied(role, record, principal, kind) for role in roles)

    @staticmethod
    def _role_satisfied(
        role: Role,
        record: Record,
        principal: Principal,
        kind: RecordKindConfig,
    ) -> bool:
        if role is Role.ANY:
            return True
        if role is Role.OWNER:
            return record.created_by is not None and str(record.created_by) == str(principal.user_id)
        if role is Role.DEPARTMENT_MANAGER:
            if not principal.is_department_manager:
                return False
            # Kinds without a department field are not scoped.
            if not kind.department_field:
                return True
            return principal.manages(record.department(kind))
        if role is Role.HRD_MANAGER:
            return principal.is_hrd_manager
        if role is Role.SUPER_ADMIN:
            return principal.is_super_admin
        return False
