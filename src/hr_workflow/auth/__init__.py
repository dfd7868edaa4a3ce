"""Authorization collaborator model.

The server owns role assignment; the engine only consumes the resulting flags.
"""

from hr_workflow.auth.principal import ROLE_GROUPS, Principal, Role

__all__ = [
    "Principal",
    "ROLE_GROUPS",
    "Role",
]
