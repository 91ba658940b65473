"""Payslip state machine with role-gated transitions."""

from __future__ import annotations

from enum import Enum


class PayrollStatus(str, Enum):
    """Payslip status values."""

    DRAFT = "draft"
    PROCESSING = "processing"
    VALIDATED = "validated"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    REJECTED = "rejected"
    PAID = "paid"
    CANCELLED = "cancelled"


class PayrollAction(str, Enum):
    """Lifecycle actions. The processing actions are internal to ``validate``."""

    VALIDATE = "validate"
    BEGIN_PROCESSING = "begin_processing"
    COMPLETE_PROCESSING = "complete_processing"
    ABORT_PROCESSING = "abort_processing"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    MARK_PAID = "mark_paid"
    REVISE = "revise"
    CANCEL = "cancel"


class Role(str, Enum):
    """Actor roles, lowest to highest."""

    EMPLOYEE = "employee"
    HR_STAFF = "hr_staff"
    HR_MANAGER = "hr_manager"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @property
    def rank(self) -> int:
        return _ROLE_ORDER.index(self)

    def at_least(self, other: Role) -> bool:
        return self.rank >= Role(other).rank


_ROLE_ORDER = [
    Role.EMPLOYEE,
    Role.HR_STAFF,
    Role.HR_MANAGER,
    Role.ADMIN,
    Role.SUPER_ADMIN,
]


def _plain(value) -> str:
    return value.value if isinstance(value, Enum) else value


class InvalidTransitionError(Exception):
    """Raised when an action is not permitted from the current status."""

    def __init__(self, current_status: str, action: str, reason: str | None = None):
        current_status, action = _plain(current_status), _plain(action)
        self.current_status = current_status
        self.action = action
        self.reason = reason
        msg = f"Invalid transition: cannot {action} a payroll in status '{current_status}'"
        if reason:
            msg += f": {reason}"
        super().__init__(msg)


class PermissionDeniedError(Exception):
    """Raised when the actor's role is below the action's minimum role."""

    def __init__(self, role: str, action: str, required_role: str):
        role, action, required_role = _plain(role), _plain(action), _plain(required_role)
        self.role = role
        self.action = action
        self.required_role = required_role
        super().__init__(
            f"Role '{role}' may not {action}; requires '{required_role}' or above"
        )


class PayrollStateMachine:
    """State machine for payslip status transitions.

    Allowed transitions:
    - draft → processing → validated (validate)
    - processing → draft (calculation failed)
    - validated → submitted
    - submitted → approved | rejected
    - approved → paid | rejected
    - rejected → draft (revise)
    - any non-terminal → cancelled

    ``paid`` and ``cancelled`` are terminal.
    """

    # {(from_status, action): to_status}
    TRANSITIONS: dict[tuple[PayrollStatus, PayrollAction], PayrollStatus] = {
        (PayrollStatus.DRAFT, PayrollAction.VALIDATE): PayrollStatus.VALIDATED,
        (PayrollStatus.DRAFT, PayrollAction.BEGIN_PROCESSING): PayrollStatus.PROCESSING,
        (PayrollStatus.PROCESSING, PayrollAction.COMPLETE_PROCESSING): PayrollStatus.VALIDATED,
        (PayrollStatus.PROCESSING, PayrollAction.ABORT_PROCESSING): PayrollStatus.DRAFT,
        (PayrollStatus.VALIDATED, PayrollAction.SUBMIT): PayrollStatus.SUBMITTED,
        (PayrollStatus.SUBMITTED, PayrollAction.APPROVE): PayrollStatus.APPROVED,
        (PayrollStatus.SUBMITTED, PayrollAction.REJECT): PayrollStatus.REJECTED,
        (PayrollStatus.APPROVED, PayrollAction.REJECT): PayrollStatus.REJECTED,
        (PayrollStatus.APPROVED, PayrollAction.MARK_PAID): PayrollStatus.PAID,
        (PayrollStatus.REJECTED, PayrollAction.REVISE): PayrollStatus.DRAFT,
        **{
            (status, PayrollAction.CANCEL): PayrollStatus.CANCELLED
            for status in (
                PayrollStatus.DRAFT,
                PayrollStatus.PROCESSING,
                PayrollStatus.VALIDATED,
                PayrollStatus.SUBMITTED,
                PayrollStatus.APPROVED,
                PayrollStatus.REJECTED,
            )
        },
    }

    REQUIRED_ROLE: dict[PayrollAction, Role] = {
        PayrollAction.VALIDATE: Role.HR_STAFF,
        PayrollAction.BEGIN_PROCESSING: Role.HR_STAFF,
        PayrollAction.COMPLETE_PROCESSING: Role.HR_STAFF,
        PayrollAction.ABORT_PROCESSING: Role.HR_STAFF,
        PayrollAction.SUBMIT: Role.HR_STAFF,
        PayrollAction.APPROVE: Role.HR_MANAGER,
        PayrollAction.REJECT: Role.HR_MANAGER,
        PayrollAction.MARK_PAID: Role.HR_MANAGER,
        PayrollAction.REVISE: Role.HR_STAFF,
        PayrollAction.CANCEL: Role.HR_MANAGER,
    }

    TERMINAL = {PayrollStatus.PAID, PayrollStatus.CANCELLED}

    # Statuses where details may still be recomputed
    RECALCULATION_ALLOWED = {PayrollStatus.DRAFT, PayrollStatus.PROCESSING}

    # Actions that re-verify frozen figures against a recomputation
    CONSISTENCY_CHECKED = {PayrollAction.APPROVE, PayrollAction.MARK_PAID}

    @classmethod
    def next_status(cls, current_status: str, action: str) -> PayrollStatus:
        """Target status for ``action``, raising InvalidTransitionError if none."""
        try:
            key = (PayrollStatus(current_status), PayrollAction(action))
        except ValueError as exc:
            raise InvalidTransitionError(current_status, action, str(exc)) from exc
        target = cls.TRANSITIONS.get(key)
        if target is None:
            raise InvalidTransitionError(current_status, action)
        return target

    @classmethod
    def can_transition(cls, current_status: str, action: str) -> bool:
        try:
            cls.next_status(current_status, action)
        except InvalidTransitionError:
            return False
        return True

    @classmethod
    def check_permission(cls, role: str, action: str) -> None:
        """Raise PermissionDeniedError if ``role`` may not perform ``action``."""
        cls.require_role(role, cls.REQUIRED_ROLE[PayrollAction(action)], action)

    @staticmethod
    def require_role(role: str, required: Role, action: str) -> None:
        """Raise PermissionDeniedError unless ``role`` ranks at least ``required``."""
        try:
            actor_role = Role(role)
        except ValueError:
            raise PermissionDeniedError(role, action, required.value) from None
        if not actor_role.at_least(required):
            raise PermissionDeniedError(actor_role.value, action, required.value)

    @classmethod
    def authorize(cls, current_status: str, action: str, role: str) -> PayrollStatus:
        """Validate both the transition and the role; return the target status."""
        target = cls.next_status(current_status, action)
        cls.check_permission(role, action)
        return target

    @classmethod
    def allowed_actions(cls, current_status: str) -> list[PayrollAction]:
        """Actions permitted from ``current_status``."""
        status = PayrollStatus(current_status)
        return [action for (src, action) in cls.TRANSITIONS if src == status]

    @classmethod
    def is_terminal(cls, status: str) -> bool:
        return PayrollStatus(status) in cls.TERMINAL

    @classmethod
    def can_recalculate(cls, status: str) -> bool:
        """Check if details may be regenerated in this status."""
        return PayrollStatus(status) in cls.RECALCULATION_ALLOWED

    @classmethod
    def requires_consistency_check(cls, action: str) -> bool:
        return PayrollAction(action) in cls.CONSISTENCY_CHECKED
