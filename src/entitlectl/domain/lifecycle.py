"""Entitlement lifecycle: the manual transition table and publication rules.

Two independent controls gate public visibility:
- Payment status: changed by administrators (one manual transition only),
  by revocation, and by the reconciliation sweep.
- Publication: a separate administrator toggle, coerced to ``False``
  whenever the payment status does not carry entitlement.

A payment-status change never publishes a subject.
"""

from __future__ import annotations

from dataclasses import dataclass

from entitlectl.domain.types import ENTITLED_STATUSES, ActorRole, PaymentStatus

# --- Transition map (manual administrative transitions only) ---

MANUAL_TRANSITIONS: dict[PaymentStatus, list[PaymentStatus]] = {
    PaymentStatus.UNUSED: [],
    PaymentStatus.BANK_PENDING: [PaymentStatus.BANK_PAID],
    PaymentStatus.BANK_PAID: [],
    PaymentStatus.CARD_PAID: [],
    PaymentStatus.WIRE_PAID: [],
}

# Transitions that newly satisfy entitlement and trigger artifact issuance.
ISSUING_TRANSITIONS: frozenset[tuple[PaymentStatus, PaymentStatus]] = frozenset(
    {(PaymentStatus.BANK_PENDING, PaymentStatus.BANK_PAID)}
)


@dataclass(frozen=True)
class Allow:
    """Validator verdict: the transition may proceed."""

    @property
    def allowed(self) -> bool:
        return True


@dataclass(frozen=True)
class Deny:
    """Validator verdict: the transition is refused."""

    code: str
    reason: str

    @property
    def allowed(self) -> bool:
        return False


Verdict = Allow | Deny


def is_entitled(status: PaymentStatus | str) -> bool:
    """Whether *status* permits public visibility."""
    return PaymentStatus(status) in ENTITLED_STATUSES


def is_valid_transition(
    current: PaymentStatus | str,
    target: PaymentStatus | str,
    transitions: dict[PaymentStatus, list[PaymentStatus]] = MANUAL_TRANSITIONS,
) -> bool:
    """Check if transitioning from *current* to *target* is allowed."""
    allowed = transitions.get(PaymentStatus(current), [])
    return PaymentStatus(target) in allowed


def validate_transition(
    current: PaymentStatus,
    requested: PaymentStatus,
    role: ActorRole,
) -> Verdict:
    """Decide a manual payment-status transition.

    Only ``BANK_PENDING -> BANK_PAID`` is permitted, and only for a role
    with administrative capability.
    """
    if role not in (ActorRole.ADMIN, ActorRole.SYSTEM):
        return Deny("UNAUTHORIZED", f"Role {role!s} cannot change payment status")

    match (current, requested):
        case (PaymentStatus.BANK_PENDING, PaymentStatus.BANK_PAID):
            return Allow()
        case (same, other) if same == other:
            return Deny("INVALID_TRANSITION", f"Payment status is already {same!s}")
        case (
            PaymentStatus.UNUSED
            | PaymentStatus.BANK_PENDING
            | PaymentStatus.BANK_PAID
            | PaymentStatus.CARD_PAID
            | PaymentStatus.WIRE_PAID,
            _,
        ):
            allowed = [str(s) for s in MANUAL_TRANSITIONS[current]]
            return Deny(
                "INVALID_TRANSITION",
                f"Invalid payment status transition: {current!s} -> {requested!s}. "
                f"Allowed: {allowed}",
            )


def normalize_publication(status: PaymentStatus | str, requested: bool) -> bool:
    """Coerce a requested publication flag so it never violates entitlement."""
    return requested and is_entitled(status)


def pending_counterpart(status: PaymentStatus | str) -> PaymentStatus:
    """Status a subject falls back to when its entitlement is revoked.

    Entitled subjects return to ``BANK_PENDING`` and wait for a fresh
    confirmation; non-entitled statuses are unchanged.
    """
    status = PaymentStatus(status)
    if status in ENTITLED_STATUSES:
        return PaymentStatus.BANK_PENDING
    return status


def issues_artifact(current: PaymentStatus, requested: PaymentStatus) -> bool:
    """Whether the transition qualifies for one-time artifact issuance."""
    return (current, requested) in ISSUING_TRANSITIONS
