"""
Engine policy objects (``io_kernel.domain.policy``).

Tunable thresholds the pure engines consult.  Built from YAML by
``io_config`` and passed in explicitly; engines fall back to the
defaults below when no policy is given.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TransitionPolicy:
    """Thresholds for the transition validator and override lifecycle."""

    reject_reason_min_length: int = 5
    override_reason_min_length: int = 5
    manager_edit_blocked: bool = True

    def __post_init__(self) -> None:
        if self.reject_reason_min_length < 0:
            raise ValueError("reject_reason_min_length cannot be negative")
        if self.override_reason_min_length < 0:
            raise ValueError("override_reason_min_length cannot be negative")


@dataclass(frozen=True)
class GatingPolicy:
    """Scope of invoice admission gating.

    ``enforced_sub_bus`` empty means every sub-BU is gated.
    """

    enforced_sub_bus: frozenset[str] = frozenset()
    require_order_by_default: bool = True

    def requires_order(self, customer_flag: bool | None) -> bool:
        """Customer flag wins; unset falls back to the policy default."""
        if customer_flag is None:
            return self.require_order_by_default
        return customer_flag

    def is_enforced(self, sub_bu: str | None) -> bool:
        if not self.enforced_sub_bus:
            return True
        return sub_bu in self.enforced_sub_bus


DEFAULT_TRANSITION_POLICY = TransitionPolicy()
DEFAULT_GATING_POLICY = GatingPolicy()
