"""
Workflow configuration schema.

Frozen dataclasses the YAML configuration set is parsed into.  Bridges
(``transition_policy()`` / ``gating_policy()``) translate them into the
policy objects the engines consume, so engines never import io_config.
"""

from __future__ import annotations

from dataclasses import dataclass

from io_kernel.domain.policy import GatingPolicy, TransitionPolicy


@dataclass(frozen=True)
class ApprovalPolicyDef:
    """Thresholds for the approval workflow."""

    reject_reason_min_length: int = 5
    override_reason_min_length: int = 5
    manager_edit_blocked: bool = True


@dataclass(frozen=True)
class InvoiceGatingDef:
    """Which invoices must pass admission."""

    enforced_sub_bus: tuple[str, ...] = ()
    require_order_by_default: bool = True


@dataclass(frozen=True)
class BulkProcessingDef:
    max_workers: int = 4
    notify_requestor: bool = True


@dataclass(frozen=True)
class WorkflowConfig:
    """A parsed and validated configuration set."""

    config_id: str
    version: int
    approval: ApprovalPolicyDef = ApprovalPolicyDef()
    invoice_gating: InvoiceGatingDef = InvoiceGatingDef()
    bulk: BulkProcessingDef = BulkProcessingDef()
    checksum: str = ""

    def transition_policy(self) -> TransitionPolicy:
        return TransitionPolicy(
            reject_reason_min_length=self.approval.reject_reason_min_length,
            override_reason_min_length=self.approval.override_reason_min_length,
            manager_edit_blocked=self.approval.manager_edit_blocked,
        )

    def gating_policy(self) -> GatingPolicy:
        return GatingPolicy(
            enforced_sub_bus=frozenset(self.invoice_gating.enforced_sub_bus),
            require_order_by_default=self.invoice_gating.require_order_by_default,
        )
