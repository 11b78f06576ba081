"""
Configuration Loader (``io_config.loader``).

Responsibility
--------------
Loads the YAML configuration file and parses it into typed
``io_config.schema`` dataclass instances.  Runtime callers go through
``io_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Bad values raise ``ValueError`` naming the offending key; unknown keys
  are rejected rather than ignored.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed document.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing ``config_id``  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from io_config.schema import (
    ApprovalPolicyDef,
    BulkProcessingDef,
    InvoiceGatingDef,
    WorkflowConfig,
)


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _check_keys(section: str, data: dict[str, Any], allowed: set[str]) -> None:
    unknown = set(data) - allowed
    if unknown:
        raise ValueError(f"Unknown keys in '{section}': {sorted(unknown)}")


def _non_negative_int(section: str, key: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"'{section}.{key}' must be a non-negative integer, got {value!r}")
    return value


def _bool(section: str, key: str, value: Any) -> bool:
    if not isinstance(value, bool):
        raise ValueError(f"'{section}.{key}' must be true or false, got {value!r}")
    return value


def parse_approval(data: dict[str, Any]) -> ApprovalPolicyDef:
    """Parse an ApprovalPolicyDef from a dict."""
    default = ApprovalPolicyDef()
    _check_keys("approval", data, {
        "reject_reason_min_length", "override_reason_min_length", "manager_edit_blocked",
    })
    return ApprovalPolicyDef(
        reject_reason_min_length=_non_negative_int(
            "approval", "reject_reason_min_length",
            data.get("reject_reason_min_length", default.reject_reason_min_length),
        ),
        override_reason_min_length=_non_negative_int(
            "approval", "override_reason_min_length",
            data.get("override_reason_min_length", default.override_reason_min_length),
        ),
        manager_edit_blocked=_bool(
            "approval", "manager_edit_blocked",
            data.get("manager_edit_blocked", default.manager_edit_blocked),
        ),
    )


def parse_invoice_gating(data: dict[str, Any]) -> InvoiceGatingDef:
    """Parse an InvoiceGatingDef from a dict."""
    _check_keys("invoice_gating", data, {"enforced_sub_bus", "require_order_by_default"})
    sub_bus = data.get("enforced_sub_bus") or []
    if not isinstance(sub_bus, list):
        raise ValueError("'invoice_gating.enforced_sub_bus' must be a list")
    return InvoiceGatingDef(
        enforced_sub_bus=tuple(str(code).strip() for code in sub_bus if str(code).strip()),
        require_order_by_default=_bool(
            "invoice_gating", "require_order_by_default",
            data.get("require_order_by_default", True),
        ),
    )


def parse_bulk(data: dict[str, Any]) -> BulkProcessingDef:
    """Parse a BulkProcessingDef from a dict."""
    _check_keys("bulk", data, {"max_workers", "notify_requestor"})
    max_workers = _non_negative_int("bulk", "max_workers", data.get("max_workers", 4))
    if max_workers < 1:
        raise ValueError("'bulk.max_workers' must be at least 1")
    return BulkProcessingDef(
        max_workers=max_workers,
        notify_requestor=_bool("bulk", "notify_requestor", data.get("notify_requestor", True)),
    )


def parse_config(data: dict[str, Any]) -> WorkflowConfig:
    """
    Parse a whole configuration document.

    Postconditions:
        - ``checksum`` is the SHA-256 of ``data``.
    """
    _check_keys("root", data, {"config_id", "version", "approval", "invoice_gating", "bulk"})
    return WorkflowConfig(
        config_id=data["config_id"],
        version=_non_negative_int("root", "version", data.get("version", 1)),
        approval=parse_approval(data.get("approval") or {}),
        invoice_gating=parse_invoice_gating(data.get("invoice_gating") or {}),
        bulk=parse_bulk(data.get("bulk") or {}),
        checksum=compute_checksum(data),
    )


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
