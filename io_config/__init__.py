"""
io_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the runtime configuration through ``get_active_config()``.
    Returns a frozen ``WorkflowConfig`` whose ``transition_policy()`` and
    ``gating_policy()`` bridges feed the engines.

Architecture position:
    Configuration -- sits above ``io_kernel``.  The kernel and engines
    MUST NEVER import from ``io_config``; they receive policy objects.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- a value fails validation.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``IO_CONFIG_TRACE`` log entry with the config id, version and checksum.
"""

from __future__ import annotations

import logging
from pathlib import Path

from io_config.loader import load_yaml_file, parse_config
from io_config.schema import (
    ApprovalPolicyDef,
    BulkProcessingDef,
    InvoiceGatingDef,
    WorkflowConfig,
)

_logger = logging.getLogger("io_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"

__all__ = [
    "ApprovalPolicyDef",
    "BulkProcessingDef",
    "DEFAULT_CONFIG_PATH",
    "InvoiceGatingDef",
    "WorkflowConfig",
    "get_active_config",
]


def get_active_config(path: Path | None = None) -> WorkflowConfig:
    """The public configuration entrypoint.

    Args:
        path: Override path to a YAML configuration file.  Defaults to
            io_config/sets/default.yaml.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If configuration validation fails.
    """
    config = parse_config(load_yaml_file(path or DEFAULT_CONFIG_PATH))

    _logger.info(
        "IO_CONFIG_TRACE",
        extra={
            "trace_type": "IO_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "enforced_sub_bu_count": len(config.invoice_gating.enforced_sub_bus),
            "bulk_max_workers": config.bulk.max_workers,
        },
    )
    return config
