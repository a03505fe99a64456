"""
approval_config -- single public entrypoint for workflow configuration.

Responsibility:
    ``get_active_config()`` is the ONLY way to obtain the compiled
    ``TransitionTable`` at runtime, and ``get_engine_settings()`` the only
    way to obtain deployment settings.  No other component reads YAML
    files or environment variables.

Architecture position:
    Configuration -- sits above ``approval_kernel`` and below
    ``approval_services``.  The kernel never imports from here.

Invariants enforced:
    - Build-time validation: a table is only returned after every workflow
      compiled without error.
    - Deterministic compilation: the same YAML always yields the same
      checksum.

Failure modes:
    - ``FileNotFoundError`` -- missing organization or workflow files.
    - ``WorkflowConfigError`` -- validation failures.

Audit relevance:
    Every ``get_active_config()`` call emits an ``APPROVAL_CONFIG_TRACE``
    log entry with the checksum, tying each decision to the table version
    that governed it.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from pathlib import Path

from approval_config.compiler import compile_transition_table, compile_workflow
from approval_config.loader import load_config_set, load_yaml_file, parse_engine_settings
from approval_config.schema import EngineSettings, WorkflowConfigSet
from approval_kernel.domain.workflow import TransitionTable
from approval_kernel.logging_config import get_logger

_logger = get_logger("config")

_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"

ENV_DATABASE_URL = "APPROVAL_DATABASE_URL"
ENV_LOG_LEVEL = "APPROVAL_LOG_LEVEL"


def get_active_config(config_dir: Path | None = None) -> TransitionTable:
    """Load, validate and compile the workflow tables.

    Args:
        config_dir: directory holding ``organization.yaml`` and
            ``workflows/*.yaml``.  Defaults to the packaged set.
    """
    directory = config_dir or _DEFAULT_CONFIG_DIR
    config_set = load_config_set(directory)
    table = compile_transition_table(config_set)

    _logger.info(
        "APPROVAL_CONFIG_TRACE",
        extra={
            "trace_type": "APPROVAL_CONFIG_TRACE",
            "config_dir": str(directory),
            "checksum": table.checksum,
            "workflows": sorted(t.value for t in table.definitions),
            "rule_count": sum(len(d.rules) for d in table.definitions.values()),
        },
    )
    return table


def get_engine_settings(
    config_dir: Path | None = None,
    environ: Mapping[str, str] | None = None,
) -> EngineSettings:
    """Settings from ``engine.yaml`` with environment overrides."""
    directory = config_dir or _DEFAULT_CONFIG_DIR
    path = directory / "engine.yaml"
    data = load_yaml_file(path) if path.exists() else {}
    env = os.environ if environ is None else environ
    if env.get(ENV_DATABASE_URL):
        data["database_url"] = env[ENV_DATABASE_URL]
    if env.get(ENV_LOG_LEVEL):
        data["log_level"] = env[ENV_LOG_LEVEL]
    return parse_engine_settings(data)


__all__ = [
    "EngineSettings",
    "WorkflowConfigSet",
    "compile_transition_table",
    "compile_workflow",
    "get_active_config",
    "get_engine_settings",
    "load_config_set",
]
