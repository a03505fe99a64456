"""
Configuration Loader (``approval_config.loader``).

Responsibility
--------------
Loads YAML files and parses them into the frozen ``approval_config.schema``
dataclasses.  Build/test tooling: runtime callers go through
``approval_config.get_active_config()``.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
* Wrong shapes (e.g. an effect that is neither a name nor a mapping)
  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from approval_config.schema import (
    ANY_STATUS,
    CategoryGuardDef,
    EffectDef,
    EngineSettings,
    OrganizationDef,
    PreApprovalDef,
    TransitionDef,
    WorkflowConfigSet,
    WorkflowDef,
)
from approval_kernel.logging_config import get_logger

logger = get_logger("config.loader")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load a YAML mapping (an empty file loads as ``{}``)."""
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level")
    return data


def _str_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(str(v) for v in value)


def parse_organization(data: dict[str, Any]) -> OrganizationDef:
    heads = data.get("department_heads") or {}
    sets = data.get("category_sets") or {}
    return OrganizationDef(
        override_roles=_str_tuple(data.get("override_roles")),
        department_heads=tuple((str(k), str(v)) for k, v in heads.items()),
        category_sets=tuple((str(k), _str_tuple(v)) for k, v in sets.items()),
    )


def parse_effect(raw: Any) -> EffectDef:
    """``require_reason`` or ``{stamp: approver_id}``."""
    if isinstance(raw, str):
        return EffectDef(kind=raw)
    if isinstance(raw, dict) and len(raw) == 1:
        (key, value), = raw.items()
        if key == "stamp":
            return EffectDef(kind="stamp_actor", field=str(value))
        return EffectDef(kind=str(key), field=None if value is None else str(value))
    raise ValueError(f"Unrecognized effect definition: {raw!r}")


def parse_category_guard(data: dict[str, Any] | None) -> CategoryGuardDef | None:
    if not data:
        return None
    return CategoryGuardDef(
        category_set=str(data["set"]),
        mode=str(data["mode"]),
        redirect_to=data.get("redirect_to"),
    )


def parse_transition(data: dict[str, Any]) -> TransitionDef:
    raw_from = data["from"]
    from_statuses = (ANY_STATUS,) if raw_from == ANY_STATUS else _str_tuple(raw_from)
    return TransitionDef(
        rule_id=str(data["id"]),
        action=str(data["action"]),
        from_statuses=from_statuses,
        to_status=data.get("to"),
        roles=_str_tuple(data.get("roles")),
        department_scope=str(data.get("department_scope", "none")),
        category_guard=parse_category_guard(data.get("category_guard")),
        creator_only=bool(data.get("creator_only", False)),
        allow_override=bool(data.get("allow_override", True)),
        effects=tuple(parse_effect(e) for e in data.get("effects") or ()),
        event_type=data.get("event_type"),
        notify_roles=_str_tuple(data.get("notify_roles")),
    )


def parse_pre_approval(data: dict[str, Any]) -> PreApprovalDef:
    return PreApprovalDef(roles=_str_tuple(data.get("roles")), rule_id=str(data["rule"]))


def parse_workflow(data: dict[str, Any]) -> WorkflowDef:
    return WorkflowDef(
        workflow=str(data["workflow"]),
        label=str(data.get("label") or data["workflow"]),
        code_prefix=str(data["code_prefix"]),
        statuses=_str_tuple(data["statuses"]),
        initial_status=str(data["initial_status"]),
        terminal_statuses=_str_tuple(data.get("terminal_statuses")),
        transitions=tuple(parse_transition(t) for t in data.get("transitions") or ()),
        actor_fields=_str_tuple(data.get("actor_fields")),
        draft_status=data.get("draft_status"),
        creator_pre_approvals=tuple(
            parse_pre_approval(p) for p in data.get("creator_pre_approvals") or ()
        ),
    )


def parse_engine_settings(data: dict[str, Any]) -> EngineSettings:
    known = {"database_url", "echo", "log_level", "async_notifications", "notification_workers"}
    defaults = EngineSettings()
    return EngineSettings(
        database_url=str(data.get("database_url", defaults.database_url)),
        echo=bool(data.get("echo", defaults.echo)),
        log_level=str(data.get("log_level", defaults.log_level)).upper(),
        async_notifications=bool(data.get("async_notifications", defaults.async_notifications)),
        notification_workers=int(data.get("notification_workers", defaults.notification_workers)),
        extra={str(k): str(v) for k, v in data.items() if k not in known},
    )


def compute_checksum(data: Any) -> str:
    """SHA-256 of the canonical JSON serialization."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def load_config_set(config_dir: Path) -> WorkflowConfigSet:
    """Load ``organization.yaml`` and every ``workflows/*.yaml`` under ``config_dir``."""
    org_data = load_yaml_file(config_dir / "organization.yaml")
    workflow_files = sorted((config_dir / "workflows").glob("*.yaml"))
    if not workflow_files:
        raise FileNotFoundError(f"No workflow definitions under {config_dir / 'workflows'}")
    workflow_data = [load_yaml_file(p) for p in workflow_files]

    config_set = WorkflowConfigSet(
        organization=parse_organization(org_data),
        workflows=tuple(parse_workflow(d) for d in workflow_data),
        checksum=compute_checksum({"organization": org_data, "workflows": workflow_data}),
    )
    logger.info(
        "config_loaded",
        extra={
            "config_dir": str(config_dir),
            "workflow_files": [p.name for p in workflow_files],
            "checksum": config_set.checksum,
        },
    )
    return config_set
