"""
Presentation helpers for orchestration responses.

Keeps executor.py focused on running submodules while this module shapes
the JSON-ready dicts returned to callers.
"""

from __future__ import annotations

from schema import DiscoveryResult, ValidationResult


RUN_LIST_FIELDS = (
    "id",
    "submodule_type",
    "submodule_name",
    "run_entity_ids",
    "status",
    "result_count",
    "duration_ms",
    "created_at",
    "error",
)


def merge_results(flat: list[dict], approvals: list[dict]) -> list[dict]:
    """
    Attach approval state to each flattened result by result_index.

    Results without an approval row (tracking unavailable, or rows never
    created) are reported pending.
    """
    by_index = {a.get("result_index"): a for a in approvals or []}
    merged = []
    for index, result in enumerate(flat):
        approval = by_index.get(index) or {}
        merged.append({
            **result,
            "approval_id": approval.get("id"),
            "result_index": index,
            "url": result.get("url"),
            "entity_name": result.get("entity_name"),
            "status": approval.get("status") or "pending",
            "rejection_reason": approval.get("rejection_reason"),
        })
    return merged


def run_summary_row(row: dict) -> dict:
    return {field: row.get(field) for field in RUN_LIST_FIELDS}


def execution_response(
    submodule_key: str,
    submodule_run_id: str,
    status: str,
    result: DiscoveryResult | ValidationResult,
    duration_ms: int,
    logs: list[dict],
    error: str | None,
    preview_mode: bool,
    warnings: list[dict],
    persisted: bool,
    created_run_id: str | None = None,
    created_run_entity_ids: list[str] | None = None,
) -> dict:
    """Response for one execution; the result shape depends on the submodule type."""
    response = {
        "submodule_run_id": submodule_run_id,
        "preview_mode": preview_mode,
        "submodule": submodule_key,
        "status": status,
        "result_count": len(result),
        "duration_ms": duration_ms,
    }

    if isinstance(result, ValidationResult):
        envelope = result.to_dict()
        response.update({
            "valid_count": len(result.valid),
            "invalid_count": len(result.invalid),
            "stats": envelope["stats"],
            "valid": envelope["valid"],
            "invalid": envelope["invalid"],
            "errors": [],
        })
    else:
        envelope = result.to_dict()
        response.update({
            "results": envelope["items"],
            "errors": envelope["errors"],
        })

    response.update({
        "logs": logs,
        "error": error,
        "created_run_id": created_run_id,
        "created_run_entity_ids": created_run_entity_ids,
        "persisted": persisted,
        "warnings": warnings,
    })
    return response


def empty_validation_response(submodule_key: str, message: str, warnings: list[dict] | None = None) -> dict:
    """Validation request that found nothing to validate."""
    return {
        "submodule_run_id": None,
        "preview_mode": False,
        "submodule": submodule_key,
        "status": "completed",
        "message": message,
        "result_count": 0,
        "valid_count": 0,
        "invalid_count": 0,
        "valid": [],
        "invalid": [],
        "stats": {},
        "errors": [],
        "logs": [],
        "error": None,
        "persisted": False,
        "warnings": warnings or [],
    }
