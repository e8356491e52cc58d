"""
Per-result approval state machine and promotion into discovered_urls.

Every persisted submodule run gets one approval row per flattened result
(`result_index` is fixed at creation). Run status is derived from those
rows by `derive_run_status`; the only status set directly is the initial
completed/failed, an explicit reject, and an applied validation run.
"""

from __future__ import annotations

from loguru import logger

from schema import ApprovalStatus, ResultApproval, RunStatus, flatten_results

from .datastore import (
    DISCOVERED_URLS,
    RESULT_APPROVALS,
    RUN_ENTITIES,
    SUBMODULE_RUNS,
    Datastore,
    fetch_all,
    now_iso,
)
from .errors import InputError, NotFoundError, StorageError, TableMissingError
from .events import SUBMODULE_APPROVAL, EventPublisher
from .presenter import merge_results


ACTIONS = {"approve": ApprovalStatus.APPROVED.value, "reject": ApprovalStatus.REJECTED.value}


def summarize(rows: list[dict]) -> dict:
    """Count approval rows (or merged results) by status."""
    summary = {"pending": 0, "approved": 0, "rejected": 0}
    for row in rows:
        status = row.get("status") or "pending"
        summary[status] = summary.get(status, 0) + 1
    return summary


def derive_run_status(current: str, summary: dict) -> str:
    """
    Run status from its approval summary.

    No pending rows means approved, whatever the approved/rejected split
    (a run with no results at all is approved too). Pending rows with at
    least one decision means partial. Otherwise the run keeps its status.
    """
    pending = summary.get("pending", 0)
    decided = summary.get("approved", 0) + summary.get("rejected", 0)
    if pending == 0:
        return RunStatus.APPROVED.value
    if decided > 0:
        return RunStatus.PARTIAL.value
    return RunStatus(current).value if current else RunStatus.PENDING.value


def load_submodule_run(store: Datastore, run_id: str, submodule_run_id: str) -> dict:
    try:
        row = store.select_one(SUBMODULE_RUNS, {"id": submodule_run_id, "run_id": run_id})
    except TableMissingError as exc:
        raise NotFoundError("Submodule runs not available") from exc
    if row is None:
        raise NotFoundError(f"Submodule run not found: {submodule_run_id} (run {run_id})")
    return row


def create_approval_records(store: Datastore, submodule_run_id: str, results) -> tuple[int, dict | None]:
    """
    Insert one pending approval row per flattened result.

    Returns:
        (rows created, warning or None). A missing approvals table is a
        warning, not an error.
    """
    flat = flatten_results(results)
    if not flat:
        return 0, None

    records = [
        ResultApproval(
            submodule_run_id=submodule_run_id,
            result_index=index,
            result_url=result.get("url"),
            result_entity_id=result.get("run_entity_id"),
            result_entity_name=result.get("entity_name"),
        ).to_row()
        for index, result in enumerate(flat)
    ]
    try:
        store.insert(RESULT_APPROVALS, records)
    except TableMissingError:
        logger.warning(f"[approvals] {RESULT_APPROVALS} table not found, approval tracking disabled")
        return 0, {
            "table": RESULT_APPROVALS,
            "message": "Approval tracking not available; results stored without approval rows",
        }
    return len(records), None


def _approval_rows(store: Datastore, submodule_run_id: str) -> list[dict]:
    return fetch_all(store, RESULT_APPROVALS, {"submodule_run_id": submodule_run_id}, order_by="result_index")


def get_results(store: Datastore, run_id: str, submodule_run_id: str) -> dict:
    """Results of a run merged with their approval rows, plus a summary."""
    run = load_submodule_run(store, run_id, submodule_run_id)
    flat = flatten_results(run.get("results"))

    try:
        approvals = _approval_rows(store, submodule_run_id)
        tracking = True
    except TableMissingError:
        approvals = []
        tracking = False

    merged = merge_results(flat, approvals)
    return {
        "submodule_run_id": submodule_run_id,
        "submodule_name": run.get("submodule_name"),
        "submodule_type": run.get("submodule_type"),
        "status": run.get("status"),
        "total_results": len(merged),
        "results": merged,
        "summary": summarize(merged),
        "approval_tracking_available": tracking,
    }


# ---------------------------------------------------------------------------
# Promotion
# ---------------------------------------------------------------------------

def _entity_map(store: Datastore, run_entity_ids: list[str]) -> dict[str, str]:
    """Snapshot entity id -> run_entity id for the run's entities."""
    if not run_entity_ids:
        return {}
    mapping = {}
    for row in fetch_all(store, RUN_ENTITIES, {"id": list(run_entity_ids)}):
        entity_id = (row.get("entity_snapshot") or {}).get("id")
        if entity_id:
            mapping[str(entity_id)] = row["id"]
    return mapping


def promote(store: Datastore, run: dict, results: list[dict]) -> int:
    """
    Write approved discovery results into discovered_urls.

    Each result goes to its own run_entity_id, else to the run entity its
    entity_id maps to, else to the run's first entity. Existing
    (run_entity_id, url) pairs are left alone, so promotion can repeat.

    Returns:
        Number of new discovered_urls rows.
    """
    run_entity_ids = list(run.get("run_entity_ids") or [])
    results = [r for r in results if r.get("url")]
    if not results or not run_entity_ids:
        if results:
            logger.warning(f"[approvals] Run {run.get('id')} has no entities, nothing promoted")
        return 0

    known = set(run_entity_ids)
    entity_map = _entity_map(store, run_entity_ids)
    records = []
    for result in results:
        target = result.get("run_entity_id")
        if target not in known:
            target = entity_map.get(str(result.get("entity_id")), run_entity_ids[0])
        records.append({
            "run_entity_id": target,
            "url": result["url"],
            "discovery_method": run.get("submodule_name"),
            "priority": 0,
            "status": "pending",
        })

    inserted = store.upsert_ignore(DISCOVERED_URLS, records, ("run_entity_id", "url"))
    logger.info(f"[approvals] Promoted {len(inserted)}/{len(records)} URLs from run {run.get('id')}")
    return len(inserted)


def _results_with_status(run: dict, approvals: list[dict], status: str) -> list[dict]:
    flat = flatten_results(run.get("results"))
    return [
        flat[a["result_index"]]
        for a in approvals
        if a.get("status") == status and 0 <= a.get("result_index", -1) < len(flat)
    ]


def filter_urls(store: Datastore, results: list[dict]) -> int:
    """Mark the discovered_urls rows behind validation results as `filtered`."""
    ids = [r["id"] for r in results if r.get("id")]
    if not ids:
        return 0
    return len(store.update(DISCOVERED_URLS, {"id": ids}, {"status": "filtered"}))


# ---------------------------------------------------------------------------
# Decisions
# ---------------------------------------------------------------------------

def _refresh_run(store: Datastore, publisher: EventPublisher | None, run: dict) -> tuple[dict, str, int, int]:
    """
    Recompute the summary, store the derived status and counts, publish
    the approval event. Once the run is approved, a discovery run promotes
    its approved results and a validation run filters its rejected ones.

    Returns:
        (summary, status, URLs promoted, URLs filtered)
    """
    approvals = _approval_rows(store, run["id"])
    summary = summarize(approvals)
    status = derive_run_status(run.get("status"), summary)

    values = {
        "status": status,
        "approved_count": summary["approved"],
        "rejected_count": summary["rejected"],
        "approved_at": now_iso() if status == RunStatus.APPROVED.value else None,
    }
    store.update(SUBMODULE_RUNS, {"id": run["id"]}, values)

    promoted = filtered = 0
    if status == RunStatus.APPROVED.value:
        if run.get("submodule_type") == "discovery":
            promoted = promote(store, run, _results_with_status(run, approvals, ApprovalStatus.APPROVED.value))
        elif run.get("submodule_type") == "validation":
            filtered = filter_urls(store, _results_with_status(run, approvals, ApprovalStatus.REJECTED.value))
            logger.info(f"[approvals] Validation run {run['id']} approved: {filtered} URLs filtered")

    if publisher is not None:
        publisher.publish(SUBMODULE_APPROVAL, {
            "run_id": run.get("run_id"),
            "submodule_run_id": run["id"],
            "approved_count": summary["approved"],
            "rejected_count": summary["rejected"],
            "pending_count": summary["pending"],
            "status": status,
        })
    return summary, status, promoted, filtered


def _apply_decision(store: Datastore, submodule_run_id: str, approval_id: str, action: str, reason, decided_at: str) -> list[dict]:
    try:
        return store.update(
            RESULT_APPROVALS,
            {"id": approval_id, "submodule_run_id": submodule_run_id},
            {
                "status": ACTIONS[action],
                "rejection_reason": (reason or None) if action == "reject" else None,
                "decided_at": decided_at,
            },
        )
    except TableMissingError as exc:
        raise StorageError("Approval tracking not available", code=TableMissingError.CODE) from exc


def decide(
    store: Datastore,
    publisher: EventPublisher | None,
    run_id: str,
    submodule_run_id: str,
    approval_id: str,
    action: str,
    reason: str | None = None,
) -> dict:
    """Approve or reject a single result. Repeating a decision is harmless."""
    if action not in ACTIONS:
        raise InputError('action must be "approve" or "reject"')

    run = load_submodule_run(store, run_id, submodule_run_id)
    updated = _apply_decision(store, submodule_run_id, approval_id, action, reason, now_iso())
    if not updated:
        raise NotFoundError(f"Approval record not found: {approval_id}")

    summary, status, promoted, filtered = _refresh_run(store, publisher, run)
    return {
        "success": True,
        "approval_id": approval_id,
        "status": updated[0]["status"],
        "submodule_summary": summary,
        "submodule_status": status,
        "urls_promoted": promoted,
        "urls_filtered": filtered,
    }


def batch_decide(
    store: Datastore,
    publisher: EventPublisher | None,
    run_id: str,
    submodule_run_id: str,
    decisions: list[dict],
) -> dict:
    """
    Apply many decisions at once.

    Each decision is {result_id, action, reason?}; `approval_id` is
    accepted in place of `result_id`. All are checked before any is applied.
    """
    if not decisions or not isinstance(decisions, list):
        raise InputError("approvals array is required")
    for item in decisions:
        if not isinstance(item, dict) or not (item.get("result_id") or item.get("approval_id")) or item.get("action") not in ACTIONS:
            raise InputError("Each approval must have result_id and action (approve/reject)")

    run = load_submodule_run(store, run_id, submodule_run_id)
    decided_at = now_iso()
    missing = []
    for item in decisions:
        approval_id = item.get("result_id") or item.get("approval_id")
        if not _apply_decision(store, submodule_run_id, approval_id, item["action"], item.get("reason"), decided_at):
            missing.append(approval_id)
    if missing:
        logger.warning(f"[approvals] {len(missing)} approval id(s) not found for run {submodule_run_id}")

    summary, status, promoted, filtered = _refresh_run(store, publisher, run)
    return {
        "success": True,
        "submodule_run_id": submodule_run_id,
        "summary": {
            "total": sum(summary.values()),
            "approved": summary["approved"],
            "rejected": summary["rejected"],
            "pending": summary["pending"],
        },
        "submodule_status": status,
        "urls_promoted": promoted,
        "urls_filtered": filtered,
        "not_found": missing,
    }


def _indexes_with_status(store: Datastore, submodule_run_id: str, status: str) -> set[int]:
    try:
        rows = _approval_rows(store, submodule_run_id)
    except TableMissingError:
        return set()
    return {r["result_index"] for r in rows if r.get("status") == status}


def _final_counts(store: Datastore, submodule_run_id: str, approved: int, rejected: int) -> tuple[int, int]:
    """(approved, rejected) from the stored approval rows, else the given counts."""
    try:
        rows = _approval_rows(store, submodule_run_id)
    except TableMissingError:
        return approved, rejected
    if not rows:
        return approved, rejected
    summary = summarize(rows)
    return summary["approved"], summary["rejected"]


def _set_pending(store: Datastore, submodule_run_id: str, indexes: list[int] | None, status: str, decided_at: str) -> int:
    """Resolve pending approval rows (all of them when `indexes` is None)."""
    filters = {"submodule_run_id": submodule_run_id, "status": ApprovalStatus.PENDING.value}
    if indexes is not None:
        if not indexes:
            return 0
        filters["result_index"] = indexes
    try:
        return len(store.update(RESULT_APPROVALS, filters, {"status": status, "decided_at": decided_at}))
    except TableMissingError:
        return 0


def approve_run(
    store: Datastore,
    publisher: EventPublisher | None,
    run_id: str,
    submodule_run_id: str,
    selected_urls: list[str] | None = None,
) -> dict:
    """
    Approve a whole run, or only `selected_urls` of it.

    Approving an approved run is a no-op reported as already_approved.
    Earlier per-result decisions stand: results approved one by one are
    kept and promoted, results rejected one by one are not.
    Validation runs are applied instead (see apply_validation).
    """
    run = load_submodule_run(store, run_id, submodule_run_id)

    if run.get("status") == RunStatus.APPROVED.value:
        return {
            "approved": True,
            "urls_saved": run.get("approved_count") or 0,
            "submodule_run_id": submodule_run_id,
            "already_approved": True,
        }

    if run.get("submodule_type") == "validation":
        return apply_validation(store, run_id, submodule_run_id, publisher=publisher, run=run)

    flat = flatten_results(run.get("results"))
    if selected_urls:
        selected = set(selected_urls)
        chosen = [i for i, r in enumerate(flat) if r.get("url") in selected]
    else:
        chosen = list(range(len(flat)))
    already_approved = _indexes_with_status(store, submodule_run_id, ApprovalStatus.APPROVED.value)
    already_rejected = _indexes_with_status(store, submodule_run_id, ApprovalStatus.REJECTED.value)
    chosen_set = (set(chosen) | already_approved) - already_rejected
    chosen = sorted(i for i in chosen_set if 0 <= i < len(flat))
    to_save = [flat[i] for i in chosen]

    now = now_iso()
    _set_pending(store, submodule_run_id, chosen, ApprovalStatus.APPROVED.value, now)
    rejected = [i for i in range(len(flat)) if i not in chosen_set]
    _set_pending(store, submodule_run_id, rejected, ApprovalStatus.REJECTED.value, now)
    approved_count, rejected_count = _final_counts(store, submodule_run_id, len(to_save), len(rejected))

    promoted = promote(store, run, to_save)

    store.update(SUBMODULE_RUNS, {"id": submodule_run_id}, {
        "status": RunStatus.APPROVED.value,
        "approved_at": now,
        "approved_count": approved_count,
        "rejected_count": rejected_count,
    })
    if publisher is not None:
        publisher.publish(SUBMODULE_APPROVAL, {
            "run_id": run_id,
            "submodule_run_id": submodule_run_id,
            "approved_count": approved_count,
            "rejected_count": rejected_count,
            "pending_count": 0,
            "status": RunStatus.APPROVED.value,
        })

    return {
        "approved": True,
        "urls_saved": approved_count,
        "urls_promoted": promoted,
        "submodule_run_id": submodule_run_id,
    }


def reject_run(store: Datastore, publisher: EventPublisher | None, run_id: str, submodule_run_id: str) -> dict:
    """Discard a run: status rejected, every pending result rejected."""
    try:
        run = store.select_one(SUBMODULE_RUNS, {"id": submodule_run_id, "run_id": run_id})
    except TableMissingError:
        return {"rejected": True, "submodule_run_id": submodule_run_id, "persisted": False}
    if run is None:
        raise NotFoundError(f"Submodule run not found: {submodule_run_id} (run {run_id})")

    now = now_iso()
    rejected = _set_pending(store, submodule_run_id, None, ApprovalStatus.REJECTED.value, now)
    store.update(SUBMODULE_RUNS, {"id": submodule_run_id}, {
        "status": RunStatus.REJECTED.value,
        "rejected_at": now,
        "rejected_count": (run.get("rejected_count") or 0) + rejected,
    })
    if publisher is not None:
        publisher.publish(SUBMODULE_APPROVAL, {
            "run_id": run_id,
            "submodule_run_id": submodule_run_id,
            "status": RunStatus.REJECTED.value,
        })
    return {"rejected": True, "submodule_run_id": submodule_run_id}


def apply_validation(
    store: Datastore,
    run_id: str,
    submodule_run_id: str,
    publisher: EventPublisher | None = None,
    run: dict | None = None,
) -> dict:
    """
    Apply a validation run: pending valid results are approved, pending
    invalid ones rejected, and the URL behind every rejected result is
    marked `filtered` in discovered_urls. The run ends approved.
    Per-result decisions made before applying stand.
    """
    run = run or load_submodule_run(store, run_id, submodule_run_id)
    if run.get("submodule_type") != "validation":
        raise InputError("Not a validation submodule run")

    results = run.get("results") or {}
    valid = list(results.get("valid") or []) if isinstance(results, dict) else []
    invalid = list(results.get("invalid") or []) if isinstance(results, dict) else []

    if run.get("status") == RunStatus.APPROVED.value:
        return {
            "applied": True,
            "valid_count": len(valid),
            "filtered_count": len(invalid),
            "submodule_run_id": submodule_run_id,
            "already_approved": True,
        }

    now = now_iso()
    # Flattened order is valid then invalid
    _set_pending(store, submodule_run_id, list(range(len(valid))), ApprovalStatus.APPROVED.value, now)
    _set_pending(
        store, submodule_run_id,
        list(range(len(valid), len(valid) + len(invalid))),
        ApprovalStatus.REJECTED.value, now,
    )

    try:
        approvals = _approval_rows(store, submodule_run_id)
    except TableMissingError:
        approvals = []
    if approvals:
        to_filter = _results_with_status(run, approvals, ApprovalStatus.REJECTED.value)
    else:
        to_filter = invalid
    filtered = filter_urls(store, to_filter)
    approved_count, rejected_count = _final_counts(store, submodule_run_id, len(valid), len(invalid))

    store.update(SUBMODULE_RUNS, {"id": submodule_run_id}, {
        "status": RunStatus.APPROVED.value,
        "approved_at": now,
        "approved_count": approved_count,
        "rejected_count": rejected_count,
    })
    if publisher is not None:
        publisher.publish(SUBMODULE_APPROVAL, {
            "run_id": run_id,
            "submodule_run_id": submodule_run_id,
            "approved_count": approved_count,
            "rejected_count": rejected_count,
            "pending_count": 0,
            "status": RunStatus.APPROVED.value,
        })
    logger.info(f"[approvals] Applied validation run {submodule_run_id}: {filtered} URLs filtered")

    return {
        "applied": True,
        "approved": True,
        "valid_count": approved_count,
        "filtered_count": rejected_count,
        "submodule_run_id": submodule_run_id,
    }
