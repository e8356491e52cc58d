"""
Submodule execution orchestrator.

Resolves the entities (or URLs) a request is about, runs one submodule
against them, and, unless previewing, persists the run, its approval rows
and its lifecycle events.

Request modes, checked in order:
    1. project_id + entities, no run_id: create a run and entity snapshots
    2. entities only: preview, nothing persisted
    3. run_id + run_entity_ids: load entity snapshots from the datastore

Usage:
    orchestrator = Orchestrator(store=JsonFileDatastore(path))
    response = orchestrator.execute('discovery', 'sitemap', {
        'entities': [{'name': 'Acme', 'website': 'acme.com'}],
    })
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field

from loguru import logger

from schema import (
    DiscoveryResult,
    Entity,
    RunStatus,
    SubmoduleRun,
    UrlCandidate,
    ValidationResult,
)
from submodules.registry import SubmoduleRegistry, default_registry

from . import approvals
from .config import Settings
from .datastore import (
    DISCOVERED_URLS,
    PIPELINE_RUNS,
    RUN_ENTITIES,
    SUBMODULE_RUNS,
    Datastore,
    MemoryDatastore,
    fetch_all,
    now_iso,
)
from .errors import InputError, NotFoundError, SubmoduleNotFoundError, TableMissingError
from .events import SUBMODULE_COMPLETE, SUBMODULE_START, EventPublisher
from .presenter import empty_validation_response, execution_response, run_summary_row
from .run_logger import RunLogger


VALIDATION_BATCH_SIZE = 1000
VALIDATION_MAX_URLS = 50000


@dataclass
class ExecuteRequest:
    project_id: str | None = None
    run_id: str | None = None
    run_entity_ids: list[str] = field(default_factory=list)
    entities: list[dict] = field(default_factory=list)
    urls: list[dict] = field(default_factory=list)  # validation preview input
    config: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: dict | None) -> "ExecuteRequest":
        """Parse a request body. Raises InputError on malformed entities, urls or config."""
        data = data or {}
        if not isinstance(data, dict):
            raise InputError("Request body must be an object")
        entities = data.get("entities")
        urls = data.get("urls")
        config = data.get("config")

        if entities is not None and not isinstance(entities, list):
            raise InputError('"entities" must be an array')
        for idx, entity in enumerate(entities or []):
            if not isinstance(entity, dict):
                raise InputError(f'entities[{idx}] must be an object with "name" and "website"')
        if urls is not None and not isinstance(urls, list):
            raise InputError('"urls" must be an array')
        for idx, item in enumerate(urls or []):
            if not isinstance(item, (str, dict)):
                raise InputError(f'urls[{idx}] must be a URL string or an object with "url"')
        if config is not None and not isinstance(config, dict):
            raise InputError('"config" must be an object')

        return cls(
            project_id=data.get("project_id"),
            run_id=data.get("run_id"),
            run_entity_ids=list(data.get("run_entity_ids") or []),
            entities=list(entities or []),
            urls=[{"url": u} if isinstance(u, str) else u for u in urls or []],
            config=dict(config or {}),
        )


@dataclass
class Execution:
    """Outcome of invoking one submodule."""
    submodule_run_id: str
    status: str
    result: DiscoveryResult | ValidationResult
    duration_ms: int
    logs: list[dict]
    error: str | None = None


def _missing_table_warning(exc: TableMissingError, detail: str) -> dict:
    return {"table": exc.table, "code": exc.code, "message": detail}


class Orchestrator:
    """Runs submodules and owns every datastore and event side effect."""

    def __init__(
        self,
        store: Datastore | None = None,
        publisher: EventPublisher | None = None,
        fetcher=None,
        registry: SubmoduleRegistry | None = None,
        settings: Settings | None = None,
    ):
        self.settings = settings or Settings()
        self.store = store if store is not None else MemoryDatastore()
        self.publisher = publisher or EventPublisher(None)
        self.registry = registry or default_registry
        if fetcher is None:
            from fetch.fetcher import Fetcher
            fetcher = Fetcher(self.settings.fetch_config())
        self.fetcher = fetcher

    # -----------------------------------------------------------------
    # Catalogue
    # -----------------------------------------------------------------

    def list_submodules(self) -> dict:
        return self.registry.list_all()

    def _load(self, submodule_type: str, name: str):
        descriptor = self.registry.load(submodule_type, name)
        if descriptor is None:
            raise SubmoduleNotFoundError(submodule_type, name)
        return descriptor

    # -----------------------------------------------------------------
    # Entity resolution
    # -----------------------------------------------------------------

    def _create_run(self, project_id: str, raw_entities: list[dict]) -> tuple[str, list[Entity]]:
        run_row = self.store.insert(PIPELINE_RUNS, {
            "project_id": project_id,
            "status": "running",
            "entities_total": len(raw_entities),
            "started_at": now_iso(),
        })[0]
        run_id = run_row["id"]

        snapshots = []
        for idx, raw in enumerate(raw_entities):
            entity = Entity.from_dict(raw, fallback_id=f"entity-{idx}")
            snapshots.append({
                "run_id": run_id,
                "entity_id": None,
                "entity_snapshot": entity.snapshot(),
                "processing_order": idx,
                "status": "pending",
            })
        rows = self.store.insert(RUN_ENTITIES, snapshots)
        logger.info(f"[orchestrator] Created run {run_id} with {len(rows)} entities")
        return run_id, [Entity.from_snapshot(row) for row in rows]

    def _load_entities(self, run_entity_ids: list[str]) -> list[Entity]:
        try:
            rows = fetch_all(self.store, RUN_ENTITIES, {"id": list(run_entity_ids)}, order_by="processing_order")
        except TableMissingError as exc:
            raise NotFoundError("Run entities not available") from exc
        if not rows:
            raise NotFoundError("Run entities not found")
        return [Entity.from_snapshot(row) for row in rows]

    @staticmethod
    def _preview_entities(raw_entities: list[dict]) -> list[Entity]:
        return [Entity.from_dict(raw, fallback_id=f"preview-{idx}") for idx, raw in enumerate(raw_entities)]

    # -----------------------------------------------------------------
    # Execution
    # -----------------------------------------------------------------

    def _invoke(self, descriptor, items: list, config: dict, run_id: str | None) -> Execution:
        run_log = RunLogger(descriptor.key, run_id)
        context = {"logger": run_log, "db": self.store, "fetcher": self.fetcher}
        empty = ValidationResult() if descriptor.type == "validation" else DiscoveryResult()

        start = time.monotonic()
        error = None
        try:
            result = descriptor.run(items, config, context)
            if result is None:
                result = empty
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            run_log.error(f"Submodule {descriptor.id} failed: {error}", {"error": error})
            result = empty
        duration_ms = int((time.monotonic() - start) * 1000)

        return Execution(
            submodule_run_id=str(uuid.uuid4()),
            status=RunStatus.FAILED.value if error else RunStatus.COMPLETED.value,
            result=result,
            duration_ms=duration_ms,
            logs=run_log.lines,
            error=error,
        )

    def _persist(
        self,
        descriptor,
        execution: Execution,
        run_id: str,
        run_entity_ids: list[str],
        config: dict,
        warnings: list[dict],
    ) -> bool:
        """Store the run and its approval rows. False when the runs table is missing."""
        envelope = execution.result.to_dict()
        record = SubmoduleRun(
            id=execution.submodule_run_id,
            run_id=run_id,
            submodule_type=descriptor.type,
            submodule_name=descriptor.id,
            run_entity_ids=list(run_entity_ids),
            config=config,
            status=RunStatus(execution.status),
            result_count=len(execution.result),
            results=envelope,
            errors=list(envelope.get("errors") or []),
            logs=execution.logs,
            duration_ms=execution.duration_ms,
            error=execution.error,
            created_at=now_iso(),
        )
        try:
            self.store.insert(SUBMODULE_RUNS, record.to_row())
        except TableMissingError as exc:
            logger.warning(f"[orchestrator] {SUBMODULE_RUNS} missing, results of {descriptor.key} not stored")
            warnings.append(_missing_table_warning(exc, "Submodule run not stored; results are only in this response"))
            return False

        _, warning = approvals.create_approval_records(self.store, record.id, envelope)
        if warning:
            warnings.append(warning)

        # Nothing to decide on: approved with a count of zero
        if record.status == RunStatus.COMPLETED and record.result_count == 0:
            self.store.update(SUBMODULE_RUNS, {"id": record.id}, {
                "status": RunStatus.APPROVED.value,
                "approved_at": now_iso(),
                "approved_count": 0,
            })
            execution.status = RunStatus.APPROVED.value
        return True

    def _publish_start(self, descriptor, run_id: str, **extra) -> None:
        self.publisher.publish(SUBMODULE_START, {
            "run_id": run_id,
            "submodule_type": descriptor.type,
            "submodule_name": descriptor.id,
            **extra,
        })

    def _publish_complete(self, descriptor, run_id: str, execution: Execution, **extra) -> None:
        self.publisher.publish(SUBMODULE_COMPLETE, {
            "run_id": run_id,
            "submodule_run_id": execution.submodule_run_id,
            "submodule_type": descriptor.type,
            "submodule_name": descriptor.id,
            "status": execution.status,
            "result_count": len(execution.result),
            "duration_ms": execution.duration_ms,
            **extra,
        })

    def execute(self, submodule_type: str, name: str, request: ExecuteRequest | dict | None) -> dict:
        """
        Execute one submodule.

        Raises:
            SubmoduleNotFoundError: unknown type/name
            InputError: no request mode matches
            NotFoundError: run entities could not be loaded
        """
        if not isinstance(request, ExecuteRequest):
            request = ExecuteRequest.from_dict(request)
        descriptor = self._load(submodule_type, name)

        if descriptor.type == "validation":
            if request.urls and not request.run_id:
                return self._preview_validation(descriptor, request)
            if request.run_id:
                return self.execute_validation(name, request.run_id, request.run_entity_ids, request.config)
            raise InputError('Provide "urls" for preview, or "run_id" to validate the run\'s pending URLs')

        warnings: list[dict] = []
        run_id = request.run_id
        run_entity_ids = list(request.run_entity_ids)
        created_run_id = None
        created_run_entity_ids = None
        preview = False

        if request.project_id and not run_id and request.entities:
            try:
                run_id, entities = self._create_run(request.project_id, request.entities)
                run_entity_ids = [e.run_entity_id for e in entities]
                created_run_id, created_run_entity_ids = run_id, run_entity_ids
            except TableMissingError as exc:
                logger.warning(f"[orchestrator] Cannot create run ({exc}), running as preview")
                warnings.append(_missing_table_warning(exc, "Run not created; executed as preview"))
                run_id, run_entity_ids = None, []
                entities = self._preview_entities(request.entities)
                preview = True
        elif request.entities:
            entities = self._preview_entities(request.entities)
            preview = True
        elif run_id and run_entity_ids:
            entities = self._load_entities(run_entity_ids)
        else:
            raise InputError(
                'Provide either "entities" array for preview, or "run_id" + "run_entity_ids" '
                'for database mode, or "project_id" + "entities" to auto-create a run'
            )

        if not preview:
            self._publish_start(descriptor, run_id, entity_count=len(entities))

        execution = self._invoke(descriptor, entities, request.config, run_id)

        persisted = False
        if not preview:
            persisted = self._persist(descriptor, execution, run_id, run_entity_ids, request.config, warnings)
            self._publish_complete(descriptor, run_id, execution)

        logger.info(
            f"[orchestrator] {descriptor.key}: {execution.status}, "
            f"{len(execution.result)} results in {execution.duration_ms}ms"
        )
        return execution_response(
            descriptor.key,
            execution.submodule_run_id,
            execution.status,
            execution.result,
            execution.duration_ms,
            execution.logs,
            execution.error,
            preview_mode=preview,
            warnings=warnings,
            persisted=persisted,
            created_run_id=created_run_id,
            created_run_entity_ids=created_run_entity_ids,
        )

    def _preview_validation(self, descriptor, request: ExecuteRequest) -> dict:
        execution = self._invoke(descriptor, request.urls, request.config, None)
        return execution_response(
            descriptor.key,
            execution.submodule_run_id,
            execution.status,
            execution.result,
            execution.duration_ms,
            execution.logs,
            execution.error,
            preview_mode=True,
            warnings=[],
            persisted=False,
        )

    def _pending_urls(self, run_entity_ids: list[str]) -> list[UrlCandidate]:
        """Pending discovered URLs for the entities, with entity name and website attached."""
        rows = fetch_all(
            self.store,
            DISCOVERED_URLS,
            {"run_entity_id": list(run_entity_ids), "status": "pending"},
            order_by="created_at",
            page_size=VALIDATION_BATCH_SIZE,
            max_rows=VALIDATION_MAX_URLS,
        )
        logger.info(f"[orchestrator] Loaded {len(rows)} pending URLs (batches of {VALIDATION_BATCH_SIZE})")
        if not rows:
            return []

        snapshots = {
            row["id"]: Entity.from_snapshot(row)
            for row in fetch_all(self.store, RUN_ENTITIES, {"id": list(run_entity_ids)})
        }
        candidates = []
        for row in rows:
            entity = snapshots.get(row.get("run_entity_id"))
            candidates.append(UrlCandidate(
                url=row.get("url"),
                entity_id=entity.id if entity else None,
                entity_name=entity.name if entity else "Unknown",
                discovery_method=row.get("discovery_method"),
                metadata={"priority": row.get("priority", 0)},
                id=row.get("id"),
                run_entity_id=row.get("run_entity_id"),
                entity_website=entity.website if entity else None,
            ))
        return candidates

    def execute_validation(
        self,
        name: str,
        run_id: str,
        run_entity_ids: list[str] | None = None,
        config: dict | None = None,
    ) -> dict:
        """Validate every pending discovered URL of a run (or of some of its entities)."""
        if not run_id:
            raise InputError("run_id is required for validation")
        descriptor = self._load("validation", name)
        config = dict(config or {})
        key = descriptor.key

        try:
            entity_ids = list(run_entity_ids or [])
            if not entity_ids:
                entity_ids = [row["id"] for row in fetch_all(self.store, RUN_ENTITIES, {"run_id": run_id})]
            if not entity_ids:
                raise InputError("No entities found for this run")
            urls = self._pending_urls(entity_ids)
        except TableMissingError as exc:
            logger.warning(f"[orchestrator] Cannot load URLs for validation: {exc}")
            return empty_validation_response(
                key, "Discovered URLs not available",
                [_missing_table_warning(exc, "Nothing validated")],
            )

        if not urls:
            return empty_validation_response(key, "No pending URLs to validate")

        self._publish_start(descriptor, run_id, entity_count=len(entity_ids), url_count=len(urls))
        execution = self._invoke(descriptor, urls, config, run_id)

        warnings: list[dict] = []
        persisted = self._persist(descriptor, execution, run_id, entity_ids, config, warnings)

        result = execution.result
        self._publish_complete(
            descriptor, run_id, execution,
            valid_count=len(result.valid),
            invalid_count=len(result.invalid),
        )
        logger.info(
            f"[orchestrator] {key}: {len(result.valid)} valid, {len(result.invalid)} invalid "
            f"of {len(urls)} in {execution.duration_ms}ms"
        )
        return execution_response(
            key,
            execution.submodule_run_id,
            execution.status,
            result,
            execution.duration_ms,
            execution.logs,
            execution.error,
            preview_mode=False,
            warnings=warnings,
            persisted=persisted,
        )

    def apply_validation(self, run_id: str, submodule_run_id: str) -> dict:
        return approvals.apply_validation(self.store, run_id, submodule_run_id, publisher=self.publisher)

    # -----------------------------------------------------------------
    # Runs and approvals
    # -----------------------------------------------------------------

    def list_runs(self, run_id: str) -> list[dict]:
        try:
            rows = fetch_all(self.store, SUBMODULE_RUNS, {"run_id": run_id}, order_by="created_at")
        except TableMissingError:
            return []
        return [run_summary_row(row) for row in reversed(rows)]

    def get_run(self, run_id: str, submodule_run_id: str) -> dict:
        return approvals.load_submodule_run(self.store, run_id, submodule_run_id)

    def get_results(self, run_id: str, submodule_run_id: str) -> dict:
        return approvals.get_results(self.store, run_id, submodule_run_id)

    def decide(self, run_id: str, submodule_run_id: str, approval_id: str, action: str, reason: str | None = None) -> dict:
        return approvals.decide(self.store, self.publisher, run_id, submodule_run_id, approval_id, action, reason)

    def batch_decide(self, run_id: str, submodule_run_id: str, decisions: list[dict]) -> dict:
        return approvals.batch_decide(self.store, self.publisher, run_id, submodule_run_id, decisions)

    def approve_run(self, run_id: str, submodule_run_id: str, selected_urls: list[str] | None = None) -> dict:
        return approvals.approve_run(self.store, self.publisher, run_id, submodule_run_id, selected_urls)

    def reject_run(self, run_id: str, submodule_run_id: str) -> dict:
        return approvals.reject_run(self.store, self.publisher, run_id, submodule_run_id)

    def close(self) -> None:
        self.fetcher.close()
        self.publisher.close()
