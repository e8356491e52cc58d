"""
Schema definitions for the URL discovery pipeline.

This defines the data structures for:
- Entities (companies) snapshotted into a run
- URL candidates produced by discovery submodules
- Validation partitions (valid / rejected with reasons)
- Submodule runs and their per-result approval records
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from enum import Enum
from typing import Any, Optional
from urllib.parse import urlparse


class SubmoduleType(str, Enum):
    DISCOVERY = "discovery"
    VALIDATION = "validation"


class RunStatus(str, Enum):
    """Lifecycle of a single submodule execution record."""
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    APPROVED = "approved"
    REJECTED = "rejected"
    PARTIAL = "partial"


class ApprovalStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


def domain_from_website(website: str | None) -> str | None:
    """Hostname of a website given with or without a scheme."""
    if not website:
        return None
    value = website.strip()
    if not value.startswith(("http://", "https://")):
        value = f"https://{value}"
    try:
        host = urlparse(value).hostname
    except ValueError:
        host = None
    if host:
        return host.lower()
    # Unparseable: assume it is already a bare domain
    return website.split("://")[-1].split("/")[0].lower() or None


@dataclass
class Entity:
    """A company being profiled. Immutable snapshot per run."""
    id: str
    name: str
    website: Optional[str] = None
    domain: Optional[str] = None
    seed_urls: list[str] = field(default_factory=list)
    metadata: dict = field(default_factory=dict)
    run_entity_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: dict, fallback_id: str = "") -> "Entity":
        metadata = data.get("metadata") or {}
        website = data.get("website") or metadata.get("website") or data.get("domain")
        return cls(
            id=str(data.get("id") or fallback_id),
            name=data.get("name") or data.get("entity_name") or "Unknown",
            website=website,
            domain=data.get("domain") or metadata.get("domain") or domain_from_website(website),
            seed_urls=list(data.get("seed_urls") or metadata.get("seed_urls") or []),
            metadata=dict(metadata) if metadata else {
                k: v for k, v in data.items() if k not in ("id", "metadata")
            },
            run_entity_id=data.get("run_entity_id"),
        )

    @classmethod
    def from_snapshot(cls, run_entity: dict) -> "Entity":
        """Build from a stored run_entities row."""
        snapshot = run_entity.get("entity_snapshot") or {}
        metadata = snapshot.get("metadata") or {}
        return cls(
            id=str(snapshot.get("id") or run_entity["id"]),
            name=snapshot.get("name") or "Unknown",
            website=metadata.get("website"),
            domain=metadata.get("domain"),
            seed_urls=list(metadata.get("seed_urls") or []),
            metadata=metadata,
            run_entity_id=run_entity["id"],
        )

    def snapshot(self) -> dict:
        """Snapshot document stored on run_entities.entity_snapshot."""
        metadata = dict(self.metadata)
        metadata.update({
            "website": self.website,
            "domain": self.domain or domain_from_website(self.website),
            "seed_urls": list(self.seed_urls),
        })
        return {"id": self.id, "name": self.name, "metadata": metadata}


@dataclass
class UrlCandidate:
    """A URL attributed to an entity. Identity is (entity_id, normalized url)."""
    url: str
    entity_id: Optional[str] = None
    entity_name: Optional[str] = None
    discovery_method: Optional[str] = None
    metadata: dict = field(default_factory=dict)

    # Set when the candidate was loaded from discovered_urls
    id: Optional[str] = None
    run_entity_id: Optional[str] = None
    entity_website: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict) -> "UrlCandidate":
        return cls(
            url=data.get("url"),
            entity_id=data.get("entity_id"),
            entity_name=data.get("entity_name"),
            discovery_method=data.get("discovery_method"),
            metadata=dict(data.get("metadata") or {}),
            id=data.get("id"),
            run_entity_id=data.get("run_entity_id"),
            entity_website=data.get("entity_website"),
        )


@dataclass
class RejectedUrl:
    """An input candidate that failed validation."""
    candidate: UrlCandidate
    reason: str
    details: str = ""

    @property
    def url(self) -> str:
        return self.candidate.url

    def to_dict(self) -> dict:
        data = self.candidate.to_dict()
        data["reason"] = self.reason
        data["details"] = self.details
        return data


@dataclass
class EntityError:
    """A per-entity discovery failure, reported alongside results."""
    entity_id: Optional[str]
    entity_name: Optional[str]
    error_code: str
    message: str
    details: list = field(default_factory=list)

    def to_dict(self) -> dict:
        data = asdict(self)
        if not self.details:
            data.pop("details")
        return data


@dataclass
class DiscoveryResult:
    """Output of a discovery submodule: found URLs plus per-entity errors."""
    items: list[UrlCandidate] = field(default_factory=list)
    errors: list[EntityError] = field(default_factory=list)

    def __len__(self) -> int:
        return len(self.items)

    def to_dict(self) -> dict:
        return {
            "items": [c.to_dict() for c in self.items],
            "errors": [e.to_dict() for e in self.errors],
        }


@dataclass
class ValidationResult:
    """Output of a validation submodule: a partition of its input."""
    valid: list[UrlCandidate] = field(default_factory=list)
    invalid: list[RejectedUrl] = field(default_factory=list)
    stats: dict = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.valid) + len(self.invalid)

    def to_dict(self) -> dict:
        return {
            "valid": [c.to_dict() for c in self.valid],
            "invalid": [r.to_dict() for r in self.invalid],
            "stats": dict(self.stats),
        }


def flatten_results(results: Any) -> list[dict]:
    """
    Flatten a stored results envelope into the list approval rows index into.

    Validation envelopes flatten to valid + invalid (in that order),
    discovery envelopes to their items. Plain lists pass through.
    """
    if not results:
        return []
    if isinstance(results, dict):
        if "valid" in results or "invalid" in results:
            return list(results.get("valid") or []) + list(results.get("invalid") or [])
        return list(results.get("items") or [])
    return list(results)


@dataclass
class SubmoduleRun:
    """One execution record. Only status fields change after creation."""
    id: str
    run_id: Optional[str]
    submodule_type: str
    submodule_name: str
    run_entity_ids: list[str] = field(default_factory=list)
    config: dict = field(default_factory=dict)
    status: RunStatus = RunStatus.PENDING
    result_count: int = 0
    results: Any = None
    errors: list[dict] = field(default_factory=list)
    logs: list[dict] = field(default_factory=list)
    duration_ms: int = 0
    error: Optional[str] = None
    created_at: Optional[str] = None
    approved_at: Optional[str] = None
    approved_count: Optional[int] = None
    rejected_at: Optional[str] = None
    rejected_count: int = 0

    def to_row(self) -> dict:
        row = asdict(self)
        row["status"] = RunStatus(self.status).value
        return row

    @classmethod
    def from_row(cls, row: dict) -> "SubmoduleRun":
        known = {f for f in cls.__dataclass_fields__}
        data = {k: v for k, v in row.items() if k in known}
        data["status"] = RunStatus(row.get("status") or RunStatus.PENDING.value)
        return cls(**data)


@dataclass
class ResultApproval:
    """One human decision unit tied to a single result of a run."""
    submodule_run_id: str
    result_index: int
    result_url: Optional[str] = None
    result_entity_id: Optional[str] = None
    result_entity_name: Optional[str] = None
    status: ApprovalStatus = ApprovalStatus.PENDING
    rejection_reason: Optional[str] = None
    decided_at: Optional[str] = None
    id: Optional[str] = None
    created_at: Optional[str] = None

    def to_row(self) -> dict:
        row = asdict(self)
        row["status"] = ApprovalStatus(self.status).value
        for key in ("id", "created_at"):
            if row[key] is None:
                row.pop(key)
        return row
