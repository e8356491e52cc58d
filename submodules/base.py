"""
Submodule contract: descriptors, option specs and the shared helpers
discovery and validation submodules are built from.

A submodule is a Python module exposing a module-level ``SUBMODULE``
descriptor whose ``execute(input, config, context)`` does the work:

    discovery:  execute(entities, config, context) -> DiscoveryResult
    validation: execute(urls, config, context) -> ValidationResult

``context`` is a dict with ``logger`` (a RunLogger), ``db`` (a Datastore
or None) and ``fetcher`` (a shared fetch.Fetcher).
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from loguru import logger as default_logger

from schema import (
    DiscoveryResult,
    Entity,
    EntityError,
    RejectedUrl,
    UrlCandidate,
    ValidationResult,
)


NO_WEBSITE_URL = 'NO_WEBSITE_URL'

WEBSITE_INPUT = {
    'name': 'website',
    'type': 'url',
    'label': 'Website URL',
    'description': "Entity's website",
}


@dataclass
class OptionSpec:
    """One tunable option, described for operator surfaces."""
    name: str
    type: str  # boolean | number | select | multi-select | array | string
    default: Any = None
    values: list | None = None
    description: str = ''

    def to_dict(self) -> dict:
        data = {'name': self.name, 'type': self.type, 'default': self.default}
        if self.values is not None:
            data['values'] = list(self.values)
        data['description'] = self.description
        return data


@dataclass(kw_only=True)
class SubmoduleDescriptor:
    """Static metadata plus the execute capability of one submodule."""
    id: str
    name: str
    type: str
    category: str
    description: str
    execute: Callable
    version: str = '1.0.0'
    cost: str = 'cheap'
    requires_external_api: bool = False
    options: list[OptionSpec] = field(default_factory=list)
    inputs_required: list[dict] = field(default_factory=list)
    inputs_optional: list[dict] = field(default_factory=list)
    error_codes: list[str] = field(default_factory=list)

    @property
    def key(self) -> str:
        return f"{self.type}/{self.id}"

    def defaults(self) -> dict:
        return {opt.name: opt.default for opt in self.options}

    def resolve_config(self, config: dict | None) -> dict:
        """Option defaults overlaid with caller config (None means unset)."""
        resolved = self.defaults()
        for key, value in (config or {}).items():
            if value is not None:
                resolved[key] = value
        return resolved

    def run(self, items: list, config: dict | None = None, context: dict | None = None):
        return self.execute(items, self.resolve_config(config), context or {})

    def to_dict(self) -> dict:
        """Metadata only; never includes the execute capability."""
        return {
            'id': self.id,
            'name': self.name,
            'type': self.type,
            'category': self.category,
            'version': self.version,
            'description': self.description,
            'cost': self.cost,
            'requires_external_api': self.requires_external_api,
            'options': [opt.to_dict() for opt in self.options],
            'inputs_required': list(self.inputs_required),
            'inputs_optional': list(self.inputs_optional),
            'error_codes': list(self.error_codes),
        }


@dataclass(kw_only=True)
class DiscoveryModule(SubmoduleDescriptor):
    """Entities in, DiscoveryResult out."""
    type: str = 'discovery'

    def run(self, entities: list, config: dict | None = None, context: dict | None = None) -> DiscoveryResult:
        return self.execute(as_entities(entities), self.resolve_config(config), context or {})


@dataclass(kw_only=True)
class ValidationModule(SubmoduleDescriptor):
    """URL candidates in, ValidationResult (a partition of the input) out."""
    type: str = 'validation'

    def run(self, urls: list, config: dict | None = None, context: dict | None = None) -> ValidationResult:
        return self.execute(as_candidates(urls), self.resolve_config(config), context or {})


# ---------------------------------------------------------------------------
# Context helpers
# ---------------------------------------------------------------------------

def context_logger(context: dict | None):
    logger = (context or {}).get('logger')
    return logger if logger is not None else default_logger


def context_fetcher(context: dict | None):
    fetcher = (context or {}).get('fetcher')
    if fetcher is None:
        from fetch.fetcher import Fetcher
        fetcher = Fetcher()
        if context is not None:
            context['fetcher'] = fetcher
    return fetcher


def as_entities(entities: Iterable) -> list[Entity]:
    return [
        e if isinstance(e, Entity) else Entity.from_dict(e, fallback_id=str(i))
        for i, e in enumerate(entities or [])
    ]


def as_candidates(urls: Iterable) -> list[UrlCandidate]:
    return [u if isinstance(u, UrlCandidate) else UrlCandidate.from_dict(u) for u in urls or []]


def int_option(config: dict, name: str, default: int) -> int:
    """Positive int option; falsy or unparseable values fall back."""
    try:
        value = int(config.get(name) or default)
    except (TypeError, ValueError):
        return default
    return value if value > 0 else default


# ---------------------------------------------------------------------------
# Discovery helpers
# ---------------------------------------------------------------------------

def entity_error(entity: Entity, code: str, message: str, details: list | None = None) -> EntityError:
    return EntityError(
        entity_id=entity.id,
        entity_name=entity.name,
        error_code=code,
        message=message,
        details=details or [],
    )


def candidate(entity: Entity, url: str, method: str, **metadata) -> UrlCandidate:
    return UrlCandidate(
        url=url,
        entity_id=entity.id,
        entity_name=entity.name,
        discovery_method=method,
        metadata={'source': method, **metadata},
        run_entity_id=entity.run_entity_id,
        entity_website=entity.website,
    )


EntityOutcome = tuple[list[UrlCandidate], EntityError | None]


def run_in_batches(
    entities: list[Entity],
    process: Callable[[Entity], EntityOutcome],
    concurrency: int,
    log,
    label: str,
) -> DiscoveryResult:
    """
    Process entities in sequential batches, entities within a batch in
    parallel. Results keep entity order. Entities without a website get
    NO_WEBSITE_URL and are not passed to `process`; wrap `process` with
    `guarded` so one entity's exception cannot sink the batch.
    """
    result = DiscoveryResult()
    concurrency = max(1, concurrency)
    total_batches = (len(entities) + concurrency - 1) // concurrency

    log.info(f"[{label}] Processing {len(entities)} entities (concurrency: {concurrency})")

    def _one(entity: Entity) -> EntityOutcome:
        if not entity.website:
            log.warning(f"[{label}] Entity {entity.name} has no website, skipping")
            return [], entity_error(entity, NO_WEBSITE_URL, 'Entity missing website URL')
        return process(entity)

    for start in range(0, len(entities), concurrency):
        batch = entities[start:start + concurrency]
        with ThreadPoolExecutor(max_workers=len(batch)) as executor:
            outcomes = list(executor.map(_one, batch))

        for items, error in outcomes:
            result.items.extend(items)
            if error is not None:
                result.errors.append(error)

        log.info(f"[{label}] Processed batch {start // concurrency + 1}/{total_batches}")

    return result


def guarded(process: Callable[[Entity], EntityOutcome], crash_code: str, log, label: str):
    """Wrap a per-entity worker so an unexpected exception becomes an EntityError."""
    def _wrapped(entity: Entity) -> EntityOutcome:
        try:
            return process(entity)
        except Exception as exc:
            log.error(f"[{label}] Error processing {entity.name}: {exc}")
            return [], entity_error(entity, crash_code, str(exc))
    return _wrapped


# ---------------------------------------------------------------------------
# Validation helpers
# ---------------------------------------------------------------------------

def partition(
    urls: list[UrlCandidate],
    check: Callable[[UrlCandidate], str | None],
    reason: str,
) -> tuple[list[UrlCandidate], list[RejectedUrl]]:
    """Split candidates by `check`, which returns rejection details or None."""
    valid, invalid = [], []
    for item in urls:
        details = check(item)
        if details is None:
            valid.append(item)
        else:
            invalid.append(RejectedUrl(candidate=item, reason=reason, details=details))
    return valid, invalid


def validation_result(
    urls: list,
    valid: list[UrlCandidate],
    invalid: list[RejectedUrl],
    **extra_stats,
) -> ValidationResult:
    stats = {
        'total': len(urls),
        'valid_count': len(valid),
        'invalid_count': len(invalid),
    }
    stats.update(extra_stats)
    return ValidationResult(valid=valid, invalid=invalid, stats=stats)
