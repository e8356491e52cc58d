"""
Submodule registry.

Resolves "type/name" keys to submodule descriptors through an explicit
registration table. Modules are imported lazily on first load and cached
for the life of the process; `reload()` is the only invalidation.

Usage:
    from submodules.registry import default_registry

    sitemap = default_registry.load('discovery', 'sitemap')
    result = sitemap.run(entities, {'max_urls_per_entity': 100}, context)
"""

from __future__ import annotations

import importlib
import threading

from loguru import logger

from .base import SubmoduleDescriptor
from .categories import list_categories


SUBMODULE_TYPES = ('discovery', 'validation')

REGISTRY = {
    'discovery/sitemap': 'submodules.discovery.sitemap',
    'discovery/navigation': 'submodules.discovery.navigation',
    'discovery/seed-expansion': 'submodules.discovery.seed_expansion',
    'validation/url-format': 'submodules.validation.url_format',
    'validation/path-filter': 'submodules.validation.path_filter',
    'validation/content-type': 'submodules.validation.content_type',
    'validation/dedupe': 'submodules.validation.dedupe',
    'validation/lang-dedup': 'submodules.validation.lang_dedup',
}


class SubmoduleRegistry:
    """Lazy, cached lookup of submodule descriptors."""

    def __init__(self, table: dict | None = None):
        self._table: dict[str, str | SubmoduleDescriptor] = dict(REGISTRY if table is None else table)
        self._cache: dict[str, SubmoduleDescriptor] = {}
        self._stale: set[str] = set()
        self._lock = threading.Lock()

    @staticmethod
    def key(submodule_type: str, name: str) -> str:
        return f"{submodule_type}/{name}"

    def register(self, submodule_type: str, name: str, target: str | SubmoduleDescriptor) -> None:
        """Add or replace an entry. `target` is a module path or a descriptor."""
        if submodule_type not in SUBMODULE_TYPES:
            raise ValueError(f"Unknown submodule type: {submodule_type}")
        key = self.key(submodule_type, name)
        with self._lock:
            self._table[key] = target
            self._cache.pop(key, None)

    def names(self, submodule_type: str) -> list[str]:
        prefix = f"{submodule_type}/"
        return [key[len(prefix):] for key in self._table if key.startswith(prefix)]

    def load(self, submodule_type: str, name: str) -> SubmoduleDescriptor | None:
        """
        Descriptor for type/name, or None when unknown or not importable.
        """
        key = self.key(submodule_type, name)
        with self._lock:
            if key in self._cache:
                return self._cache[key]
            target = self._table.get(key)
            stale = key in self._stale

        if target is None:
            return None

        if isinstance(target, SubmoduleDescriptor):
            descriptor = target
        else:
            try:
                module = importlib.import_module(target)
                if stale:
                    module = importlib.reload(module)
            except Exception as exc:
                logger.warning(f"[registry] Failed to import {key} ({target}): {exc}")
                return None
            descriptor = getattr(module, 'SUBMODULE', None)
            if not isinstance(descriptor, SubmoduleDescriptor):
                logger.warning(f"[registry] {target} does not define a SUBMODULE descriptor")
                return None

        with self._lock:
            self._cache[key] = descriptor
            self._stale.discard(key)
        return descriptor

    def reload(self, submodule_type: str | None = None, name: str | None = None) -> list[str]:
        """
        Invalidate cached descriptors. With no arguments everything is
        invalidated; the next load re-imports the module.

        Returns:
            Keys that were invalidated.
        """
        with self._lock:
            keys = [
                key for key in self._table
                if (submodule_type is None or key.startswith(f"{submodule_type}/"))
                and (name is None or key.endswith(f"/{name}"))
            ]
            for key in keys:
                self._cache.pop(key, None)
                self._stale.add(key)
        logger.info(f"[registry] Reloaded {len(keys)} submodule(s)")
        return keys

    def list_all(self) -> dict:
        """Metadata for every loadable submodule, grouped by type, plus categories."""
        listing = {}
        for submodule_type in SUBMODULE_TYPES:
            entries = []
            for name in self.names(submodule_type):
                descriptor = self.load(submodule_type, name)
                if descriptor is not None:
                    entries.append(descriptor.to_dict())
            listing[submodule_type] = entries
        listing['categories'] = list_categories()
        return listing


default_registry = SubmoduleRegistry()
