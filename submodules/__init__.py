"""
Pluggable discovery and validation submodules.

Primary interface:
    from submodules import default_registry

    descriptor = default_registry.load('validation', 'dedupe')
"""

from .base import DiscoveryModule, OptionSpec, SubmoduleDescriptor, ValidationModule
from .categories import CATEGORIES, list_categories
from .registry import SubmoduleRegistry, default_registry


__all__ = [
    'OptionSpec',
    'SubmoduleDescriptor',
    'DiscoveryModule',
    'ValidationModule',
    'SubmoduleRegistry',
    'default_registry',
    'CATEGORIES',
    'list_categories',
]
