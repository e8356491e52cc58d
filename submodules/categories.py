"""
Category catalogue: display metadata for grouping submodules.

Submodules declare a `category`; this table supplies label, description,
pipeline step and order. A new category is added here, then used by a
submodule.
"""

CATEGORIES = {
    # Step 1: discovery
    'website': {
        'label': 'Website',
        'description': 'Find URLs from company websites',
        'step': 1,
        'order': 1,
    },
    'search': {
        'label': 'Search',
        'description': 'General web search (fallback)',
        'step': 1,
        'order': 2,
    },
    # Step 2: validation
    'filtering': {
        'label': 'Filtering',
        'description': 'Remove unwanted URLs',
        'step': 2,
        'order': 1,
    },
    'dedup': {
        'label': 'Deduplication',
        'description': 'Remove duplicate URLs',
        'step': 2,
        'order': 2,
    },
}


def list_categories(step: int | None = None) -> dict:
    """Categories (optionally for one step), sorted by step then order."""
    items = sorted(CATEGORIES.items(), key=lambda kv: (kv[1]['step'], kv[1]['order']))
    return {
        key: {'id': key, **meta}
        for key, meta in items
        if step is None or meta['step'] == step
    }
