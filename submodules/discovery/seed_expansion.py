"""
Seed expansion: fetch a set of seed pages per entity (homepage, the
entity's own seed URLs and optionally a catalogue of common paths) and
collect the internal links found on them. Depth is fixed at one.
"""

from __future__ import annotations

from fetch.links import extract_links
from schema import Entity, domain_from_website

from ..base import (
    NO_WEBSITE_URL,
    WEBSITE_INPUT,
    DiscoveryModule,
    OptionSpec,
    as_entities,
    candidate,
    context_fetcher,
    context_logger,
    entity_error,
    guarded,
    int_option,
    run_in_batches,
)


PAGE_LOAD_ERROR = 'PAGE_LOAD_ERROR'
NO_LINKS_FOUND = 'NO_LINKS_FOUND'
SEED_TIMEOUT = 'SEED_TIMEOUT'

COMMON_SEEDS = [
    '/about',
    '/about-us',
    '/company',
    '/products',
    '/solutions',
    '/services',
    '/press',
    '/news',
    '/media',
    '/blog',
    '/insights',
    '/resources',
    '/careers',
    '/jobs',
    '/contact',
    '/contact-us',
]

DEFAULT_MAX_URLS = 300
DEFAULT_MAX_PER_SEED = 50
DEFAULT_CONCURRENCY = 5


def build_seeds(entity: Entity, use_common_seeds: bool = False) -> list[str]:
    """Homepage first, then the entity's seeds, then common paths. Deduped, order kept."""
    website = entity.website.strip()
    base = (website if website.startswith(('http://', 'https://')) else f"https://{website}").rstrip('/')

    seeds = [base] + [s.strip() for s in entity.seed_urls if s and s.strip()]
    if use_common_seeds:
        seeds += [base + path for path in COMMON_SEEDS]
    return list(dict.fromkeys(seeds))


def execute(entities, config: dict, context: dict):
    log = context_logger(context)
    fetcher = context_fetcher(context)
    same_domain_only = config.get('same_domain_only') is not False
    use_common_seeds = config.get('use_common_seeds') is True
    max_urls = int_option(config, 'max_urls_per_entity', DEFAULT_MAX_URLS)
    max_per_seed = int_option(config, 'max_urls_per_seed', DEFAULT_MAX_PER_SEED)

    def process(entity: Entity):
        domain = entity.domain or domain_from_website(entity.website)
        discovered: dict[str, str] = {}  # url -> seed that found it
        seed_errors = []

        for seed_url in build_seeds(entity, use_common_seeds):
            if len(discovered) >= max_urls:
                break

            page = fetcher.fetch(seed_url)
            if not page.ok:
                code = SEED_TIMEOUT if page.timed_out else PAGE_LOAD_ERROR
                seed_errors.append({
                    'seed_url': seed_url,
                    'error_code': code,
                    'message': page.error or f"Failed to load {seed_url} (status {page.status})",
                })
                continue

            discovered.setdefault(seed_url, seed_url)

            links = extract_links(
                page.content,
                page.final_url or seed_url,
                domain,
                same_domain_only=same_domain_only,
                max_urls=max_per_seed,
            )
            if not links:
                seed_errors.append({
                    'seed_url': seed_url,
                    'error_code': NO_LINKS_FOUND,
                    'message': 'Page has no internal links',
                })

            for url in links:
                if len(discovered) >= max_urls:
                    break
                discovered.setdefault(url, seed_url)

        items = [
            candidate(entity, url, 'seed-expansion', seed_url=seed_url)
            for url, seed_url in discovered.items()
        ]
        log.info(f"[seed-expansion] Found {len(items)} URLs for {entity.name}")

        if seed_errors and not items:
            return [], entity_error(
                entity,
                PAGE_LOAD_ERROR,
                f"All {len(seed_errors)} seeds failed",
                details=seed_errors,
            )
        return items, None

    return run_in_batches(
        as_entities(entities),
        guarded(process, PAGE_LOAD_ERROR, log, 'seed-expansion'),
        int_option(config, 'concurrency', DEFAULT_CONCURRENCY),
        log,
        'seed-expansion',
    )


SUBMODULE = DiscoveryModule(
    id='seed-expansion',
    name='Seed Expansion',
    category='website',
    version='2.1.0',
    description='Expand seed URLs by extracting internal links',
    cost='cheap',
    options=[
        OptionSpec('same_domain_only', 'boolean', True, [True, False], 'Only keep links on same domain'),
        OptionSpec('use_common_seeds', 'boolean', False, [True, False], 'Append common paths to base domains'),
        OptionSpec('max_urls_per_entity', 'number', DEFAULT_MAX_URLS, None, 'Max URLs to collect per entity'),
        OptionSpec('max_urls_per_seed', 'number', DEFAULT_MAX_PER_SEED, None, 'Max URLs to collect per seed page'),
        OptionSpec('concurrency', 'number', DEFAULT_CONCURRENCY, None, 'Entities processed in parallel'),
    ],
    inputs_required=[WEBSITE_INPUT],
    inputs_optional=[{
        'name': 'seed_urls',
        'type': 'url[]',
        'label': 'Custom Seed URLs',
        'description': 'Additional URLs to start from',
    }],
    error_codes=[PAGE_LOAD_ERROR, NO_LINKS_FOUND, SEED_TIMEOUT, NO_WEBSITE_URL],
    execute=execute,
)
