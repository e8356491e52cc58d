"""
Navigation discovery: links from the header, footer and sidebar of each
entity's homepage.
"""

from __future__ import annotations

from fetch.links import NAV_SELECTORS, extract_nav_links
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
NO_NAV_FOUND = 'NO_NAV_FOUND'
NAV_TIMEOUT = 'NAV_TIMEOUT'

DEFAULT_AREAS = ['header', 'footer']
DEFAULT_MAX_URLS = 200
DEFAULT_CONCURRENCY = 10


def execute(entities, config: dict, context: dict):
    log = context_logger(context)
    fetcher = context_fetcher(context)
    areas = [a for a in (config.get('scan_areas') or DEFAULT_AREAS) if a in NAV_SELECTORS]
    max_urls = int_option(config, 'max_urls_per_entity', DEFAULT_MAX_URLS)

    def process(entity: Entity):
        domain = entity.domain or domain_from_website(entity.website)
        homepage = f"https://{domain}"

        page = fetcher.fetch(homepage)
        if not page.ok:
            code = NAV_TIMEOUT if page.timed_out else PAGE_LOAD_ERROR
            detail = page.error or f"status {page.status}"
            log.warning(f"[navigation] Failed to load homepage for {domain}: {detail}")
            return [], entity_error(entity, code, f"Failed to load homepage for {domain} ({detail})")

        base_url = page.final_url or homepage
        links = extract_nav_links(page.content, base_url, domain, areas=areas, max_urls=max_urls)

        items = [candidate(entity, url, 'navigation', nav_location=area) for url, area in links]
        log.info(f"[navigation] Found {len(items)} URLs for {entity.name}")

        if not items:
            return [], entity_error(entity, NO_NAV_FOUND, 'Could not identify navigation elements')
        return items, None

    return run_in_batches(
        as_entities(entities),
        guarded(process, PAGE_LOAD_ERROR, log, 'navigation'),
        int_option(config, 'concurrency', DEFAULT_CONCURRENCY),
        log,
        'navigation',
    )


SUBMODULE = DiscoveryModule(
    id='navigation',
    name='Navigation',
    category='website',
    version='2.1.0',
    description='Extract links from site navigation (header, footer, menus)',
    cost='cheap',
    options=[
        OptionSpec('scan_areas', 'multi-select', DEFAULT_AREAS, list(NAV_SELECTORS), 'Which nav areas to scan'),
        OptionSpec('max_urls_per_entity', 'number', DEFAULT_MAX_URLS, None, 'Max URLs to collect per entity'),
        OptionSpec('concurrency', 'number', DEFAULT_CONCURRENCY, None, 'Entities processed in parallel'),
    ],
    inputs_required=[WEBSITE_INPUT],
    error_codes=[PAGE_LOAD_ERROR, NO_NAV_FOUND, NAV_TIMEOUT, NO_WEBSITE_URL],
    execute=execute,
)
