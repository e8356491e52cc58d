"""
Sitemap discovery: list each entity's URLs from its sitemap.xml.

Probes the well-known sitemap locations of the entity's domain (or a
custom location), follows sitemap indexes and gunzips .gz children.
"""

from __future__ import annotations

from fetch.sitemap import SitemapResult, discover_sitemap, parse_sitemap
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


SITEMAP_NOT_FOUND = 'SITEMAP_NOT_FOUND'
SITEMAP_PARSE_ERROR = 'SITEMAP_PARSE_ERROR'
SITEMAP_TIMEOUT = 'SITEMAP_TIMEOUT'

DEFAULT_MAX_URLS = 500
DEFAULT_CONCURRENCY = 5


def _custom_location(sitemap_url: str, domain: str) -> str:
    """Custom sitemap location; a bare path is taken relative to the entity's domain."""
    if sitemap_url.startswith('/'):
        return f"https://{domain}{sitemap_url}"
    return sitemap_url.replace('{domain}', domain)


def _failure_code(result: SitemapResult) -> str:
    if result.timed_out:
        return SITEMAP_TIMEOUT
    if result.error and result.error.startswith('parse'):
        return SITEMAP_PARSE_ERROR
    return SITEMAP_NOT_FOUND


def execute(entities, config: dict, context: dict):
    log = context_logger(context)
    fetcher = context_fetcher(context)
    include_nested = config.get('include_nested') is not False
    max_urls = int_option(config, 'max_urls_per_entity', DEFAULT_MAX_URLS)
    custom_url = config.get('sitemap_url') if config.get('sitemap_location') == 'custom' else None

    def process(entity: Entity):
        domain = entity.domain or domain_from_website(entity.website)

        if custom_url:
            location = _custom_location(custom_url, domain)
            result = parse_sitemap(location, fetcher, follow_index=include_nested, max_urls=max_urls)
        else:
            probe = discover_sitemap(domain, fetcher)
            if not probe.found:
                code = SITEMAP_TIMEOUT if probe.timed_out else SITEMAP_NOT_FOUND
                log.warning(f"[sitemap] {probe.error} ({code})")
                return [], entity_error(entity, code, probe.error or f"No sitemap found for {domain}")
            result = parse_sitemap(
                probe.sitemap_url,
                fetcher,
                follow_index=include_nested,
                max_urls=max_urls,
                content=probe.content,
            )

        error = None
        if result.error:
            code = _failure_code(result)
            log.warning(f"[sitemap] Failed to read sitemap for {domain}: {result.error}")
            error = entity_error(entity, code, f"{result.sitemap_url}: {result.error}")

        items = [
            candidate(entity, u.loc, 'sitemap', sitemap_lastmod=u.lastmod)
            for u in result.urls
        ]
        log.info(f"[sitemap] Found {len(items)} URLs for {entity.name}")
        return items, error

    return run_in_batches(
        as_entities(entities),
        guarded(process, SITEMAP_PARSE_ERROR, log, 'sitemap'),
        int_option(config, 'concurrency', DEFAULT_CONCURRENCY),
        log,
        'sitemap',
    )


SUBMODULE = DiscoveryModule(
    id='sitemap',
    name='Sitemap',
    category='website',
    version='2.1.0',
    description='Parse sitemap.xml to find URLs',
    cost='cheap',
    options=[
        OptionSpec('sitemap_location', 'select', 'auto', ['auto', 'custom'], 'Auto-detect or specify URL'),
        OptionSpec('sitemap_url', 'string', None, None, 'Custom sitemap URL or path (sitemap_location=custom)'),
        OptionSpec('include_nested', 'boolean', True, [True, False], 'Follow sitemap index to child sitemaps'),
        OptionSpec('max_urls_per_entity', 'number', DEFAULT_MAX_URLS, None, 'Max URLs to collect per entity'),
        OptionSpec('concurrency', 'number', DEFAULT_CONCURRENCY, None, 'Entities processed in parallel'),
    ],
    inputs_required=[WEBSITE_INPUT],
    error_codes=[SITEMAP_NOT_FOUND, SITEMAP_PARSE_ERROR, SITEMAP_TIMEOUT, NO_WEBSITE_URL],
    execute=execute,
)
