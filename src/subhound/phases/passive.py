import re
import logging
from collections import namedtuple
from functools import partial
from urllib.parse import urlparse

import backoff
import requests

from ..config import logger, HTTP_TIMEOUT, CRTSH_ATTEMPTS, CRTSH_RETRY_DELAY
from ..errors import SourceFailure
from ..engine import ResultSet, describe_error
from ..utils.dns_utils import validate_domain
from ..utils.http_utils import get_session, make_request
from ..utils.output_utils import write_passive_results

VT_PAGE_SIZE = 40

PassiveSummary = namedtuple('PassiveSummary', ['domain', 'names', 'failures', 'path'])


def passive_archive_org(domain, results, timeout=HTTP_TIMEOUT):
    url = "https://web.archive.org/cdx/search/cdx"
    params = {'url': f"*.{domain}/*", 'output': 'json', 'fl': 'original', 'collapse': 'urlkey'}
    response = make_request(url, params=params, timeout=timeout)
    if not response.text.strip():
        return
    rows = response.json()
    # First row is the header
    for row in rows[1:]:
        if row:
            results.add(urlparse(row[0]).hostname or '')


def passive_certspotter(domain, results, timeout=HTTP_TIMEOUT):
    url = "https://api.certspotter.com/v1/issuances"
    params = {'domain': domain, 'include_subdomains': 'true', 'expand': 'dns_names'}
    response = make_request(url, params=params, timeout=timeout)
    for cert in response.json():
        results.update(cert.get('dns_names') or [])


def passive_virustotal(domain, results, api_key=None, timeout=HTTP_TIMEOUT):
    """Walks the subdomain listing page by page until no next_cursor is returned."""
    if not api_key:
        raise SourceFailure("no VirusTotal API key configured")

    url = f"https://www.virustotal.com/api/v3/domains/{domain}/subdomains"
    headers = {'x-apikey': api_key}
    cursor = None
    session = get_session()
    try:
        while True:
            params = {'limit': VT_PAGE_SIZE}
            if cursor:
                params['cursor'] = cursor
            response = make_request(url, params=params, headers=headers, timeout=timeout, session=session)
            data = response.json()
            for entry in data.get('data') or []:
                results.add(entry.get('id', ''))
            cursor = (data.get('meta') or {}).get('next_cursor')
            if not cursor:
                break
    finally:
        session.close()


def passive_crtsh(domain, results, timeout=HTTP_TIMEOUT, attempts=CRTSH_ATTEMPTS, retry_delay=CRTSH_RETRY_DELAY):
    @backoff.on_exception(backoff.constant, (requests.exceptions.RequestException, ValueError),
                          max_tries=attempts, interval=retry_delay, jitter=None, logger=logger,
                          backoff_log_level=logging.DEBUG, giveup_log_level=logging.DEBUG)
    def query():
        response = make_request("https://crt.sh/", params={'q': f"%.{domain}", 'output': 'json'}, timeout=timeout)
        return response.json()

    for entry in query():
        results.update(re.split(r'\n|,', entry.get('name_value', '')))


def passive_rapiddns(domain, results, timeout=HTTP_TIMEOUT):
    response = make_request(f"https://rapiddns.io/subdomain/{domain}", params={'full': 1, 'down': 1}, timeout=timeout)
    host_regex = re.compile(r'\b((?:[\w-]+\.)+' + re.escape(domain) + r')\b', re.IGNORECASE)
    results.update(match.group(1) for match in host_regex.finditer(response.text))


def passive_hackertarget(domain, results, timeout=HTTP_TIMEOUT):
    response = make_request("https://api.hackertarget.com/hostsearch/", params={'q': domain}, timeout=timeout)
    text = response.text.strip()
    if text.lower().startswith(('error', 'api count exceeded')):
        raise SourceFailure(text.splitlines()[0])
    for line in text.splitlines():
        results.add(line.split(',')[0])


def passive_alienvault(domain, results, timeout=HTTP_TIMEOUT):
    url = f"https://otx.alienvault.com/api/v1/indicators/domain/{domain}/passive_dns"
    response = make_request(url, timeout=timeout)
    for entry in response.json().get('passive_dns') or []:
        results.add(entry.get('hostname', ''))


class SourceRegistry:
    """Ordered passive sources, run one after another into a shared ResultSet."""

    def __init__(self, sources=None):
        self._sources = list(sources or [])

    def register(self, name, source):
        self._sources.append((name, source))
        return source

    @property
    def names(self):
        return [name for name, _ in self._sources]

    def __len__(self):
        return len(self._sources)

    def run(self, domain, results):
        """Runs every source; returns [(name, reason)] for the ones that raised."""
        failures = []
        total = len(self._sources)
        for index, (name, source) in enumerate(self._sources, 1):
            logger.info(f"[*] ({index}/{total}) Fetching from {name}...")
            before = len(results)
            try:
                source(domain, results)
            except Exception as e:
                reason = describe_error(e)
                failures.append((name, reason))
                logger.warning(f" [!] {name} failed: {reason}")
                continue
            logger.info(f"[*] {name} done: {len(results) - before} new, {len(results)} unique so far.")
        return failures


def build_registry(api_keys=None, timeout=HTTP_TIMEOUT):
    api_keys = api_keys or {}
    return SourceRegistry([
        ('ArchiveOrg', partial(passive_archive_org, timeout=timeout)),
        ('CertSpotter', partial(passive_certspotter, timeout=timeout)),
        ('VirusTotal', partial(passive_virustotal, api_key=api_keys.get('virustotal'), timeout=timeout)),
        ('CrtSh', partial(passive_crtsh, timeout=timeout)),
        ('RapidDNS', partial(passive_rapiddns, timeout=timeout)),
        ('HackerTarget', partial(passive_hackertarget, timeout=timeout)),
        ('AlienVault', partial(passive_alienvault, timeout=timeout)),
    ])


def run_passive(domain, api_keys=None, output_dir='.', registry=None, timeout=HTTP_TIMEOUT):
    domain = validate_domain(domain)
    registry = registry if registry is not None else build_registry(api_keys, timeout)

    logger.info(f"[*] Target Domain: {domain}")
    logger.info(f"[*] Total Sources: {len(registry)}")

    results = ResultSet(scope=domain)
    failures = registry.run(domain, results)
    names = results.sorted()
    path = write_passive_results(domain, names, failures, output_dir)

    logger.info(f"[*] Completed. Total subdomains found: {len(names)}")
    if failures:
        logger.info(f"[*] Failed sources: {', '.join(name for name, _ in failures)}")
    return PassiveSummary(domain, names, failures, path)
