import os
from functools import partial
from ..config import logger, DOH_TIMEOUT, brute_force_concurrency, cpu_count
from ..errors import InputError
from ..engine import WorkQueue, RateLimitedFetcher, ResultList, ProgressReporter, WorkerPool, format_duration
from ..utils.dns_utils import validate_domain, resolve_doh, DnsResolver
from ..utils.output_utils import read_wordlist, write_brute_force_results, format_found

RESOLVERS = ('doh', 'system')


def build_candidates(words, domain):
    return [f"{word.strip()}.{domain}" for word in words if word.strip()]


def build_resolver(resolver='doh', nameservers=None, timeout=DOH_TIMEOUT):
    if resolver == 'doh':
        return partial(resolve_doh, timeout=timeout)
    if resolver == 'system':
        return DnsResolver(nameservers=nameservers, timeout=timeout)
    raise InputError(f"Unknown resolver: {resolver!r} (expected one of {', '.join(RESOLVERS)})")


def _lookup(resolve, subdomain):
    addresses = resolve(subdomain)
    if addresses:
        logger.info(f" [+] Found: {subdomain} → {', '.join(addresses)}")
    return addresses


def active_brute_force(domain, words, resolve, concurrency, rate_limit=0.0, reporter=None):
    """Resolves `<word>.<domain>` for every word. Results keep completion order."""
    queue = WorkQueue(build_candidates(words, domain), discipline='fifo')
    fetcher = RateLimitedFetcher(partial(_lookup, resolve), name='dns', rate_limit=rate_limit)
    return WorkerPool(concurrency, reporter).run(queue, fetcher, ResultList())


def run_brute_force(domain, wordlist_path, output_dir='.', concurrency=None, resolver='doh', nameservers=None,
                    timeout=DOH_TIMEOUT, rate_limit=0.0, resolve=None, reporter=None, show_progress=True):
    domain = validate_domain(domain)
    words = list(read_wordlist(wordlist_path))
    if concurrency is None:
        concurrency = brute_force_concurrency()
    if concurrency < 1:
        raise InputError("Concurrency must be at least 1")
    resolve = resolve or build_resolver(resolver, nameservers, timeout)
    if reporter is None and show_progress:
        reporter = ProgressReporter('Brute-force Progress')

    logger.info(f"[*] Target Domain    : {domain}")
    logger.info(f"[*] Wordlist         : {os.path.basename(wordlist_path)}")
    logger.info(f"[*] Total Subdomains : {len(words)}")
    logger.info(f"[*] Max Concurrency  : {concurrency} ({cpu_count()} CPU cores)")
    logger.info(f"[*] Resolver         : {resolver} (timeout {timeout}s)")

    summary = active_brute_force(domain, words, resolve, concurrency, rate_limit=rate_limit, reporter=reporter)
    found = summary.results.successes

    logger.info(f"[*] Brute-force completed in {format_duration(summary.elapsed)}. "
                f"Subdomains found: {summary.found} ({summary.failed} lookups failed).")
    for index, (subdomain, addresses) in enumerate(found, 1):
        logger.info(f" {index:3d}. {format_found(subdomain, addresses)}")

    path = write_brute_force_results(domain, found, output_dir)
    if not path:
        logger.info(f"No subdomains were discovered for {domain}.")
    return summary, path
