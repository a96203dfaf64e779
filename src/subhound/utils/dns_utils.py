import re
import dns.resolver
from ..config import logger, DOH_URL, DOH_TIMEOUT
from ..errors import InputError
from .http_utils import make_request

_LABEL = r'[A-Za-z0-9](?:[A-Za-z0-9-]{0,61}[A-Za-z0-9])?'
DOMAIN_PATTERN = re.compile(rf'^{_LABEL}(?:\.{_LABEL})*$')

A_RECORD = 1


def normalize_domain(name):
    name = name.strip().lower().rstrip('.')
    while name.startswith('*.'):
        name = name[2:]
    return name


def is_valid_domain(domain):
    return bool(domain) and DOMAIN_PATTERN.match(domain) is not None


def validate_domain(domain):
    """Returns the lower-cased domain or raises InputError."""
    domain = (domain or '').strip()
    if not is_valid_domain(domain):
        raise InputError(f"Invalid domain format: {domain!r}")
    return domain.lower()


def resolve_doh(name, timeout=DOH_TIMEOUT, url=DOH_URL):
    """A-record lookup over DNS-over-HTTPS (JSON API). Returns [] when there is no answer."""
    response = make_request(url, params={'name': name, 'type': 'A'}, timeout=timeout)
    data = response.json()
    answers = data.get('Answer') or []
    return [a['data'] for a in answers if a.get('type', A_RECORD) == A_RECORD and a.get('data')]


class DnsResolver:
    """Plain DNS A-record lookups through dnspython."""

    def __init__(self, nameservers=None, timeout=DOH_TIMEOUT):
        self.resolver = dns.resolver.Resolver(configure=not nameservers)
        if nameservers:
            self.resolver.nameservers = list(nameservers)
        self.resolver.timeout = timeout / 2
        self.resolver.lifetime = timeout
        if not self.resolver.nameservers:
            logger.error("No DNS resolvers configured! DNS resolution will fail.")

    def __call__(self, name):
        try:
            answers = self.resolver.resolve(name, 'A')
        except (dns.resolver.NXDOMAIN, dns.resolver.NoAnswer, dns.resolver.NoNameservers):
            return []
        return [str(a) for a in answers]
