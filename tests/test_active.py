import os
import logging
from datetime import datetime, timezone
from unittest.mock import Mock, patch

import dns.resolver
import pytest

from subhound.errors import InputError
from subhound.engine import Success
from subhound.phases import active
from subhound.phases.active import run_brute_force, build_candidates, build_resolver
from subhound.utils.dns_utils import resolve_doh, validate_domain, DnsResolver
from subhound.utils.output_utils import read_wordlist, write_brute_force_results, brute_force_filename


@pytest.fixture
def wordlist(tmp_path):
    path = tmp_path / "words.txt"
    path.write_text("www\napi\n\nmail\n")
    return str(path)


def test_scenario_only_api_resolves(wordlist, tmp_path):
    calls = []

    def resolve(name):
        calls.append(name)
        return ['93.184.216.34'] if name == 'api.example.com' else []

    summary, path = run_brute_force('example.com', wordlist, output_dir=str(tmp_path / 'out'),
                                    concurrency=4, resolve=resolve, show_progress=False)

    assert sorted(calls) == ['api.example.com', 'mail.example.com', 'www.example.com']
    assert summary.completed == 3
    assert summary.found == 1
    assert {s.item for s in summary.results.successes} == {'api.example.com'}
    with open(path, encoding='utf-8') as f:
        assert f.read() == 'api.example.com → 93.184.216.34'


def test_invalid_domain_rejected_before_any_lookup(wordlist):
    resolve = Mock()
    with patch.object(active, 'resolve_doh') as doh:
        with pytest.raises(InputError):
            run_brute_force('-bad-.com', wordlist, resolve=resolve, show_progress=False)
        doh.assert_not_called()
    resolve.assert_not_called()


def test_nothing_found_writes_no_file(wordlist, tmp_path):
    out = tmp_path / 'out'
    summary, path = run_brute_force('example.com', wordlist, output_dir=str(out), concurrency=2,
                                    resolve=lambda name: [], show_progress=False)
    assert summary.found == 0
    assert path is None
    assert not out.exists()


def test_lookup_failures_do_not_stop_the_run(wordlist, tmp_path):
    def resolve(name):
        if name.startswith('www'):
            raise ConnectionError("resolver unreachable")
        return ['10.0.0.2']

    summary, _ = run_brute_force('example.com', wordlist, output_dir=str(tmp_path), concurrency=3,
                                 resolve=resolve, show_progress=False)
    assert summary.completed == 3
    assert summary.found == 2
    assert [f.item for f in summary.failures] == ['www.example.com']


def test_missing_wordlist_is_input_error(tmp_path):
    with pytest.raises(InputError):
        run_brute_force('example.com', str(tmp_path / 'nope.txt'), resolve=Mock(), show_progress=False)


def test_zero_concurrency_is_input_error(wordlist):
    resolve = Mock(return_value=[])
    with pytest.raises(InputError):
        run_brute_force('example.com', wordlist, concurrency=0, resolve=resolve, show_progress=False)
    resolve.assert_not_called()


def test_found_subdomains_are_logged_as_they_resolve(wordlist, tmp_path, caplog):
    caplog.set_level(logging.INFO, logger='subhound')
    run_brute_force('example.com', wordlist, output_dir=str(tmp_path), concurrency=2,
                    resolve=lambda name: ['10.0.0.7'] if name == 'mail.example.com' else [], show_progress=False)
    found = [r for r in caplog.records if r.levelno == logging.INFO and 'Found:' in r.getMessage()]
    assert [r.getMessage().strip() for r in found] == ['[+] Found: mail.example.com → 10.0.0.7']


def test_duplicate_words_produce_duplicate_results(tmp_path):
    path = tmp_path / "dupes.txt"
    path.write_text("www\nwww\n")
    summary, _ = run_brute_force('example.com', str(path), output_dir=str(tmp_path), concurrency=2,
                                 resolve=lambda name: ['1.1.1.1'], show_progress=False)
    assert len(summary.results) == 2


@pytest.mark.parametrize("domain", ['example.com', 'a.b', 'x', 'sub-domain.example.co.uk', 'EXAMPLE.com'])
def test_valid_domains(domain):
    assert validate_domain(domain) == domain.lower()


@pytest.mark.parametrize("domain", ['-bad-.com', 'bad-.com', '', 'exa mple.com', 'example..com', 'a' * 64 + '.com', 'example.com/'])
def test_invalid_domains(domain):
    with pytest.raises(InputError):
        validate_domain(domain)


def test_read_wordlist_skips_blank_lines(wordlist):
    assert list(read_wordlist(wordlist)) == ['www', 'api', 'mail']


def test_build_candidates():
    assert build_candidates(['www', ' api ', ''], 'example.com') == ['www.example.com', 'api.example.com']


def test_build_resolver_rejects_unknown_kind():
    with pytest.raises(InputError):
        build_resolver('carrier-pigeon')


def test_resolve_doh_returns_a_records_only():
    response = Mock()
    response.json.return_value = {
        'Status': 0,
        'Answer': [
            {'name': 'www.example.com.', 'type': 5, 'data': 'edge.example.net.'},
            {'name': 'edge.example.net.', 'type': 1, 'data': '1.2.3.4'},
            {'name': 'edge.example.net.', 'type': 1, 'data': '1.2.3.5'},
        ],
    }
    with patch('subhound.utils.dns_utils.make_request', return_value=response) as request:
        assert resolve_doh('www.example.com', timeout=5) == ['1.2.3.4', '1.2.3.5']
    request.assert_called_once_with('https://dns.google/resolve', params={'name': 'www.example.com', 'type': 'A'}, timeout=5)


def test_resolve_doh_without_answer_is_empty():
    response = Mock()
    response.json.return_value = {'Status': 3}
    with patch('subhound.utils.dns_utils.make_request', return_value=response):
        assert resolve_doh('nope.example.com') == []


def test_system_resolver_maps_missing_answers_to_empty():
    resolver = DnsResolver(nameservers=['127.0.0.1'], timeout=2)
    resolver.resolver = Mock()
    resolver.resolver.resolve.side_effect = dns.resolver.NXDOMAIN()
    assert resolver('nope.example.com') == []

    resolver.resolver.resolve.side_effect = dns.resolver.NoNameservers()
    assert resolver('servfail.example.com') == []

    resolver.resolver.resolve.side_effect = None
    resolver.resolver.resolve.return_value = ['10.1.1.1']
    assert resolver('www.example.com') == ['10.1.1.1']


def test_brute_force_file_format(tmp_path):
    when = datetime(2024, 5, 1, 12, 30, 15)
    found = [Success('www.example.com', ['1.1.1.1', '1.0.0.1']), Success('api.example.com', ['2.2.2.2'])]
    path = write_brute_force_results('example.com', found, str(tmp_path), when=when)

    assert os.path.basename(path) == brute_force_filename('example.com', when) == 'subdomains-example.com-2024-05-01T12-30-15.txt'
    with open(path, encoding='utf-8') as f:
        assert f.read().splitlines() == ['www.example.com → 1.1.1.1, 1.0.0.1', 'api.example.com → 2.2.2.2']


def test_default_file_timestamp_is_utc():
    before = datetime.now(timezone.utc).replace(microsecond=0)
    name = brute_force_filename('example.com')
    after = datetime.now(timezone.utc)
    stamp = datetime.strptime(name[len('subdomains-example.com-'):-len('.txt')], '%Y-%m-%dT%H-%M-%S')
    assert before <= stamp.replace(tzinfo=timezone.utc) <= after
