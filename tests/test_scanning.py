import os
import sys

import pytest

from subhound.engine import RateLimitedFetcher, Success, Failure
from subhound.errors import FetchFailure, InputError
from subhound.phases.scanning import build_nmap_command, run_nmap, run_scan, filter_targets
from subhound.utils.output_utils import render_html_report, html_report_name, write_scan_reports

PYTHON = sys.executable
ECHO = '-c "import sys; print(\'scanned \' + sys.argv[1])"'
ECHO_OR_FAIL = '-c "import sys; t = sys.argv[1]; sys.exit(2) if t.startswith(\'bad\') else print(\'<open> \' + t)"'
SLEEP = '-c "import time; time.sleep(30)"'


@pytest.fixture
def targets(tmp_path):
    path = tmp_path / "domains.txt"
    path.write_text("a.example.com\n\nbad.example.com\nb.example.com\n")
    return str(path)


def test_build_nmap_command_splits_options():
    assert build_nmap_command('example.com', '-p- -T4') == ['nmap', '-p-', '-T4', 'example.com']
    assert build_nmap_command('example.com', '') == ['nmap', 'example.com']


def test_run_nmap_returns_output():
    assert run_nmap('example.com', options=ECHO, binary=PYTHON, timeout=30).strip() == 'scanned example.com'


def test_run_nmap_nonzero_exit_raises():
    with pytest.raises(FetchFailure):
        run_nmap('bad.example.com', options=ECHO_OR_FAIL, binary=PYTHON, timeout=30)


def test_scan_timeout_becomes_failure():
    fetcher = RateLimitedFetcher(lambda target: run_nmap(target, options=SLEEP, binary=PYTHON, timeout=0.5))
    outcome = fetcher.fetch('slow.example.com')
    assert isinstance(outcome, Failure)
    assert outcome.reason.startswith('timeout')


def test_missing_binary_becomes_failure():
    fetcher = RateLimitedFetcher(lambda target: run_nmap(target, binary='definitely-not-a-real-nmap'))
    assert isinstance(fetcher.fetch('example.com'), Failure)


def test_run_scan_writes_all_reports(targets, tmp_path):
    out = tmp_path / 'nmap'
    summary, paths = run_scan(targets, options=ECHO_OR_FAIL, output_file='result.txt', output_dir=str(out),
                              concurrency=2, timeout=30, binary=PYTHON, show_progress=False)

    assert summary.completed == 3
    assert summary.found == 2
    assert summary.failed == 1
    assert sorted(os.listdir(out)) == ['failed.txt', 'result.html', 'result.txt', 'success.txt']

    assert sorted((out / 'success.txt').read_text().splitlines()) == ['a.example.com', 'b.example.com']
    assert (out / 'failed.txt').read_text() == 'bad.example.com'

    text = (out / 'result.txt').read_text()
    assert '[+] a.example.com\n<open> a.example.com' in text
    assert '[-] bad.example.com (Error: Command failed:' in text

    html = (out / 'result.html').read_text()
    assert '&lt;open&gt; a.example.com' in html
    assert 'bad.example.com' not in html


def test_run_scan_missing_wordlist(tmp_path):
    with pytest.raises(InputError):
        run_scan(str(tmp_path / 'missing.txt'), concurrency=1, show_progress=False)


def test_run_scan_rejects_zero_concurrency(targets, tmp_path):
    with pytest.raises(InputError):
        run_scan(targets, options=ECHO, binary=PYTHON, output_dir=str(tmp_path / 'nmap'), concurrency=0, show_progress=False)
    assert not (tmp_path / 'nmap').exists()


def test_filter_targets_drops_option_like_lines():
    assert filter_targets(['a.example.com', '-oN/tmp/x', 'b.example.com']) == ['a.example.com', 'b.example.com']


def test_html_report_escapes_everything():
    page = render_html_report([('x.example.com', '<script>alert("1") & \'2\'</script>')])
    assert '<script>' not in page
    assert '&lt;script&gt;alert(&quot;1&quot;) &amp; &#x27;2&#x27;&lt;/script&gt;' in page


@pytest.mark.parametrize("name,expected", [('output.txt', 'output.html'), ('report', 'report.html'), ('scan.log', 'scan.log.html')])
def test_html_report_name(name, expected):
    assert html_report_name(name) == expected


def test_scan_reports_keep_completion_order(tmp_path):
    entries = [Failure('c.example.com', 'timeout: 120s'), Success('a.example.com', 'PORT 80 open')]
    paths = write_scan_reports(entries, output_dir=str(tmp_path), output_file='out.txt')
    with open(paths['text'], encoding='utf-8') as f:
        assert f.read() == '[-] c.example.com (Error: timeout: 120s)\n[+] a.example.com\nPORT 80 open'
