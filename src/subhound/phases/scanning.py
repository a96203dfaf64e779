import shlex
import shutil
import subprocess
from functools import partial
from ..config import logger, SCAN_TIMEOUT, DEFAULT_NMAP_OPTIONS, DEFAULT_SCAN_OUTPUT, scan_concurrency
from ..errors import FetchFailure, InputError
from ..engine import WorkQueue, RateLimitedFetcher, ResultList, ProgressReporter, WorkerPool, format_duration
from ..utils.output_utils import read_wordlist, write_scan_reports


def build_nmap_command(target, options=DEFAULT_NMAP_OPTIONS, binary='nmap'):
    return [binary] + shlex.split(options or '') + [target]


def run_nmap(target, options=DEFAULT_NMAP_OPTIONS, timeout=SCAN_TIMEOUT, binary='nmap'):
    """Runs one scan. The child is killed when the timeout expires."""
    command = build_nmap_command(target, options, binary)
    logger.debug(f" [.] Running: {' '.join(command)}")
    completed = subprocess.run(command, capture_output=True, text=True, errors='replace', timeout=timeout)
    output = (completed.stdout or '') + (completed.stderr or '')
    if completed.returncode != 0:
        raise FetchFailure(f"Command failed: {' '.join(command)} (exit status {completed.returncode})")
    return output or '(no output)'


def filter_targets(targets):
    # A leading dash would be parsed by nmap as an option
    kept = []
    for target in targets:
        if target.startswith('-'):
            logger.warning(f" [!] Skipping suspicious target {target!r}.")
            continue
        kept.append(target)
    return kept


def check_open_ports(targets, concurrency, options=DEFAULT_NMAP_OPTIONS, timeout=SCAN_TIMEOUT, binary='nmap', reporter=None):
    queue = WorkQueue(targets, discipline='lifo')
    fetcher = RateLimitedFetcher(partial(run_nmap, options=options, timeout=timeout, binary=binary), name='nmap')
    return WorkerPool(concurrency, reporter).run(queue, fetcher, ResultList(keep_failures=True))


def run_scan(wordlist_path, options=DEFAULT_NMAP_OPTIONS, output_file=DEFAULT_SCAN_OUTPUT, output_dir='nmap',
             concurrency=None, timeout=SCAN_TIMEOUT, binary='nmap', reporter=None, show_progress=True):
    targets = filter_targets(read_wordlist(wordlist_path))
    if concurrency is None:
        concurrency = scan_concurrency()
    if concurrency < 1:
        raise InputError("Concurrency must be at least 1")
    if shutil.which(binary) is None:
        logger.warning(f" [!] {binary} not found in PATH. Every scan will fail.")
    if reporter is None and show_progress:
        reporter = ProgressReporter('Scan Progress')

    logger.info(f"[*] Starting scan of {len(targets)} targets with concurrency: {concurrency}")
    summary = check_open_ports(targets, concurrency, options=options, timeout=timeout, binary=binary, reporter=reporter)
    logger.info(f"[*] Scan completed for {summary.total} targets in {format_duration(summary.elapsed)} "
                f"({summary.found} succeeded, {summary.failed} failed).")

    paths = write_scan_reports(summary.results.entries, output_dir=output_dir, output_file=output_file)
    logger.info("[*] Output written to:")
    for path in paths.values():
        logger.info(f"     {path}")
    return summary, paths
