import os
import html
from datetime import datetime, timezone
from ..config import logger
from ..errors import InputError
from ..engine import Success


def read_wordlist(path):
    """Lazily yields stripped, non-empty lines. Missing files fail up front."""
    if not path or not os.path.isfile(path):
        raise InputError(f"Wordlist file not found: {path}")
    return _iter_lines(path)


def _iter_lines(path):
    with open(path, 'r', encoding='utf-8', errors='replace') as f:
        for line in f:
            line = line.strip()
            if line:
                yield line


def _write_lines(path, lines):
    with open(path, 'w', encoding='utf-8') as f:
        f.write('\n'.join(lines))
    return path


def brute_force_filename(target, when=None):
    when = when or datetime.now(timezone.utc)
    return f"subdomains-{target}-{when.strftime('%Y-%m-%dT%H-%M-%S')}.txt"


def format_found(subdomain, addresses):
    if not isinstance(addresses, str):
        addresses = ', '.join(addresses)
    return f"{subdomain} → {addresses}"


def write_brute_force_results(target, found, output_dir='.', when=None):
    """Writes `<subdomain> → <addresses>` lines. Nothing is written when nothing was found."""
    if not found:
        return None
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, brute_force_filename(target, when))
    _write_lines(path, [format_found(item, payload) for item, payload in found])
    logger.info(f"[*] Results saved to: {path}")
    return path


def write_passive_results(domain, names, failures, output_dir='.'):
    os.makedirs(output_dir, exist_ok=True)
    path = os.path.join(output_dir, f"output-{domain}.txt")
    failure_lines = [f"{name} error: {reason}" for name, reason in failures] or ['None']

    with open(path, 'w', encoding='utf-8') as f:
        f.write(f"Subdomains for: {domain}\n\n")
        f.write('\n'.join(names))
        f.write('\n\nFailed Modules:\n')
        f.write('\n'.join(failure_lines))
    logger.info(f"[*] Output saved to: {path}")
    return path


HTML_TEMPLATE = """<!DOCTYPE html>
<html><head><meta charset="UTF-8"><title>Nmap Scan Report</title>
<style>
body {{ font-family: Arial; background: #f4f4f4; padding: 20px; }}
.result {{ background: #fff; border: 1px solid #ccc; padding: 10px; margin-bottom: 10px; border-radius: 8px; }}
h2 {{ color: #003366; }}
pre {{ background: #eee; padding: 10px; border-radius: 5px; white-space: pre-wrap; word-wrap: break-word; }}
</style></head><body>
<h1>Nmap Scan Report</h1>
{results}
</body></html>"""

HTML_RESULT = """
<div class="result">
  <h2>{domain}</h2>
  <pre>{output}</pre>
</div>"""


def render_html_report(successes):
    blocks = [HTML_RESULT.format(domain=html.escape(domain), output=html.escape(output)) for domain, output in successes]
    return HTML_TEMPLATE.format(results='\n'.join(blocks))


def html_report_name(output_file):
    root, ext = os.path.splitext(output_file)
    if ext == '.txt':
        return root + '.html'
    return output_file + '.html'


def write_scan_reports(entries, output_dir='nmap', output_file='output.txt'):
    """Writes text/HTML reports plus success.txt and failed.txt.

    `entries` are (item, detail) outcomes in completion order; Success entries
    carry scanner output, Failure entries carry the error reason.
    """
    os.makedirs(output_dir, exist_ok=True)
    text_lines, succeeded, failed, html_rows = [], [], [], []
    for entry in entries:
        if isinstance(entry, Success):
            succeeded.append(entry.item)
            text_lines.append(f"[+] {entry.item}\n{entry.payload}")
            html_rows.append((entry.item, entry.payload))
        else:
            failed.append(entry.item)
            text_lines.append(f"[-] {entry.item} (Error: {entry.reason or 'Unknown'})")

    paths = {
        'text': _write_lines(os.path.join(output_dir, output_file), text_lines),
        'html': os.path.join(output_dir, html_report_name(output_file)),
        'success': _write_lines(os.path.join(output_dir, 'success.txt'), succeeded),
        'failed': _write_lines(os.path.join(output_dir, 'failed.txt'), failed),
    }
    with open(paths['html'], 'w', encoding='utf-8') as f:
        f.write(render_html_report(html_rows))
    return paths
