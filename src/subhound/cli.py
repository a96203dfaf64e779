import os
import sys
import signal
import argparse
from .config import (logger, configure_logging, load_api_keys, save_api_key, cpu_count, scan_concurrency,
                     MIN_API_KEY_LENGTH, DOH_TIMEOUT, HTTP_TIMEOUT, SCAN_TIMEOUT, DEFAULT_NMAP_OPTIONS,
                     DEFAULT_SCAN_OUTPUT)
from .errors import InputError
from .phases.active import run_brute_force, RESOLVERS
from .phases.passive import run_passive
from .phases.scanning import run_scan
from .utils.dns_utils import validate_domain

TOOLS = [
    ('fuzzsub', 'Performs subdomain brute-force using a wordlist', 'fuzzsub example.com wordlist.txt'),
    ('onsub', 'Gathers subdomains from online public sources', 'onsub example.com'),
    ('nmapscan', 'Scans domains from a wordlist using custom nmap options', 'nmapscan -w domains.txt -nmp "-p- -T4" -o result.txt'),
]


def _interactive():
    return sys.stdin is not None and sys.stdin.isatty()


def _prompt(ask, question):
    try:
        return ask(question)
    except EOFError:
        return ''


def resolve_api_keys(path=None, ask=None):
    """Loads the stored VirusTotal key, prompting once (and saving) when none is stored."""
    keys = load_api_keys(path)
    if keys.get('virustotal'):
        return keys
    if ask is None:
        logger.warning(" [!] No VirusTotal API key stored. VirusTotal will be skipped.")
        return keys

    key = _prompt(ask, "Enter your VirusTotal API Key: ").strip()
    if len(key) < MIN_API_KEY_LENGTH:
        logger.warning(" [!] No valid API key entered. VirusTotal will be skipped.")
        return keys
    save_api_key(key, path)
    keys['virustotal'] = key
    return keys


def resolve_scan_concurrency(default, cpus, ask=None):
    """Optional interactive override, accepted only within 1..cpus."""
    if ask is None:
        return default
    answer = _prompt(ask, "Do you want to change the concurrency? (y/n): ").strip().lower()
    if answer != 'y':
        return default

    value = _prompt(ask, f"Enter custom concurrency (1 - {cpus}): ").strip()
    try:
        value = int(value)
    except ValueError:
        value = 0
    if 1 <= value <= cpus:
        logger.info(f"[*] Concurrency set to: {value}")
        return value
    logger.warning(f" [!] Invalid input. Keeping default concurrency: {default}")
    return default


def _abort_on_interrupt(signum, frame):
    logger.warning("\n [!] Scan interrupted by user. Exiting without saving results.")
    sys.stdout.flush()
    os._exit(130)


def _fail(parser, error):
    logger.error(f" [!] {error}")
    parser.print_usage(sys.stderr)
    return 1


def main(argv=None):
    parser = argparse.ArgumentParser(prog='subhound', description="Lists the tools shipped with subhound.")
    parser.parse_args(argv)

    print("\nsubhound - subdomain discovery toolbox\n")
    print('-' * 60)
    for index, (name, description, usage) in enumerate(TOOLS, 1):
        print(f"\nTool {index}: {name}")
        print(f"Description: {description}")
        print(f"Usage      : {usage}")
        print('-' * 60)
    return 0


def fuzzsub_main(argv=None):
    parser = argparse.ArgumentParser(prog='fuzzsub', description="Subdomain brute-force over DNS using a wordlist.",
                                     epilog="Example: fuzzsub example.com subdomains.txt")
    parser.add_argument("target", help="Target domain (e.g., example.com)")
    parser.add_argument("wordlist", help="Path to a newline-delimited wordlist")
    parser.add_argument("-o", "--output-dir", default='.', help="Directory for the result file (default: current directory).")
    parser.add_argument("-c", "--concurrency", type=int, help="Number of concurrent lookups (default: min(200, CPUs x 25)).")
    parser.add_argument("--resolver", choices=RESOLVERS, default='doh', help="DNS-over-HTTPS (default) or plain DNS via dnspython.")
    parser.add_argument("--nameserver", action='append', dest='nameservers', help="Nameserver IP for --resolver system (repeatable).")
    parser.add_argument("--timeout", type=float, default=DOH_TIMEOUT, help=f"Per-lookup timeout in seconds (default: {DOH_TIMEOUT}).")
    parser.add_argument("--rate-limit", type=float, default=0.0, help="Delay between lookups *per worker* in seconds.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging (display debug messages).")
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    previous_handler = signal.signal(signal.SIGINT, _abort_on_interrupt)
    try:
        run_brute_force(
            args.target, args.wordlist,
            output_dir=args.output_dir,
            concurrency=args.concurrency,
            resolver=args.resolver,
            nameservers=args.nameservers,
            timeout=args.timeout,
            rate_limit=args.rate_limit,
        )
    except InputError as e:
        return _fail(parser, e)
    except Exception as e:
        logger.critical(f"An unhandled error occurred during brute-force: {e}", exc_info=True)
        return 1
    finally:
        signal.signal(signal.SIGINT, previous_handler)
    return 0


def onsub_main(argv=None):
    parser = argparse.ArgumentParser(prog='onsub', description="Gather subdomains from passive public sources.",
                                     epilog="Example: onsub example.com")
    parser.add_argument("domain", help="Target domain (e.g., example.com)")
    parser.add_argument("-o", "--output-dir", default='.', help="Directory for the output file (default: current directory).")
    parser.add_argument("--config", help="Path to the API key config file (default: ~/.subhound.json or $SUBHOUND_CONFIG).")
    parser.add_argument("--timeout", type=float, default=HTTP_TIMEOUT, help=f"HTTP timeout in seconds (default: {HTTP_TIMEOUT}).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging (display debug messages).")
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    try:
        domain = validate_domain(args.domain)
        api_keys = resolve_api_keys(args.config, ask=input if _interactive() else None)
        run_passive(domain, api_keys=api_keys, output_dir=args.output_dir, timeout=args.timeout)
    except InputError as e:
        return _fail(parser, e)
    except KeyboardInterrupt:
        logger.warning("\n [!] Interrupted by user.")
        return 130
    except Exception as e:
        logger.critical(f"An unhandled error occurred during passive enumeration: {e}", exc_info=True)
        return 1
    return 0


def nmapscan_main(argv=None):
    parser = argparse.ArgumentParser(prog='nmapscan', description="Run nmap against every domain in a wordlist.",
                                     epilog='Example: nmapscan -w domains.txt -nmp "-p- -T4" -o result.txt\n'
                                            'Single-flag options need "=": -nmp=-sV',
                                     formatter_class=argparse.RawTextHelpFormatter)
    parser.add_argument("-w", "--wordlist", required=True, help="Path to the domain list (required).")
    parser.add_argument("-nmp", "--nmap-options", default=DEFAULT_NMAP_OPTIONS, help=f'nmap options (default: "{DEFAULT_NMAP_OPTIONS}").')
    parser.add_argument("-o", "--output", default=DEFAULT_SCAN_OUTPUT, help=f"Report filename (default: {DEFAULT_SCAN_OUTPUT}).")
    parser.add_argument("--output-dir", default='nmap', help="Directory for all reports (default: nmap).")
    parser.add_argument("-c", "--concurrency", type=int, help="Parallel scans (default: max(1, CPUs / 8), asked interactively).")
    parser.add_argument("--timeout", type=float, default=SCAN_TIMEOUT, help=f"Per-scan timeout in seconds (default: {SCAN_TIMEOUT}).")
    parser.add_argument("--nmap-binary", default='nmap', help="nmap executable to run (default: nmap).")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging (display debug messages).")
    args = parser.parse_args(argv)

    configure_logging(args.verbose)
    try:
        concurrency = args.concurrency
        if concurrency is None:
            cpus = cpu_count()
            concurrency = scan_concurrency(cpus)
            logger.info(f"[*] Detected {cpus} logical CPUs. Using default concurrency: {concurrency}")
            concurrency = resolve_scan_concurrency(concurrency, cpus, ask=input if _interactive() else None)
        run_scan(
            args.wordlist,
            options=args.nmap_options,
            output_file=args.output,
            output_dir=args.output_dir,
            concurrency=concurrency,
            timeout=args.timeout,
            binary=args.nmap_binary,
        )
    except InputError as e:
        return _fail(parser, e)
    except KeyboardInterrupt:
        logger.warning("\n [!] Interrupted by user.")
        return 130
    except Exception as e:
        logger.critical(f"An unhandled error occurred during scanning: {e}", exc_info=True)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
