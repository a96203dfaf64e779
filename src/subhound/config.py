import os
import sys
import json
import logging

# User Agents for rotation
USER_AGENTS = [
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36',
    'Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 (KHTML, like Gecko) Version/14.1.1 Safari/605.1.15',
    'Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/92.0.4515.107 Safari/537.36',
    'Mozilla/5.0 (Android 10; Mobile; rv:90.0) Gecko/90.0 Firefox/90.0',
    'Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:89.0) Gecko/20100101 Firefox/89.0'
]

DOH_URL = 'https://dns.google/resolve'

# Timeouts in seconds
DOH_TIMEOUT = 60
SCAN_TIMEOUT = 120
HTTP_TIMEOUT = 30

CRTSH_ATTEMPTS = 3
CRTSH_RETRY_DELAY = 2

PROGRESS_INTERVAL = 0.5
DEFAULT_NMAP_OPTIONS = '-F'
DEFAULT_SCAN_OUTPUT = 'output.txt'

# Stored keys shorter than this are treated as missing
MIN_API_KEY_LENGTH = 5

DEFAULT_CONFIG_PATH = os.path.join(os.path.expanduser('~'), '.subhound.json')

logger = logging.getLogger('subhound')


def configure_logging(verbose=False):
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        handlers=[logging.StreamHandler(sys.stdout)]
    )
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logging.getLogger('urllib3').setLevel(logging.WARNING)


def cpu_count():
    return os.cpu_count() or 1


def brute_force_concurrency(cpus=None):
    """DNS lookups are cheap, so run many of them per core, capped at 200."""
    cpus = cpus or cpu_count()
    return min(200, cpus * 25)


def scan_concurrency(cpus=None):
    """nmap is heavy; one scan per eight cores, at least one."""
    cpus = cpus or cpu_count()
    return max(1, cpus // 8)


def config_path(path=None):
    return path or os.getenv('SUBHOUND_CONFIG') or DEFAULT_CONFIG_PATH


def _valid_key(value):
    if not isinstance(value, str):
        return ''
    value = value.strip()
    return value if len(value) >= MIN_API_KEY_LENGTH else ''


def load_api_keys(path=None):
    """Loads stored API keys. Environment variables win over the config file."""
    keys = {'virustotal': ''}
    path = config_path(path)
    if os.path.exists(path):
        try:
            with open(path, 'r') as f:
                stored = json.load(f)
            if isinstance(stored, dict):
                keys['virustotal'] = _valid_key(stored.get('virustotal'))
        except (OSError, ValueError) as e:
            logger.warning(f" [!] Could not read config file {path}: {e}")

    env_key = _valid_key(os.getenv('SUBHOUND_VT_API_KEY', ''))
    if env_key:
        keys['virustotal'] = env_key
    return keys


def save_api_key(key, path=None, name='virustotal'):
    path = config_path(path)
    stored = {}
    if os.path.exists(path):
        try:
            with open(path, 'r') as f:
                stored = json.load(f)
        except (OSError, ValueError):
            stored = {}
        if not isinstance(stored, dict):
            stored = {}
    stored[name] = key.strip()

    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, 'w') as f:
        json.dump(stored, f, indent=2)
    try:
        os.chmod(path, 0o600)
    except OSError as e:
        logger.debug(f"Could not restrict permissions on {path}: {e}")
    logger.info(f"[*] API key saved to {path}")
    return path
