import random
import requests
from ..config import USER_AGENTS, HTTP_TIMEOUT


def get_session():
    session = requests.Session()
    session.headers.update({'User-Agent': random.choice(USER_AGENTS)})
    return session


def make_request(url, method="GET", params=None, headers=None, timeout=HTTP_TIMEOUT, session=None, allow_redirects=True):
    """Single request with a fresh session unless one is passed in. Raises on non-2xx."""
    own_session = session is None
    if own_session:
        session = get_session()
    try:
        response = session.request(method, url, params=params, headers=headers, timeout=timeout, allow_redirects=allow_redirects)
        response.raise_for_status()
        return response
    finally:
        if own_session:
            session.close()
