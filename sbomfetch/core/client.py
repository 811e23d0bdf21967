from datetime import timedelta
from pathlib import Path

import requests
import requests_cache
import structlog
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = structlog.get_logger('client')


def _logging_hook(response, *args, **kwargs):
    if getattr(response, '_logged', False):
        return
    response._logged = True

    log_kwargs = {
        'method': response.request.method,
        'url': response.url,
        'status': response.status_code,
        'elapsed': f"{response.elapsed.total_seconds():.3f}s",
    }
    content_length = response.headers.get('Content-Length')
    if content_length:
        log_kwargs['content_length'] = content_length

    if getattr(response, 'from_cache', False):
        logger.debug('HTTP Request', cached=True, _style='dim', **log_kwargs)
    else:
        logger.debug('HTTP Request', **log_kwargs)


def get_http_client(
    cache_name: str | None = None,
    expire_after: int = 3600,
    retries: int = 3,
    pool_size: int = 10,
) -> requests.Session:
    """
    Returns a requests session with retry logic.
    With a cache_name the session is a sqlite-backed CachedSession.
    """
    if cache_name:
        Path(cache_name).parent.mkdir(parents=True, exist_ok=True)
        session = requests_cache.CachedSession(
            cache_name=cache_name,
            backend='sqlite',
            expire_after=timedelta(seconds=expire_after),
            allowable_codes=[200],
        )
    else:
        session = requests.Session()

    session.hooks['response'].append(_logging_hook)

    retry_strategy = Retry(
        total=retries,
        backoff_factor=1,
        status_forcelist=[500, 502, 503, 504],
    )
    adapter = HTTPAdapter(
        pool_connections=pool_size,
        pool_maxsize=pool_size,
        max_retries=retry_strategy,
    )
    session.mount('https://', adapter)
    session.mount('http://', adapter)

    logger.debug(
        'Initialized HTTP Client',
        cache_name=cache_name,
        expire_after=expire_after if cache_name else None,
    )
    return session
