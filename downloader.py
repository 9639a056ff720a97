import logging
import time
from pathlib import Path

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from object_keys import decoded_url_path

logger = logging.getLogger(__name__)

CHUNK_SIZE = 32 * 1024
REQUEST_TIMEOUT = 30
USER_AGENT = "video-list-pipeline/0.1"


class DownloadError(Exception):
    def __init__(self, url, status=None, reason="", attempts=None):
        self.url = url
        self.status = status
        self.reason = reason
        self.attempts = attempts
        if attempts is not None:
            message = f"Failed to download {url} after {attempts} attempts."
        else:
            message = f"Failed to download {url}: {status} {reason}".rstrip()
        super().__init__(message)


def build_session():
    session = requests.Session()
    session.headers.update({"user-agent": USER_AGENT})

    # Retries are driven by fetch_with_retry, never by the transport.
    no_retries = Retry(total=0, raise_on_status=False)
    adapter = HTTPAdapter(pool_connections=1, pool_maxsize=1, max_retries=no_retries)
    session.mount("https://", adapter)
    session.mount("http://", adapter)
    return session


def check_response(url, response):
    if not response.ok or response.raw is None:
        raise DownloadError(url, response.status_code, response.reason or "")
    return response


def write_response(response, destination: Path) -> Path:
    """
    Streams the response body to disk through a .part file, so an interrupted
    download never leaves a file that later passes the cache check.
    """
    destination.parent.mkdir(parents=True, exist_ok=True)
    partial = destination.with_name(destination.name + ".part")
    try:
        with open(partial, "wb") as f:
            for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                if chunk:
                    f.write(chunk)
        partial.replace(destination)
    except BaseException:
        partial.unlink(missing_ok=True)
        raise
    finally:
        response.close()
    return destination


def ensure_local(url, destination: Path, session) -> Path:
    if destination.is_file():
        return destination

    response = session.get(url, timeout=REQUEST_TIMEOUT, stream=True)
    try:
        check_response(url, response)
    except DownloadError:
        response.close()
        raise

    return write_response(response, destination)


def fetch_with_retry(session, url, max_attempts=3, initial_backoff_ms=2000):
    attempt = 0
    while True:
        response = None
        try:
            response = session.get(url, timeout=REQUEST_TIMEOUT, stream=True)
            return check_response(url, response)
        except (requests.RequestException, DownloadError) as e:
            if response is not None:
                response.close()
            attempt += 1
            if attempt >= max_attempts:
                raise DownloadError(url, attempts=attempt) from e

            wait_ms = initial_backoff_ms * 2 ** (attempt - 1)
            logger.warning(f"Download attempt {attempt} for {url} failed ({e}). Retrying in {wait_ms}ms.")
            time.sleep(wait_ms / 1000)


def local_download_path(url, download_dir: Path) -> Path:
    destination = download_dir / decoded_url_path(url)
    cache_root = download_dir.resolve()
    if cache_root not in destination.resolve().parents:
        raise ValueError(f"Refusing to cache {url} outside {download_dir}")
    return destination


def download_remote_file(url, download_dir: Path, session, delay_ms=2000) -> Path:
    destination = local_download_path(url, download_dir)
    if destination.is_file():
        return destination

    destination.parent.mkdir(parents=True, exist_ok=True)

    if delay_ms > 0:
        time.sleep(delay_ms / 1000)

    response = fetch_with_retry(session, url)
    return write_response(response, destination)
