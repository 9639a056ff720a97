import os
import posixpath
import re
from pathlib import Path
from urllib.parse import unquote, urlparse

REMOTE_PATTERN = re.compile(r"^https?://", re.IGNORECASE)

CONTENT_TYPES = {
    ".gif": "image/gif",
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


def is_remote_path(target: str) -> bool:
    return bool(REMOTE_PATTERN.match(target))


def to_posix_path(path) -> str:
    return str(path).replace(os.sep, "/")


def decoded_url_path(url: str) -> str:
    """
    Percent-decoded path of a URL with "." and ".." segments resolved and no
    leading slash. ".." never climbs above the URL root.
    """
    decoded = unquote(urlparse(url).path)
    return posixpath.normpath("/" + decoded).lstrip("/")


def sanitize_key(key: str) -> str:
    key = key.lstrip("/")
    key = re.sub(r"/+", "/", key)
    return key.rstrip("/")


def derive_object_key(source: str, local_path: Path, prefix: str, root: Path) -> str:
    """
    Remote sources are keyed by their decoded URL path, local files by their
    path relative to the project root. The key never depends on where a
    remote file was cached.
    """
    normalized_prefix = prefix.strip().strip("/")

    if is_remote_path(source):
        key_base = decoded_url_path(source)
    else:
        key_base = to_posix_path(os.path.relpath(local_path, root))

    key_base = sanitize_key(key_base)

    if normalized_prefix:
        return f"{normalized_prefix}/{key_base}"
    return key_base


def guess_content_type(path) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def build_public_url(r2_config, key: str) -> str:
    if r2_config.public_base_url:
        base = r2_config.public_base_url.rstrip("/")
        return f"{base}/{key}"
    return f"https://{r2_config.bucket}.{r2_config.account_id}.r2.cloudflarestorage.com/{key}"
