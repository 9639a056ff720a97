import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

INPUT_JSON_NAME = "videoList.json"
CONVERTED_JSON_NAME = "videoList_converted.json"
R2_JSON_NAME = "videoList_r2.json"

DOWNLOAD_DIR_NAME = "downloads"
R2_DOWNLOAD_DIR_NAME = "downloads_r2"
GIF_DIR_NAME = "gifs"

DEFAULT_DOWNLOAD_DELAY_MS = 2000


class ConfigError(ValueError):
    pass


def get_required_env(name: str, environ: Mapping[str, str]) -> str:
    value = environ.get(name)
    if not value:
        raise ConfigError(f"Missing required environment variable: {name}")
    return value


def parse_delay_ms(raw: Optional[str]) -> int:
    if raw is None:
        return DEFAULT_DOWNLOAD_DELAY_MS
    try:
        return int(raw.strip())
    except ValueError:
        return 0


@dataclass
class ConvertConfig:
    root: Path
    input_path: Path
    output_path: Path
    download_dir: Path
    gif_dir: Path
    ffmpeg_path: Optional[str] = None

    @classmethod
    def from_env(cls, root: Path, environ: Mapping[str, str] = os.environ) -> "ConvertConfig":
        return cls(
            root=root,
            input_path=root / INPUT_JSON_NAME,
            output_path=root / CONVERTED_JSON_NAME,
            download_dir=root / DOWNLOAD_DIR_NAME,
            gif_dir=root / GIF_DIR_NAME,
            ffmpeg_path=environ.get("FFMPEG_PATH") or None,
        )


@dataclass
class R2Config:
    account_id: str
    access_key_id: str
    secret_access_key: str
    bucket: str
    prefix: str = ""
    public_base_url: str = ""

    @property
    def endpoint(self) -> str:
        return f"https://{self.account_id}.r2.cloudflarestorage.com"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] = os.environ) -> "R2Config":
        return cls(
            account_id=get_required_env("R2_ACCOUNT_ID", environ),
            access_key_id=get_required_env("R2_ACCESS_KEY_ID", environ),
            secret_access_key=get_required_env("R2_SECRET_ACCESS_KEY", environ),
            bucket=get_required_env("R2_BUCKET_NAME", environ),
            prefix=environ.get("R2_PREFIX", ""),
            public_base_url=environ.get("R2_PUBLIC_BASE_URL", ""),
        )


@dataclass
class UploadConfig:
    root: Path
    input_path: Path
    output_path: Path
    download_dir: Path
    r2: R2Config
    download_delay_ms: int = DEFAULT_DOWNLOAD_DELAY_MS

    @classmethod
    def from_env(cls, root: Path, environ: Mapping[str, str] = os.environ) -> "UploadConfig":
        return cls(
            root=root,
            input_path=root / CONVERTED_JSON_NAME,
            output_path=root / R2_JSON_NAME,
            download_dir=root / R2_DOWNLOAD_DIR_NAME,
            r2=R2Config.from_env(environ),
            download_delay_ms=parse_delay_ms(environ.get("R2_DOWNLOAD_DELAY_MS")),
        )
