#!/usr/bin/env python3
"""
Upload every media file referenced in videoList_converted.json to Cloudflare
R2 and write videoList_r2.json with the public URLs.

Run:
  python3 upload_videos_to_r2.py --root /path/to/project

Needs R2_ACCOUNT_ID, R2_ACCESS_KEY_ID, R2_SECRET_ACCESS_KEY and
R2_BUCKET_NAME (environment or .env). Failed entries are logged and skipped.
"""
import argparse
import errno
import logging
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Set

import boto3
import requests
from botocore.client import Config
from botocore.exceptions import BotoCoreError, ClientError
from dotenv import load_dotenv

from downloader import DownloadError, build_session, download_remote_file
from object_keys import build_public_url, derive_object_key, guess_content_type, is_remote_path
from pipeline_config import R2Config, UploadConfig
from video_entries import collect_video_entries, load_video_list, save_video_list

logger = logging.getLogger(__name__)

ENTRY_ERRORS = (DownloadError, ValueError, OSError, requests.RequestException, ClientError, BotoCoreError)


@dataclass
class UploadContext:
    config: UploadConfig
    client: object
    session: object
    uploaded_keys: Set[str] = field(default_factory=set)


@dataclass
class UploadResult:
    key: str
    url: str
    reused: bool


@dataclass
class UploadSummary:
    uploaded: int = 0
    reused: int = 0
    failed: int = 0


def create_s3_client(r2: R2Config):
    return boto3.client(
        "s3",
        region_name="auto",
        endpoint_url=r2.endpoint,
        aws_access_key_id=r2.access_key_id,
        aws_secret_access_key=r2.secret_access_key,
        config=Config(signature_version="s3v4", s3={"addressing_style": "path"}),
    )


def resolve_local_path(target: str, config: UploadConfig, session) -> Path:
    if is_remote_path(target):
        return download_remote_file(target, config.download_dir, session, delay_ms=config.download_delay_ms)

    path = Path(target)
    if not path.is_absolute():
        path = config.root / path
    if not path.exists():
        raise FileNotFoundError(errno.ENOENT, "Referenced file not found", str(path))
    return path


def upload_file(client, bucket: str, path: Path, key: str) -> None:
    with open(path, "rb") as body:
        client.put_object(
            Bucket=bucket,
            Key=key,
            Body=body,
            ContentType=guess_content_type(path),
        )


def process_entry(entry, context: UploadContext) -> Optional[UploadResult]:
    video = entry.get("video")
    if not isinstance(video, str):
        return None

    source = video.strip()
    if not source:
        return None

    config = context.config
    local_path = resolve_local_path(source, config, context.session)
    key = derive_object_key(source, local_path, config.r2.prefix, config.root)
    url = build_public_url(config.r2, key)

    if key in context.uploaded_keys:
        return UploadResult(key=key, url=url, reused=True)

    upload_file(context.client, config.r2.bucket, local_path, key)
    context.uploaded_keys.add(key)
    return UploadResult(key=key, url=url, reused=False)


def run(config: UploadConfig, client=None, session=None) -> UploadSummary:
    context = UploadContext(
        config=config,
        client=client or create_s3_client(config.r2),
        session=session or build_session(),
    )
    config.download_dir.mkdir(parents=True, exist_ok=True)

    video_list = load_video_list(config.input_path)
    entries = collect_video_entries(video_list)
    summary = UploadSummary()

    for entry in entries:
        try:
            result = process_entry(entry, context)
        except ENTRY_ERRORS as e:
            summary.failed += 1
            logger.error(f"Failed to process {entry.get('video')}: {e}")
            continue

        if not result:
            continue

        entry["video"] = result.url
        if result.reused:
            summary.reused += 1
        else:
            summary.uploaded += 1
            logger.info(f"Uploaded {result.key}")

    save_video_list(config.output_path, video_list)

    logger.info(f"Uploaded {summary.uploaded} new file(s) to R2. Reused {summary.reused} existing upload(s).")
    if summary.failed:
        logger.warning(f"Skipped {summary.failed} file(s) due to download or upload errors. Check logs above.")
    logger.info(f"Updated JSON with R2 URLs saved to {config.output_path}")
    return summary


def parse_args(argv=None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Upload media referenced in videoList_converted.json to R2")
    ap.add_argument("--root", default=".", help="Project root holding videoList_converted.json")
    return ap.parse_args(argv)


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s', datefmt='%H:%M:%S')
    args = parse_args(argv)
    root = Path(args.root).expanduser().resolve()
    load_dotenv(root / ".env")

    try:
        run(UploadConfig.from_env(root))
    except Exception as e:
        logger.error(f"Upload aborted: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
