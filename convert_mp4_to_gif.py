#!/usr/bin/env python3
"""
Download every MP4 referenced in videoList.json, convert it to a GIF and
write videoList_converted.json pointing at the local GIFs.

Run:
  python3 convert_mp4_to_gif.py --root /path/to/project

Any failed entry aborts the whole run; nothing is written in that case.
"""
import argparse
import logging
import os
import shutil
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib.parse import unquote, urlparse

from downloader import build_session, ensure_local
from object_keys import to_posix_path
from pipeline_config import ConvertConfig
from video_entries import collect_video_entries, load_video_list, save_video_list

logger = logging.getLogger(__name__)

GIF_FILTER = "fps=12,scale=512:-1:flags=lanczos"


class TranscodeError(Exception):
    pass


@dataclass
class ConversionResult:
    original_url: str
    gif_path: Path


def resolve_ffmpeg(ffmpeg_path=None) -> str:
    if ffmpeg_path:
        return ffmpeg_path
    return shutil.which("ffmpeg") or "ffmpeg"


def convert_to_gif(input_path: Path, output_path: Path, ffmpeg_bin: str) -> Path:
    cmd = [
        ffmpeg_bin,
        "-y",
        "-i", str(input_path),
        "-vf", GIF_FILTER,
        "-f", "gif",
        str(output_path),
    ]

    try:
        subprocess.run(cmd, check=True, stdout=subprocess.PIPE, stderr=subprocess.PIPE, text=True)
    except subprocess.CalledProcessError as e:
        raise TranscodeError(f"ffmpeg failed for {input_path}: {(e.stderr or '').strip()}") from e
    except FileNotFoundError as e:
        raise TranscodeError(f"ffmpeg binary not found: {ffmpeg_bin}") from e

    return output_path


def extract_filename_from_url(url: str) -> str:
    parsed = urlparse(url)
    filename = unquote(PurePosixPath(parsed.path).name)
    if not parsed.scheme or not parsed.netloc or not filename:
        raise ValueError(f'Unable to parse URL "{url}"')
    if "/" in filename or "\\" in filename or filename in (".", ".."):
        raise ValueError(f'Unsafe file name "{filename}" in URL "{url}"')
    return filename


def is_mp4_entry(entry) -> bool:
    video = entry.get("video")
    return isinstance(video, str) and video.lower().endswith(".mp4")


def normalize_path(path: Path, root: Path) -> str:
    return to_posix_path(os.path.relpath(path, root))


def process_entry(entry, config: ConvertConfig, session, ffmpeg_bin: str):
    if not is_mp4_entry(entry):
        return None

    original_url = entry["video"]
    filename = extract_filename_from_url(original_url)
    local_mp4_path = config.download_dir / filename
    local_gif_path = config.gif_dir / f"{Path(filename).stem}.gif"

    logger.info(f"Processing {original_url}")

    ensure_local(original_url, local_mp4_path, session)
    # GIFs are always regenerated, even if one already exists.
    convert_to_gif(local_mp4_path, local_gif_path, ffmpeg_bin)

    entry["video"] = normalize_path(local_gif_path, config.root)
    return ConversionResult(original_url=original_url, gif_path=local_gif_path)


def ensure_directories(config: ConvertConfig) -> None:
    config.download_dir.mkdir(parents=True, exist_ok=True)
    config.gif_dir.mkdir(parents=True, exist_ok=True)


def run(config: ConvertConfig, session=None):
    ensure_directories(config)
    session = session or build_session()
    ffmpeg_bin = resolve_ffmpeg(config.ffmpeg_path)

    video_list = load_video_list(config.input_path)
    entries = collect_video_entries(video_list)
    results = []

    for entry in entries:
        result = process_entry(entry, config, session, ffmpeg_bin)
        if result:
            results.append(result)

    save_video_list(config.output_path, video_list)

    logger.info(f"Converted {len(results)} MP4 file(s) to GIF.")
    logger.info(f"Updated JSON saved to {config.output_path}")
    return results


def parse_args(argv=None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(description="Convert MP4 references in videoList.json to local GIFs")
    ap.add_argument("--root", default=".", help="Project root holding videoList.json")
    return ap.parse_args(argv)


def main(argv=None) -> int:
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s', datefmt='%H:%M:%S')
    args = parse_args(argv)
    root = Path(args.root).expanduser().resolve()

    try:
        run(ConvertConfig.from_env(root))
    except Exception as e:
        logger.error(f"Conversion aborted: {e}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
