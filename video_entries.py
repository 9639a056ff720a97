import json
from pathlib import Path


def collect_video_entries(node, entries=None):
    """
    Walks any decoded JSON value and returns every object that owns a
    string "video" field, in depth-first order.
    An entry's own values are still scanned, so nested entries are found too.
    """
    if entries is None:
        entries = []

    if isinstance(node, list):
        for item in node:
            collect_video_entries(item, entries)
    elif isinstance(node, dict):
        if isinstance(node.get("video"), str):
            entries.append(node)
        for value in node.values():
            collect_video_entries(value, entries)

    return entries


def load_video_list(path: Path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def save_video_list(path: Path, data) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)
