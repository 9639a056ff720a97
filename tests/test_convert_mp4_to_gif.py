"""Tests for the MP4 to GIF convert pass."""

import json
import subprocess

import pytest
import requests

import convert_mp4_to_gif as convert
from pipeline_config import ConvertConfig


class FakeResponse:
    status_code = 200
    reason = "OK"
    ok = True
    raw = object()

    def __init__(self, content=b"mp4-bytes"):
        self.content = content

    def iter_content(self, chunk_size=1):
        yield self.content

    def close(self):
        pass


class FakeSession:
    def __init__(self, error=None):
        self.error = error
        self.urls = []

    def get(self, url, **kwargs):
        self.urls.append(url)
        if self.error:
            raise self.error
        return FakeResponse()


@pytest.fixture
def ffmpeg_calls(monkeypatch):
    calls = []

    def fake_run(cmd, check, stdout, stderr, text):
        assert check is True
        calls.append(cmd)
        with open(cmd[-1], "wb") as f:
            f.write(b"GIF89a")
        return subprocess.CompletedProcess(cmd, 0, "", "")

    monkeypatch.setattr(convert.subprocess, "run", fake_run)
    return calls


def write_input(root, data):
    (root / "videoList.json").write_text(json.dumps(data), encoding="utf-8")


def read_output(root):
    return json.loads((root / "videoList_converted.json").read_text(encoding="utf-8"))


def test_convert_rewrites_entry_to_gif(tmp_path, ffmpeg_calls):
    write_input(tmp_path, {"a": {"video": "https://x/y/clip.mp4"}})
    session = FakeSession()

    results = convert.run(ConvertConfig.from_env(tmp_path, {}), session=session)

    assert read_output(tmp_path) == {"a": {"video": "gifs/clip.gif"}}
    assert (tmp_path / "gifs" / "clip.gif").is_file()
    assert (tmp_path / "downloads" / "clip.mp4").read_bytes() == b"mp4-bytes"
    assert session.urls == ["https://x/y/clip.mp4"]
    assert len(results) == 1
    assert results[0].original_url == "https://x/y/clip.mp4"

    cmd = ffmpeg_calls[0]
    assert cmd[cmd.index("-vf") + 1] == "fps=12,scale=512:-1:flags=lanczos"
    assert cmd[cmd.index("-f") + 1] == "gif"
    assert cmd[cmd.index("-i") + 1] == str(tmp_path / "downloads" / "clip.mp4")


def test_convert_only_touches_mp4_entries(tmp_path, ffmpeg_calls):
    data = {
        "title": "reel",
        "items": [
            {"video": "https://x/a.MP4", "label": "upper"},
            {"video": "https://x/b.webm"},
            {"video": ""},
            {"video": 3},
        ],
    }
    write_input(tmp_path, data)

    convert.run(ConvertConfig.from_env(tmp_path, {}), session=FakeSession())

    out = read_output(tmp_path)
    assert out["title"] == "reel"
    assert out["items"] == [
        {"video": "gifs/a.gif", "label": "upper"},
        {"video": "https://x/b.webm"},
        {"video": ""},
        {"video": 3},
    ]
    assert len(ffmpeg_calls) == 1


def test_convert_reuses_download_but_always_transcodes(tmp_path, ffmpeg_calls):
    write_input(tmp_path, {"video": "https://x/y/clip.mp4"})
    (tmp_path / "downloads").mkdir()
    (tmp_path / "downloads" / "clip.mp4").write_bytes(b"cached")
    (tmp_path / "gifs").mkdir()
    (tmp_path / "gifs" / "clip.gif").write_bytes(b"old gif")
    session = FakeSession()

    convert.run(ConvertConfig.from_env(tmp_path, {}), session=session)

    assert session.urls == []
    assert len(ffmpeg_calls) == 1
    assert (tmp_path / "gifs" / "clip.gif").read_bytes() == b"GIF89a"


def test_convert_failure_aborts_without_output(tmp_path, ffmpeg_calls):
    write_input(tmp_path, [{"video": "https://x/ok.mp4"}, {"video": "https://x/bad.mp4"}])
    (tmp_path / "downloads").mkdir()
    (tmp_path / "downloads" / "ok.mp4").write_bytes(b"cached")

    with pytest.raises(requests.ConnectionError):
        convert.run(
            ConvertConfig.from_env(tmp_path, {}),
            session=FakeSession(error=requests.ConnectionError("unreachable")),
        )

    assert not (tmp_path / "videoList_converted.json").exists()


def test_main_exits_nonzero_on_entry_failure(tmp_path, monkeypatch, ffmpeg_calls):
    write_input(tmp_path, {"a": {"video": "https://x/y/clip.mp4"}})
    monkeypatch.setattr(convert, "build_session", lambda: FakeSession(error=requests.ConnectionError("down")))

    assert convert.main(["--root", str(tmp_path)]) == 1
    assert not (tmp_path / "videoList_converted.json").exists()


def test_main_success(tmp_path, monkeypatch, ffmpeg_calls):
    write_input(tmp_path, {"a": {"video": "https://x/y/clip.mp4"}})
    monkeypatch.setattr(convert, "build_session", FakeSession)
    monkeypatch.delenv("FFMPEG_PATH", raising=False)

    assert convert.main(["--root", str(tmp_path)]) == 0
    assert read_output(tmp_path) == {"a": {"video": "gifs/clip.gif"}}


def test_main_missing_input(tmp_path):
    assert convert.main(["--root", str(tmp_path)]) == 1


def test_convert_to_gif_failure(monkeypatch, tmp_path):
    def fake_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd, output="", stderr="Invalid data found\n")

    monkeypatch.setattr(convert.subprocess, "run", fake_run)

    with pytest.raises(convert.TranscodeError, match="Invalid data found"):
        convert.convert_to_gif(tmp_path / "in.mp4", tmp_path / "out.gif", "ffmpeg")


def test_convert_to_gif_missing_binary(monkeypatch, tmp_path):
    def fake_run(cmd, **kwargs):
        raise FileNotFoundError(cmd[0])

    monkeypatch.setattr(convert.subprocess, "run", fake_run)

    with pytest.raises(convert.TranscodeError, match="not found"):
        convert.convert_to_gif(tmp_path / "in.mp4", tmp_path / "out.gif", "/opt/ffmpeg")


def test_resolve_ffmpeg(monkeypatch):
    assert convert.resolve_ffmpeg("/opt/bin/ffmpeg") == "/opt/bin/ffmpeg"
    monkeypatch.setattr(convert.shutil, "which", lambda name: "/usr/bin/ffmpeg")
    assert convert.resolve_ffmpeg(None) == "/usr/bin/ffmpeg"
    monkeypatch.setattr(convert.shutil, "which", lambda name: None)
    assert convert.resolve_ffmpeg(None) == "ffmpeg"


def test_ffmpeg_path_override_reaches_command(tmp_path, ffmpeg_calls):
    write_input(tmp_path, {"video": "https://x/clip.mp4"})

    convert.run(ConvertConfig.from_env(tmp_path, {"FFMPEG_PATH": "/opt/ffmpeg"}), session=FakeSession())

    assert ffmpeg_calls[0][0] == "/opt/ffmpeg"


def test_extract_filename_from_url():
    assert convert.extract_filename_from_url("https://x/a/my%20clip.mp4?sig=1") == "my clip.mp4"
    with pytest.raises(ValueError, match="Unable to parse URL"):
        convert.extract_filename_from_url("clips/local.mp4")
    with pytest.raises(ValueError):
        convert.extract_filename_from_url("https://x/")


def test_extract_filename_rejects_encoded_separators():
    with pytest.raises(ValueError, match="Unsafe file name"):
        convert.extract_filename_from_url("https://x/a/..%2F..%2Fx.mp4")
    with pytest.raises(ValueError, match="Unsafe file name"):
        convert.extract_filename_from_url("https://x/a/..%5Cx.mp4")


def test_transcode_failure_aborts_without_output(tmp_path, monkeypatch):
    write_input(tmp_path, {"video": "https://x/y/clip.mp4"})

    def fake_run(cmd, **kwargs):
        raise subprocess.CalledProcessError(1, cmd, output="", stderr="moov atom not found")

    monkeypatch.setattr(convert.subprocess, "run", fake_run)

    with pytest.raises(convert.TranscodeError, match="moov atom not found"):
        convert.run(ConvertConfig.from_env(tmp_path, {}), session=FakeSession())

    assert not (tmp_path / "videoList_converted.json").exists()
    assert convert.main(["--root", str(tmp_path)]) == 1
    assert not (tmp_path / "videoList_converted.json").exists()
