import asyncio
import hashlib
import os
from datetime import datetime, timezone
from email.utils import format_datetime

import aiohttp
import pytest
from aiohttp import web
from aiohttp.test_utils import TestServer

from asu_cli.artifacts import ChecksumDownloader
from asu_cli.exceptions import (
    ChecksumMismatchError,
    DownloadError,
    OutputExistsError,
    TaskCancelledError,
)

PAYLOAD = os.urandom(5000)
DIGEST = hashlib.sha256(PAYLOAD).hexdigest()
LAST_MODIFIED = datetime(2023, 11, 14, 20, 1, 2, tzinfo=timezone.utc)


def _image_handler(hits):
    async def handler(request):
        hits.append(request.path)
        return web.Response(
            body=PAYLOAD,
            headers={"Last-Modified": format_datetime(LAST_MODIFIED, usegmt=True)},
        )

    return handler


async def _chunked(request):
    response = web.StreamResponse()
    response.enable_chunked_encoding()
    await response.prepare(request)
    await response.write(PAYLOAD[:2500])
    await response.write(PAYLOAD[2500:])
    await response.write_eof()
    return response


def _download(
    tmp_path, path, expected=DIGEST, cancel=None, name="image.bin", on_progress=None
):
    """Runs one download against a local server; returns (result, progress, hits)."""
    progress = []

    async def _run():
        hits = []
        app = web.Application()
        app.router.add_get("/image.bin", _image_handler(hits))
        app.router.add_get("/chunked.bin", _chunked)
        async with TestServer(app) as server:
            async with aiohttp.ClientSession() as session:
                downloader = ChecksumDownloader(session, chunk_size=1024)
                try:
                    size = await downloader.download(
                        str(server.make_url(path)),
                        expected,
                        tmp_path / name,
                        on_progress=on_progress
                        or (lambda done, total: progress.append((done, total))),
                        cancel=cancel,
                    )
                except Exception as e:
                    return e, progress, len(hits)
                return size, progress, len(hits)

    return asyncio.run(_run())


def test_verified_image_is_placed_atomically(tmp_path):
    size, progress, _ = _download(tmp_path, "/image.bin")

    assert size == len(PAYLOAD)
    assert (tmp_path / "image.bin").read_bytes() == PAYLOAD
    assert os.listdir(tmp_path) == ["image.bin"]
    assert progress[0] == (0, len(PAYLOAD))
    assert progress[-1] == (len(PAYLOAD), len(PAYLOAD))


def test_last_modified_becomes_the_file_mtime(tmp_path):
    _download(tmp_path, "/image.bin")

    mtime = (tmp_path / "image.bin").stat().st_mtime
    assert mtime == pytest.approx(LAST_MODIFIED.timestamp())


def test_corrupted_stream_leaves_nothing_behind(tmp_path):
    error, _, _ = _download(tmp_path, "/image.bin", expected="00" * 32)

    assert isinstance(error, ChecksumMismatchError)
    assert f"got sha256:{DIGEST}" in str(error)
    assert os.listdir(tmp_path) == []


def test_existing_image_is_never_overwritten(tmp_path):
    (tmp_path / "image.bin").write_bytes(b"previous run")

    error, _, hits = _download(tmp_path, "/image.bin")

    assert isinstance(error, OutputExistsError)
    assert hits == 0
    assert (tmp_path / "image.bin").read_bytes() == b"previous run"
    assert os.listdir(tmp_path) == ["image.bin"]


def test_unknown_length_still_reports_progress(tmp_path):
    size, progress, _ = _download(tmp_path, "/chunked.bin")

    assert size == len(PAYLOAD)
    assert progress
    assert all(total is None for _, total in progress)
    assert progress[-1][0] == len(PAYLOAD)


def test_http_error_is_a_download_error(tmp_path):
    error, _, _ = _download(tmp_path, "/missing.bin")

    assert isinstance(error, DownloadError)
    assert str(error).startswith("download image.bin:")
    assert os.listdir(tmp_path) == []


def test_canceled_download_does_not_start(tmp_path):
    cancel = asyncio.Event()
    cancel.set()
    error, _, hits = _download(tmp_path, "/image.bin", cancel=cancel)

    assert isinstance(error, TaskCancelledError)
    assert hits == 0
    assert os.listdir(tmp_path) == []


def test_cancel_mid_stream_removes_the_partial_file(tmp_path):
    cancel = asyncio.Event()
    seen = []

    def on_progress(done, total):
        seen.append(done)
        if done > 0:
            cancel.set()

    error, _, hits = _download(
        tmp_path, "/image.bin", cancel=cancel, on_progress=on_progress
    )

    assert isinstance(error, TaskCancelledError)
    assert hits == 1
    assert max(seen) < len(PAYLOAD)
    assert os.listdir(tmp_path) == []
