import zipfile

import pytest
from yarl import URL

from mminstaller.download import (
    DownloadManager,
    FileVerifier,
    extract_archive,
    extract_file_name,
    hash_matches,
    move_file,
)
from mminstaller.exceptions import (
    DownloadError,
    FileOperationError,
    HTTPError,
    NameResolutionError,
)
from tests.conftest import make_zip, sha1

BODY = bytes(range(256)) * 100


@pytest.fixture
async def manager():
    async with DownloadManager(max_retries=2, retry_delay=0) as m:
        yield m


def test_name_from_content_disposition():
    headers = {"Content-Disposition": 'attachment; filename="thing.jar"'}
    assert extract_file_name(headers, URL("https://cdn/x/other.bin")) == "thing.jar"


def test_name_from_quoted_content_disposition_with_semicolon():
    headers = {"Content-Disposition": 'attachment; filename="a;b.jar"'}
    assert extract_file_name(headers, URL("https://cdn/x/other.bin")) == "a;b.jar"


def test_name_from_extended_content_disposition():
    headers = {"Content-Disposition": "attachment; filename*=UTF-8''%E6%A8%A1%E7%BB%84.jar"}
    assert extract_file_name(headers, URL("https://cdn/x/other.bin")) == "模组.jar"


def test_name_from_content_disposition_strips_directories():
    headers = {"Content-Disposition": "attachment; filename=../../evil.jar"}
    assert extract_file_name(headers, URL("https://cdn/x/other.bin")) == "evil.jar"


def test_name_from_final_url_without_query():
    url = URL("https://cdn.example.com/x/mod-7.2.jar?token=abc")
    assert extract_file_name({}, url) == "mod-7.2.jar"


def test_name_from_url_ignores_trailing_slash():
    assert extract_file_name({}, URL("https://cdn/files/pack.zip/")) == "pack.zip"


def test_name_resolution_failure():
    with pytest.raises(NameResolutionError):
        extract_file_name({"Content-Disposition": "inline"}, URL("https://cdn/"))


def test_hash_matches_is_case_insensitive():
    assert hash_matches("ABCDEF", "abcdef")
    assert not hash_matches("abcdef", "abcdee")
    assert not hash_matches("abcdef", None)


async def test_fetch_uses_content_disposition_over_redirect(file_server, manager, tmp_path):
    file_server.add_redirect("/download/123", "/storage/blob-9f8e")
    file_server.add_file(
        "/storage/blob-9f8e",
        BODY,
        headers={"Content-Disposition": 'attachment; filename="thing.jar"'},
    )

    outcome = await manager.fetch(file_server.url("/download/123"), tmp_path)

    assert outcome.path == tmp_path / "thing.jar"
    assert outcome.path.read_bytes() == BODY
    assert outcome.hash == sha1(BODY)
    assert outcome.size == len(BODY)


async def test_fetch_names_file_after_final_url(file_server, manager, tmp_path):
    file_server.add_redirect("/get", "/x/mod-7.2.jar?token=abc")
    file_server.add_file("/x/mod-7.2.jar", BODY)

    outcome = await manager.fetch(file_server.url("/get"), tmp_path / "scratch")

    assert outcome.path == tmp_path / "scratch" / "mod-7.2.jar"
    assert outcome.path.is_file()


async def test_fetch_reports_progress_with_known_length(file_server, manager, tmp_path):
    file_server.add_file("/f/data.bin", BODY)
    updates = []

    await manager.fetch(file_server.url("/f/data.bin"), tmp_path, updates.append)

    assert updates
    received = [u.received_bytes for u in updates]
    assert received == sorted(received)
    assert updates[-1].received_bytes == len(BODY)
    assert all(u.total_bytes == len(BODY) for u in updates)
    assert updates[-1].fraction == 1.0


async def test_fetch_with_unknown_length(file_server, manager, tmp_path):
    file_server.add_file("/f/stream.bin", BODY, chunked=True)
    updates = []

    outcome = await manager.fetch(file_server.url("/f/stream.bin"), tmp_path, updates.append)

    assert outcome.hash == sha1(BODY)
    assert updates[-1].received_bytes == len(BODY)
    assert all(u.total_bytes is None and u.fraction is None for u in updates)


async def test_http_error_carries_status_and_truncated_body(file_server, manager, tmp_path):
    file_server.add_status("/f/gone.jar", 404, "x" * 2000)

    with pytest.raises(HTTPError) as exc_info:
        await manager.fetch(file_server.url("/f/gone.jar"), tmp_path)

    assert exc_info.value.status == 404
    assert exc_info.value.body_snippet == "x" * 512
    assert file_server.hits["/f/gone.jar"] == 1
    assert not (tmp_path / "gone.jar").exists()


async def test_server_errors_are_retried(file_server, manager, tmp_path):
    file_server.add_flaky("/f/flaky.jar", failures=2, body=BODY)

    outcome = await manager.fetch(file_server.url("/f/flaky.jar"), tmp_path)

    assert outcome.hash == sha1(BODY)
    assert file_server.hits["/f/flaky.jar"] == 3


async def test_server_errors_give_up_after_retries(file_server, tmp_path):
    file_server.add_flaky("/f/down.jar", failures=10, body=BODY)

    async with DownloadManager(max_retries=1, retry_delay=0) as manager:
        with pytest.raises(HTTPError) as exc_info:
            await manager.fetch(file_server.url("/f/down.jar"), tmp_path)

    assert exc_info.value.status == 503
    assert file_server.hits["/f/down.jar"] == 2


async def test_connection_failure_becomes_download_error(tmp_path):
    async with DownloadManager(max_retries=0, retry_delay=0, timeout=2) as manager:
        with pytest.raises(DownloadError):
            await manager.fetch("http://127.0.0.1:9/unreachable.jar", tmp_path)


async def test_verify_sha1_on_disk(tmp_path):
    path = tmp_path / "mod.jar"
    path.write_bytes(BODY)

    assert await FileVerifier.calc_sha1(str(path)) == sha1(BODY)
    assert await FileVerifier.verify_sha1(str(path), sha1(BODY).upper())
    assert not await FileVerifier.verify_sha1(str(path), sha1(b"other"))
    assert not await FileVerifier.verify_sha1(str(tmp_path / "missing.jar"), sha1(BODY))


def test_move_file_creates_parents_and_overwrites(tmp_path, log_messages):
    src = tmp_path / "scratch" / "a.jar"
    src.parent.mkdir()
    src.write_bytes(b"new")
    dst = tmp_path / "mods" / "nested" / "a.jar"
    dst.parent.mkdir(parents=True)
    dst.write_bytes(b"old")

    move_file(src, dst)

    assert dst.read_bytes() == b"new"
    assert not src.exists()
    assert any("已存在" in m for m in log_messages)


def test_move_missing_file_raises(tmp_path):
    with pytest.raises(FileOperationError):
        move_file(tmp_path / "nope.jar", tmp_path / "out" / "nope.jar")


def test_extract_archive(tmp_path):
    archive = tmp_path / "shaders.zip"
    archive.write_bytes(make_zip({"pack/shader.txt": b"glsl", "readme.md": b"hi"}))

    extracted = extract_archive(archive, tmp_path / "shaderpacks")

    assert sorted(extracted) == ["pack/shader.txt", "readme.md"]
    assert (tmp_path / "shaderpacks" / "pack" / "shader.txt").read_bytes() == b"glsl"
    assert not archive.exists()


def test_extract_archive_rejects_escaping_members(tmp_path):
    archive = tmp_path / "evil.zip"
    archive.write_bytes(make_zip({"../evil.txt": b"pwned"}))

    with pytest.raises(FileOperationError):
        extract_archive(archive, tmp_path / "target")

    assert not (tmp_path / "evil.txt").exists()


def test_extract_archive_rejects_non_zip(tmp_path):
    archive = tmp_path / "not.zip"
    archive.write_bytes(b"plain text")

    with pytest.raises(FileOperationError):
        extract_archive(archive, tmp_path / "target")
    assert zipfile.is_zipfile(archive) is False
