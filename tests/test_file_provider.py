import errno
import os

import pytest
import tomlkit

from ocvsmd.config import Config
from ocvsmd.file_provider import (
    MAX_READ_SIZE,
    FileError,
    FileProvider,
    GetInfoResponse,
    ReadResponse,
    build_and_validate_root_with_path,
    canonicalize_path,
    convert_error_code,
)


def make_config(tmp_path, roots):
    cfg_file = tmp_path / "ocvsmd.toml"
    cfg_file.write_text(tomlkit.dumps({"file_server": {"roots": list(roots)}}), encoding="utf-8")
    return Config.make(cfg_file)


@pytest.fixture
def root_dir(tmp_path):
    root = tmp_path / "root"
    root.mkdir()
    (root / "hello.txt").write_bytes(b"hello world")
    sub = root / "sub"
    sub.mkdir()
    (sub / "inner.bin").write_bytes(b"x")
    (tmp_path / "outside.txt").write_bytes(b"secret data")
    return root


@pytest.mark.parametrize(
    "code, expected",
    [
        (errno.EIO, FileError.IO_ERROR),
        (errno.EPERM, FileError.IO_ERROR),
        (errno.ENOENT, FileError.NOT_FOUND),
        (errno.EISDIR, FileError.IS_DIRECTORY),
        (errno.ENOSPC, FileError.OUT_OF_SPACE),
        (errno.EACCES, FileError.ACCESS_DENIED),
        (errno.EINVAL, FileError.INVALID_VALUE),
        (errno.ENOTSUP, FileError.NOT_SUPPORTED),
        (errno.E2BIG, FileError.FILE_TOO_LARGE),
        (errno.EBUSY, FileError.UNKNOWN_ERROR),
        (None, FileError.UNKNOWN_ERROR),
    ],
)
def test_convert_error_code(code, expected):
    assert convert_error_code(code) is expected


def test_canonicalize_existing_and_missing(root_dir):
    assert canonicalize_path(str(root_dir / "sub" / ".." / "hello.txt")) == os.path.realpath(
        root_dir / "hello.txt"
    )
    assert canonicalize_path(str(root_dir / "missing")) is None
    assert canonicalize_path("") is None


def test_build_and_validate_inside_root(root_dir):
    result = build_and_validate_root_with_path(str(root_dir), "sub/inner.bin")
    assert result == os.path.realpath(root_dir / "sub" / "inner.bin")


def test_build_and_validate_rejects_escape(root_dir):
    assert build_and_validate_root_with_path(str(root_dir), "../outside.txt") is None


def test_build_and_validate_rejects_root_itself(root_dir):
    assert build_and_validate_root_with_path(str(root_dir), "") is None
    assert build_and_validate_root_with_path(str(root_dir), ".") is None


def test_build_and_validate_rejects_symlink_escape(root_dir, tmp_path):
    os.symlink(tmp_path / "outside.txt", root_dir / "link.txt")
    assert build_and_validate_root_with_path(str(root_dir), "link.txt") is None


def test_build_and_validate_missing_root(tmp_path):
    assert build_and_validate_root_with_path(str(tmp_path / "nope"), "a.txt") is None


def test_roots_loaded_from_config(tmp_path, root_dir):
    config = make_config(tmp_path, [str(root_dir), "/does/not/exist"])
    provider = FileProvider(config)
    assert provider.list_of_roots() == [str(root_dir), "/does/not/exist"]


def test_push_root_front_and_back(tmp_path):
    config = make_config(tmp_path, ["a"])
    provider = FileProvider(config)
    provider.push_root("b", back=True)
    provider.push_root("c", back=False)
    assert provider.list_of_roots() == ["c", "a", "b"]
    assert config.file_server_roots() == ["c", "a", "b"]
    assert config.is_dirty


def test_pop_root_front_and_back(tmp_path):
    config = make_config(tmp_path, ["x", "a", "x", "b", "x"])
    provider = FileProvider(config)
    provider.pop_root("x", back=False)
    assert provider.list_of_roots() == ["a", "x", "b", "x"]
    provider.pop_root("x", back=True)
    assert provider.list_of_roots() == ["a", "x", "b"]
    assert config.file_server_roots() == ["a", "x", "b"]


def test_pop_missing_root_changes_nothing(tmp_path):
    config = make_config(tmp_path, ["a"])
    provider = FileProvider(config)
    provider.pop_root("zzz", back=True)
    provider.pop_root("zzz", back=False)
    assert provider.list_of_roots() == ["a"]
    assert not config.is_dirty


def test_list_of_roots_is_a_copy(tmp_path):
    provider = FileProvider(make_config(tmp_path, ["a"]))
    provider.list_of_roots().append("b")
    assert provider.list_of_roots() == ["a"]


def test_find_first_valid_file_prefers_first_root(tmp_path):
    first = tmp_path / "first"
    second = tmp_path / "second"
    for d in (first, second):
        d.mkdir()
        (d / "f.txt").write_bytes(d.name.encode())
    provider = FileProvider(make_config(tmp_path, [str(tmp_path / "missing"), str(first), str(second)]))
    found = provider.find_first_valid_file("f.txt")
    assert found is not None
    assert found[0] == os.path.realpath(first / "f.txt")
    assert provider.read("f.txt", 0).data == b"first"


def test_get_info_file(tmp_path, root_dir):
    provider = FileProvider(make_config(tmp_path, [str(root_dir)]))
    info = provider.get_info("hello.txt")
    st = os.stat(root_dir / "hello.txt")
    assert info.error is FileError.OK
    assert info.size == len(b"hello world")
    assert info.unix_timestamp_of_last_modification == int(st.st_mtime)
    assert info.is_file_not_directory is True
    assert info.is_link is False
    assert info.is_readable is True


def test_get_info_directory(tmp_path, root_dir):
    provider = FileProvider(make_config(tmp_path, [str(root_dir)]))
    info = provider.get_info("sub")
    assert info.error is FileError.OK
    assert info.is_file_not_directory is False


def test_get_info_not_found(tmp_path, root_dir):
    provider = FileProvider(make_config(tmp_path, [str(root_dir)]))
    assert provider.get_info("../outside.txt") == GetInfoResponse(error=FileError.NOT_FOUND)
    assert provider.get_info("nope.txt").error is FileError.NOT_FOUND


def test_read_whole_and_offset(tmp_path, root_dir):
    provider = FileProvider(make_config(tmp_path, [str(root_dir)]))
    assert provider.read("hello.txt", 0) == ReadResponse(error=FileError.OK, data=b"hello world")
    assert provider.read("hello.txt", 6).data == b"world"


def test_read_at_or_past_eof(tmp_path, root_dir):
    provider = FileProvider(make_config(tmp_path, [str(root_dir)]))
    assert provider.read("hello.txt", len(b"hello world")) == ReadResponse()
    assert provider.read("hello.txt", 1000) == ReadResponse()


def test_read_in_chunks_round_trip(tmp_path, root_dir):
    content = bytes(range(256)) * 3 + b"tail"
    (root_dir / "big.bin").write_bytes(content)
    provider = FileProvider(make_config(tmp_path, [str(root_dir)]))
    chunks = []
    offset = 0
    while True:
        response = provider.read("big.bin", offset)
        assert response.error is FileError.OK
        assert len(response.data) <= MAX_READ_SIZE
        if not response.data:
            break
        chunks.append(response.data)
        offset += len(response.data)
    assert b"".join(chunks) == content
    assert len(chunks[0]) == MAX_READ_SIZE


def test_read_not_found(tmp_path, root_dir):
    provider = FileProvider(make_config(tmp_path, [str(root_dir)]))
    response = provider.read("../outside.txt", 0)
    assert response.error is FileError.NOT_FOUND
    assert response.data == b""


def test_read_directory_reports_is_directory(tmp_path, root_dir):
    provider = FileProvider(make_config(tmp_path, [str(root_dir)]))
    if os.stat(root_dir / "sub").st_size == 0:
        (root_dir / "sub" / ("n" * 100)).write_bytes(b"")
    response = provider.read("sub", 0)
    assert response.error is FileError.IS_DIRECTORY
    assert response.data == b""