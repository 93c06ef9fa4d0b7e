from __future__ import annotations

import io
import threading

import pytest

from image_mirror.errors import ConfigurationError
from image_mirror.jobs import MirrorJob, open_input, parse_line, read_jobs, run_jobs
from image_mirror.mirror import JobResult


@pytest.mark.parametrize(
    ("line", "expected"),
    [
        ("quay.io/coreos/etcd rancher/mirrored-coreos-etcd v3.4.13",
         MirrorJob("quay.io/coreos/etcd", "rancher/mirrored-coreos-etcd", "v3.4.13")),
        ("a/b\tc/d\tv1", MirrorJob("a/b", "c/d", "v1")),
        ("  a/b  c/d  v1  trailing", MirrorJob("a/b", "c/d", "v1")),
    ],
)
def test_parse_line_accepts_three_tokens(line: str, expected: MirrorJob) -> None:
    assert parse_line(line) == expected


@pytest.mark.parametrize(
    "line",
    [
        "# amd64/foo bar/baz v1",
        "   # amd64/foo bar/baz v1",
        "// amd64/foo bar/baz v1",
        "\t// amd64/foo bar/baz v1",
        "onlyonetoken",
        "two tokens",
        "",
        "   ",
    ],
)
def test_parse_line_skips_comments_and_malformed_lines(line: str) -> None:
    assert parse_line(line) is None


def test_read_jobs_never_yields_skipped_lines() -> None:
    lines = io.StringIO(
        "# amd64/foo bar/baz v1\n"
        "onlyonetoken\n"
        "library/busybox rancher/mirrored-busybox 1.36\n"
        "\n"
    )
    assert list(read_jobs(lines)) == [MirrorJob("library/busybox", "rancher/mirrored-busybox", "1.36")]


def test_open_input_missing_file(tmp_path) -> None:
    with pytest.raises(ConfigurationError, match="does not exist"):
        with open_input(str(tmp_path / "missing")):
            pass


def test_open_input_reads_named_file(tmp_path) -> None:
    path = tmp_path / "images"
    path.write_text("a/b c/d v1\n", encoding="utf-8")
    with open_input(str(path)) as infile:
        assert list(read_jobs(infile)) == [MirrorJob("a/b", "c/d", "v1")]


def test_open_input_defaults_to_stdin(monkeypatch) -> None:
    fake_stdin = io.StringIO("a/b c/d v1\n")
    monkeypatch.setattr("sys.stdin", fake_stdin)
    with open_input(None) as infile:
        assert infile is fake_stdin


def fake_mirror(source, dest, tag, **kwargs):
    result = JobResult(source=source, dest=dest, tag=tag)
    if tag == "bad":
        result.fail("inspect", "boom")
    return result


def test_run_jobs_keeps_going_after_failures() -> None:
    jobs = [MirrorJob("a/b", "c/d", "bad"), MirrorJob("a/b", "c/d", "v2")]
    results = run_jobs(jobs, mirror=fake_mirror)
    assert [(r.tag, r.ok) for r in results] == [("bad", False), ("v2", True)]


def test_run_jobs_passes_collaborators_through() -> None:
    seen = []

    def mirror(source, dest, tag, **kwargs):
        seen.append(kwargs)
        return JobResult(source=source, dest=dest, tag=tag)

    run_jobs([MirrorJob("a/b", "c/d", "v1")], mirror=mirror, transport="t", cfg="c")
    assert seen == [{"transport": "t", "cfg": "c"}]


def test_run_jobs_with_workers_preserves_input_order() -> None:
    threads = set()

    def mirror(source, dest, tag, **kwargs):
        threads.add(threading.get_ident())
        return JobResult(source=source, dest=dest, tag=tag)

    jobs = [MirrorJob("a/b", "c/d", f"v{i}") for i in range(20)]
    results = run_jobs(jobs, workers=4, mirror=mirror)
    assert [r.tag for r in results] == [f"v{i}" for i in range(20)]
    assert threading.get_ident() not in threads


def test_undecodable_bytes_only_affect_their_own_line(tmp_path) -> None:
    path = tmp_path / "images"
    path.write_bytes(b"a/b c/d v1\n# caf\xe9 comment\na/b c/d v2\n")
    with open_input(str(path)) as infile:
        assert [job.tag for job in read_jobs(infile)] == ["v1", "v2"]
