import pytest

from profiler.domain import Progress
from profiler.workers.progress import ProgressReporter, parse_progress, read_progress


@pytest.mark.parametrize(
    "text, expected",
    [
        ("3 10", Progress(3, 10)),
        ("3 10\n", Progress(3, 10)),
        ("  7\t12  ", Progress(7, 12)),
        ("", None),
        ("3", None),
        ("3 ten", None),
        ("-1 10", None),
    ],
)
def test_parse_progress(text, expected):
    assert parse_progress(text) == expected


def test_read_progress_tolerates_missing_file(tmp_path):
    assert read_progress(tmp_path / "job1.count") is None


def test_reporter_overwrites_and_completes(tmp_path):
    source = tmp_path / "job_1"
    source.write_text("example.com\n", encoding="utf-8")
    reporter = ProgressReporter(tmp_path, "job_1")

    reporter.update(1, 10)
    reporter.update(3, 10)
    assert reporter.count_path.read_text(encoding="utf-8") == "3 10\n"
    assert read_progress(reporter.count_path) == Progress(3, 10)

    reporter.complete(csv_text="domain,result\nexample.com,ok\n", log_text="done\n", job_source=source)

    assert not reporter.count_path.exists()
    assert (tmp_path / "job_1.csv").exists()
    assert (tmp_path / "job_1.log").read_text(encoding="utf-8") == "done\n"
    assert (tmp_path / "job_1.job").read_text(encoding="utf-8") == "example.com\n"
    assert sorted(path.name for path in tmp_path.iterdir()) == ["job_1", "job_1.csv", "job_1.job", "job_1.log"]
