"""Tests for the go test -json stream parser."""

from __future__ import annotations

import logging

import pytest

from seer.runners.parser import ParseError, TestEventParser, parse_output
from tests.conftest import go_event, go_stream

PKG = "example.com/m/pkg/a"
OTHER = "example.com/m/pkg/b"


class TestPackageEvents:
    def test_counts_tests_and_package_pass(self) -> None:
        """Pass, fail and skip test events are counted on the owning package."""
        data = go_stream(
            go_event("start", PKG),
            go_event("pass", PKG, "T1", Elapsed=0.1),
            go_event("fail", PKG, "T2", Elapsed=0.2),
            go_event("skip", PKG, "T3", Elapsed=0.0),
            go_event("pass", PKG, Elapsed=0.4),
        )

        packages = parse_output(data)

        pkg = packages[PKG]
        assert pkg.passed == 1
        assert pkg.failed == 1
        assert pkg.skipped == 1
        assert pkg.success is True
        assert pkg.elapsed == 0.4

    def test_package_fail_clears_pass_flag(self) -> None:
        data = go_stream(
            go_event("start", PKG),
            go_event("pass", PKG, Elapsed=0.1),
            go_event("fail", PKG, Elapsed=0.3),
        )

        pkg = parse_output(data)[PKG]

        assert pkg.success is False
        assert pkg.elapsed == 0.3

    def test_coverage_line_sets_coverage(self) -> None:
        data = go_stream(
            go_event("start", PKG),
            go_event("output", PKG, Output="coverage: 87.5% of statements\n"),
        )

        assert parse_output(data)[PKG].coverage == 87.5

    def test_later_coverage_line_overwrites(self) -> None:
        data = go_stream(
            go_event("start", PKG),
            go_event("output", PKG, Output="coverage: 87.5% of statements\n"),
            go_event("output", PKG, Output="ok  \texample.com/m/pkg/a\t0.01s\tcoverage: 42.0%\n"),
        )

        assert parse_output(data)[PKG].coverage == 42.0

    def test_output_without_percentage_leaves_coverage(self) -> None:
        data = go_stream(
            go_event("start", PKG),
            go_event("output", PKG, Output="PASS\n"),
        )

        assert parse_output(data)[PKG].coverage == 0.0

    def test_malformed_coverage_numeral_aborts(self) -> None:
        data = go_stream(
            go_event("start", PKG),
            go_event("output", PKG, Output="progress . % done\n"),
        )

        with pytest.raises(ParseError, match="failed to convert"):
            parse_output(data)

    def test_package_record_created_on_first_package_event(self) -> None:
        packages = parse_output(go_stream(go_event("output", PKG, Output="PASS\n")))
        assert list(packages) == [PKG]


class TestTestEvents:
    def test_unknown_package_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        """A test event before its package is dropped without stopping the parse."""
        data = go_stream(
            go_event("pass", PKG, "TestOrphan"),
            go_event("start", PKG),
            go_event("pass", PKG, "TestKnown"),
        )

        with caplog.at_level(logging.ERROR):
            packages = parse_output(data)

        assert packages[PKG].passed == 1
        assert "TestOrphan" not in packages[PKG].tests
        assert "package does not exist" in caplog.text

    def test_first_event_is_stored_for_test(self) -> None:
        data = go_stream(
            go_event("start", PKG),
            go_event("run", PKG, "TestAdd"),
            go_event("output", PKG, "TestAdd", Output="=== RUN   TestAdd\n"),
            go_event("pass", PKG, "TestAdd", Elapsed=0.01),
        )

        pkg = parse_output(data)[PKG]

        assert pkg.tests["TestAdd"].action == "run"
        assert pkg.passed == 1
        assert pkg.elapsed == 0.01

    def test_test_output_does_not_touch_coverage(self) -> None:
        data = go_stream(
            go_event("start", PKG),
            go_event("output", PKG, "TestFmt", Output="printing 50% here\n"),
        )

        assert parse_output(data)[PKG].coverage == 0.0

    def test_interleaved_packages_are_kept_apart(self) -> None:
        data = go_stream(
            go_event("start", PKG),
            go_event("start", OTHER),
            go_event("pass", OTHER, "TestB1"),
            go_event("fail", PKG, "TestA1"),
            go_event("pass", PKG, "TestA2"),
            go_event("output", OTHER, Output="coverage: 10.0% of statements\n"),
            go_event("fail", PKG),
            go_event("pass", OTHER),
        )

        packages = parse_output(data)

        assert (packages[PKG].passed, packages[PKG].failed) == (1, 1)
        assert packages[PKG].success is False
        assert (packages[OTHER].passed, packages[OTHER].failed) == (1, 0)
        assert packages[OTHER].success is True
        assert packages[OTHER].coverage == 10.0


class TestStreamRobustness:
    def test_malformed_line_is_skipped(self) -> None:
        data = go_stream(
            go_event("start", PKG),
            "{not json",
            "# example.com/m/pkg/a [build failed]",
            go_event("pass", PKG, "TestAfterGarbage"),
        )

        assert parse_output(data)[PKG].passed == 1

    def test_event_without_package_is_skipped(self) -> None:
        data = go_stream(go_event("output", Output="go: downloading module\n"))
        assert parse_output(data) == {}

    def test_blank_lines_are_ignored(self) -> None:
        data = b"\n\n" + go_stream(go_event("start", PKG)) + b"\n   \n"
        assert list(parse_output(data)) == [PKG]

    def test_empty_output(self) -> None:
        assert parse_output(b"") == {}


class TestIncrementalParser:
    def test_feed_reflects_lines_consumed_so_far(self) -> None:
        parser = TestEventParser()

        parser.feed(go_event("start", PKG))
        parser.feed(go_event("pass", PKG, "T1"))
        assert parser.packages[PKG].passed == 1

        parser.feed(go_event("pass", PKG, "T2"))
        assert parser.packages[PKG].passed == 2

    def test_feed_accepts_str_and_bytes(self) -> None:
        parser = TestEventParser()
        parser.feed_lines([go_event("start", PKG), go_event("skip", PKG, "T1").encode()])
        assert parser.packages[PKG].skipped == 1
