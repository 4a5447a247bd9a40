"""Tests for CLI status lines and headers."""

from __future__ import annotations

import pytest

from notification_service.cli.utils import error, header, info, success, warning


@pytest.mark.unit
class TestStatusLines:
    def test_success_and_info_go_to_stdout(self, capsys: pytest.CaptureFixture[str]) -> None:
        success("Marked 2 notification(s) as read")
        info("No records changed")

        captured = capsys.readouterr()
        assert captured.out == "✓ Marked 2 notification(s) as read\n· No records changed\n"
        assert captured.err == ""

    def test_diagnostics_go_to_stderr(self, capsys: pytest.CaptureFixture[str]) -> None:
        warning("u1: failed [HTTP_500]")
        error("Redis ping failed")

        captured = capsys.readouterr()
        assert captured.out == ""
        assert captured.err == "! u1: failed [HTTP_500]\n✗ Redis ping failed\n"

    def test_details_are_indented_on_the_same_stream(self, capsys: pytest.CaptureFixture[str]) -> None:
        warning("u1: failed [TIMEOUT]", "provider did not answer")

        assert capsys.readouterr().err == "! u1: failed [TIMEOUT]\n    provider did not answer\n"


@pytest.mark.unit
def test_header_is_underlined_to_its_width(capsys: pytest.CaptureFixture[str]) -> None:
    header("Delivery stats for n1")

    lines = capsys.readouterr().out.split("\n")
    assert lines[:3] == ["", "Delivery stats for n1", "─" * len("Delivery stats for n1")]
