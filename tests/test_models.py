"""Tests for report dataclasses."""

from __future__ import annotations

import pytest

from pgmulti.models import (
    AffectedRowCount,
    DatabaseReport,
    ExecutionStatus,
    SaveOption,
    StatementError,
    TabularResult,
)


def test_tabular_result_rejects_ragged_rows() -> None:
    with pytest.raises(ValueError):
        TabularResult(headers=("a", "b"), rows=(("1",),))


def test_report_payload_shape() -> None:
    report = DatabaseReport(
        name="sales",
        status=ExecutionStatus.ERROR,
        log="2 succeeded, 1 failed.",
        outcomes=(
            TabularResult(headers=("id",), rows=(("1",),)),
            AffectedRowCount(3),
            StatementError("Statement 3 failed: boom"),
        ),
    )

    assert report.to_payload() == {
        "name": "sales",
        "status": "error",
        "log": "2 succeeded, 1 failed.",
        "results": [
            {"type": "select", "payload": {"headers": ["id"], "rows": [["1"]]}},
            {"type": "mutation", "payload": {"affectedRows": 3}},
            {"type": "error", "payload": "Statement 3 failed: boom"},
        ],
    }


def test_export_failure_downgrades_copy() -> None:
    report = DatabaseReport(name="sales", status=ExecutionStatus.SUCCESS, log="1 statements executed successfully.")

    downgraded = report.with_export_failure("disk full")

    assert downgraded.status is ExecutionStatus.ERROR
    assert downgraded.log == "disk full"
    assert report.status is ExecutionStatus.SUCCESS


def test_save_option_folder_requirement() -> None:
    assert not SaveOption.NONE.requires_folder
    assert SaveOption("separate").requires_folder
    assert SaveOption.SINGLE.requires_folder
