"""Tests for child task spec validation."""

from __future__ import annotations

from job_orchestrator.validation import ChildTaskSpec, format_validation_error, validate_child_tasks


def test_valid_specs_are_parsed() -> None:
    report, specs = validate_child_tasks(
        [
            {"service": "svc", "command": "a"},
            {"id": "b", "service": "svc", "command": "b", "input": {"x": 1}, "dependsOn": ["0"]},
        ],
        "0",
    )
    assert report.is_valid
    assert report.errors == []
    assert report.tasks_validated == 2
    assert specs[0].id is None
    assert specs[1].depends_on == ["0"]
    assert specs[1].input == {"x": 1}


def test_non_list_is_rejected() -> None:
    report, specs = validate_child_tasks({"service": "svc"}, "0")
    assert not report.is_valid
    assert report.errors == ["childTasks must be an array"]
    assert specs == []


def test_errors_name_parent_and_position() -> None:
    report, _ = validate_child_tasks(
        [
            {"service": "svc", "command": "ok"},
            {"service": "", "command": "x"},
            {"command": "x"},
            "not-a-dict",
        ],
        "7",
    )
    assert not report.is_valid
    assert any(err.startswith("Child task 1 of 7: service") for err in report.errors)
    assert any(err.startswith("Child task 2 of 7: service") for err in report.errors)
    assert "Child task 3 of 7: expected an object, got str" in report.errors


def test_depends_on_must_be_list_of_strings() -> None:
    report, _ = validate_child_tasks([{"service": "s", "command": "c", "dependsOn": "0"}], "0")
    assert not report.is_valid


def test_null_input_and_blank_id_are_normalized() -> None:
    spec = ChildTaskSpec.model_validate({"id": "", "service": "s", "command": "c", "input": None})
    assert spec.id is None
    assert spec.input == {}
    assert spec.depends_on == []


def test_report_serializes() -> None:
    report, _ = validate_child_tasks([], "0")
    data = report.to_dict()
    assert data["is_valid"] is True
    assert data["tasks_validated"] == 0
    assert "timestamp" in data


def test_format_validation_error() -> None:
    assert format_validation_error("input", {"loc": ("seconds",), "msg": "too small"}) == "input: seconds: too small"
    assert format_validation_error("Invalid input", {"loc": (), "msg": "bad"}) == "Invalid input: bad"
