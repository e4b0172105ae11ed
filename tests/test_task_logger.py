"""
Evaluation Logger Test Suite
Variable expansion, sink fan-out, failure isolation and close-once semantics.
"""

from __future__ import annotations

import logging

import pytest

from policy_gate.task_logger import EvaluationLogger, expand_variables
from tests.helpers import SpyTimeline, task_context


def test_expand_variables_is_case_insensitive():
    variables = {"Build.BuildId": "17", "System.TeamProject": "contoso"}
    assert expand_variables("build $(build.buildid) in $(SYSTEM.TEAMPROJECT)", variables) == (
        "build 17 in contoso"
    )


def test_unknown_macros_are_left_intact():
    assert expand_variables("value $(missing)", {"other": "x"}) == "value $(missing)"
    assert expand_variables("no macros", {"a": "b"}) == "no macros"
    assert expand_variables("$(a)", None) == "$(a)"


def test_log_fans_out_to_buffer_and_timeline(caplog):
    timeline = SpyTimeline()
    task_logger = EvaluationLogger({"name": "web"}, timeline=timeline, capture=True)

    with caplog.at_level(logging.INFO, logger="policy_gate.task_logger"):
        task_logger.log("evaluating $(name)")

    assert task_logger.getvalue() == "evaluating web\n"
    assert timeline.lines == ["evaluating web"]
    assert "evaluating web" in caplog.text


def test_buffer_is_empty_without_capture():
    task_logger = EvaluationLogger()
    task_logger.log("hello")
    assert task_logger.getvalue() == ""


def test_remote_failure_is_logged_locally(caplog):
    timeline = SpyTimeline(fail_append=True)
    task_logger = EvaluationLogger(timeline=timeline, capture=True)

    with caplog.at_level(logging.WARNING, logger="policy_gate.task_logger"):
        task_logger.log("still works")

    assert task_logger.getvalue() == "still works\n"
    assert "Timeline log write failed" in caplog.text


def test_close_runs_once():
    timeline = SpyTimeline()
    task_logger = EvaluationLogger(timeline=timeline)

    task_logger.close()
    task_logger.close()

    assert timeline.closes == 1
    assert task_logger.closed


def test_context_manager_closes_on_error():
    timeline = SpyTimeline()

    with pytest.raises(RuntimeError):
        with EvaluationLogger(timeline=timeline):
            raise RuntimeError("boom")

    assert timeline.closes == 1


def test_no_remote_writes_after_close():
    timeline = SpyTimeline()
    task_logger = EvaluationLogger(timeline=timeline)
    task_logger.close()
    task_logger.log("late")
    assert timeline.lines == []


def test_log_failure_writes_traceback():
    timeline = SpyTimeline()
    task_logger = EvaluationLogger(timeline=timeline)

    try:
        raise ValueError("bad provenance")
    except ValueError as exc:
        task_logger.log_failure(exc)

    assert "ValueError: bad provenance" in timeline.text
    assert "Traceback" in timeline.text


def test_timeline_record_created_only_when_missing():
    timeline = SpyTimeline()
    task_logger = EvaluationLogger(timeline=timeline)

    task_logger.ensure_timeline_record(task_context())
    task_logger.ensure_timeline_record(task_context(task_instance_id="record-1"))

    assert len(timeline.created) == 1


def test_timeline_record_failure_propagates():
    task_logger = EvaluationLogger(timeline=SpyTimeline(fail_create=True))
    with pytest.raises(ConnectionError):
        task_logger.ensure_timeline_record(task_context())
