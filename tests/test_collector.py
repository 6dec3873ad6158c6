"""
Assignment collection: normalization, undated filtering, partial failure tolerance.
"""
from __future__ import annotations

import asyncio

import pytest

from duesync.domain.common.errors import NetworkError, UpstreamError
from duesync.domain.sync.collector import AssignmentCollector, normalize_assignment
from tests.fakes import FakeLmsClient, assignment_payload


def test_normalize_builds_composite_external_id_and_flags():
    course = {"id": 42, "name": "Chemistry"}
    assignment = assignment_payload(
        9,
        html_url="https://lms.test/courses/42/assignments/9",
        points_possible=10,
        quiz_id=77,
        submission={"workflow_state": "graded"},
        locked_for_user=True,
    )
    candidate = normalize_assignment(course, assignment)
    assert candidate.external_id == "42-9"
    assert candidate.course_id == "42"
    assert candidate.course_name == "Chemistry"
    assert candidate.quiz_id == "77"
    assert candidate.is_quiz
    assert candidate.has_submitted
    assert candidate.locked_for_user
    assert candidate.points_possible == 10


def test_normalize_drops_undated_assignments():
    assert normalize_assignment({"id": 1}, assignment_payload(2, due_at=None)) is None
    assert normalize_assignment({"id": 1}, assignment_payload(2, due_at="")) is None


def test_unsubmitted_workflow_state_is_not_submitted():
    candidate = normalize_assignment({"id": 1}, assignment_payload(2, submission={"workflow_state": "unsubmitted"}))
    assert not candidate.has_submitted
    assert not candidate.is_quiz


def test_one_failing_course_degrades_to_empty_list():
    client = FakeLmsClient(
        courses=[{"id": 1, "name": "A"}, {"id": 2, "name": "B"}, {"id": 3, "name": "C"}],
        assignments={
            "1": [assignment_payload(10), assignment_payload(11, due_at=None)],
            "2": UpstreamError(500),
            "3": [assignment_payload(30)],
        },
    )
    result = asyncio.run(AssignmentCollector(client, concurrency=2).collect())

    assert [c.external_id for c in result.candidates] == ["1-10", "3-30"]
    # the failed course is still reported so its category can exist
    assert [c.course_id for c in result.courses] == ["1", "2", "3"]


def test_course_refs_are_deduplicated():
    client = FakeLmsClient(courses=[{"id": 1, "name": "A"}, {"id": 1, "name": "A"}])
    result = asyncio.run(AssignmentCollector(client).collect())
    assert len(result.courses) == 1


def test_fan_out_respects_concurrency():
    client = FakeLmsClient(
        courses=[{"id": i, "name": f"C{i}"} for i in range(10)],
        assignments={str(i): [assignment_payload(i)] for i in range(10)},
    )
    result = asyncio.run(AssignmentCollector(client, concurrency=3).collect())
    assert len(result.candidates) == 10
    assert client.max_in_flight <= 3


def test_course_list_failure_propagates():
    client = FakeLmsClient()
    client.courses_error = NetworkError("down")
    with pytest.raises(NetworkError):
        asyncio.run(AssignmentCollector(client).collect())
