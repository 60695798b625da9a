"""Tests for the status lifecycle and field limits."""

import pytest

from backend.errors import ValidationError
from backend.schemas import JobApplicationOut, Status, can_transition, check_length


@pytest.mark.parametrize("current,target,allowed", [
    (Status.PENDING, Status.PROCESSING, True),
    (Status.PROCESSING, Status.COMPLETED, True),
    (Status.PROCESSING, Status.FAILED, True),
    (Status.PENDING, Status.COMPLETED, False),
    (Status.COMPLETED, Status.PROCESSING, False),
    (Status.FAILED, Status.PROCESSING, False),
    (Status.COMPLETED, Status.FAILED, False),
])
def test_transitions(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_check_length_accepts_boundary():
    check_length("job_description", "x" * 10000)
    check_length("cover_letter", None)


def test_check_length_rejects_over_limit():
    with pytest.raises(ValidationError) as exc_info:
        check_length("job_description", "x" * 10001)
    assert exc_info.value.message == "Job description cannot exceed 10,000 characters"
    assert exc_info.value.status_code == 400


def test_record_serializes_with_camel_case_names():
    record = JobApplicationOut(
        id="507f1f77bcf86cd799439011",
        resume_content="r",
        job_description="j",
        status=Status.PENDING,
    )
    dumped = record.model_dump(by_alias=True, exclude_none=True)
    assert dumped == {
        "id": "507f1f77bcf86cd799439011",
        "resumeContent": "r",
        "jobDescription": "j",
        "status": Status.PENDING,
    }
