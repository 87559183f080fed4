from app.core.exceptions import (
    AppError,
    ConflictError,
    ResourceNotFoundError,
    SchedulerError,
    SchedulingValidationError,
)


def test_scheduler_error_structure():
    err = SchedulerError(message="Test error", details={"foo": "bar"})
    assert err.status_code == 400
    assert err.message == "Test error"
    assert err.details == {"foo": "bar"}
    assert isinstance(err, AppError)


def test_app_error_defaults():
    err = AppError("Generic error")
    assert err.status_code == 500
    assert err.details == {}


def test_validation_error_carries_unassigned_courses():
    unassigned = [{"batchId": "b1", "courseCode": "CSE101"}]
    err = SchedulingValidationError("Prerequisites not met", errors=["boom"], unassigned_courses=unassigned)

    assert err.status_code == 422
    assert err.errors == ["boom"]
    assert err.details["unassigned_courses"] == unassigned
    assert err.details["field_errors"] == {}


def test_not_found_and_conflict_status_codes():
    missing = ResourceNotFoundError("Proposal", "p-1")
    assert missing.status_code == 404
    assert missing.message == "Proposal with id p-1 not found"

    assert ConflictError("Proposal already applied").status_code == 409
