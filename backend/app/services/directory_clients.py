"""Clients for the remote instructor-assignment and teacher directories.

Both directories are owned by other services. Failures never propagate: a
directory that cannot be reached behaves like one that has no data, and the
caller decides whether that makes a run invalid.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass

import requests

from app.core.config import get_settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class InstructorAssignment:
    course_id: str
    instructor_id: str
    instructor_name: str | None = None


@dataclass(frozen=True)
class TeacherRecord:
    id: str
    full_name: str
    email: str | None = None


def _unwrap(body) -> list:
    if isinstance(body, dict):
        body = body.get("data", body)
    if isinstance(body, list):
        return body
    return []


class TeacherAssignmentDirectory(ABC):
    @abstractmethod
    def get_assignments(self, batch_id: str, semester: int) -> list[InstructorAssignment]:
        """Active instructor assignments for a batch in one semester."""


class TeacherDirectory(ABC):
    @abstractmethod
    def get_teachers_by_ids(self, teacher_ids: list[str]) -> list[TeacherRecord]:
        """Teacher records for the ids the directory knows; unknown ids are dropped."""


class _ServiceClient:
    def __init__(self, base_url: str, token: str | None, timeout: float) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.headers = {"Accept": "application/json"}
        if token:
            self.headers["Authorization"] = f"Bearer {token}"


class HttpTeacherAssignmentDirectory(_ServiceClient, TeacherAssignmentDirectory):
    def get_assignments(self, batch_id: str, semester: int) -> list[InstructorAssignment]:
        try:
            response = requests.get(
                f"{self.base_url}/batch-course-instructors",
                params={"batchId": batch_id, "semester": str(semester), "status": "active"},
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            rows = _unwrap(response.json())
        except (requests.RequestException, ValueError):
            logger.warning(
                "Instructor assignment lookup failed | batch_id=%s semester=%s", batch_id, semester, exc_info=True
            )
            return []

        assignments: list[InstructorAssignment] = []
        for row in rows:
            if not isinstance(row, dict):
                continue
            course_id = row.get("courseId")
            instructor_id = row.get("instructorId")
            if not course_id or not instructor_id:
                continue
            assignments.append(
                InstructorAssignment(
                    course_id=str(course_id),
                    instructor_id=str(instructor_id),
                    instructor_name=row.get("instructorName"),
                )
            )
        return assignments


class HttpTeacherDirectory(_ServiceClient, TeacherDirectory):
    def get_teachers_by_ids(self, teacher_ids: list[str]) -> list[TeacherRecord]:
        if not teacher_ids:
            return []
        try:
            response = requests.post(
                f"{self.base_url}/teachers/bulk",
                json={"ids": list(teacher_ids)},
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            rows = _unwrap(response.json())
        except (requests.RequestException, ValueError):
            logger.info("Bulk teacher lookup unavailable, fetching individually | count=%s", len(teacher_ids))
            rows = [row for row in (self._get_teacher(teacher_id) for teacher_id in teacher_ids) if row]
        return [record for record in (self._to_record(row) for row in rows) if record is not None]

    def _get_teacher(self, teacher_id: str) -> dict | None:
        try:
            response = requests.get(
                f"{self.base_url}/teachers/{teacher_id}",
                headers=self.headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
            body = response.json()
        except (requests.RequestException, ValueError):
            logger.warning("Teacher lookup failed | teacher_id=%s", teacher_id, exc_info=True)
            return None
        if isinstance(body, dict) and isinstance(body.get("data"), dict):
            return body["data"]
        return body if isinstance(body, dict) else None

    @staticmethod
    def _to_record(row) -> TeacherRecord | None:
        if not isinstance(row, dict):
            return None
        teacher_id = row.get("id") or row.get("_id")
        if not teacher_id:
            return None
        full_name = row.get("fullName") or row.get("name")
        if not full_name:
            first = row.get("firstName") or ""
            last = row.get("lastName") or ""
            full_name = f"{first} {last}".strip()
        if not full_name:
            return None
        return TeacherRecord(id=str(teacher_id), full_name=full_name, email=row.get("email"))


def build_assignment_directory() -> TeacherAssignmentDirectory:
    settings = get_settings()
    return HttpTeacherAssignmentDirectory(
        settings.enrollment_service_url,
        settings.service_token,
        settings.directory_timeout_seconds,
    )


def build_teacher_directory() -> TeacherDirectory:
    settings = get_settings()
    return HttpTeacherDirectory(
        settings.user_service_url,
        settings.service_token,
        settings.directory_timeout_seconds,
    )
