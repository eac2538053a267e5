"""lms_agent/store.py

Domain store for the LMS entities the assistant's tools touch.

The tools only depend on the :class:`DomainStore` protocol. The shipped
:class:`InMemoryStore` keeps everything in process memory behind a single
re-entrant lock, so a record and its cross-references (course -> instructor,
student -> section) are committed together or not at all.
"""

from __future__ import annotations

# Standard Library
import hashlib
import hmac
import logging
import secrets
import threading
import uuid
from datetime import datetime, timezone
from typing import Literal, Protocol

# Third-Party Libraries
from pydantic import BaseModel, Field

# Local Modules
from lms_agent.errors import DuplicateKeyError, StoreError

logger = logging.getLogger(__name__)

Role = Literal["admin", "professor", "student"]
EventType = Literal["global", "course", "personal"]

DEFAULT_COURSE_COLOR = "#3B82F6"

_PBKDF2_ROUNDS = 120_000


def _new_id() -> str:
    return uuid.uuid4().hex


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------


class User(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    email: str
    password_hash: str = Field(repr=False)
    role: Role = "student"
    section_id: str | None = None
    assigned_courses: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)


class Section(BaseModel):
    id: str = Field(default_factory=_new_id)
    name: str
    program: str
    batch: str
    students: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)


class Course(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    course_code: str
    description: str = ""
    color_identifier: str = DEFAULT_COURSE_COLOR
    instructor_id: str
    target_section_id: str | None = None
    students: list[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_now)


class Event(BaseModel):
    id: str = Field(default_factory=_new_id)
    title: str
    start: datetime
    end: datetime
    all_day: bool = False
    type: EventType
    scope_id: str | None = None
    created_at: datetime = Field(default_factory=_now)


# ---------------------------------------------------------------------------
# Passwords
# ---------------------------------------------------------------------------


def hash_password(password: str) -> str:
    """Hash a password as ``pbkdf2_sha256$<rounds>$<salt>$<digest>``."""
    salt = secrets.token_hex(16)
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), _PBKDF2_ROUNDS
    )
    return f"pbkdf2_sha256${_PBKDF2_ROUNDS}${salt}${digest.hex()}"


def verify_password(password: str, encoded: str) -> bool:
    try:
        algorithm, rounds, salt, expected = encoded.split("$")
    except ValueError:
        return False
    if algorithm != "pbkdf2_sha256":
        return False
    digest = hashlib.pbkdf2_hmac(
        "sha256", password.encode("utf-8"), bytes.fromhex(salt), int(rounds)
    )
    return hmac.compare_digest(digest.hex(), expected)


# ---------------------------------------------------------------------------
# Store protocol
# ---------------------------------------------------------------------------


class DomainStore(Protocol):
    """Finder/creator operations the tools and the HTTP layer rely on."""

    def count_courses(self) -> int: ...

    def count_users(self, role: Role | None = None) -> int: ...

    def get_user(self, user_id: str) -> User | None: ...

    def find_user_by_email(self, email: str, role: Role | None = None) -> User | None: ...

    def create_user(
        self,
        *,
        name: str,
        email: str,
        password: str,
        role: Role,
        section_id: str | None = None,
    ) -> User: ...

    def get_section(self, section_id: str) -> Section | None: ...

    def find_section_by_name(self, name: str) -> Section | None: ...

    def find_section(self, name: str, program: str, batch: str) -> Section | None: ...

    def create_section(self, *, name: str, program: str, batch: str) -> Section: ...

    def list_sections(self) -> list[Section]: ...

    def find_course_by_code(self, course_code: str) -> Course | None: ...

    def create_course(
        self,
        *,
        title: str,
        course_code: str,
        instructor_id: str,
        description: str = "",
        color_identifier: str = DEFAULT_COURSE_COLOR,
        target_section_id: str | None = None,
    ) -> Course: ...

    def list_courses(self, limit: int | None = None) -> list[Course]: ...

    def create_event(
        self,
        *,
        title: str,
        start: datetime,
        end: datetime,
        type: EventType,
        all_day: bool = False,
        scope_id: str | None = None,
    ) -> Event: ...

    def list_events(self) -> list[Event]: ...


# ---------------------------------------------------------------------------
# In-memory implementation
# ---------------------------------------------------------------------------


class InMemoryStore:
    """Thread-safe, process-local :class:`DomainStore`.

    Records are copied on the way in and out, so callers never hold a
    reference into the store's state.
    """

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._users: dict[str, User] = {}
        self._sections: dict[str, Section] = {}
        self._courses: dict[str, Course] = {}
        self._events: dict[str, Event] = {}

    # -- users ------------------------------------------------------------

    def count_courses(self) -> int:
        with self._lock:
            return len(self._courses)

    def count_users(self, role: Role | None = None) -> int:
        with self._lock:
            return sum(1 for u in self._users.values() if role is None or u.role == role)

    def get_user(self, user_id: str) -> User | None:
        with self._lock:
            user = self._users.get(user_id)
            return user.model_copy(deep=True) if user else None

    def find_user_by_email(self, email: str, role: Role | None = None) -> User | None:
        needle = email.strip().lower()
        with self._lock:
            for user in self._users.values():
                if user.email == needle and (role is None or user.role == role):
                    return user.model_copy(deep=True)
        return None

    def create_user(
        self,
        *,
        name: str,
        email: str,
        password: str,
        role: Role,
        section_id: str | None = None,
    ) -> User:
        normalised = email.strip().lower()
        with self._lock:
            if any(u.email == normalised for u in self._users.values()):
                raise DuplicateKeyError("User", normalised)
            section = None
            if section_id is not None:
                section = self._sections.get(section_id)
                if section is None:
                    raise StoreError(f"Section {section_id} does not exist")

            user = User(
                name=name.strip(),
                email=normalised,
                password_hash=hash_password(password),
                role=role,
                section_id=section_id,
            )
            self._users[user.id] = user
            if section is not None:
                section.students.append(user.id)
            logger.debug("Created %s %s (%s)", role, user.id, normalised)
            return user.model_copy(deep=True)

    # -- sections ---------------------------------------------------------

    def get_section(self, section_id: str) -> Section | None:
        with self._lock:
            section = self._sections.get(section_id)
            return section.model_copy(deep=True) if section else None

    def find_section_by_name(self, name: str) -> Section | None:
        needle = name.strip()
        with self._lock:
            for section in self._sections.values():
                if section.name == needle:
                    return section.model_copy(deep=True)
        return None

    def find_section(self, name: str, program: str, batch: str) -> Section | None:
        key = (name.strip(), program.strip(), batch.strip())
        with self._lock:
            for section in self._sections.values():
                if (section.name, section.program, section.batch) == key:
                    return section.model_copy(deep=True)
        return None

    def create_section(self, *, name: str, program: str, batch: str) -> Section:
        with self._lock:
            if self.find_section(name, program, batch) is not None:
                raise DuplicateKeyError("Section", f"{program}/{batch}/{name}")
            section = Section(name=name.strip(), program=program.strip(), batch=batch.strip())
            self._sections[section.id] = section
            return section.model_copy(deep=True)

    def list_sections(self) -> list[Section]:
        with self._lock:
            return [s.model_copy(deep=True) for s in self._sections.values()]

    # -- courses ----------------------------------------------------------

    def find_course_by_code(self, course_code: str) -> Course | None:
        needle = course_code.strip().upper()
        with self._lock:
            for course in self._courses.values():
                if course.course_code == needle:
                    return course.model_copy(deep=True)
        return None

    def create_course(
        self,
        *,
        title: str,
        course_code: str,
        instructor_id: str,
        description: str = "",
        color_identifier: str = DEFAULT_COURSE_COLOR,
        target_section_id: str | None = None,
    ) -> Course:
        code = course_code.strip().upper()
        with self._lock:
            instructor = self._users.get(instructor_id)
            if instructor is None:
                raise StoreError(f"Instructor {instructor_id} does not exist")
            if target_section_id is not None and target_section_id not in self._sections:
                raise StoreError(f"Section {target_section_id} does not exist")
            if any(c.course_code == code for c in self._courses.values()):
                raise DuplicateKeyError("Course", code)

            course = Course(
                title=title.strip(),
                course_code=code,
                description=description,
                color_identifier=color_identifier,
                instructor_id=instructor_id,
                target_section_id=target_section_id,
            )
            self._courses[course.id] = course
            instructor.assigned_courses.append(course.id)
            return course.model_copy(deep=True)

    def list_courses(self, limit: int | None = None) -> list[Course]:
        with self._lock:
            courses = list(self._courses.values())
            if limit is not None:
                courses = courses[:limit]
            return [c.model_copy(deep=True) for c in courses]

    # -- events -----------------------------------------------------------

    def create_event(
        self,
        *,
        title: str,
        start: datetime,
        end: datetime,
        type: EventType,
        all_day: bool = False,
        scope_id: str | None = None,
    ) -> Event:
        with self._lock:
            event = Event(
                title=title.strip(),
                start=start,
                end=end,
                all_day=all_day,
                type=type,
                scope_id=scope_id,
            )
            self._events[event.id] = event
            return event.model_copy(deep=True)

    def list_events(self) -> list[Event]:
        with self._lock:
            return [e.model_copy(deep=True) for e in self._events.values()]


# ---------------------------------------------------------------------------
# Demo data
# ---------------------------------------------------------------------------


def seed_demo_data(store: DomainStore) -> None:
    """Populate an empty store with a small demo campus.

    Accounts: ``admin@college.edu`` / ``admin123``, two professors with
    ``prof123`` and a handful of students with ``student123``.
    """
    if store.count_users() > 0:
        logger.info("Store already populated, skipping demo seed")
        return

    store.create_user(name="Admin User", email="admin@college.edu", password="admin123", role="admin")
    prof1 = store.create_user(
        name="Dr. Sarah Johnson", email="prof1@college.edu", password="prof123", role="professor"
    )
    prof2 = store.create_user(
        name="Dr. Michael Chen", email="prof2@college.edu", password="prof123", role="professor"
    )

    section_a = store.create_section(name="Section A", program="B.Tech CSE", batch="2024-2028")
    section_b = store.create_section(name="Section B", program="B.Tech CSE", batch="2024-2028")

    students = [
        ("Alice Brown", "alice@college.edu", section_a.id),
        ("Bob Smith", "bob@college.edu", section_a.id),
        ("Carol White", "carol@college.edu", section_b.id),
        ("David Lee", "david@college.edu", section_b.id),
    ]
    for name, email, section_id in students:
        store.create_user(
            name=name, email=email, password="student123", role="student", section_id=section_id
        )

    store.create_course(
        title="Data Structures",
        course_code="CS201",
        instructor_id=prof1.id,
        description="Arrays, lists, trees and graphs.",
        target_section_id=section_a.id,
    )
    store.create_course(
        title="Operating Systems",
        course_code="CS301",
        instructor_id=prof2.id,
        color_identifier="#10B981",
        target_section_id=section_b.id,
    )
    logger.info("Seeded demo data: %d users, 2 sections, 2 courses", store.count_users())
