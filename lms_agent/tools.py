"""lms_agent/tools.py

The LMS operations exposed to the model.

Every ``execute`` function returns one plain sentence meant to be read by the
model in the follow-up round. Expected domain failures (unknown instructor,
duplicate email, unparseable date, ...) come back as ``"Error: ..."``
strings; only unexpected store failures raise.
"""

from __future__ import annotations

# Standard Library
import logging
import secrets
import string as _string
from datetime import datetime

# Local Modules
from lms_agent.errors import DuplicateKeyError
from lms_agent.registry import ToolDefinition, ToolRegistry
from lms_agent.schema import boolean, default, email, enum, integer, obj, optional, string
from lms_agent.store import DEFAULT_COURSE_COLOR, DomainStore

logger = logging.getLogger(__name__)

TEMP_PASSWORD_LENGTH = 8
_PASSWORD_ALPHABET = _string.ascii_letters + _string.digits

# Tried in order after ISO-8601.
_DATE_FORMATS: tuple[str, ...] = (
    "%Y/%m/%d",
    "%m/%d/%Y",
    "%B %d, %Y",
    "%B %d %Y",
    "%b %d, %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%a %b %d %Y",
    "%Y-%m-%d %H:%M",
)


def generate_temporary_password(length: int = TEMP_PASSWORD_LENGTH) -> str:
    return "".join(secrets.choice(_PASSWORD_ALPHABET) for _ in range(length))


def parse_event_date(value: str) -> datetime | None:
    """Parse an ISO-8601 or common written date, or return ``None``."""
    text = value.strip()
    if not text:
        return None
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    return None


def build_lms_tools(store: DomainStore) -> list[ToolDefinition]:
    """Create the LMS tool definitions bound to ``store``."""

    def get_course_count() -> str:
        count = store.count_courses()
        return f"There are currently {count} courses in the system."

    def get_student_count() -> str:
        count = store.count_users(role="student")
        return f"There are currently {count} students in the system."

    def create_course(
        title: str,
        courseCode: str,
        instructorEmail: str,
        colorIdentifier: str,
        description: str | None = None,
        sectionId: str | None = None,
    ) -> str:
        instructor = store.find_user_by_email(instructorEmail, role="professor")
        if instructor is None:
            return f"Error: No professor found with email {instructorEmail}"

        code = courseCode.strip().upper()
        if store.find_course_by_code(code) is not None:
            return f"Error: A course with code {code} already exists."

        section = None
        if sectionId:
            section = store.get_section(sectionId)
            if section is None:
                return f'Error: Section "{sectionId}" not found.'

        try:
            store.create_course(
                title=title,
                course_code=code,
                instructor_id=instructor.id,
                description=description or "",
                color_identifier=colorIdentifier,
                target_section_id=section.id if section else None,
            )
        except DuplicateKeyError:
            return f"Error: A course with code {code} already exists."

        suffix = f" for {section.name}" if section else ""
        return f'Success: Created course "{title}" ({code}) taught by {instructor.name}{suffix}.'

    def list_courses(limit: int) -> str:
        courses = store.list_courses(limit=limit)
        if not courses:
            return "No courses found in the system."

        lines = []
        for course in courses:
            instructor = store.get_user(course.instructor_id)
            details = [
                f"Instructor: {instructor.name if instructor else 'Unassigned'}",
                f"Students: {len(course.students)}",
            ]
            if course.target_section_id:
                section = store.get_section(course.target_section_id)
                if section is not None:
                    details.append(f"Section: {section.name}")
            lines.append(f"{course.course_code}: {course.title} ({', '.join(details)})")

        return f"Found {len(courses)} course(s):\n" + "\n".join(lines)

    def create_section(name: str, program: str, batch: str) -> str:
        if store.find_section(name, program, batch) is not None:
            return f'Error: Section "{name}" already exists for {program} (Batch: {batch}).'
        try:
            store.create_section(name=name, program=program, batch=batch)
        except DuplicateKeyError:
            return f'Error: Section "{name}" already exists for {program} (Batch: {batch}).'
        return f'Success: Created section "{name}" for {program} (Batch: {batch})'

    def list_sections() -> str:
        sections = store.list_sections()
        if not sections:
            return "No sections found in the system."

        lines = [
            f"{s.name}: {s.program} (Batch: {s.batch}, Students: {len(s.students)})"
            for s in sections
        ]
        return f"Found {len(sections)} section(s):\n" + "\n".join(lines)

    def create_user(name: str, email: str, role: str, sectionName: str | None = None) -> str:
        if store.find_user_by_email(email) is not None:
            return f"Error: A user with email {email} already exists."

        section = None
        if role == "student" and sectionName:
            section = store.find_section_by_name(sectionName)
            if section is None:
                return f'Error: Section "{sectionName}" not found.'

        password = generate_temporary_password()
        try:
            store.create_user(
                name=name,
                email=email,
                password=password,
                role=role,
                section_id=section.id if section else None,
            )
        except DuplicateKeyError:
            return f"Error: A user with email {email} already exists."

        placement = f" in {section.name}" if section else ""
        return (
            f"Success: Created {role} account for {name} ({email}){placement}. "
            f"Temporary password: {password}"
        )

    def create_event(
        title: str,
        date: str,
        type: str,
        allDay: bool,
        courseCode: str | None = None,
    ) -> str:
        event_date = parse_event_date(date)
        if event_date is None:
            return (
                f'Error: Invalid date format "{date}". '
                "Please use ISO format (YYYY-MM-DD) or specific date."
            )

        scope_id = None
        if type == "course":
            if not courseCode:
                return "Error: Course code is required for course events."
            course = store.find_course_by_code(courseCode)
            if course is None:
                return f'Error: Course "{courseCode}" not found.'
            scope_id = course.id

        store.create_event(
            title=title,
            start=event_date,
            end=event_date,
            all_day=allDay,
            type=type,
            scope_id=scope_id,
        )
        return f'Success: Created {type} event "{title}" on {event_date.strftime("%a %b %d %Y")}.'

    return [
        ToolDefinition(
            name="getCourseCount",
            description="Get the total number of courses in the system",
            parameters=obj(),
            execute=get_course_count,
        ),
        ToolDefinition(
            name="createCourse",
            description=(
                "Create a new course with title, code, description, instructor, "
                "and optional section"
            ),
            parameters=obj(
                title=string('The course title (e.g., "Advanced Java Programming")'),
                courseCode=string('The course code (e.g., "CS301")'),
                description=optional(string("Course description")),
                instructorEmail=email("Email of the instructor/professor"),
                sectionId=optional(string("Section ID to assign this course to")),
                colorIdentifier=default(
                    string("Color for the course card (hex, e.g. #3B82F6)"),
                    DEFAULT_COURSE_COLOR,
                ),
            ),
            execute=create_course,
        ),
        ToolDefinition(
            name="listCourses",
            description="List all courses with basic information",
            parameters=obj(
                limit=default(
                    integer("Maximum number of courses to return", minimum=1, maximum=100),
                    10,
                ),
            ),
            execute=list_courses,
        ),
        ToolDefinition(
            name="createSection",
            description="Create a new section/class for organizing students",
            parameters=obj(
                name=string('Section name (e.g., "Section A", "Section B")'),
                program=string('Program name (e.g., "B.Tech CSE", "B.Tech ECE")'),
                batch=string('Batch year range (e.g., "2024-2028")'),
            ),
            execute=create_section,
        ),
        ToolDefinition(
            name="listSections",
            description="List all sections in the system",
            parameters=obj(),
            execute=list_sections,
        ),
        ToolDefinition(
            name="createUser",
            description="Create a new user account (student or professor)",
            parameters=obj(
                name=string("User full name"),
                email=email("User email address"),
                role=enum("student", "professor", description='User role: "student" or "professor"'),
                sectionName=optional(
                    string("Section name to enroll student in (only for students)")
                ),
            ),
            execute=create_user,
        ),
        ToolDefinition(
            name="getStudentCount",
            description="Get the total number of students in the system",
            parameters=obj(),
            execute=get_student_count,
        ),
        ToolDefinition(
            name="createEvent",
            description="Create a calendar event (global, course-specific, or personal)",
            parameters=obj(
                title=string("Event title"),
                date=string('Event date in ISO format (YYYY-MM-DD) or written out, e.g. "March 4, 2025"'),
                type=enum("global", "course", "personal", description="Event type"),
                courseCode=optional(string('Course code if type is "course"')),
                allDay=default(boolean("Whether event is all-day"), True),
            ),
            execute=create_event,
        ),
    ]


def build_lms_registry(store: DomainStore) -> ToolRegistry:
    """Return a registry holding every LMS tool bound to ``store``."""
    return ToolRegistry(build_lms_tools(store))
