"""tests/test_store.py

Tests for the in-memory domain store and password hashing.
"""

from __future__ import annotations

# Standard Library
import threading

# Third-Party Libraries
import pytest

# Local Modules
from lms_agent.errors import DuplicateKeyError, StoreError
from lms_agent.store import InMemoryStore, User, hash_password, seed_demo_data, verify_password


class TestPasswords:
    """Test suite for hash_password and verify_password."""

    def test_round_trip(self) -> None:
        encoded = hash_password("prof123")

        assert encoded.startswith("pbkdf2_sha256$")
        assert verify_password("prof123", encoded)
        assert not verify_password("prof124", encoded)

    def test_salted(self) -> None:
        assert hash_password("same") != hash_password("same")

    def test_malformed_hash(self) -> None:
        assert not verify_password("x", "plaintext")
        assert not verify_password("x", "md5$1$00$00")


class TestUsers:
    """Test suite for user records."""

    def test_email_is_normalised(self, store: InMemoryStore) -> None:
        user = store.create_user(name="  Ada  ", email=" Ada@College.EDU ", password="pw", role="student")

        assert user.email == "ada@college.edu"
        assert user.name == "Ada"
        assert store.find_user_by_email("ADA@college.edu").id == user.id

    def test_duplicate_email(self, store: InMemoryStore, professor: User) -> None:
        with pytest.raises(DuplicateKeyError):
            store.create_user(name="Other", email="PROF1@college.edu", password="x", role="student")

    def test_find_by_role(self, store: InMemoryStore, professor: User) -> None:
        assert store.find_user_by_email("prof1@college.edu", role="professor") is not None
        assert store.find_user_by_email("prof1@college.edu", role="student") is None

    def test_unknown_section_rejected(self, store: InMemoryStore) -> None:
        with pytest.raises(StoreError):
            store.create_user(name="A", email="a@college.edu", password="x", role="student", section_id="nope")
        assert store.count_users() == 0

    def test_returned_records_are_copies(self, store: InMemoryStore, professor: User) -> None:
        copy = store.get_user(professor.id)
        copy.assigned_courses.append("bogus")

        assert store.get_user(professor.id).assigned_courses == []

    def test_password_hash_hidden_from_repr(self, professor: User) -> None:
        assert "pbkdf2" not in repr(professor)


class TestCourses:
    """Test suite for course records."""

    def test_course_links_instructor(self, store: InMemoryStore, professor: User) -> None:
        course = store.create_course(title="Java", course_code="cs301", instructor_id=professor.id)

        assert course.course_code == "CS301"
        assert store.get_user(professor.id).assigned_courses == [course.id]
        assert store.find_course_by_code("Cs301").id == course.id

    def test_unknown_instructor_leaves_no_trace(self, store: InMemoryStore) -> None:
        with pytest.raises(StoreError):
            store.create_course(title="Java", course_code="CS301", instructor_id="ghost")

        assert store.count_courses() == 0

    def test_duplicate_code_leaves_instructor_untouched(self, store: InMemoryStore, professor: User) -> None:
        store.create_course(title="Java", course_code="CS301", instructor_id=professor.id)

        with pytest.raises(DuplicateKeyError):
            store.create_course(title="Java 2", course_code="CS301", instructor_id=professor.id)

        assert len(store.get_user(professor.id).assigned_courses) == 1

    def test_list_limit(self, store: InMemoryStore, professor: User) -> None:
        for index in range(5):
            store.create_course(title=f"C{index}", course_code=f"CS10{index}", instructor_id=professor.id)

        assert len(store.list_courses()) == 5
        assert [c.course_code for c in store.list_courses(limit=2)] == ["CS100", "CS101"]


class TestSections:
    """Test suite for section records."""

    def test_duplicate_triple(self, store: InMemoryStore) -> None:
        store.create_section(name="Section A", program="B.Tech CSE", batch="2024-2028")

        with pytest.raises(DuplicateKeyError):
            store.create_section(name="Section A ", program="B.Tech CSE", batch="2024-2028")

    def test_same_name_other_batch_allowed(self, store: InMemoryStore) -> None:
        store.create_section(name="Section A", program="B.Tech CSE", batch="2024-2028")
        store.create_section(name="Section A", program="B.Tech CSE", batch="2025-2029")

        assert len(store.list_sections()) == 2

    def test_student_joins_section(self, store: InMemoryStore) -> None:
        section = store.create_section(name="Section A", program="B.Tech CSE", batch="2024-2028")

        student = store.create_user(
            name="Bob", email="bob@college.edu", password="x", role="student", section_id=section.id
        )

        assert store.find_section_by_name("Section A").students == [student.id]


class TestConcurrency:
    """Test suite for concurrent writers."""

    @pytest.mark.slow
    def test_parallel_user_creation(self, store: InMemoryStore) -> None:
        section = store.create_section(name="Section A", program="B.Tech CSE", batch="2024-2028")

        def worker(offset: int) -> None:
            for index in range(10):
                store.create_user(
                    name=f"Student {offset}-{index}",
                    email=f"s{offset}-{index}@college.edu",
                    password="x",
                    role="student",
                    section_id=section.id,
                )

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert store.count_users(role="student") == 40
        assert len(store.get_section(section.id).students) == 40


class TestSeed:
    """Test suite for seed_demo_data."""

    def test_seed_populates_once(self, store: InMemoryStore) -> None:
        seed_demo_data(store)
        seed_demo_data(store)

        assert store.count_users() == 7
        assert store.count_courses() == 2
        admin = store.find_user_by_email("admin@college.edu")
        assert admin.role == "admin"
        assert verify_password("admin123", admin.password_hash)
