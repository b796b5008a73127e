"""Unit tests for StudentRepository."""

from datetime import timedelta

import pytest

from enrollment_manager.store import (
    Registration,
    RegistrationRepository,
    StudentNotFoundError,
    StudentRepository,
    normalize_email,
    normalize_phone,
)


def _register(
    registrations: RegistrationRepository,
    session_id: str,
    student_id: str,
    reference: str,
    status: str = "pending",
    **extra,
) -> Registration:
    return registrations.add(
        Registration(
            session_id=session_id,
            student_id=student_id,
            reference=reference,
            status=status,
            **extra,
        )
    )


@pytest.mark.unit
class TestNormalize:
    """Tests for contact normalization."""

    def test_email_trimmed_and_lowercased(self) -> None:
        assert normalize_email("  Salma.B@Example.MA ") == "salma.b@example.ma"
        assert normalize_email(None) == ""

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("06 12 34 56 78", "+212612345678"),
            ("0712-345-678", "+212712345678"),
            ("212612345678", "+212612345678"),
            ("+212 6 12 34 56 78", "+212612345678"),
            ("+33 6 12 34 56 78", "+33612345678"),
            ("", ""),
        ],
    )
    def test_phone(self, raw: str, expected: str) -> None:
        assert normalize_phone(raw) == expected


@pytest.mark.unit
class TestUpsert:
    """Tests for upsert and find_by_contact."""

    def test_creates_student(self, students: StudentRepository) -> None:
        student_id = students.upsert(
            {"full_name": "Salma B", "email": "SALMA@example.ma", "phone": "0612345678"}
        )

        student = students.get(student_id)
        assert student.email == "salma@example.ma"
        assert student.phone == "+212612345678"

    def test_matches_by_email_or_phone(self, students: StudentRepository) -> None:
        first = students.upsert(
            {"full_name": "Salma B", "email": "salma@example.ma", "phone": "0612345678"}
        )

        by_email = students.upsert({"full_name": "Salma B", "email": "salma@example.ma"})
        by_phone = students.upsert(
            {"full_name": "Salma B", "email": "other@example.ma", "phone": "+212612345678"}
        )

        assert by_email == first
        assert by_phone == first
        assert students.count() == 1

    def test_email_match_preferred(self, students: StudentRepository) -> None:
        by_mail = students.upsert({"full_name": "A", "email": "a@example.ma"})
        students.upsert({"full_name": "B", "phone": "0611111111"})

        found = students.find_by_contact("a@example.ma", "0611111111")

        assert found is not None
        assert found.id == by_mail

    def test_empty_values_never_overwrite(self, students: StudentRepository) -> None:
        student_id = students.upsert(
            {"full_name": "Salma B", "email": "salma@example.ma", "cin": "AB1", "city": "Fes"}
        )

        students.upsert({"full_name": "Salma Bennani", "email": "salma@example.ma", "city": ""})

        student = students.get(student_id)
        assert student.full_name == "Salma Bennani"
        assert student.cin == "AB1"
        assert student.city == "Fes"

    def test_contact_owned_by_other_student_not_moved(self, students: StudentRepository) -> None:
        salma = students.upsert({"full_name": "Salma", "email": "salma@example.ma"})
        omar = students.upsert({"full_name": "Omar", "phone": "0622222222"})

        # Email matches Salma, phone belongs to Omar
        result = students.upsert(
            {"full_name": "Salma", "email": "salma@example.ma", "phone": "0622222222"}
        )

        assert result == salma
        assert students.get(salma).phone is None
        assert students.get(omar).phone == "+212622222222"

    def test_find_without_contact_returns_none(self, students: StudentRepository) -> None:
        assert students.find_by_contact("", None) is None

    def test_get_not_found(self, students: StudentRepository) -> None:
        with pytest.raises(StudentNotFoundError):
            students.get("missing")


@pytest.mark.unit
class TestList:
    """Tests for list and count."""

    def test_search(self, students: StudentRepository) -> None:
        students.upsert({"full_name": "Salma Bennani", "email": "salma@example.ma"})
        students.upsert({"full_name": "Omar Alaoui", "email": "omar@example.ma"})

        assert [s.full_name for s in students.list(search="benn")] == ["Salma Bennani"]
        assert len(students.list()) == 2
        assert students.count() == 2

    def test_search_percent_is_literal(self, students: StudentRepository) -> None:
        students.upsert({"full_name": "Salma Bennani", "email": "salma@example.ma"})
        students.upsert({"full_name": "Omar 100% Alaoui", "email": "omar@example.ma"})

        assert [s.full_name for s in students.list(search="%")] == ["Omar 100% Alaoui"]


@pytest.mark.unit
class TestMerge:
    """Tests for merge."""

    def test_reassigns_and_deletes_duplicates(
        self,
        students: StudentRepository,
        registrations: RegistrationRepository,
        make_session,
    ) -> None:
        session_a = make_session(title="A")
        session_b = make_session(title="B")
        primary = students.upsert({"full_name": "Salma", "email": "salma@example.ma"})
        duplicate = students.upsert({"full_name": "Salma B", "email": "salma.b@example.ma"})
        _register(registrations, session_a.id, primary, "R-1", status="paid")
        moved = _register(registrations, session_b.id, duplicate, "R-2", status="confirmed")

        merged = students.merge(primary, [duplicate])

        assert merged == 1
        assert registrations.get(moved.id).student_id == primary
        with pytest.raises(StudentNotFoundError):
            students.get(duplicate)

    def test_stronger_registration_survives_conflict(
        self,
        students: StudentRepository,
        registrations: RegistrationRepository,
        make_session,
        clock,
    ) -> None:
        session = make_session()
        primary = students.upsert({"full_name": "Salma", "email": "salma@example.ma"})
        duplicate = students.upsert({"full_name": "Salma", "email": "s.b@example.ma"})
        weak = _register(
            registrations,
            session.id,
            primary,
            "R-1",
            seat_lock_until=clock.now + timedelta(minutes=5),
        )
        strong = _register(registrations, session.id, duplicate, "R-2", status="paid")

        students.merge(primary, [duplicate])

        rows, total = registrations.list_detailed(session_id=session.id)
        assert total == 1
        assert rows[0][0].id == strong.id
        assert rows[0][0].student_id == primary
        assert registrations.find_by_reference(weak.reference) is None

    def test_primary_kept_when_not_weaker(
        self,
        students: StudentRepository,
        registrations: RegistrationRepository,
        make_session,
    ) -> None:
        session = make_session()
        primary = students.upsert({"full_name": "Salma", "email": "salma@example.ma"})
        duplicate = students.upsert({"full_name": "Salma", "email": "s.b@example.ma"})
        kept = _register(registrations, session.id, primary, "R-1", status="confirmed")
        _register(registrations, session.id, duplicate, "R-2", status="canceled")

        students.merge(primary, [duplicate])

        assert registrations.find_by_session_student(session.id, primary).id == kept.id
        assert registrations.find_by_reference("R-2") is None

    def test_ignores_primary_in_duplicates(self, students: StudentRepository) -> None:
        primary = students.upsert({"full_name": "Salma", "email": "salma@example.ma"})

        assert students.merge(primary, [primary]) == 0
        assert students.get(primary).id == primary

    def test_missing_primary_raises(self, students: StudentRepository) -> None:
        duplicate = students.upsert({"full_name": "Salma", "email": "salma@example.ma"})

        with pytest.raises(StudentNotFoundError):
            students.merge("missing", [duplicate])
