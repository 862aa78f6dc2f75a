import random

import pytest

import reports
from errors import ForbiddenError, NotFoundError, ValidationError


def _report(db, author, name="Sunrise PG", issue="Security", **kwargs):
    return reports.create_report(db, author, name, issue, kwargs.pop("description", "Broken lock on main gate"), **kwargs)


def test_create_report_defaults(db, student):
    report = _report(db, student)
    assert report["status"] == "pending"
    assert report["counterStatus"] == "none"
    assert report["isCountered"] is False
    assert report["upvotes"] == 0
    assert report["upvotedBy"] == []
    assert report["user"] == str(student["_id"])
    assert report["hasUpvoted"] is False


def test_create_report_trims_fields(db, student):
    report = _report(db, student, name="  Sunrise PG  ", description="  leaking tap  ")
    assert report["accommodationName"] == "Sunrise PG"
    assert report["description"] == "leaking tap"


@pytest.mark.parametrize(
    "name,issue,description",
    [
        ("", "Security", "desc"),
        ("   ", "Security", "desc"),
        (None, "Security", "desc"),
        ("x" * 201, "Security", "desc"),
        ("Sunrise PG", "Noise", "desc"),
        ("Sunrise PG", None, "desc"),
        ("Sunrise PG", "Security", ""),
        ("Sunrise PG", "Security", "d" * 2001),
    ],
)
def test_create_report_rejects_invalid_fields(db, student, name, issue, description):
    with pytest.raises(ValidationError):
        reports.create_report(db, student, name, issue, description)
    assert db["report"].count_documents({}) == 0


def test_create_report_accepts_length_limits(db, student):
    report = reports.create_report(db, student, "n" * 200, "Hygiene", "d" * 2000)
    assert len(report["accommodationName"]) == 200
    assert len(report["description"]) == 2000


def test_malformed_images_are_dropped(db, student):
    images = [
        {"url": "https://cdn.example.com/a.jpg", "publicId": "a"},
        {"url": "https://cdn.example.com/b.jpg"},
        {"publicId": "c"},
        "https://cdn.example.com/d.jpg",
        {"url": "", "publicId": "e"},
        {"url": 5, "publicId": "f"},
    ]
    report = _report(db, student, images=images)
    assert report["images"] == [{"url": "https://cdn.example.com/a.jpg", "publicId": "a"}]


def test_more_than_five_images_rejected(db, student):
    images = [{"url": f"https://cdn.example.com/{i}.jpg", "publicId": str(i)} for i in range(6)]
    with pytest.raises(ValidationError):
        _report(db, student, images=images)


def test_update_report_by_author(db, student):
    report = _report(db, student)
    updated = reports.update_report(db, student, report["_id"], {"description": "Lock fixed but camera broken", "issueType": "Infrastructure"})
    assert updated["description"] == "Lock fixed but camera broken"
    assert updated["issueType"] == "Infrastructure"


def test_update_report_ignores_moderation_fields(db, student):
    report = _report(db, student)
    updated = reports.update_report(
        db,
        student,
        report["_id"],
        {"status": "approved", "counterStatus": "accepted", "upvotes": 40, "isCountered": True},
    )
    assert updated["status"] == "pending"
    assert updated["counterStatus"] == "none"
    assert updated["upvotes"] == 0
    assert updated["isCountered"] is False


def test_update_report_forbidden_for_non_author(db, student, other_student, admin_user):
    report = _report(db, student)
    with pytest.raises(ForbiddenError):
        reports.update_report(db, other_student, report["_id"], {"description": "hijack"})
    with pytest.raises(ForbiddenError):
        reports.update_report(db, admin_user, report["_id"], {"description": "hijack"})


def test_update_report_validates_fields(db, student):
    report = _report(db, student)
    with pytest.raises(ValidationError):
        reports.update_report(db, student, report["_id"], {"issueType": "Noise"})


def test_delete_report_by_author_or_admin(db, student, other_student, admin_user):
    first = _report(db, student)
    second = _report(db, student)
    with pytest.raises(ForbiddenError):
        reports.delete_report(db, other_student, first["_id"])
    reports.delete_report(db, student, first["_id"])
    reports.delete_report(db, admin_user, second["_id"])
    assert db["report"].count_documents({}) == 0


def test_missing_report_is_not_found(db, student):
    with pytest.raises(NotFoundError):
        reports.get_report(db, "000000000000000000000000")
    with pytest.raises(NotFoundError):
        reports.get_report(db, "not-an-id")


def test_set_status_admin_only(db, student, admin_user):
    report = _report(db, student)
    with pytest.raises(ForbiddenError):
        reports.set_status(db, student, report["_id"], "approved")
    with pytest.raises(ValidationError):
        reports.set_status(db, admin_user, report["_id"], "archived")
    updated = reports.set_status(db, admin_user, report["_id"], "approved")
    assert updated["status"] == "approved"


def test_upvote_toggles(db, student, other_student):
    report = _report(db, student)
    first = reports.toggle_upvote(db, other_student, report["_id"])
    assert first == {"upvotes": 1, "hasUpvoted": True}
    second = reports.toggle_upvote(db, other_student, report["_id"])
    assert second == {"upvotes": 0, "hasUpvoted": False}


def test_self_upvote_forbidden(db, student):
    report = _report(db, student)
    with pytest.raises(ForbiddenError):
        reports.toggle_upvote(db, student, report["_id"])
    stored = reports.get_report(db, report["_id"])
    assert stored["upvotes"] == 0
    assert stored["upvotedBy"] == []


def test_upvote_count_matches_voters(db, make_user):
    author = make_user("student")
    voters = [make_user("student") for _ in range(5)]
    report = _report(db, author)
    rng = random.Random(7)
    for _ in range(60):
        reports.toggle_upvote(db, rng.choice(voters), report["_id"])
        stored = reports.get_report(db, report["_id"])
        assert stored["upvotes"] == len(stored["upvotedBy"])
        assert len(set(stored["upvotedBy"])) == len(stored["upvotedBy"])
        assert author["_id"] not in stored["upvotedBy"]
        assert stored["upvotes"] >= 0


def test_list_my_reports_paginates(db, student, other_student):
    for i in range(12):
        _report(db, student, description=f"issue {i}")
    _report(db, other_student)
    page = reports.list_my_reports(db, student, page=2, limit=5)
    assert page["total"] == 12
    assert page["pages"] == 3
    assert len(page["data"]) == 5
    assert all(r["user"] == str(student["_id"]) for r in page["data"])
    last = reports.list_my_reports(db, student, page=3, limit=5)
    assert len(last["data"]) == 2


def test_list_my_reports_empty(db, student):
    assert reports.list_my_reports(db, student) == {"data": [], "total": 0, "page": 1, "pages": 0}
