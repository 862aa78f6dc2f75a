import logging
from datetime import timedelta

import pytest

import auth
import otp
from conftest import PASSWORD
from database import now_utc
from errors import ConflictError, ForbiddenError, UnauthorizedError, ValidationError


def test_signup_and_login(db):
    user = auth.signup(db, "Asha", "  Asha@Example.com ", "hunter22", "owner")
    assert user["email"] == "asha@example.com"
    assert user["role"] == "owner"
    assert "password" not in user

    result = auth.login(db, "ASHA@example.com", "hunter22")
    assert result["user"]["_id"] == user["_id"]
    resolved = auth.current_user(result["token"], db)
    assert str(resolved["_id"]) == user["_id"]


def test_signup_rules(db):
    auth.signup(db, "Asha", "asha@example.com", "hunter22")
    with pytest.raises(ConflictError):
        auth.signup(db, "Asha 2", "ASHA@example.com", "hunter22")
    with pytest.raises(ValidationError):
        auth.signup(db, "", "x@example.com", "hunter22")
    with pytest.raises(ValidationError):
        auth.signup(db, "Root", "root@example.com", "hunter22", "admin")
    with pytest.raises(ValidationError):
        auth.signup(db, "Short", "short@example.com", "abc")
    with pytest.raises(ValidationError):
        auth.signup(db, "Bad", "not-an-email", "hunter22")


def test_signup_defaults_to_student(db):
    assert auth.signup(db, "Ravi", "ravi@example.com", "hunter22")["role"] == "student"


def test_login_failures(db, student, make_user):
    with pytest.raises(UnauthorizedError):
        auth.login(db, student["email"], "wrong-pass")
    with pytest.raises(UnauthorizedError):
        auth.login(db, "nobody@example.com", PASSWORD)
    banned = make_user("student", isBanned=True)
    with pytest.raises(ForbiddenError):
        auth.login(db, banned["email"], PASSWORD)


def test_current_user_rejects_bad_tokens(db, student):
    with pytest.raises(UnauthorizedError):
        auth.current_user(None, db)
    with pytest.raises(UnauthorizedError):
        auth.current_user("garbage", db)
    ghost = auth.create_token("000000000000000000000000", "student")
    with pytest.raises(UnauthorizedError):
        auth.current_user(ghost, db)


def test_banned_token_is_forbidden(db, make_user):
    user = make_user("student", isBanned=True)
    with pytest.raises(ForbiddenError):
        auth.current_user(auth.create_token(str(user["_id"]), "student"), db)


def test_profile_and_password_change(db, student):
    profile = auth.get_profile(db, student)
    assert profile["totalReports"] == 0
    assert profile["totalUpvotes"] == 0
    assert auth.update_profile(db, student, "  New Name ")["name"] == "New Name"

    with pytest.raises(ValidationError):
        auth.change_password(db, student, "wrong-pass", "brandnew1")
    auth.change_password(db, student, PASSWORD, "brandnew1")
    assert auth.login(db, student["email"], "brandnew1")["token"]


def test_generate_code_shape():
    for _ in range(50):
        code = otp.generate_code()
        assert len(code) == 6
        assert code.isdigit()


def test_send_otp_email_without_smtp_returns_false():
    assert otp.send_otp_email("a@example.com", "123456", "verification") is False


def test_verify_email_flow(db, student):
    otp.send_verification(db, student["email"])
    first = db["otp"].find_one({"email": student["email"]})["otp"]
    otp.send_verification(db, student["email"])
    records = list(db["otp"].find({"email": student["email"]}))
    assert len(records) == 1
    code = records[0]["otp"]

    if first != code:
        with pytest.raises(ValidationError):
            otp.verify_email(db, student["email"], first)
    otp.verify_email(db, student["email"], code)
    assert db["user"].find_one({"_id": student["_id"]})["isVerified"] is True
    assert db["otp"].count_documents({}) == 0
    with pytest.raises(ValidationError):
        otp.verify_email(db, student["email"], code)
    with pytest.raises(ValidationError):
        otp.send_verification(db, student["email"])


def test_expired_code_rejected(db, student):
    otp.send_verification(db, student["email"])
    code = db["otp"].find_one({})["otp"]
    db["otp"].update_many({}, {"$set": {"expiresAt": now_utc() - timedelta(minutes=1)}})
    with pytest.raises(ValidationError):
        otp.verify_email(db, student["email"], code)


def test_password_reset_flow(db, student):
    otp.forgot_password(db, student["email"])
    code = db["otp"].find_one({"type": "password-reset"})["otp"]
    with pytest.raises(ValidationError):
        otp.reset_password(db, student["email"], code, "abc")
    otp.reset_password(db, student["email"], code, "resetpass1")
    assert auth.login(db, student["email"], "resetpass1")["token"]
    with pytest.raises(ValidationError):
        otp.reset_password(db, student["email"], code, "another11")


def test_forgot_password_unknown_email_is_silent(db):
    otp.forgot_password(db, "nobody@example.com")
    assert db["otp"].count_documents({}) == 0


def test_send_otp_email_failure_is_logged(monkeypatch, caplog):
    monkeypatch.setattr(otp.settings, "smtp_host", "smtp.example.com")
    monkeypatch.setattr(otp.settings, "smtp_user", "mailer")
    monkeypatch.setattr(otp.settings, "smtp_password", "pw")

    def refuse(*args, **kwargs):
        raise OSError("connection refused")

    monkeypatch.setattr(otp.smtplib, "SMTP", refuse)
    with caplog.at_level(logging.ERROR, logger="safestay.otp"):
        assert otp.send_otp_email("a@example.com", "123456", "password-reset") is False

    record = next(r for r in caplog.records if r.name == "safestay.otp")
    assert record.getMessage() == "otp email failed"
    assert record.code_type == "password-reset"
    assert record.error == "connection refused"
