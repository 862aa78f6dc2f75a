"""
One-time codes for email verification and password reset.

Codes live in the otp collection with a TTL index on expiresAt; they are
also checked for expiry here and deleted once used or re-issued.
"""

import secrets
import smtplib
from datetime import datetime, timedelta, timezone
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from pymongo.database import Database

from auth import check_new_password, normalize_email, set_password
from database import create_document, now_utc
from errors import ValidationError
from logs import get_logger
from schemas import Otp as OtpSchema
from settings import settings

logger = get_logger("otp")

CODE_LENGTH = 6

SUBJECTS = {
    "verification": "Verify Your Email - SafeStay",
    "password-reset": "Reset Your Password - SafeStay",
}


def generate_code(length: int = CODE_LENGTH) -> str:
    """Random numeric code without a leading zero"""
    return str(secrets.randbelow(9 * 10 ** (length - 1)) + 10 ** (length - 1))


def send_otp_email(to: str, code: str, otp_type: str) -> bool:
    """
    Deliver a code by SMTP.

    Returns False without raising when SMTP is not configured or delivery
    fails; the code stays valid either way.
    """
    if not settings.smtp_host or not settings.smtp_user or not settings.smtp_password:
        logger.warning("SMTP not configured, email not sent", extra={"to": to, "code_type": otp_type})
        return False

    heading = "Email Verification" if otp_type == "verification" else "Password Reset"
    msg = MIMEMultipart()
    msg["From"] = settings.smtp_from_email or settings.smtp_user
    msg["To"] = to
    msg["Subject"] = SUBJECTS[otp_type]
    body = f"""
    <html>
      <body>
        <h2>{heading}</h2>
        <p>Your code is: <strong style="font-size: 24px; letter-spacing: 6px;">{code}</strong></p>
        <p>This code expires in {settings.otp_expire_minutes} minutes.</p>
        <p>If you did not request this, please ignore this email.</p>
      </body>
    </html>
    """
    msg.attach(MIMEText(body, "html"))
    try:
        with smtplib.SMTP(settings.smtp_host, settings.smtp_port or 587) as server:
            server.starttls()
            server.login(settings.smtp_user, settings.smtp_password)
            server.send_message(msg)
    except (smtplib.SMTPException, OSError) as e:
        logger.error("otp email failed", extra={"to": to, "code_type": otp_type, "error": str(e)})
        return False
    logger.info("otp email sent", extra={"to": to, "code_type": otp_type})
    return True


def issue_code(db: Database, email: str, otp_type: str) -> str:
    db["otp"].delete_many({"email": email, "type": otp_type})
    code = generate_code()
    record = OtpSchema(
        email=email,
        otp=code,
        type=otp_type,
        expiresAt=now_utc() + timedelta(minutes=settings.otp_expire_minutes),
    )
    create_document("otp", record, db)
    send_otp_email(email, code, otp_type)
    return code


def _as_utc(value: datetime) -> datetime:
    # pymongo hands back naive UTC datetimes unless the client is tz aware
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


def consume_code(db: Database, email: str, code: Optional[str], otp_type: str) -> None:
    if not code:
        raise ValidationError("Code is required")
    record = db["otp"].find_one({"email": email, "type": otp_type, "otp": code.strip()})
    if not record or _as_utc(record["expiresAt"]) < now_utc():
        raise ValidationError("Invalid or expired code")
    db["otp"].delete_many({"email": email, "type": otp_type})


def send_verification(db: Database, email: Optional[str]) -> None:
    email = normalize_email(email)
    if not email:
        raise ValidationError("Email is required")
    user = db["user"].find_one({"email": email})
    if not user:
        raise ValidationError("No account found for this email")
    if user.get("isVerified"):
        raise ValidationError("Email is already verified")
    issue_code(db, email, "verification")


def verify_email(db: Database, email: Optional[str], code: Optional[str]) -> None:
    email = normalize_email(email)
    if not email:
        raise ValidationError("Email is required")
    consume_code(db, email, code, "verification")
    db["user"].update_one({"email": email}, {"$set": {"isVerified": True, "updatedAt": now_utc()}})
    logger.info("email verified")


def forgot_password(db: Database, email: Optional[str]) -> None:
    email = normalize_email(email)
    if not email:
        raise ValidationError("Email is required")
    if not db["user"].find_one({"email": email}):
        # same answer as for a known address
        logger.info("password reset requested for unknown email")
        return
    issue_code(db, email, "password-reset")


def reset_password(db: Database, email: Optional[str], code: Optional[str], new_password: Optional[str]) -> None:
    email = normalize_email(email)
    if not email:
        raise ValidationError("Email is required")
    check_new_password(new_password)
    user = db["user"].find_one({"email": email})
    if not user:
        raise ValidationError("Invalid or expired code")
    consume_code(db, email, code, "password-reset")
    set_password(db, user["_id"], new_password)
    logger.info("password reset", extra={"user_id": str(user["_id"])})
