import time
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database

import accommodations
import admin
import auth
import counters
import otp
import reports
from auth import get_current_user, get_optional_user, require_role
from database import db, ensure_indexes, get_db
from errors import install_error_handlers
from logs import bind_request_id, configure_logging, get_logger, reset_request_id
from schemas import (
    AccommodationIn,
    BanUpdate,
    CounterReportIn,
    CounterResolution,
    EmailRequest,
    LoginRequest,
    OccupancyUpdate,
    PasswordChange,
    ProfileUpdate,
    ReportIn,
    ReportStatusUpdate,
    ResetPasswordRequest,
    SignupRequest,
    VerifyEmailRequest,
)
from settings import settings

configure_logging()
logger = get_logger("api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db is None:
        logger.warning("DATABASE_URL not set, running without a database")
    else:
        try:
            ensure_indexes(db)
        except Exception:
            # the API still serves; store errors surface per request
            logger.exception("could not ensure indexes")
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

install_error_handlers(app)

owner_only = require_role("owner")
admin_only = require_role("admin")


@app.middleware("http")
async def request_logging(request: Request, call_next):
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex
    token = bind_request_id(request_id)
    started = time.perf_counter()
    try:
        response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "request",
            extra={
                "method": request.method,
                "path": request.url.path,
                "status": response.status_code,
                "duration_ms": round((time.perf_counter() - started) * 1000, 1),
            },
        )
        return response
    finally:
        reset_request_id(token)


# ---------- Basic routes ----------
@app.get("/")
def root():
    return {"message": f"{settings.app_name} running"}


@app.get("/api/test")
def api_test():
    return {"success": True, "message": "Backend API working"}


@app.get("/test")
def test_database():
    info = {
        "backend": "running",
        "database": "disconnected",
        "collections": [],
    }
    try:
        if db is not None:
            info["collections"] = db.list_collection_names()[:10]
            info["database"] = "connected"
    except Exception as e:
        info["database"] = f"error: {str(e)[:80]}"
    return info


# ---------- Auth endpoints ----------
@app.post("/api/auth/signup", status_code=201)
def signup(req: SignupRequest, database: Database = Depends(get_db)):
    user = auth.signup(database, req.name, req.email, req.password, req.role)
    return {"success": True, "message": "User registered successfully", "data": user}


@app.post("/api/auth/login")
def login(req: LoginRequest, database: Database = Depends(get_db)):
    result = auth.login(database, req.email, req.password)
    return {"success": True, **result}


@app.get("/api/auth/me")
def me(user=Depends(get_current_user)):
    return {"success": True, "data": auth.public_user(user)}


# ---------- Profile endpoints ----------
@app.get("/api/profile")
def get_profile(user=Depends(get_current_user), database: Database = Depends(get_db)):
    return {"success": True, "data": auth.get_profile(database, user)}


@app.put("/api/profile")
def update_profile(body: ProfileUpdate, user=Depends(get_current_user), database: Database = Depends(get_db)):
    return {"success": True, "data": auth.update_profile(database, user, body.name)}


@app.put("/api/profile/password")
def change_password(body: PasswordChange, user=Depends(get_current_user), database: Database = Depends(get_db)):
    auth.change_password(database, user, body.currentPassword, body.newPassword)
    return {"success": True, "message": "Password updated successfully"}


# ---------- OTP endpoints ----------
@app.post("/api/otp/send-verification")
def send_verification(body: EmailRequest, database: Database = Depends(get_db)):
    otp.send_verification(database, body.email)
    return {"success": True, "message": "Verification code sent"}


@app.post("/api/otp/verify-email")
def verify_email(body: VerifyEmailRequest, database: Database = Depends(get_db)):
    otp.verify_email(database, body.email, body.otp)
    return {"success": True, "message": "Email verified successfully"}


@app.post("/api/otp/forgot-password")
def forgot_password(body: EmailRequest, database: Database = Depends(get_db)):
    otp.forgot_password(database, body.email)
    return {"success": True, "message": "If the email is registered, a reset code has been sent"}


@app.post("/api/otp/reset-password")
def reset_password(body: ResetPasswordRequest, database: Database = Depends(get_db)):
    otp.reset_password(database, body.email, body.otp, body.newPassword)
    return {"success": True, "message": "Password reset successfully"}


# ---------- Report endpoints ----------
@app.post("/api/reports", status_code=201)
def create_report(body: ReportIn, user=Depends(get_current_user), database: Database = Depends(get_db)):
    report = reports.create_report(database, user, body.accommodationName, body.issueType, body.description, body.images)
    return {"success": True, "data": report}


@app.get("/api/reports/my-reports")
def my_reports(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=reports.MAX_PAGE_SIZE),
    user=Depends(get_current_user),
    database: Database = Depends(get_db),
):
    return {"success": True, **reports.list_my_reports(database, user, page, limit)}


@app.get("/api/reports")
def list_reports(viewer=Depends(get_optional_user), database: Database = Depends(get_db)):
    return {"success": True, "data": reports.list_reports(database, viewer)}


@app.get("/api/reports/{report_id}")
def get_report(report_id: str, viewer=Depends(get_optional_user), database: Database = Depends(get_db)):
    return {"success": True, "data": reports.present(reports.get_report(database, report_id), viewer)}


@app.put("/api/reports/{report_id}")
def update_report(report_id: str, body: ReportIn, user=Depends(get_current_user), database: Database = Depends(get_db)):
    report = reports.update_report(database, user, report_id, body.model_dump(exclude_none=True))
    return {"success": True, "data": report}


@app.delete("/api/reports/{report_id}")
def delete_report(report_id: str, user=Depends(get_current_user), database: Database = Depends(get_db)):
    reports.delete_report(database, user, report_id)
    return {"success": True, "message": "Report deleted"}


@app.post("/api/reports/{report_id}/upvote")
def upvote_report(report_id: str, user=Depends(get_current_user), database: Database = Depends(get_db)):
    return {"success": True, "data": reports.toggle_upvote(database, user, report_id)}


# ---------- Accommodation endpoints ----------
@app.get("/api/accommodations")
def list_accommodations(city: Optional[str] = None, q: Optional[str] = None, database: Database = Depends(get_db)):
    return {"success": True, "data": accommodations.list_accommodations(database, city, q)}


@app.get("/api/accommodations/{acc_id}")
def get_accommodation(acc_id: str, database: Database = Depends(get_db)):
    return {"success": True, "data": accommodations.get_accommodation(database, acc_id)}


# ---------- Owner endpoints ----------
@app.get("/api/owner/stats")
def owner_stats(user=Depends(owner_only), database: Database = Depends(get_db)):
    return {"success": True, "data": accommodations.owner_stats(database, user)}


@app.get("/api/owner/accommodations")
def owner_accommodations(user=Depends(owner_only), database: Database = Depends(get_db)):
    return {"success": True, "data": accommodations.list_owner_accommodations(database, user)}


@app.post("/api/owner/accommodations", status_code=201)
def create_accommodation(body: AccommodationIn, user=Depends(owner_only), database: Database = Depends(get_db)):
    return {"success": True, "data": accommodations.create_accommodation(database, user, body.model_dump())}


@app.put("/api/owner/accommodations/{acc_id}")
def update_accommodation(acc_id: str, body: AccommodationIn, user=Depends(owner_only), database: Database = Depends(get_db)):
    acc = accommodations.update_accommodation(database, user, acc_id, body.model_dump(exclude_none=True))
    return {"success": True, "data": acc}


@app.delete("/api/owner/accommodations/{acc_id}")
def delete_accommodation(acc_id: str, user=Depends(owner_only), database: Database = Depends(get_db)):
    accommodations.delete_accommodation(database, user, acc_id)
    return {"success": True, "message": "Accommodation deleted"}


@app.put("/api/owner/accommodations/{acc_id}/occupancy")
def update_occupancy(acc_id: str, body: OccupancyUpdate, user=Depends(owner_only), database: Database = Depends(get_db)):
    return {"success": True, "data": accommodations.update_occupancy(database, user, acc_id, body.occupiedRooms)}


@app.get("/api/owner/reports")
def owner_reports(user=Depends(owner_only), database: Database = Depends(get_db)):
    return {"success": True, "data": accommodations.owner_reports(database, user)}


@app.get("/api/owner/counter-reports")
def owner_counter_reports(user=Depends(owner_only), database: Database = Depends(get_db)):
    return {"success": True, "data": counters.list_owner_counters(database, user)}


@app.post("/api/owner/counter-report", status_code=201)
def submit_counter(body: CounterReportIn, user=Depends(owner_only), database: Database = Depends(get_db)):
    counter = counters.submit_counter(
        database,
        user,
        body.reportId,
        body.reason,
        body.explanation,
        body.evidenceUrls,
        body.evidenceDescription,
    )
    return {"success": True, "data": counter}


# ---------- Admin endpoints ----------
@app.get("/api/admin/stats")
def admin_stats(user=Depends(admin_only), database: Database = Depends(get_db)):
    return {"success": True, "data": admin.stats(database)}


@app.get("/api/admin/reports")
def admin_reports(status: Optional[str] = None, user=Depends(admin_only), database: Database = Depends(get_db)):
    return {"success": True, "data": admin.list_reports(database, status)}


@app.put("/api/admin/reports/{report_id}/status")
def set_report_status(report_id: str, body: ReportStatusUpdate, user=Depends(admin_only), database: Database = Depends(get_db)):
    return {"success": True, "data": reports.set_status(database, user, report_id, body.status)}


@app.delete("/api/admin/reports/{report_id}")
def admin_delete_report(report_id: str, user=Depends(admin_only), database: Database = Depends(get_db)):
    reports.delete_report(database, user, report_id)
    return {"success": True, "message": "Report deleted"}


@app.get("/api/admin/users")
def admin_users(user=Depends(admin_only), database: Database = Depends(get_db)):
    return {"success": True, "data": admin.list_users(database)}


@app.put("/api/admin/users/{user_id}/ban")
def ban_user(user_id: str, body: BanUpdate, user=Depends(admin_only), database: Database = Depends(get_db)):
    updated = admin.set_ban(database, user, user_id, body.isBanned)
    message = "User banned" if body.isBanned else "User unbanned"
    return {"success": True, "message": message, "data": updated}


@app.get("/api/admin/counter-reports")
def admin_counter_reports(status: Optional[str] = None, user=Depends(admin_only), database: Database = Depends(get_db)):
    return {"success": True, "data": counters.list_all_counters(database, status)}


@app.put("/api/admin/counter-reports/{counter_id}")
def resolve_counter(counter_id: str, body: CounterResolution, user=Depends(admin_only), database: Database = Depends(get_db)):
    counter = counters.resolve_counter(database, user, counter_id, body.status, body.adminNotes)
    return {"success": True, "data": counter}
