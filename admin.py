"""
Admin moderation: read projections over reports/users/counters and user bans.

Projections are recomputed from the store on every call.
"""

from typing import List, Optional

from pymongo.database import Database

from auth import public_user
from database import now_utc, serialize, to_object_id
from errors import ForbiddenError, NotFoundError, ValidationError
from logs import get_logger
from schemas import REPORT_STATUSES

logger = get_logger("admin")


def stats(db: Database) -> dict:
    by_status = {s: 0 for s in REPORT_STATUSES}
    for row in db["report"].aggregate([{"$group": {"_id": "$status", "count": {"$sum": 1}}}]):
        if row["_id"] in by_status:
            by_status[row["_id"]] = row["count"]
    issue_stats = list(db["report"].aggregate([
        {"$group": {"_id": "$issueType", "count": {"$sum": 1}}},
        {"$sort": {"count": -1, "_id": 1}},
    ]))
    return {
        "totalReports": db["report"].count_documents({}),
        "pendingReports": by_status["pending"],
        "approvedReports": by_status["approved"],
        "rejectedReports": by_status["rejected"],
        "totalUsers": db["user"].count_documents({}),
        "bannedUsers": db["user"].count_documents({"isBanned": True}),
        "pendingCounters": db["counterreport"].count_documents({"status": "pending"}),
        "issueStats": issue_stats,
    }


def list_reports(db: Database, status: Optional[str] = None) -> List[dict]:
    if status is not None and status not in REPORT_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(REPORT_STATUSES)}")
    query = {"status": status} if status else {}
    reports = list(db["report"].find(query).sort("createdAt", -1))
    author_ids = list({r["user"] for r in reports if r.get("user") is not None})
    authors = {
        u["_id"]: {"name": u.get("name"), "email": u.get("email")}
        for u in db["user"].find({"_id": {"$in": author_ids}}, {"name": 1, "email": 1})
    }
    out = []
    for report in reports:
        item = serialize(report)
        item["user"] = authors.get(report.get("user"))
        out.append(item)
    return out


def list_users(db: Database) -> List[dict]:
    return [public_user(u) for u in db["user"].find({}).sort("createdAt", -1)]


def set_ban(db: Database, admin: dict, user_id: str, is_banned: bool) -> dict:
    if admin.get("role") != "admin":
        raise ForbiddenError("Admin access required")
    user = db["user"].find_one({"_id": to_object_id(user_id, "User")})
    if not user:
        raise NotFoundError("User not found")
    if user.get("role") == "admin":
        raise ForbiddenError("Admin accounts cannot be banned")
    db["user"].update_one({"_id": user["_id"]}, {"$set": {"isBanned": bool(is_banned), "updatedAt": now_utc()}})
    logger.info("user ban updated", extra={"target_id": str(user["_id"]), "banned": bool(is_banned)})
    return public_user(db["user"].find_one({"_id": user["_id"]}))
