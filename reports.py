"""
Report lifecycle: creation, author edits, deletion, admin status and upvotes.

Status and counter fields are owned by moderation; authors can only change
the descriptive fields. Upvotes are a per-user flip kept in step with the
upvotedBy set through single-document conditional updates.
"""

import math
from typing import Any, List, Optional

from pymongo import ReturnDocument
from pymongo.database import Database

from accommodations import refresh_risk
from database import create_document, now_utc, serialize, to_object_id
from errors import ForbiddenError, NotFoundError, ValidationError
from logs import get_logger
from schemas import ISSUE_TYPES, REPORT_STATUSES, Report as ReportSchema

logger = get_logger("reports")

MAX_NAME_LENGTH = 200
MAX_DESCRIPTION_LENGTH = 2000
MAX_IMAGES = 5
MAX_PAGE_SIZE = 100


# ---------- Validation ----------

def clean_name(value: Optional[str]) -> str:
    name = value.strip() if isinstance(value, str) else ""
    if not name:
        raise ValidationError("Accommodation name is required")
    if len(name) > MAX_NAME_LENGTH:
        raise ValidationError(f"Accommodation name cannot exceed {MAX_NAME_LENGTH} characters")
    return name


def clean_issue_type(value: Optional[str]) -> str:
    if value not in ISSUE_TYPES:
        raise ValidationError(f"Issue type must be one of: {', '.join(ISSUE_TYPES)}")
    return value


def clean_description(value: Optional[str]) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not text:
        raise ValidationError("Description is required")
    if len(text) > MAX_DESCRIPTION_LENGTH:
        raise ValidationError(f"Description cannot exceed {MAX_DESCRIPTION_LENGTH} characters")
    return text


def clean_images(images: Optional[List[Any]]) -> List[dict]:
    """Keep well-formed {url, publicId} entries, dropping anything else."""
    kept = []
    for image in images or []:
        if not isinstance(image, dict):
            continue
        url, public_id = image.get("url"), image.get("publicId")
        if isinstance(url, str) and url.strip() and isinstance(public_id, str) and public_id.strip():
            kept.append({"url": url.strip(), "publicId": public_id.strip()})
    if len(kept) > MAX_IMAGES:
        raise ValidationError(f"A report can have at most {MAX_IMAGES} images")
    return kept


def present(report: dict, viewer: Optional[dict] = None) -> dict:
    out = serialize(report)
    if viewer is not None:
        out["hasUpvoted"] = viewer["_id"] in report.get("upvotedBy", [])
    return out


# ---------- Reads ----------

def get_report(db: Database, report_id: str) -> dict:
    report = db["report"].find_one({"_id": to_object_id(report_id, "Report")})
    if not report:
        raise NotFoundError("Report not found")
    return report


def list_reports(db: Database, viewer: Optional[dict] = None) -> List[dict]:
    return [present(r, viewer) for r in db["report"].find({}).sort("createdAt", -1)]


def list_my_reports(db: Database, user: dict, page: int = 1, limit: int = 10) -> dict:
    page = max(1, page)
    limit = min(max(1, limit), MAX_PAGE_SIZE)
    query = {"user": user["_id"]}
    total = db["report"].count_documents(query)
    docs = db["report"].find(query).sort("createdAt", -1).skip((page - 1) * limit).limit(limit)
    return {
        "data": [present(r, user) for r in docs],
        "total": total,
        "page": page,
        "pages": math.ceil(total / limit) if total else 0,
    }


# ---------- Mutations ----------

def create_report(db: Database, author: dict, accommodation_name: Optional[str], issue_type: Optional[str],
                  description: Optional[str], images: Optional[List[Any]] = None) -> dict:
    report = ReportSchema(
        accommodationName=clean_name(accommodation_name),
        issueType=clean_issue_type(issue_type),
        description=clean_description(description),
        images=clean_images(images),
        user=author["_id"],
    )
    report_id = create_document("report", report, db)
    refresh_risk(db, report.accommodationName)
    logger.info("report created", extra={"report_id": report_id, "issue_type": report.issueType})
    return present(get_report(db, report_id), author)


def update_report(db: Database, author: dict, report_id: str, fields: dict) -> dict:
    report = get_report(db, report_id)
    if report.get("user") != author["_id"]:
        raise ForbiddenError("Not authorized to update this report")

    updates = {}
    if fields.get("accommodationName") is not None:
        updates["accommodationName"] = clean_name(fields["accommodationName"])
    if fields.get("issueType") is not None:
        updates["issueType"] = clean_issue_type(fields["issueType"])
    if fields.get("description") is not None:
        updates["description"] = clean_description(fields["description"])
    if fields.get("images") is not None:
        updates["images"] = clean_images(fields["images"])

    if updates:
        updates["updatedAt"] = now_utc()
        db["report"].update_one({"_id": report["_id"]}, {"$set": updates})
        refresh_risk(db, report["accommodationName"], updates.get("accommodationName"))
        logger.info("report updated", extra={"report_id": str(report["_id"])})
    return present(get_report(db, report_id), author)


def delete_report(db: Database, actor: dict, report_id: str) -> None:
    report = get_report(db, report_id)
    if report.get("user") != actor["_id"] and actor.get("role") != "admin":
        raise ForbiddenError("Not authorized to delete this report")
    db["counterreport"].delete_many({"originalReport": report["_id"]})
    db["report"].delete_one({"_id": report["_id"]})
    refresh_risk(db, report["accommodationName"])
    logger.info("report deleted", extra={"report_id": str(report["_id"]), "actor_role": actor.get("role")})


def set_status(db: Database, admin: dict, report_id: str, status: Optional[str]) -> dict:
    if admin.get("role") != "admin":
        raise ForbiddenError("Admin access required")
    if status not in REPORT_STATUSES:
        raise ValidationError(f"Status must be one of: {', '.join(REPORT_STATUSES)}")
    report = get_report(db, report_id)
    db["report"].update_one({"_id": report["_id"]}, {"$set": {"status": status, "updatedAt": now_utc()}})
    refresh_risk(db, report["accommodationName"])
    logger.info("report status set", extra={"report_id": str(report["_id"]), "status": status})
    return present(get_report(db, report_id))


def toggle_upvote(db: Database, user: dict, report_id: str) -> dict:
    report = get_report(db, report_id)
    user_id = user["_id"]
    if report.get("user") == user_id:
        raise ForbiddenError("You cannot upvote your own report")

    if user_id in report.get("upvotedBy", []):
        updated = db["report"].find_one_and_update(
            {"_id": report["_id"], "upvotedBy": user_id},
            {"$pull": {"upvotedBy": user_id}, "$inc": {"upvotes": -1}},
            return_document=ReturnDocument.AFTER,
        )
    else:
        updated = db["report"].find_one_and_update(
            {"_id": report["_id"], "upvotedBy": {"$ne": user_id}},
            {"$addToSet": {"upvotedBy": user_id}, "$inc": {"upvotes": 1}},
            return_document=ReturnDocument.AFTER,
        )
    if updated is None:
        # membership changed between the read and the write; report the stored state
        updated = get_report(db, report_id)

    return {"upvotes": updated.get("upvotes", 0), "hasUpvoted": user_id in updated.get("upvotedBy", [])}
