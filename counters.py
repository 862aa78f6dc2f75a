"""
Owner disputes of reports ("counter reports") and their admin resolution.

A report can be countered at most once. Resolving a counter is final: an
accepted counter rejects the original report, a rejected one leaves the
report's status as it was. Either way the report's counterStatus mirrors
the decision.
"""

from typing import List, Optional

from pymongo.database import Database
from pymongo.errors import DuplicateKeyError

from accommodations import refresh_risk
from database import create_document, now_utc, serialize, to_object_id
from errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from logs import get_logger
from reports import get_report
from schemas import COUNTER_DECISIONS, COUNTER_REASONS, Counterreport as CounterSchema

logger = get_logger("counters")


def _present(db: Database, counter: dict) -> dict:
    out = serialize(counter)
    report = db["report"].find_one({"_id": counter.get("originalReport")})
    acc = db["accommodation"].find_one({"_id": counter.get("accommodation")}, {"name": 1})
    out["originalReport"] = serialize(report) if report else None
    out["accommodation"] = {"_id": str(acc["_id"]), "name": acc["name"]} if acc else None
    return out


def get_counter(db: Database, counter_id: str) -> dict:
    counter = db["counterreport"].find_one({"_id": to_object_id(counter_id, "Counter report")})
    if not counter:
        raise NotFoundError("Counter report not found")
    return counter


def submit_counter(db: Database, owner: dict, report_id: Optional[str], reason: Optional[str],
                   explanation: Optional[str], evidence_urls: Optional[List[str]] = None,
                   evidence_description: Optional[str] = None) -> dict:
    if not report_id:
        raise ValidationError("reportId is required")
    report = get_report(db, report_id)
    if reason not in COUNTER_REASONS:
        raise ValidationError(f"Reason must be one of: {', '.join(COUNTER_REASONS)}")
    if not explanation or not explanation.strip():
        raise ValidationError("Explanation is required")

    acc = db["accommodation"].find_one({"name": report["accommodationName"], "owner": owner["_id"]})
    if not acc:
        logger.warning("counter refused, not the owner", extra={"report_id": str(report["_id"])})
        raise ForbiddenError("Not authorized to counter this report")
    if report.get("isCountered") or db["counterreport"].find_one({"originalReport": report["_id"]}):
        raise ConflictError("A counter report already exists for this report")

    counter = CounterSchema(
        originalReport=report["_id"],
        accommodation=acc["_id"],
        owner=owner["_id"],
        reason=reason,
        explanation=explanation.strip(),
        evidenceUrls=[u.strip() for u in evidence_urls or [] if u and u.strip()],
        evidenceDescription=(evidence_description or "").strip() or None,
    )
    try:
        counter_id = create_document("counterreport", counter, db)
    except DuplicateKeyError:
        raise ConflictError("A counter report already exists for this report")
    db["report"].update_one(
        {"_id": report["_id"]},
        {"$set": {"isCountered": True, "counterStatus": "pending", "updatedAt": now_utc()}},
    )
    logger.info("counter submitted", extra={"counter_id": counter_id, "report_id": str(report["_id"]), "reason": reason})
    return _present(db, get_counter(db, counter_id))


def resolve_counter(db: Database, admin: dict, counter_id: str, decision: Optional[str],
                    admin_notes: Optional[str] = None) -> dict:
    if admin.get("role") != "admin":
        raise ForbiddenError("Admin access required")
    if decision not in COUNTER_DECISIONS:
        raise ValidationError(f"Status must be one of: {', '.join(COUNTER_DECISIONS)}")
    counter = get_counter(db, counter_id)

    reviewed_at = now_utc()
    resolved = db["counterreport"].update_one(
        {"_id": counter["_id"], "status": "pending"},
        {"$set": {"status": decision, "adminNotes": admin_notes or "", "reviewedAt": reviewed_at}},
    )
    if resolved.matched_count == 0:
        raise ConflictError("Counter report has already been reviewed")

    report_updates = {"counterStatus": decision, "updatedAt": reviewed_at}
    if decision == "accepted":
        report_updates["status"] = "rejected"
    report = db["report"].find_one_and_update({"_id": counter["originalReport"]}, {"$set": report_updates})
    if report is not None and decision == "accepted":
        refresh_risk(db, report["accommodationName"])
    logger.info("counter resolved", extra={"counter_id": str(counter["_id"]), "decision": decision})
    return _present(db, get_counter(db, counter_id))


def list_owner_counters(db: Database, owner: dict) -> List[dict]:
    docs = db["counterreport"].find({"owner": owner["_id"]}).sort("createdAt", -1)
    return [_present(db, c) for c in docs]


def list_all_counters(db: Database, status: Optional[str] = None) -> List[dict]:
    query = {"status": status} if status else {}
    docs = db["counterreport"].find(query).sort("createdAt", -1)
    return [_present(db, c) for c in docs]
