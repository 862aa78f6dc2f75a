"""
Accommodation listings: owner CRUD, occupancy and the derived risk score.

Reports point at accommodations by name, so the risk score of every listing
sharing that exact name is recomputed whenever its reports change.
"""

import re
from typing import Iterable, List, Optional

from pymongo.database import Database

from database import create_document, now_utc, serialize, to_object_id
from errors import ForbiddenError, NotFoundError, ValidationError
from logs import get_logger
from schemas import Accommodation as AccommodationSchema

logger = get_logger("accommodations")

RISK_WEIGHTS = {
    "Security": 25,
    "Infrastructure": 20,
    "Food Safety": 15,
    "Water Quality": 15,
    "Hygiene": 10,
}

RISKY_THRESHOLD = 40
HIGH_RISK_THRESHOLD = 70

REQUIRED_TEXT_FIELDS = ("name", "address", "city", "description", "contactPhone")


# ---------- Risk ----------

def risk_score(reports: Iterable[dict]) -> int:
    return sum(RISK_WEIGHTS.get(r.get("issueType"), 0) for r in reports if r.get("status") != "rejected")


def classify(score: int) -> str:
    if score >= HIGH_RISK_THRESHOLD:
        return "High Risk"
    if score >= RISKY_THRESHOLD:
        return "Risky"
    return "Safe"


def score_for_name(db: Database, name: str) -> int:
    return risk_score(db["report"].find({"accommodationName": name}, {"issueType": 1, "status": 1}))


def refresh_risk(db: Database, *names: Optional[str]) -> None:
    for name in {n for n in names if n}:
        score = score_for_name(db, name)
        db["accommodation"].update_many({"name": name}, {"$set": {"riskScore": score}})


def occupancy_rate(occupied: int, total: int) -> int:
    """Whole-number percentage of rooms occupied; 0 when there are no rooms."""
    return round(occupied / total * 100) if total else 0


def present(acc: dict) -> dict:
    out = serialize(acc)
    total = acc.get("totalRooms") or 0
    out["safetyClassification"] = classify(acc.get("riskScore", 0))
    out["occupancyRate"] = occupancy_rate(acc.get("occupiedRooms", 0), total)
    return out


# ---------- Helpers ----------

def _owned(db: Database, owner: dict, acc_id: str) -> dict:
    acc = db["accommodation"].find_one({"_id": to_object_id(acc_id, "Accommodation")})
    if not acc:
        raise NotFoundError("Accommodation not found")
    if acc.get("owner") != owner["_id"]:
        raise ForbiddenError("Not authorized to modify this accommodation")
    return acc


def _clean_amenities(amenities: Optional[List[str]]) -> List[str]:
    seen = []
    for item in amenities or []:
        item = (item or "").strip()
        if item and item not in seen:
            seen.append(item)
    return seen


def _check_rooms(total_rooms, price) -> None:
    if total_rooms is not None and total_rooms < 1:
        raise ValidationError("totalRooms must be at least 1")
    if price is not None and price < 0:
        raise ValidationError("pricePerMonth cannot be negative")


# ---------- Owner operations ----------

def create_accommodation(db: Database, owner: dict, fields: dict) -> dict:
    missing = [f for f in REQUIRED_TEXT_FIELDS if not (fields.get(f) or "").strip()]
    if missing or fields.get("totalRooms") is None or fields.get("pricePerMonth") is None:
        raise ValidationError("Please provide all required accommodation fields")
    _check_rooms(fields["totalRooms"], fields["pricePerMonth"])
    name = fields["name"].strip()
    if len(name) > 200:
        raise ValidationError("Accommodation name is too long")

    doc = AccommodationSchema(
        name=name,
        address=fields["address"].strip(),
        city=fields["city"].strip(),
        description=fields["description"].strip(),
        amenities=_clean_amenities(fields.get("amenities")),
        totalRooms=fields["totalRooms"],
        pricePerMonth=fields["pricePerMonth"],
        contactPhone=fields["contactPhone"].strip(),
        images=fields.get("images") or [],
        owner=owner["_id"],
        riskScore=score_for_name(db, name),
    )
    acc_id = create_document("accommodation", doc, db)
    logger.info("accommodation created", extra={"accommodation_id": acc_id, "owner_id": str(owner["_id"])})
    return present(db["accommodation"].find_one({"_id": to_object_id(acc_id)}))


def update_accommodation(db: Database, owner: dict, acc_id: str, fields: dict) -> dict:
    acc = _owned(db, owner, acc_id)
    updates = {}
    for key in REQUIRED_TEXT_FIELDS:
        value = fields.get(key)
        if value is None:
            continue
        if not value.strip():
            raise ValidationError(f"{key} cannot be empty")
        updates[key] = value.strip()
    if "name" in updates and len(updates["name"]) > 200:
        raise ValidationError("Accommodation name is too long")
    _check_rooms(fields.get("totalRooms"), fields.get("pricePerMonth"))
    if fields.get("totalRooms") is not None:
        if fields["totalRooms"] < acc.get("occupiedRooms", 0):
            raise ValidationError("totalRooms cannot be less than occupiedRooms")
        updates["totalRooms"] = fields["totalRooms"]
    if fields.get("pricePerMonth") is not None:
        updates["pricePerMonth"] = fields["pricePerMonth"]
    if fields.get("amenities") is not None:
        updates["amenities"] = _clean_amenities(fields["amenities"])
    if fields.get("images") is not None:
        updates["images"] = fields["images"]
    if "name" in updates:
        updates["riskScore"] = score_for_name(db, updates["name"])

    if updates:
        updates["updatedAt"] = now_utc()
        db["accommodation"].update_one({"_id": acc["_id"]}, {"$set": updates})
    return present(db["accommodation"].find_one({"_id": acc["_id"]}))


def delete_accommodation(db: Database, owner: dict, acc_id: str) -> None:
    acc = _owned(db, owner, acc_id)
    db["accommodation"].delete_one({"_id": acc["_id"]})
    logger.info("accommodation deleted", extra={"accommodation_id": str(acc["_id"])})


def update_occupancy(db: Database, owner: dict, acc_id: str, occupied_rooms: int) -> dict:
    acc = _owned(db, owner, acc_id)
    if occupied_rooms is None or occupied_rooms < 0:
        raise ValidationError("occupiedRooms cannot be negative")
    if occupied_rooms > acc.get("totalRooms", 0):
        raise ValidationError("Occupied rooms cannot exceed total rooms")
    db["accommodation"].update_one(
        {"_id": acc["_id"]},
        {"$set": {"occupiedRooms": occupied_rooms, "updatedAt": now_utc()}},
    )
    return present(db["accommodation"].find_one({"_id": acc["_id"]}))


def list_owner_accommodations(db: Database, owner: dict) -> List[dict]:
    docs = db["accommodation"].find({"owner": owner["_id"]}).sort("createdAt", -1)
    return [present(d) for d in docs]


def owner_names(db: Database, owner: dict) -> List[str]:
    return [d["name"] for d in db["accommodation"].find({"owner": owner["_id"]}, {"name": 1})]


def owner_reports(db: Database, owner: dict) -> List[dict]:
    names = owner_names(db, owner)
    if not names:
        return []
    docs = db["report"].find({"accommodationName": {"$in": names}}).sort("createdAt", -1)
    return [serialize(d) for d in docs]


def owner_stats(db: Database, owner: dict) -> dict:
    accs = list(db["accommodation"].find({"owner": owner["_id"]}))
    total_rooms = sum(a.get("totalRooms", 0) for a in accs)
    occupied = sum(a.get("occupiedRooms", 0) for a in accs)
    names = [a["name"] for a in accs]
    return {
        "totalAccommodations": len(accs),
        "totalRooms": total_rooms,
        "occupiedRooms": occupied,
        "occupancyRate": occupancy_rate(occupied, total_rooms),
        "totalReports": db["report"].count_documents({"accommodationName": {"$in": names}}) if names else 0,
        "pendingCounters": db["counterreport"].count_documents({"owner": owner["_id"], "status": "pending"}),
    }


# ---------- Public reads ----------

def list_accommodations(db: Database, city: Optional[str] = None, q: Optional[str] = None) -> List[dict]:
    query = {}
    if city:
        query["city"] = {"$regex": re.escape(city), "$options": "i"}
    if q:
        query["$or"] = [
            {"name": {"$regex": re.escape(q), "$options": "i"}},
            {"address": {"$regex": re.escape(q), "$options": "i"}},
        ]
    return [present(d) for d in db["accommodation"].find(query).sort("name", 1)]


def get_accommodation(db: Database, acc_id: str) -> dict:
    acc = db["accommodation"].find_one({"_id": to_object_id(acc_id, "Accommodation")})
    if not acc:
        raise NotFoundError("Accommodation not found")
    out = present(acc)
    reports = db["report"].find({"accommodationName": acc["name"], "status": {"$ne": "rejected"}}).sort("createdAt", -1)
    out["reports"] = [serialize(r) for r in reports]
    return out
