"""
Read-side price views: lowest price, grid, comparison, matrix, recent updates.

Joins are by slug id. A price whose medication or pharmacy no longer exists
is left out of every view.
"""
from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from models.documents import utcnow
from repos.medication_repo import MedicationRepository
from repos.pharmacy_repo import PharmacyRepository
from repos.price_repo import PriceRepository

PRICE_SORTS = ("price", "price_desc", "rating")


def qualifies(row: Dict[str, Any]) -> bool:
    """In stock with a finite numeric price strictly above zero."""
    if row.get("in_stock") is not True:
        return False
    p = row.get("price")
    if isinstance(p, bool) or not isinstance(p, (int, float)):
        return False
    return math.isfinite(p) and p > 0


def select_lowest(prices: Iterable[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Cheapest qualifying price; ties go to the smallest pharmacy_id, then dosage."""
    candidates = [p for p in prices if qualifies(p)]
    if not candidates:
        return None
    return min(candidates, key=lambda p: (float(p["price"]), str(p.get("pharmacy_id") or ""), str(p.get("dosage") or "")))


def pharmacy_summary(p: Dict[str, Any]) -> Dict[str, Any]:
    return {
        "id": p["id"],
        "name": p.get("name", ""),
        "rating": p.get("rating", 0),
        "website": p.get("website", ""),
        "delivery_time": p.get("delivery_time", ""),
        "logo": p.get("logo", ""),
    }


def matrix_key(medication_id: str, pharmacy_id: str, dosage: str) -> str:
    return f"{medication_id}:{pharmacy_id}:{dosage}"


def build_matrix_entries(prices: Iterable[Dict[str, Any]]) -> Dict[str, Dict[str, Any]]:
    """Sparse map; cells with no qualifying price have no key at all."""
    out: Dict[str, Dict[str, Any]] = {}
    for p in prices:
        if not qualifies(p):
            continue
        out[matrix_key(p["medication_id"], p["pharmacy_id"], p["dosage"])] = {
            "price": float(p["price"]),
            "link": p.get("link", ""),
            "last_updated": p.get("last_updated"),
        }
    return out


class PriceQueryService:
    def __init__(
        self,
        medications: Optional[MedicationRepository] = None,
        pharmacies: Optional[PharmacyRepository] = None,
        prices: Optional[PriceRepository] = None,
    ):
        self.medications = medications or MedicationRepository()
        self.pharmacies = pharmacies or PharmacyRepository(self.medications.db)
        self.prices = prices or PriceRepository(self.medications.db)

    def lowest_price(self, medication_id: str, dosage: Optional[str] = None) -> Optional[Dict[str, Any]]:
        rows = [p for p in self.prices.list_for_medication(medication_id, dosage=dosage, in_stock=True) if qualifies(p)]
        pharmacies = self.pharmacies.get_many(p["pharmacy_id"] for p in rows)
        best = select_lowest(p for p in rows if p["pharmacy_id"] in pharmacies)
        if best is None:
            return None
        return {**best, "pharmacy": pharmacy_summary(pharmacies[best["pharmacy_id"]])}

    def prices_for_medication(self, medication_id: str, dosage: Optional[str] = None,
                              sort: str = "price") -> List[Dict[str, Any]]:
        rows = [p for p in self.prices.list_for_medication(medication_id, dosage=dosage, in_stock=True) if qualifies(p)]
        pharmacies = self.pharmacies.get_many(p["pharmacy_id"] for p in rows)
        joined = [{**p, "pharmacy": pharmacy_summary(pharmacies[p["pharmacy_id"]])}
                  for p in rows if p["pharmacy_id"] in pharmacies]
        if sort == "price_desc":
            joined.sort(key=lambda p: -float(p["price"]))
        elif sort == "rating":
            joined.sort(key=lambda p: (-float(p["pharmacy"].get("rating") or 0), float(p["price"])))
        else:
            joined.sort(key=lambda p: float(p["price"]))
        return joined

    def build_price_grid(self, medication_id: str) -> Optional[Dict[str, Any]]:
        med = self.medications.get(medication_id)
        if med is None:
            return None
        pharmacies = sorted(self.pharmacies.list(active_only=True), key=lambda p: (p.get("name") or "").lower())
        grid: Dict[str, Dict[str, Any]] = {}
        for p in self.prices.list_for_medication(medication_id):
            grid[f"{p['pharmacy_id']}:{p['dosage']}"] = {
                "price": p.get("price"),
                "in_stock": p.get("in_stock", True),
                "link": p.get("link", ""),
                "last_updated": p.get("last_updated"),
                "record_id": p["id"],
            }
        return {
            "medication": med,
            "pharmacies": pharmacies,
            "dosages": med.get("dosage") or [],
            "price_grid": grid,
        }

    def build_comparison(self, medication_id: str, dosage: Optional[str] = None) -> Optional[Dict[str, Any]]:
        med = self.medications.get(medication_id)
        if med is None or not med.get("active", True):
            return None
        rows = self.prices.list_for_medication(medication_id, dosage=dosage)
        pharmacies = self.pharmacies.get_many(p["pharmacy_id"] for p in rows)
        groups: Dict[str, Dict[str, Any]] = {}
        for p in rows:
            ph = pharmacies.get(p["pharmacy_id"])
            if ph is None:
                continue
            g = groups.setdefault(ph["id"], {"pharmacy": pharmacy_summary(ph), "prices": []})
            g["prices"].append({
                "dosage": p.get("dosage"),
                "price": p.get("price"),
                "quantity": p.get("quantity", 1),
                "in_stock": p.get("in_stock", True),
                "link": p.get("link", ""),
                "last_updated": p.get("last_updated"),
            })
        ordered = sorted(groups.values(),
                         key=lambda g: (-float(g["pharmacy"].get("rating") or 0), g["pharmacy"]["name"].lower()))
        for g in ordered:
            g["prices"].sort(key=lambda x: str(x.get("dosage") or ""))
        return {"medication": med, "comparison": ordered}

    def build_matrix(self, subcategory: str) -> Dict[str, Any]:
        meds = self.medications.list(subcategory=subcategory, active_only=True)
        prices: List[Dict[str, Any]] = []
        for m in meds:
            prices.extend(self.prices.list_for_medication(m["id"], in_stock=True))
        pharmacies = {pid: ph for pid, ph in self.pharmacies.get_many(p["pharmacy_id"] for p in prices).items()
                      if ph.get("active", True)}
        prices = [p for p in prices if p["pharmacy_id"] in pharmacies]
        return {
            "subcategory": subcategory,
            "medications": meds,
            "pharmacies": sorted(pharmacies.values(), key=lambda p: (-float(p.get("rating") or 0), p.get("name") or "")),
            "prices": build_matrix_entries(prices),
        }

    def recent_updates(self, since: Optional[datetime] = None, limit: int = 20) -> List[Dict[str, Any]]:
        since = since or (utcnow() - timedelta(hours=24))
        rows = self.prices.list_updated_since(since, limit=limit)
        meds = {m_id: self.medications.get(m_id) for m_id in {p["medication_id"] for p in rows}}
        pharmacies = self.pharmacies.get_many(p["pharmacy_id"] for p in rows)
        out = []
        for p in rows:
            med = meds.get(p["medication_id"])
            ph = pharmacies.get(p["pharmacy_id"])
            if med is None or ph is None:
                continue
            out.append({**p, "medication_name": med.get("name", ""), "pharmacy_name": ph.get("name", "")})
        return out

    def dashboard_stats(self) -> Dict[str, Any]:
        meds = self.medications.list(active_only=True)
        missing = 0
        for m in meds:
            priced = {p.get("dosage") for p in self.prices.list_for_medication(m["id"])}
            missing += sum(1 for d in (m.get("dosage") or []) if d not in priced)
        return {
            "total_medications": len(meds),
            "total_pharmacies": self.pharmacies.count_active(),
            "total_prices": self.prices.count(),
            "recent_updates": self.prices.count_updated_since(utcnow() - timedelta(hours=24)),
            "missing_prices": missing,
        }
