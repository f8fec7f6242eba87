"""
models.py — Data models for the job catalog sync and contact lookup.

Field names are English; to_dict()/to_document() produce the wire/storage
keys the listing API and the front end use (refnr, titel, arbeitgeber, ...).
Absent values are omitted from those dicts, never written as null.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Optional

UNKNOWN_TITLE = "Unbekannter Titel"


def _drop_none(data: dict) -> dict:
    return {key: value for key, value in data.items() if value is not None}


@dataclass
class WorkLocation:
    """Where the job is performed."""
    city: Optional[str] = None
    postal_code: Optional[str] = None
    street: Optional[str] = None
    region: Optional[str] = None
    country: Optional[str] = None
    lat: Optional[float] = None
    lon: Optional[float] = None

    @classmethod
    def from_api(cls, data: Optional[dict]) -> Optional["WorkLocation"]:
        if not isinstance(data, dict):
            return None
        coords = data.get("koordinaten") or {}
        return cls(
            city=data.get("ort"),
            postal_code=data.get("plz"),
            street=data.get("strasse"),
            region=data.get("region"),
            country=data.get("land"),
            lat=coords.get("lat"),
            lon=coords.get("lon"),
        )

    def to_dict(self) -> dict:
        coords = None
        if self.lat is not None and self.lon is not None:
            coords = {"lat": self.lat, "lon": self.lon}
        return _drop_none({
            "ort": self.city,
            "plz": self.postal_code,
            "strasse": self.street,
            "region": self.region,
            "land": self.country,
            "koordinaten": coords,
        })


@dataclass
class ListingStub:
    """Minimal record returned by the listing-search endpoint."""
    refnr: str
    title: Optional[str] = None
    employer: Optional[str] = None
    location: Optional[WorkLocation] = None

    @classmethod
    def from_api(cls, data: dict) -> "ListingStub":
        refnr = data.get("refnr") or data.get("refNr")
        if not refnr:
            raise ValueError(f"Listing without reference number: {data!r:.200}")
        return cls(
            refnr=str(refnr),
            title=data.get("titel"),
            employer=data.get("arbeitgeber"),
            location=WorkLocation.from_api(data.get("arbeitsort")),
        )


def _skill_names(raw: Any) -> Optional[list[str]]:
    """Normalise the API's skill structures to a flat list of names."""
    if not isinstance(raw, list):
        return None
    names = []
    for item in raw:
        if isinstance(item, str):
            name = item
        elif isinstance(item, dict):
            name = item.get("hierarchieName") or item.get("name")
        else:
            name = None
        if name and name not in names:
            names.append(name)
    return names


@dataclass
class JobDetailRecord:
    """Enriched per-job record; synthesised from a ListingStub when enrichment fails."""
    refnr: str
    title: Optional[str] = None
    employer: Optional[str] = None
    location: Optional[WorkLocation] = None
    description: Optional[str] = None
    skills: Optional[list[str]] = None
    compensation: Optional[str] = None
    contract_duration: Optional[str] = None
    published_at: Optional[str] = None
    start_date: Optional[str] = None
    logo_url: Optional[str] = None
    degraded: bool = False

    @classmethod
    def from_api(cls, data: dict, refnr: Optional[str] = None) -> "JobDetailRecord":
        ref = data.get("refnr") or data.get("refNr") or refnr
        if not ref:
            raise ValueError("Detail record without reference number")
        logo = data.get("arbeitgeberlogo")
        return cls(
            refnr=str(ref),
            title=data.get("titel"),
            employer=data.get("arbeitgeber"),
            location=WorkLocation.from_api(data.get("arbeitsort")),
            description=data.get("stellenbeschreibung") or data.get("stellenangebotsBeschreibung"),
            skills=_skill_names(data.get("fertigkeiten")),
            compensation=data.get("verguetung"),
            contract_duration=data.get("befristung"),
            published_at=data.get("aktuelleVeroeffentlichungsdatum"),
            start_date=data.get("eintrittsdatum"),
            logo_url=logo.get("url") if isinstance(logo, dict) else None,
        )

    @classmethod
    def from_stub(cls, stub: ListingStub) -> "JobDetailRecord":
        return cls(
            refnr=stub.refnr,
            title=stub.title,
            employer=stub.employer,
            location=stub.location,
            degraded=True,
        )

    def to_document(self) -> dict:
        """Flattened storage form. Absent fields are omitted."""
        return _drop_none({
            "refnr": self.refnr,
            "titel": self.title or UNKNOWN_TITLE,
            "arbeitgeber": self.employer,
            "arbeitsort": self.location.to_dict() if self.location else None,
            "stellenbeschreibung": self.description,
            "fertigkeiten": self.skills,
            "verguetung": self.compensation,
            "befristung": self.contract_duration,
            "aktuelleVeroeffentlichungsdatum": self.published_at,
            "eintrittsdatum": self.start_date,
            "logoUrl": self.logo_url,
        })


@dataclass
class Address:
    street: Optional[str] = None
    postal_code: Optional[str] = None
    city: Optional[str] = None

    def to_dict(self) -> dict:
        return _drop_none({"strasse": self.street, "plz": self.postal_code, "ort": self.city})


@dataclass
class ContactInfo:
    """Best-effort employer contact details. Every field may be missing."""
    name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    address: Optional[Address] = None

    def is_empty(self) -> bool:
        return not (self.name or self.phone or self.email or (self.address and self.address.to_dict()))

    def to_dict(self) -> dict:
        address = self.address.to_dict() if self.address else None
        return _drop_none({
            "name": self.name,
            "telefon": self.phone,
            "email": self.email,
            "anschrift": address or None,
        })


@dataclass
class SyncResult:
    """Outcome of one catalog sync run."""
    trigger: str
    state: str = "idle"
    fetched: int = 0
    processed: int = 0
    saved: int = 0
    errors: int = 0
    degraded: int = 0
    stopped_early: bool = False
    failure: Optional[str] = None
    error_messages: list[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.state == "done"

    def to_dict(self) -> dict:
        data = {
            "success": self.success,
            "processed": self.processed,
            "saved": self.saved,
            "errors": self.errors,
            "degraded": self.degraded,
            "stoppedEarly": self.stopped_early,
        }
        if self.failure:
            data["error"] = self.failure
        return data


@dataclass
class RunLog:
    """Log entry for a single sync run."""
    run_date: str
    trigger: str
    state: str
    fetched: int = 0
    processed: int = 0
    saved: int = 0
    errors: int = 0
    degraded: int = 0
    stopped_early: bool = False
    error_messages: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0

    @classmethod
    def from_result(cls, result: SyncResult, duration: float) -> "RunLog":
        return cls(
            run_date=datetime.now().isoformat(),
            trigger=result.trigger,
            state=result.state,
            fetched=result.fetched,
            processed=result.processed,
            saved=result.saved,
            errors=result.errors,
            degraded=result.degraded,
            stopped_early=result.stopped_early,
            error_messages=list(result.error_messages),
            duration_seconds=duration,
        )
