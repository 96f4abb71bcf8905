import csv
import io
import logging
from datetime import datetime
from typing import Dict, List, Optional

from pydantic import EmailStr, TypeAdapter, ValidationError
from sqlalchemy import func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.models.lead import Lead
from app.schemas.lead import LeadCreate, LeadUpdate
from app.services.genius_engine import GeniusConfig, day_to_delay
from app.services.lead_status import LIFECYCLE_ORDER, Actor, LeadStatus, apply_transition, parse_status

logger = logging.getLogger(__name__)

_email_adapter = TypeAdapter(EmailStr)

# Accepted spellings for each lead column in uploaded CSVs (compared lowercase)
HEADER_ALIASES = {
    "name": ("name", "full name", "full_name", "contact", "contact name", "dentist", "dentist name", "dentist_name", "owner"),
    "email": ("email", "e-mail", "email address", "email_address"),
    "phone": ("phone", "phone number", "phone_number", "mobile", "telephone"),
    "clinic_name": ("clinic", "clinic name", "clinic_name", "practice", "practice name", "company"),
    "website": ("website", "url", "site", "web"),
    "city": ("city", "town"),
    "state": ("state", "province", "region"),
    "country": ("country",),
    "notes": ("notes", "note", "comments"),
    "status": ("status", "lead status"),
}

_ALIAS_LOOKUP = {alias: field for field, aliases in HEADER_ALIASES.items() for alias in aliases}


def normalize_row(raw: Dict) -> Dict[str, str]:
    """Map arbitrary header spellings onto Lead column names; unknown columns are dropped."""
    row = {}
    for key, value in raw.items():
        if key is None:
            continue
        field = _ALIAS_LOOKUP.get(str(key).strip().lower())
        if field and value is not None and str(value).strip() != "":
            row[field] = str(value).strip()
    return row


class LeadService:
    def __init__(self, db: Session):
        self.db = db

    # ---------------------------------------------------------
    # 1. LISTING
    # ---------------------------------------------------------
    def get_leads(
        self,
        page: int = 1,
        limit: int = 20,
        search: Optional[str] = None,
        status: Optional[str] = None,
        source: Optional[str] = None,
        clinic_id: Optional[int] = None,
        clinic_ids: Optional[List[int]] = None,
        sales_only: bool = False,
    ):
        query = self.db.query(Lead)

        if search:
            like = f"%{search}%"
            query = query.filter(or_(
                Lead.name.ilike(like),
                Lead.email.ilike(like),
                Lead.clinic_name.ilike(like),
                Lead.phone.ilike(like),
            ))
        if status:
            query = query.filter(Lead.status == parse_status(status).value)
        if source:
            query = query.filter(Lead.source == source)
        if clinic_id is not None:
            query = query.filter(Lead.clinic_id == clinic_id)
        if clinic_ids is not None:
            query = query.filter(Lead.clinic_id.in_(clinic_ids))
        if sales_only:
            query = query.filter(Lead.clinic_id.is_(None))

        total = query.count()
        data = query.order_by(Lead.created_at.desc(), Lead.id.desc()).offset((page - 1) * limit).limit(limit).all()
        return {"data": data, "total": total, "page": page, "limit": limit}

    def get_lead_kpis(self, clinic_ids: Optional[List[int]] = None):
        query = self.db.query(Lead.status, func.count(Lead.id))
        if clinic_ids is not None:
            query = query.filter(Lead.clinic_id.in_(clinic_ids))
        counts = dict(query.group_by(Lead.status).all())

        kpis = {"total_leads": sum(counts.values())}
        for status in LIFECYCLE_ORDER:
            kpis[f"{status.value}_leads"] = counts.get(status.value, 0)
        return kpis

    def get_lead(self, lead_id: int) -> Optional[Lead]:
        return self.db.query(Lead).filter(Lead.id == lead_id).first()

    # ---------------------------------------------------------
    # 2. CREATE / UPDATE
    # ---------------------------------------------------------
    def _build_lead(self, data: Dict, source: str, now: datetime) -> Lead:
        status = parse_status(data.get("status") or LeadStatus.NEW.value)
        email = data.get("email")
        if email:
            email = str(email).strip().lower()

        lead = Lead(
            name=data["name"].strip(),
            email=email,
            phone=data.get("phone"),
            clinic_name=data.get("clinic_name"),
            website=data.get("website"),
            notes=data.get("notes"),
            status=status.value,
            source=source,
            city=data.get("city"),
            state=data.get("state"),
            country=data.get("country") or "USA",
            clinic_id=data.get("clinic_id"),
            sequence_day=0,
            marketing_opt_in=data.get("marketing_opt_in", True),
            emails_sent=0,
            created_at=now,
            updated_at=now,
        )
        if status == LeadStatus.CONTACTED:
            lead.contacted_at = now
        if status == LeadStatus.REPLIED:
            lead.replied_at = now

        # Sales leads join the GENIUS drip immediately
        if lead.clinic_id is None:
            lead.next_send_at = now + day_to_delay(0, GeniusConfig.from_settings())
        return lead

    def create_lead(self, data: LeadCreate, source: str = "manual") -> Lead:
        now = datetime.utcnow()
        lead = self._build_lead(data.model_dump(), source, now)
        self.db.add(lead)
        self.db.commit()
        self.db.refresh(lead)
        return lead

    def update_lead(self, lead_id: int, data: LeadUpdate) -> Optional[Lead]:
        lead = self.get_lead(lead_id)
        if not lead:
            return None

        update_data = data.model_dump(exclude_unset=True)
        status = update_data.pop("status", None)
        now = datetime.utcnow()

        for key, value in update_data.items():
            if key == "email" and value:
                value = str(value).strip().lower()
            setattr(lead, key, value)

        if status is not None:
            apply_transition(lead, status, Actor.MANUAL, now)

        lead.updated_at = now
        self.db.commit()
        self.db.refresh(lead)
        return lead

    def update_status(self, lead_id: int, status: str) -> Optional[Lead]:
        lead = self.get_lead(lead_id)
        if not lead:
            return None

        apply_transition(lead, status, Actor.MANUAL)
        self.db.commit()
        self.db.refresh(lead)
        return lead

    # ---------------------------------------------------------
    # 3. IMPORT
    # ---------------------------------------------------------
    def validate_import_row(self, row: Dict) -> Dict:
        """Raises ValueError describing the first problem with the row."""
        if not row.get("name"):
            raise ValueError("Missing required column: name")

        if row.get("email"):
            try:
                _email_adapter.validate_python(row["email"])
            except ValidationError:
                raise ValueError(f"Invalid email: {row['email']}") from None

        if row.get("status"):
            parse_status(row["status"])

        return row

    def import_rows(self, rows: List[Dict], source: str = "csv_import", clinic_id: Optional[int] = None) -> Dict:
        """
        Inserts each well-formed row in its own savepoint. Bad rows are reported
        as {row, error} (1-based, header excluded) and never roll back good ones.
        """
        now = datetime.utcnow()
        imported = []
        errors = []

        for index, raw in enumerate(rows, start=1):
            row = normalize_row(raw)
            if clinic_id is not None:
                row["clinic_id"] = clinic_id

            try:
                self.validate_import_row(row)
            except ValueError as e:
                errors.append({"row": index, "error": str(e)})
                continue

            try:
                with self.db.begin_nested():
                    lead = self._build_lead(row, source, now)
                    self.db.add(lead)
                    self.db.flush()
                imported.append(lead.id)
            except SQLAlchemyError as e:
                logger.error(f"❌ Import row {index} failed: {e}")
                errors.append({"row": index, "error": "Database error while saving row"})

        self.db.commit()
        logger.info(f"📥 Lead import complete: {len(imported)} imported, {len(errors)} rejected")
        return {
            "total": len(rows),
            "imported": len(imported),
            "failed": len(errors),
            "errors": errors,
            "lead_ids": imported,
        }

    def import_csv(self, content: bytes, source: str = "csv_import", clinic_id: Optional[int] = None) -> Dict:
        try:
            text = content.decode("utf-8-sig")
        except UnicodeDecodeError:
            text = content.decode("latin-1")

        reader = csv.DictReader(io.StringIO(text))
        if not reader.fieldnames:
            raise ValueError("CSV file is empty or has no header row")

        known = {_ALIAS_LOOKUP.get(h.strip().lower()) for h in reader.fieldnames if h}
        if "name" not in known:
            raise ValueError("CSV header must include a name column")

        return self.import_rows(list(reader), source=source, clinic_id=clinic_id)
