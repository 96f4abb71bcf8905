import logging
import os
import re
import uuid
from datetime import datetime
from typing import List, Optional

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.models.booking import PatientBooking
from app.models.chatbot import ChatbotThread
from app.models.clinic import Clinic, ClinicUser
from app.models.lead import Lead
from app.models.sequence import Sequence
from app.models.campaign import Campaign
from app.models.user import User
from app.core.config import settings
from app.schemas.clinic import ClinicCreate, ClinicUpdate

logger = logging.getLogger(__name__)

SLUG_REGEX = re.compile(r"^[a-z0-9]+(?:-[a-z0-9]+)*$")

LOGO_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp"}
LOGO_CONTENT_TYPES = {"image/jpeg", "image/jpg", "image/png", "image/gif", "image/webp"}


def _size_label(size: int) -> str:
    if size >= 1024 * 1024:
        return f"{size // (1024 * 1024)}MB"
    return f"{size // 1024}KB"


class DuplicateSlug(ValueError):
    pass


class ClinicInUse(ValueError):
    pass


class InvalidLogo(ValueError):
    pass


def slugify(text: str) -> str:
    slug = text.lower().strip()
    slug = re.sub(r"[^a-z0-9\s-]", "", slug)
    slug = re.sub(r"[\s_]+", "-", slug)
    slug = re.sub(r"-+", "-", slug)
    return slug.strip("-")


def validate_slug(slug: str) -> str:
    if not slug or not SLUG_REGEX.match(slug):
        raise ValueError("Slug must contain only lowercase letters, numbers, and single hyphens")
    return slug


class ClinicService:
    def __init__(self, db: Session):
        self.db = db

    # ---------------------------------------------------------
    # 1. ACCESS
    # ---------------------------------------------------------
    def member_clinic_ids(self, user: User) -> List[int]:
        rows = self.db.query(ClinicUser.clinic_id).filter(ClinicUser.user_id == user.id).all()
        owned = self.db.query(Clinic.id).filter(Clinic.owner_id == user.id).all()
        return sorted({r.clinic_id for r in rows} | {r.id for r in owned})

    def visible_clinic_ids(self, user: User) -> Optional[List[int]]:
        """None means unrestricted (admin)."""
        if user.role == "admin":
            return None
        return self.member_clinic_ids(user)

    def can_access(self, user: User, clinic_id: Optional[int]) -> bool:
        if user.role == "admin":
            return True
        return clinic_id in self.member_clinic_ids(user)

    # ---------------------------------------------------------
    # 2. READ
    # ---------------------------------------------------------
    def list_clinics(self, user: User) -> List[Clinic]:
        query = self.db.query(Clinic)
        if user.role != "admin":
            query = query.filter(Clinic.id.in_(self.member_clinic_ids(user)))
        return query.order_by(Clinic.created_at.desc(), Clinic.id.desc()).all()

    def get_clinic(self, clinic_id: int) -> Optional[Clinic]:
        return self.db.query(Clinic).filter(Clinic.id == clinic_id).first()

    def get_by_slug(self, slug: str) -> Optional[Clinic]:
        return self.db.query(Clinic).filter(Clinic.slug == slug.lower()).first()

    # ---------------------------------------------------------
    # 3. WRITE
    # ---------------------------------------------------------
    def create_clinic(self, data: ClinicCreate, owner: Optional[User] = None) -> Clinic:
        slug = validate_slug(data.slug.strip().lower() if data.slug else slugify(data.name))

        if self.get_by_slug(slug):
            raise DuplicateSlug(f"Clinic slug '{slug}' is already taken")

        now = datetime.utcnow()
        clinic = Clinic(
            name=data.name.strip(),
            slug=slug,
            brand_color=data.brand_color or "#3B82F6",
            logo_url=data.logo_url,
            phone=data.phone,
            email=data.email,
            city=data.city,
            state=data.state,
            owner_id=owner.id if owner else None,
            created_at=now,
            updated_at=now,
        )
        self.db.add(clinic)
        try:
            self.db.flush()
            if owner:
                self.db.add(ClinicUser(clinic_id=clinic.id, user_id=owner.id, role="owner"))
            self.db.commit()
        except IntegrityError:
            # Lost a race with another request creating the same slug
            self.db.rollback()
            raise DuplicateSlug(f"Clinic slug '{slug}' is already taken")

        self.db.refresh(clinic)
        return clinic

    def update_clinic(self, clinic_id: int, data: ClinicUpdate) -> Optional[Clinic]:
        clinic = self.get_clinic(clinic_id)
        if not clinic:
            return None

        update_data = data.model_dump(exclude_unset=True)
        if "slug" in update_data:
            slug = validate_slug((update_data["slug"] or "").strip().lower())
            other = self.get_by_slug(slug)
            if other and other.id != clinic.id:
                raise DuplicateSlug(f"Clinic slug '{slug}' is already taken")
            update_data["slug"] = slug

        for key, value in update_data.items():
            setattr(clinic, key, value)
        clinic.updated_at = datetime.utcnow()

        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            raise DuplicateSlug(f"Clinic slug '{update_data.get('slug')}' is already taken")
        self.db.refresh(clinic)
        return clinic

    def save_logo(self, clinic_id: int, filename: str, content_type: str, data: bytes) -> Optional[Clinic]:
        """Stores an uploaded logo under UPLOAD_DIR and points the clinic's logo_url at it."""
        clinic = self.get_clinic(clinic_id)
        if not clinic:
            return None

        ext = os.path.splitext(filename or "")[1].lower()
        if ext not in LOGO_EXTENSIONS or (content_type or "").lower() not in LOGO_CONTENT_TYPES:
            raise InvalidLogo("Only image files are allowed")
        if not data:
            raise InvalidLogo("No file uploaded")
        if len(data) > settings.MAX_LOGO_BYTES:
            raise InvalidLogo(f"File size exceeds {_size_label(settings.MAX_LOGO_BYTES)} limit")

        os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
        stored_name = f"clinic-{clinic.id}-{uuid.uuid4().hex}{ext}"
        path = os.path.join(settings.UPLOAD_DIR, stored_name)
        with open(path, "wb") as f:
            f.write(data)

        previous = clinic.logo_url
        clinic.logo_url = f"/uploads/{stored_name}"
        clinic.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(clinic)

        if previous and previous.startswith("/uploads/"):
            old_path = os.path.join(settings.UPLOAD_DIR, os.path.basename(previous))
            if os.path.exists(old_path):
                os.remove(old_path)

        logger.info(f"🖼️ Logo stored for clinic {clinic.id}: {stored_name}")
        return clinic

    def delete_clinic(self, clinic_id: int) -> bool:
        clinic = self.get_clinic(clinic_id)
        if not clinic:
            return False

        references = {
            "leads": self.db.query(func.count(Lead.id)).filter(Lead.clinic_id == clinic_id).scalar(),
            "bookings": self.db.query(func.count(PatientBooking.id)).filter(PatientBooking.clinic_id == clinic_id).scalar(),
            "sequences": self.db.query(func.count(Sequence.id)).filter(Sequence.clinic_id == clinic_id).scalar(),
            "campaigns": self.db.query(func.count(Campaign.id)).filter(Campaign.clinic_id == clinic_id).scalar(),
            "chat threads": self.db.query(func.count(ChatbotThread.id)).filter(ChatbotThread.clinic_id == clinic_id).scalar(),
        }
        in_use = [f"{count} {name}" for name, count in references.items() if count]
        if in_use:
            raise ClinicInUse(f"Clinic is still referenced by {', '.join(in_use)}")

        self.db.delete(clinic)
        self.db.commit()
        return True

    def add_member(self, clinic_id: int, user_id: int, role: str = "member") -> ClinicUser:
        membership = self.db.query(ClinicUser).filter_by(clinic_id=clinic_id, user_id=user_id).first()
        if membership:
            membership.role = role
        else:
            membership = ClinicUser(clinic_id=clinic_id, user_id=user_id, role=role)
            self.db.add(membership)
        self.db.commit()
        return membership
