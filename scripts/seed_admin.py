import sys
import os

# Ensure project root is in path
sys.path.append(os.getcwd())

from datetime import datetime

from app.core.database import Base, SessionLocal, engine
from app.core.security import get_password_hash
from app.models import *


def seed(email: str, password: str):
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    print("🚀 Seeding admin user...")

    try:
        email = email.strip().lower()
        user = db.query(User).filter(User.email == email).first()
        if user:
            user.role = "admin"
            user.is_active = True
            user.password_hash = get_password_hash(password)
            print(f"🔁 {email} already exists, promoted to admin and password reset")
        else:
            db.add(User(
                email=email,
                password_hash=get_password_hash(password),
                first_name="Admin",
                role="admin",
                is_active=True,
                created_at=datetime.utcnow(),
            ))
            print(f"✅ Created admin {email}")

        db.commit()
    except Exception as e:
        print(f"❌ Error: {e}")
        db.rollback()
    finally:
        db.close()


if __name__ == "__main__":
    admin_email = sys.argv[1] if len(sys.argv) > 1 else os.getenv("ADMIN_EMAIL")
    admin_password = sys.argv[2] if len(sys.argv) > 2 else os.getenv("ADMIN_PASSWORD")
    if not admin_email or not admin_password:
        print("Usage: python scripts/seed_admin.py <email> <password>  (or ADMIN_EMAIL / ADMIN_PASSWORD)")
        sys.exit(1)
    seed(admin_email, admin_password)
