import os
from sqlalchemy import select
from app.db.session import SessionLocal
from app.models.user import User
from app.core.security import hash_password

def main():
    username = os.environ.get("SEED_ADMIN_USER", "admin")
    password = os.environ.get("SEED_ADMIN_PASS")
    if not password:
        raise SystemExit("SEED_ADMIN_PASS is required")

    with SessionLocal() as db:
        existing = db.execute(select(User).where(User.username == username)).scalar_one_or_none()
        if existing:
            print(f"admin {username} already exists")
            return
        db.add(User(username=username, password_hash=hash_password(password), role="admin"))
        db.commit()
        print(f"created admin {username}")

if __name__ == "__main__":
    main()
