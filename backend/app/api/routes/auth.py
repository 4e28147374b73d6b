from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session
from sqlalchemy import select
from app.api.deps import db
from app.schemas.auth import LoginIn, TokenOut
from app.models.user import User
from app.core.security import verify_password, create_access_token
from app.services.audit import log_event

router = APIRouter(prefix="/auth", tags=["auth"])

@router.post("/login", response_model=TokenOut)
def login(body: LoginIn, s: Session = Depends(db)):
    username = body.username.strip()
    u = s.execute(select(User).where(User.username == username)).scalar_one_or_none()
    if not u or not verify_password(body.password, u.password_hash):
        raise HTTPException(status_code=401, detail="bad_credentials")
    role = (u.role or "viewer").lower()
    token = create_access_token(sub=u.username, role=role)
    log_event(s, username=u.username, action="auth.login", entity_type="user", entity_id=u.id)
    return {"access_token": token, "role": role}
