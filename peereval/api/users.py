from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.orm import Session

from peereval.core.security import get_current_user
from peereval.db.session import get_db
from peereval.models.user import User
from peereval.schemas.participant import UserCreate, UserOut

router = APIRouter(prefix="/users", tags=["users"])


def to_out(u: User) -> UserOut:
    return UserOut(id=str(u.id), email=u.email, full_name=u.full_name)


@router.post("", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def register_user(payload: UserCreate, db: Session = Depends(get_db)):
    """
    Mirror an identity from the identity provider into the local user table.
    Called once per identity on first login.
    """
    existing = db.query(User).filter(User.email == payload.email).one_or_none()
    if existing:
        raise HTTPException(status_code=409, detail="User already registered")

    u = User(email=payload.email, full_name=payload.full_name, is_active=True)
    db.add(u)
    db.commit()
    db.refresh(u)
    return to_out(u)


@router.get("/me", response_model=UserOut)
def get_me(current_user: User = Depends(get_current_user)):
    return to_out(current_user)
