from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from peereval.db.session import get_db
from peereval.models.user import User


def get_current_user(
    x_user_email: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> User:
    """
    The identity provider in front of this service authenticates the caller
    and forwards the verified address in X-User-Email.
    Example: X-User-Email: host@local.test
    """
    if not x_user_email:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Email header",
        )

    user = db.query(User).filter(User.email == x_user_email).one_or_none()
    if not user or not user.is_active:
        raise HTTPException(status_code=401, detail="Invalid or inactive user")
    return user
