from typing import Generator
from fastapi import Depends, HTTPException, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from ums.db.session import SessionLocal
from ums.db.models import User
from ums.core.security import decode_token
from ums.core.organizations import get_organization_directory
from ums.core.approval import Actor, ApprovalWorkflowService, StepDefinitionService
from ums.services.notifications import EmailNotificationDispatcher

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)


def get_db() -> Generator:
    """Database session dependency."""
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_current_user(
    db: Session = Depends(get_db),
    token: str = Depends(oauth2_scheme),
) -> User:
    """Get current authenticated user from the bearer token."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    if token:
        user_id = decode_token(token)
        if user_id:
            user = db.query(User).filter(User.id == user_id).first()
            if user and user.is_active:
                return user

    raise credentials_exception


def get_current_actor(current_user: User = Depends(get_current_user)) -> Actor:
    """Identity claims of the authenticated user."""
    return Actor.from_user(current_user)


def get_notification_dispatcher(db: Session = Depends(get_db)) -> EmailNotificationDispatcher:
    return EmailNotificationDispatcher(db)


def get_workflow_service(
    db: Session = Depends(get_db),
    dispatcher: EmailNotificationDispatcher = Depends(get_notification_dispatcher),
) -> ApprovalWorkflowService:
    return ApprovalWorkflowService(
        db,
        dispatcher,
        organizations=get_organization_directory(db),
    )


def get_step_definition_service(db: Session = Depends(get_db)) -> StepDefinitionService:
    return StepDefinitionService(db)
