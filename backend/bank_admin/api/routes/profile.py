from fastapi import APIRouter, Depends, HTTPException, Request, Response
from sqlalchemy.orm import Session
from typing import Optional
from pydantic import BaseModel, field_validator
from bank_admin.api.dependencies import get_current_db_user
from bank_admin.api.forms import FormValidationError, parse_form
from bank_admin.api.routes.auth import check_optional_name, check_strong_password, check_username
from bank_admin.api.routes.users import UserResponse
from bank_admin.core.cookies import set_session_cookie
from bank_admin.core.database import get_db
from bank_admin.core.security import verify_password
from bank_admin.models.user import User
from bank_admin.services.audit_service import log_auth_event
from bank_admin.services.session_service import session_service
from bank_admin.services.user_service import user_service

router = APIRouter(prefix="/profile", tags=["profile"])

PASSWORD_FIELDS = ("current_password", "new_password", "confirm_new_password")


class ProfileForm(BaseModel):
    username: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    current_password: Optional[str] = None
    new_password: Optional[str] = None
    confirm_new_password: Optional[str] = None

    @field_validator("username")
    @classmethod
    def validate_username(cls, value: Optional[str]) -> Optional[str]:
        if not value:
            return None
        return check_username(value)

    @field_validator("first_name", "last_name")
    @classmethod
    def validate_names(cls, value: Optional[str]) -> Optional[str]:
        return check_optional_name(value)

    @field_validator(*PASSWORD_FIELDS, mode="before")
    @classmethod
    def blank_to_none(cls, value):
        return value or None

    @field_validator("new_password")
    @classmethod
    def validate_new_password(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        return check_strong_password(value)

    @property
    def changes_password(self) -> bool:
        return any(getattr(self, field) for field in PASSWORD_FIELDS)


def _password_errors(form: ProfileForm, user: User) -> dict:
    errors = {}
    for field in PASSWORD_FIELDS:
        if not getattr(form, field):
            errors[field] = ["This field is required to change your password"]
    if errors:
        return errors
    if form.new_password != form.confirm_new_password:
        return {"confirm_new_password": ["Passwords don't match"]}
    if not verify_password(form.current_password, user.hashed_password):
        return {"current_password": ["Current password is incorrect"]}
    return {}


@router.get("", response_model=UserResponse)
async def get_profile(user: User = Depends(get_current_db_user)):
    return user


@router.put("", response_model=UserResponse)
async def update_profile(
    request: Request,
    response: Response,
    user: User = Depends(get_current_db_user),
    db: Session = Depends(get_db)
):
    """
    Update name fields and, optionally, the password.

    Changing the password signs the user out of every other session; the
    response carries a fresh session cookie for this one.
    """
    form = await parse_form(request, ProfileForm)

    if form.changes_password:
        errors = _password_errors(form, user)
        if errors:
            raise FormValidationError(errors)

    if form.username and form.username != user.username:
        taken = db.query(User).filter(User.username == form.username, User.id != user.id).first()
        if taken:
            raise HTTPException(status_code=400, detail="This username is already taken")
        user.username = form.username

    # Names left out of the form keep their stored value; a blank one clears it
    for field in ("first_name", "last_name"):
        if field in form.model_fields_set:
            setattr(user, field, getattr(form, field))
    db.commit()

    if form.changes_password:
        user_service.change_password(db, user, form.new_password)
        token = session_service.create_session(db, user.id)
        if not token:
            raise HTTPException(status_code=500, detail="Authentication service error")
        set_session_cookie(response, token)
        log_auth_event(db, user.id, "password_changed")

    db.refresh(user)
    return user
