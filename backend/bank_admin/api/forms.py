from typing import Dict, List, Type, TypeVar
from fastapi import Request
from pydantic import BaseModel, ValidationError

FormModel = TypeVar("FormModel", bound=BaseModel)

REQUEST_LOCATIONS = {"body", "query", "path", "header", "cookie"}


class FormValidationError(Exception):
    """Form input failed validation; rendered as 400 with field-level messages"""

    def __init__(self, errors: Dict[str, List[str]], values: Dict[str, str] | None = None):
        super().__init__("Form validation failed")
        self.errors = errors
        self.values = values or {}


def field_errors(exc) -> Dict[str, List[str]]:
    """Flatten pydantic or request validation errors into {field: [messages]}"""
    errors: Dict[str, List[str]] = {}
    for error in exc.errors():
        loc = list(error["loc"])
        if len(loc) > 1 and loc[0] in REQUEST_LOCATIONS:
            loc = loc[1:]
        field = str(loc[0]) if loc else "form"
        message = error["msg"]
        # Messages raised from validators come prefixed by pydantic
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.setdefault(field, []).append(message)
    return errors


async def parse_form(request: Request, model: Type[FormModel]) -> FormModel:
    """Read a form-encoded body and validate it against a pydantic model"""
    form = await request.form()
    data = {key: value for key, value in form.items() if isinstance(value, str)}
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        # Echo back the email so forms can be refilled; never the password
        echo = {"email": data["email"]} if "email" in data else {}
        raise FormValidationError(field_errors(exc), echo)
