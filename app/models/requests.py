"""Pydantic models for request bodies.

Text fields default to empty strings and are checked by ``before``
validators so a missing value and a blank one produce the same message.
"""

from __future__ import annotations

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, field_validator

from app.logic.leaf_validators import is_valid_email, is_valid_phone


def _required_text(value: Any, message: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(message)
    return value.strip()


def _normalize_email(value: Any, message: str) -> str:
    text = value.strip() if isinstance(value, str) else ""
    if not is_valid_email(text):
        raise ValueError(message)
    return text.lower()


def _code_list(value: Any) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(v, str) and v.strip() for v in value):
        raise ValueError("Form codes must be non-empty strings.")
    return [v.strip() for v in value]


class _Body(BaseModel):
    model_config = ConfigDict(validate_default=True)


class SignUpBody(_Body):
    name: str = ""
    email: str = ""
    password: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, v: Any) -> str:
        return _required_text(v, "Name is required.")

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, v: Any) -> str:
        return _normalize_email(v, "Enter a valid email.")

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, v: Any) -> str:
        if not isinstance(v, str) or len(v) < 8:
            raise ValueError("Password must be at least 8 characters.")
        if len(v.encode("utf-8")) > 72:
            raise ValueError("Password must be at most 72 bytes.")
        return v


class SignInBody(_Body):
    email: str = ""
    password: str = ""

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, v: Any) -> str:
        return _normalize_email(v, "Enter a valid email.")

    @field_validator("password", mode="before")
    @classmethod
    def check_password(cls, v: Any) -> str:
        if not isinstance(v, str) or not v:
            raise ValueError("Password is required.")
        return v


class AdditionalBroker(_Body):
    name: str = ""
    email: str = ""

    @field_validator("name", mode="before")
    @classmethod
    def check_name(cls, v: Any) -> str:
        return _required_text(v, "Broker name is required.")

    @field_validator("email", mode="before")
    @classmethod
    def check_email(cls, v: Any) -> str:
        return _normalize_email(v, "Enter a valid broker email.")


class CreateClientBody(_Body):
    clientName: str = ""
    clientEmail: str = ""
    clientPhone: Optional[str] = None
    additionalBrokers: List[AdditionalBroker] = []
    selectedFormCodes: List[str] = ["INVESTOR_PROFILE"]

    @field_validator("clientName", mode="before")
    @classmethod
    def check_name(cls, v: Any) -> str:
        return _required_text(v, "Client name is required.")

    @field_validator("clientEmail", mode="before")
    @classmethod
    def check_email(cls, v: Any) -> str:
        return _normalize_email(v, "Enter a valid client email.")

    @field_validator("clientPhone", mode="before")
    @classmethod
    def check_phone(cls, v: Any) -> Optional[str]:
        if v is None or (isinstance(v, str) and not v.strip()):
            return None
        if not is_valid_phone(v.strip() if isinstance(v, str) else v):
            raise ValueError("Enter a valid phone number.")
        return v.strip()

    @field_validator("selectedFormCodes", mode="before")
    @classmethod
    def check_codes(cls, v: Any) -> List[str]:
        return _code_list(v)


class SelectFormsBody(_Body):
    formCodes: List[str] = []

    @field_validator("formCodes", mode="before")
    @classmethod
    def check_codes(cls, v: Any) -> List[str]:
        codes = _code_list(v if v is not None else [])
        if not codes:
            raise ValueError("Select at least one form.")
        return codes


class StepAnswerBody(_Body):
    questionId: str = ""
    answer: Any = None
    clientCursor: Optional[dict] = None

    @field_validator("questionId", mode="before")
    @classmethod
    def check_question(cls, v: Any) -> str:
        return _required_text(v, "Question id is required.")


class ReviewStepBody(_Body):
    fields: Any = None


__all__ = [
    "AdditionalBroker",
    "CreateClientBody",
    "ReviewStepBody",
    "SelectFormsBody",
    "SignInBody",
    "SignUpBody",
    "StepAnswerBody",
]
