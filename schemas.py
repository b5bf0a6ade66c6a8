"""
Request payload validation (pydantic v2).
Validation failures are flattened into {"fieldErrors": {field: [messages]}, "formErrors": [...]}.
"""
import re
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic import ValidationError as PydanticValidationError
from pydantic_core import PydanticCustomError

from errors import ValidationError
from models import LEVELS

PASSWORD_RULE = re.compile(r'^(?=.*[a-z])(?=.*[A-Z])(?=.*\d).{8,}$')
EMAIL_RULE = re.compile(r'^[^@\s]+@[^@\s]+\.[^@\s]+$')


def flatten_errors(exc: PydanticValidationError) -> dict:
    field_errors = {}
    form_errors = []
    for err in exc.errors():
        loc = [str(part) for part in err.get('loc', ())]
        if loc:
            field_errors.setdefault('.'.join(loc), []).append(err['msg'])
        else:
            form_errors.append(err['msg'])
    return {'fieldErrors': field_errors, 'formErrors': form_errors}


def parse(model, data):
    """Validate `data` against `model`, raising the API ValidationError on failure."""
    try:
        return model.model_validate(data if data is not None else {})
    except PydanticValidationError as e:
        raise ValidationError('Invalid input', details=flatten_errors(e)) from e


class RegistrationForm(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    full_name: str = Field(alias='fullName')
    email: str
    password: str
    phone: Optional[str] = None
    country: Optional[str] = None
    city: Optional[str] = None
    consent: str

    @field_validator('full_name')
    @classmethod
    def _full_name(cls, v):
        if len(v) < 2:
            raise PydanticCustomError('full_name', 'Full name is required.')
        return v

    @field_validator('email')
    @classmethod
    def _email(cls, v):
        v = v.strip().lower()
        if not EMAIL_RULE.match(v):
            raise PydanticCustomError('email', 'Enter a valid email.')
        return v

    @field_validator('password')
    @classmethod
    def _password(cls, v):
        if not PASSWORD_RULE.match(v):
            raise PydanticCustomError('password', 'Use 8+ chars with upper, lower & number.')
        return v

    @field_validator('phone', 'country', 'city')
    @classmethod
    def _blank_to_none(cls, v):
        return (v or '').strip() or None

    @field_validator('consent')
    @classmethod
    def _consent(cls, v):
        if v != 'true':
            raise PydanticCustomError('consent', 'Consent is required.')
        return v


class LoginRequest(BaseModel):
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def _email(cls, v):
        return v.strip().lower()


class OptionIn(BaseModel):
    text: str = Field(min_length=1)
    is_correct: bool = Field(default=False, alias='isCorrect')


class QuestionIn(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    tag: str
    prompt: str = Field(min_length=1)
    allow_multiple: bool = Field(default=False, alias='allowMultiple')
    options: List[OptionIn] = Field(min_length=2)

    @field_validator('tag')
    @classmethod
    def _tag(cls, v):
        if v not in LEVELS:
            raise PydanticCustomError('tag', 'Tag must be one of {levels}.', {'levels': ', '.join(LEVELS)})
        return v

    @field_validator('options')
    @classmethod
    def _options(cls, v, info):
        correct = sum(1 for o in v if o.is_correct)
        if correct == 0:
            raise PydanticCustomError('options', 'At least one option must be correct.')
        if correct > 1 and not info.data.get('allow_multiple'):
            raise PydanticCustomError('options', 'Only one correct option allowed unless allowMultiple is set.')
        return v


class TestSettingsIn(BaseModel):
    criteria: Dict[str, int]

    @field_validator('criteria')
    @classmethod
    def _criteria(cls, v):
        unknown = sorted(k for k in v if k not in LEVELS)
        if unknown:
            raise PydanticCustomError('criteria', 'Unknown levels: {unknown}.', {'unknown': ', '.join(unknown)})
        if any(n < 0 for n in v.values()):
            raise PydanticCustomError('criteria', 'Quotas must be zero or positive.')
        return v


class SubmissionIn(BaseModel):
    answers: Dict[str, List[int]] = Field(default_factory=dict)


class ReviewIn(BaseModel):
    decision: str

    @field_validator('decision')
    @classmethod
    def _decision(cls, v):
        v = (v or '').strip().upper()
        if v not in ('APPROVED', 'REJECTED'):
            raise PydanticCustomError('decision', 'Decision must be APPROVED or REJECTED.')
        return v
