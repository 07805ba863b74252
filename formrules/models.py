"""
Form document schema.

Defines the typed shape of a form: sections, fields, options, advanced
validation rules and conditional-logic blocks. Models carry no behaviour
beyond serialization back to the JSON wire format (camelCase keys) and a
few lookup helpers.

Document Invariants:
====================
- Field ids are unique across the whole document, not per section
- Field names are unique across the whole document
- Every conditional-logic sourceFieldId references another field
- A section exclusively owns its fields
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class FormFieldType(str, Enum):
    """Supported field types."""
    TEXT = 'text'
    TEXTAREA = 'textarea'
    EMAIL = 'email'
    TEL = 'tel'
    URL = 'url'
    NUMBER = 'number'
    DATE = 'date'
    TIME = 'time'
    SELECT = 'select'
    RADIO = 'radio'
    CHECKBOX = 'checkbox'
    RATING = 'rating'
    FILE = 'file'
    HEADING = 'heading'
    PARAGRAPH = 'paragraph'
    DIVIDER = 'divider'


# Presentational pseudo-fields are never validated
PRESENTATIONAL_FIELD_TYPES = frozenset([
    FormFieldType.HEADING,
    FormFieldType.PARAGRAPH,
    FormFieldType.DIVIDER,
])

CHOICE_FIELD_TYPES = frozenset([
    FormFieldType.SELECT,
    FormFieldType.RADIO,
    FormFieldType.CHECKBOX,
])


class FormStatus(str, Enum):
    """Form lifecycle states."""
    DRAFT = 'draft'
    PUBLISHED = 'published'
    ARCHIVED = 'archived'


class RatingType(str, Enum):
    STAR = 'star'
    NUMBER_SCALE = 'number_scale'


class ValidationRuleType(str, Enum):
    """Advanced validation rule kinds."""
    REQUIRED = 'required'
    MIN_LENGTH = 'minLength'
    MAX_LENGTH = 'maxLength'
    EXACT_LENGTH = 'exactLength'
    PATTERN = 'pattern'
    IS_EMAIL = 'isEmail'
    IS_URL = 'isURL'
    MIN_VALUE = 'minValue'
    MAX_VALUE = 'maxValue'
    NUMBER_INTEGER = 'numberInteger'
    STRING_CONTAINS = 'stringContains'
    STRING_NOT_CONTAINS = 'stringNotContains'


class ConditionOperator(str, Enum):
    """Comparators usable inside a conditional-logic rule."""
    EQUALS = 'equals'
    NOT_EQUALS = 'notEquals'
    CONTAINS = 'contains'
    NOT_CONTAINS = 'notContains'
    STARTS_WITH = 'startsWith'
    ENDS_WITH = 'endsWith'
    IS_GREATER_THAN = 'isGreaterThan'
    IS_GREATER_THAN_OR_EQUALS = 'isGreaterThanOrEquals'
    IS_LESS_THAN = 'isLessThan'
    IS_LESS_THAN_OR_EQUALS = 'isLessThanOrEquals'
    IS_EMPTY = 'isEmpty'
    IS_NOT_EMPTY = 'isNotEmpty'
    IS_ONE_OF = 'isOneOf'
    IS_NONE_OF = 'isNoneOf'
    IS_BEFORE = 'isBefore'
    IS_AFTER = 'isAfter'
    IS_ON_OR_BEFORE = 'isOnOrBefore'
    IS_ON_OR_AFTER = 'isOnOrAfter'


class ConditionalAction(str, Enum):
    SHOW = 'show'
    HIDE = 'hide'


class LogicType(str, Enum):
    """How a block combines its conditions: ALL (AND) or ANY (OR)."""
    ALL = 'all'
    ANY = 'any'


def _enum_value(value: Union[Enum, str]) -> str:
    """Wire value for an enum member or a preserved unknown string."""
    if isinstance(value, Enum):
        return value.value
    return value


@dataclass
class FieldOption:
    """A selectable choice on a select/radio/checkbox field."""
    id: str
    label: str
    value: str

    def to_dict(self) -> Dict[str, Any]:
        return {'id': self.id, 'label': self.label, 'value': self.value}


@dataclass
class ValidationRule:
    """
    An author-defined constraint beyond the built-in type checks.

    `type` is a ValidationRuleType member, or the raw string when the rule
    kind is unknown to this engine version.
    """
    id: str
    type: Union[ValidationRuleType, str]
    params: Dict[str, Any] = field(default_factory=dict)
    custom_message: str = ''
    is_active: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'type': _enum_value(self.type),
            'params': dict(self.params),
            'customMessage': self.custom_message,
            'isActive': self.is_active,
        }


@dataclass
class ConditionalLogicRule:
    """A single condition: compare the answer of `source_field_id` to `value`."""
    source_field_id: str
    operator: Union[ConditionOperator, str]
    value: Any = None
    id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'sourceFieldId': self.source_field_id,
            'operator': _enum_value(self.operator),
        }
        if self.id is not None:
            data['id'] = self.id
        if self.value is not None:
            data['value'] = self.value
        return data


@dataclass
class ConditionalLogicBlock:
    """Shows or hides the owning field when its conditions match."""
    id: str
    action: ConditionalAction
    logic_type: LogicType
    conditions: List[ConditionalLogicRule] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'id': self.id,
            'action': self.action.value,
            'logicType': self.logic_type.value,
            'conditions': [c.to_dict() for c in self.conditions],
        }


# (attribute name, wire key) for optional field attributes, in wire order
OPTIONAL_FIELD_ATTRIBUTES = [
    ('description', 'description'),
    ('placeholder', 'placeholder'),
    ('is_hidden', 'isHidden'),
    ('default_value', 'defaultValue'),
    ('allow_multiple_selection', 'allowMultipleSelection'),
    ('allow_other', 'allowOther'),
    ('min', 'min'),
    ('max', 'max'),
    ('min_length', 'minLength'),
    ('max_length', 'maxLength'),
    ('rows', 'rows'),
    ('date_format', 'dateFormat'),
    ('min_date', 'minDate'),
    ('max_date', 'maxDate'),
    ('max_file_size_mb', 'maxFileSizeMB'),
    ('allowed_file_types', 'allowedFileTypes'),
    ('max_rating', 'maxRating'),
    ('level', 'level'),
    ('content', 'content'),
]


@dataclass
class FormFieldDefinition:
    """A question, input, or presentational element within a section."""
    id: str
    type: FormFieldType
    label: str
    name: str
    is_required: bool = False
    description: Optional[str] = None
    placeholder: Optional[str] = None
    is_hidden: Optional[bool] = None
    default_value: Any = None

    # Choice fields
    options: Optional[List[FieldOption]] = None
    allow_multiple_selection: Optional[bool] = None
    allow_other: Optional[bool] = None

    # Number
    min: Optional[float] = None
    max: Optional[float] = None

    # Text / textarea
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    rows: Optional[int] = None

    # Date
    date_format: Optional[str] = None
    min_date: Optional[str] = None
    max_date: Optional[str] = None

    # File
    max_file_size_mb: Optional[float] = None
    allowed_file_types: Optional[List[str]] = None

    # Rating
    max_rating: Optional[int] = None
    rating_type: Optional[RatingType] = None

    # Heading / paragraph
    level: Optional[int] = None
    content: Optional[str] = None

    advanced_validation_rules: Optional[List[ValidationRule]] = None
    conditional_logic: Optional[List[ConditionalLogicBlock]] = None

    @property
    def is_presentational(self) -> bool:
        return self.type in PRESENTATIONAL_FIELD_TYPES

    @property
    def has_options(self) -> bool:
        return bool(self.options)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON wire format, omitting unset optional attributes."""
        data = {
            'id': self.id,
            'type': self.type.value,
            'label': self.label,
            'name': self.name,
            'isRequired': self.is_required,
        }
        for attr, key in OPTIONAL_FIELD_ATTRIBUTES:
            value = getattr(self, attr)
            if value is not None:
                data[key] = list(value) if isinstance(value, list) else value

        if self.options is not None:
            data['options'] = [o.to_dict() for o in self.options]
        if self.rating_type is not None:
            data['ratingType'] = self.rating_type.value
        if self.advanced_validation_rules is not None:
            data['advancedValidationRules'] = [r.to_dict() for r in self.advanced_validation_rules]
        if self.conditional_logic is not None:
            data['conditionalLogic'] = [b.to_dict() for b in self.conditional_logic]
        return data


@dataclass
class FormSectionDefinition:
    id: str
    fields: List[FormFieldDefinition] = field(default_factory=list)
    title: Optional[str] = None
    description: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'id': self.id}
        if self.title is not None:
            data['title'] = self.title
        if self.description is not None:
            data['description'] = self.description
        data['fields'] = [f.to_dict() for f in self.fields]
        return data


@dataclass
class FormSettings:
    """Submission behaviour settings."""
    submit_button_text: str = 'Submit'
    custom_success_message: Optional[str] = None
    redirect_url: Optional[str] = None
    allow_multiple_submissions: bool = True
    collect_email: bool = False
    require_login: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'submitButtonText': self.submit_button_text,
            'allowMultipleSubmissions': self.allow_multiple_submissions,
            'collectEmail': self.collect_email,
            'requireLogin': self.require_login,
        }
        if self.custom_success_message is not None:
            data['customSuccessMessage'] = self.custom_success_message
        if self.redirect_url is not None:
            data['redirectUrl'] = self.redirect_url
        return data


@dataclass
class FormDefinition:
    """The declarative description of a form's structure and rules."""
    id: str
    title: str
    created_at: str
    updated_at: str
    sections: List[FormSectionDefinition] = field(default_factory=list)
    description: Optional[str] = None
    status: FormStatus = FormStatus.DRAFT
    settings: Optional[FormSettings] = None
    version: int = 1
    user_id: Optional[str] = None

    def get_all_fields(self) -> List[FormFieldDefinition]:
        """All fields, flattened in section order."""
        return [f for section in self.sections for f in section.fields]

    def find_field(self, field_id: str) -> Optional[FormFieldDefinition]:
        for section in self.sections:
            for form_field in section.fields:
                if form_field.id == field_id:
                    return form_field
        return None

    def fields_by_id(self) -> Dict[str, FormFieldDefinition]:
        return {f.id: f for f in self.get_all_fields()}

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the JSON wire format."""
        data = {
            'id': self.id,
            'title': self.title,
            'sections': [s.to_dict() for s in self.sections],
            'status': self.status.value,
            'version': self.version,
            'createdAt': self.created_at,
            'updatedAt': self.updated_at,
        }
        if self.description is not None:
            data['description'] = self.description
        if self.settings is not None:
            data['settings'] = self.settings.to_dict()
        if self.user_id is not None:
            data['userId'] = self.user_id
        return data


# Type aliases for the live answer set and validation output
FormValues = Dict[str, Any]
FormErrors = Dict[str, List[str]]
