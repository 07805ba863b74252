"""
Strict parsing of untyped form documents (e.g. persisted JSON) into the
typed schema defined in formrules.models.

Parsing Rules Documentation:
============================

1. DOCUMENT
   - Top level must be a JSON object, anything else is fatal (SchemaParseError)
   - id, title, createdAt, updatedAt: required strings
   - status: draft | published | archived (default draft)
   - version: integer (default 1)
   - sections: required list

2. SECTIONS
   - id: required string
   - fields: required list

3. FIELDS
   - id: required string, unique across the document
   - type: one of FormFieldType
   - label: required string
   - name: string, unique across the document (defaults to id)
   - isRequired / isHidden / allowOther / allowMultipleSelection: booleans
   - numeric attributes: empty string and NaN normalize to None,
     numeric strings normalize to numbers
   - select/radio: at least one option required
   - checkbox with allowMultipleSelection: at least one option required
   - heading level: 1-6
   - rating: maxRating >= 1, ratingType star | number_scale
   - minDate/maxDate: parseable dates

4. ADVANCED VALIDATION RULES
   - id: required string
   - type: unknown kinds are kept and reported as warnings
   - params: object (default {})
   - isActive: boolean (default true)

5. CONDITIONAL LOGIC
   - Must be a list of blocks; the legacy {operator, conditions} object is rejected
   - action: show | hide, logicType: all | any
   - sourceFieldId must reference another field in the same document
   - unknown operators are kept and reported as warnings

Shape mismatches are returned as data, never raised. Only a document that
is not an object at all is a fatal error.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Set, Tuple

from formrules.models import (
    FormDefinition, FormSectionDefinition, FormFieldDefinition, FormSettings,
    FieldOption, ValidationRule, ConditionalLogicBlock, ConditionalLogicRule,
    FormFieldType, FormStatus, RatingType, ValidationRuleType,
    ConditionOperator, ConditionalAction, LogicType,
)
from formrules.utils import parse_date_value


@dataclass
class ParseIssue:
    """A single problem found in a document, with its precise path."""
    path: str
    message: str
    code: str

    def to_dict(self) -> Dict[str, str]:
        return {'field': self.path, 'message': self.message, 'code': self.code}


class SchemaParseError(ValueError):
    """Raised when a document cannot be turned into a FormDefinition."""

    def __init__(self, message: str, issues: Optional[List[ParseIssue]] = None):
        super().__init__(message)
        self.issues = issues or []


@dataclass
class ParseResult:
    """Container for parse results."""
    definition: Optional[FormDefinition] = None
    errors: List[ParseIssue] = field(default_factory=list)
    warnings: List[ParseIssue] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def add_error(self, path: str, message: str, code: str = 'invalid'):
        self.errors.append(ParseIssue(path, message, code))

    def add_warning(self, path: str, message: str, code: str = 'warning'):
        self.warnings.append(ParseIssue(path, message, code))

    def raise_for_errors(self) -> FormDefinition:
        """Return the parsed definition or raise SchemaParseError with every issue."""
        if self.errors or self.definition is None:
            raise SchemaParseError(
                f'Form definition is invalid ({len(self.errors)} error(s))', self.errors
            )
        return self.definition

    def to_dict(self) -> Dict[str, Any]:
        return {
            'ok': self.is_valid,
            'errors': [e.to_dict() for e in self.errors],
            'warnings': [w.to_dict() for w in self.warnings],
        }


FIELD_TYPE_VALUES = [t.value for t in FormFieldType]
STATUS_VALUES = [s.value for s in FormStatus]
RATING_TYPE_VALUES = [r.value for r in RatingType]
RULE_TYPE_VALUES = {t.value for t in ValidationRuleType}
OPERATOR_VALUES = {o.value for o in ConditionOperator}
ACTION_VALUES = [a.value for a in ConditionalAction]
LOGIC_TYPE_VALUES = [l.value for l in LogicType]

# (attribute name, wire key, integer-only)
NUMERIC_FIELD_ATTRIBUTES = [
    ('min', 'min', False),
    ('max', 'max', False),
    ('min_length', 'minLength', True),
    ('max_length', 'maxLength', True),
    ('rows', 'rows', True),
    ('max_file_size_mb', 'maxFileSizeMB', False),
    ('max_rating', 'maxRating', True),
    ('level', 'level', True),
]

STRING_FIELD_ATTRIBUTES = [
    ('description', 'description'),
    ('placeholder', 'placeholder'),
    ('date_format', 'dateFormat'),
    ('min_date', 'minDate'),
    ('max_date', 'maxDate'),
    ('content', 'content'),
]

BOOLEAN_FIELD_ATTRIBUTES = [
    ('is_hidden', 'isHidden'),
    ('allow_multiple_selection', 'allowMultipleSelection'),
    ('allow_other', 'allowOther'),
]


def normalize_number(value: Any, path: str, result: ParseResult,
                     integer: bool = False) -> Optional[float]:
    """
    Normalize an optional numeric attribute.

    None, '' and NaN become None. Numeric strings are converted.
    Anything else is reported as an error.
    """
    if value is None:
        return None
    if isinstance(value, str):
        stripped = value.strip()
        if stripped == '':
            return None
        try:
            value = float(stripped)
        except (ValueError, OverflowError):
            result.add_error(path, 'Must be a number', 'type')
            return None
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        result.add_error(path, 'Must be a number', 'type')
        return None
    if isinstance(value, int):
        try:
            float(value)
        except OverflowError:
            result.add_error(path, 'Must be a finite number', 'type')
            return None
        return value
    if math.isnan(value):
        return None
    if math.isinf(value):
        result.add_error(path, 'Must be a finite number', 'type')
        return None
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    if integer and not isinstance(value, int):
        result.add_error(path, 'Must be a whole number', 'type')
        return None
    return value


def _required_string(data: Dict[str, Any], key: str, path: str,
                     result: ParseResult) -> Optional[str]:
    value = data.get(key)
    if value is None:
        result.add_error(f'{path}.{key}' if path else key, 'This field is required', 'required')
        return None
    if not isinstance(value, str):
        result.add_error(f'{path}.{key}' if path else key, 'Must be a string', 'type')
        return None
    return value


def _optional_string(data: Dict[str, Any], key: str, path: str,
                     result: ParseResult) -> Optional[str]:
    value = data.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        result.add_error(f'{path}.{key}' if path else key, 'Must be a string', 'type')
        return None
    return value


def _optional_bool(data: Dict[str, Any], key: str, path: str,
                   result: ParseResult, default: Optional[bool] = None) -> Optional[bool]:
    value = data.get(key)
    if value is None:
        return default
    if not isinstance(value, bool):
        result.add_error(f'{path}.{key}' if path else key, 'Must be true or false', 'type')
        return default
    return value


def _parse_options(raw_options: Any, path: str, result: ParseResult) -> Optional[List[FieldOption]]:
    if raw_options is None:
        return None
    if not isinstance(raw_options, list):
        result.add_error(path, 'Options must be a list', 'type')
        return None

    options = []
    for i, raw in enumerate(raw_options):
        prefix = f'{path}[{i}]'
        if not isinstance(raw, dict):
            result.add_error(prefix, 'Option must be an object', 'type')
            continue
        option_id = _required_string(raw, 'id', prefix, result)
        label = _required_string(raw, 'label', prefix, result)
        value = _required_string(raw, 'value', prefix, result)
        if option_id is None or label is None or value is None:
            continue
        options.append(FieldOption(id=option_id, label=label, value=value))
    return options


def _parse_validation_rules(raw_rules: Any, path: str,
                            result: ParseResult) -> Optional[List[ValidationRule]]:
    if raw_rules is None:
        return None
    if not isinstance(raw_rules, list):
        result.add_error(path, 'Validation rules must be a list', 'type')
        return None

    rules = []
    for i, raw in enumerate(raw_rules):
        prefix = f'{path}[{i}]'
        if not isinstance(raw, dict):
            result.add_error(prefix, 'Validation rule must be an object', 'type')
            continue

        rule_id = _required_string(raw, 'id', prefix, result)
        rule_type = _required_string(raw, 'type', prefix, result)
        if rule_type is not None and rule_type not in RULE_TYPE_VALUES:
            result.add_warning(f'{prefix}.type',
                               f'Unknown validation rule type "{rule_type}" will be ignored',
                               'unknown_rule_type')

        params = raw.get('params')
        if params is None:
            params = {}
        elif not isinstance(params, dict):
            result.add_error(f'{prefix}.params', 'Params must be an object', 'type')
            params = {}

        custom_message = _optional_string(raw, 'customMessage', prefix, result) or ''
        is_active = _optional_bool(raw, 'isActive', prefix, result, default=True)

        if rule_id is None or rule_type is None:
            continue

        rules.append(ValidationRule(
            id=rule_id,
            type=ValidationRuleType(rule_type) if rule_type in RULE_TYPE_VALUES else rule_type,
            params=dict(params),
            custom_message=custom_message,
            is_active=is_active,
        ))
    return rules


def _parse_conditional_logic(raw_blocks: Any, path: str, field_id: Optional[str],
                             known_field_ids: Set[str],
                             result: ParseResult) -> Optional[List[ConditionalLogicBlock]]:
    if raw_blocks is None:
        return None
    if isinstance(raw_blocks, dict) and 'operator' in raw_blocks:
        result.add_error(path,
                         'Legacy single-block conditional logic is not supported; '
                         'migrate to a list of show/hide blocks',
                         'legacy_shape')
        return None
    if not isinstance(raw_blocks, list):
        result.add_error(path, 'Conditional logic must be a list of blocks', 'type')
        return None

    blocks = []
    for i, raw in enumerate(raw_blocks):
        prefix = f'{path}[{i}]'
        if not isinstance(raw, dict):
            result.add_error(prefix, 'Logic block must be an object', 'type')
            continue

        block_id = _required_string(raw, 'id', prefix, result)

        action = raw.get('action')
        if action not in ACTION_VALUES:
            result.add_error(f'{prefix}.action', f'Must be one of: {", ".join(ACTION_VALUES)}', 'enum')
            action = None

        logic_type = raw.get('logicType')
        if logic_type not in LOGIC_TYPE_VALUES:
            result.add_error(f'{prefix}.logicType',
                             f'Must be one of: {", ".join(LOGIC_TYPE_VALUES)}', 'enum')
            logic_type = None

        raw_conditions = raw.get('conditions')
        if raw_conditions is None:
            raw_conditions = []
        if not isinstance(raw_conditions, list):
            result.add_error(f'{prefix}.conditions', 'Conditions must be a list', 'type')
            raw_conditions = []

        conditions = []
        for j, raw_condition in enumerate(raw_conditions):
            condition = _parse_condition(raw_condition, f'{prefix}.conditions[{j}]',
                                         field_id, known_field_ids, result)
            if condition is not None:
                conditions.append(condition)

        if block_id is None or action is None or logic_type is None:
            continue

        blocks.append(ConditionalLogicBlock(
            id=block_id,
            action=ConditionalAction(action),
            logic_type=LogicType(logic_type),
            conditions=conditions,
        ))
    return blocks


def _parse_condition(raw: Any, path: str, field_id: Optional[str],
                     known_field_ids: Set[str], result: ParseResult) -> Optional[ConditionalLogicRule]:
    if not isinstance(raw, dict):
        result.add_error(path, 'Condition must be an object', 'type')
        return None

    source_field_id = _required_string(raw, 'sourceFieldId', path, result)
    operator = _required_string(raw, 'operator', path, result)
    condition_id = _optional_string(raw, 'id', path, result)

    if source_field_id is not None:
        if source_field_id not in known_field_ids:
            result.add_error(f'{path}.sourceFieldId',
                             f'Referenced field "{source_field_id}" does not exist',
                             'invalid_reference')
            source_field_id = None
        elif source_field_id == field_id:
            result.add_error(f'{path}.sourceFieldId',
                             'A field cannot depend on its own value', 'self_reference')
            source_field_id = None

    if operator is not None and operator not in OPERATOR_VALUES:
        result.add_warning(f'{path}.operator',
                           f'Unknown operator "{operator}" never matches', 'unknown_operator')

    if source_field_id is None or operator is None:
        return None

    return ConditionalLogicRule(
        source_field_id=source_field_id,
        operator=ConditionOperator(operator) if operator in OPERATOR_VALUES else operator,
        value=raw.get('value'),
        id=condition_id,
    )


def _parse_field(raw: Dict[str, Any], path: str, known_field_ids: Set[str],
                 result: ParseResult) -> Optional[FormFieldDefinition]:
    field_id = _required_string(raw, 'id', path, result)

    field_type = raw.get('type')
    if field_type not in FIELD_TYPE_VALUES:
        result.add_error(f'{path}.type', f'Unknown field type "{field_type}"', 'unknown_type')
        field_type = None

    label = _required_string(raw, 'label', path, result)
    name = _optional_string(raw, 'name', path, result)
    if name is None:
        name = field_id

    is_required = _optional_bool(raw, 'isRequired', path, result, default=False)

    attributes = {}
    for attr, key in STRING_FIELD_ATTRIBUTES:
        attributes[attr] = _optional_string(raw, key, path, result)
    for attr, key in BOOLEAN_FIELD_ATTRIBUTES:
        attributes[attr] = _optional_bool(raw, key, path, result)
    for attr, key, integer in NUMERIC_FIELD_ATTRIBUTES:
        attributes[attr] = normalize_number(raw.get(key), f'{path}.{key}', result, integer=integer)

    for attr, key in (('min_date', 'minDate'), ('max_date', 'maxDate')):
        if attributes[attr] is not None and parse_date_value(attributes[attr]) is None:
            result.add_error(f'{path}.{key}', 'Please enter a valid date (YYYY-MM-DD)', 'format')

    if attributes['level'] is not None and not 1 <= attributes['level'] <= 6:
        result.add_error(f'{path}.level', 'Heading level must be between 1 and 6', 'range')
    if attributes['max_rating'] is not None and attributes['max_rating'] < 1:
        result.add_error(f'{path}.maxRating', 'Maximum rating must be at least 1', 'range')

    rating_type = raw.get('ratingType')
    if rating_type is not None and rating_type not in RATING_TYPE_VALUES:
        result.add_error(f'{path}.ratingType',
                         f'Must be one of: {", ".join(RATING_TYPE_VALUES)}', 'enum')
        rating_type = None

    allowed_file_types = raw.get('allowedFileTypes')
    if allowed_file_types is not None:
        if not isinstance(allowed_file_types, list) or not all(isinstance(t, str) for t in allowed_file_types):
            result.add_error(f'{path}.allowedFileTypes', 'Must be a list of strings', 'type')
            allowed_file_types = None
        else:
            allowed_file_types = list(allowed_file_types)

    options = _parse_options(raw.get('options'), f'{path}.options', result)
    if field_type in (FormFieldType.SELECT.value, FormFieldType.RADIO.value) and not options:
        result.add_error(f'{path}.options', 'Choice fields require at least one option', 'required')
    if (field_type == FormFieldType.CHECKBOX.value and attributes['allow_multiple_selection']
            and not options):
        result.add_error(f'{path}.options', 'Checkbox groups require at least one option', 'required')
    if field_type == FormFieldType.CHECKBOX.value and options is not None and not options:
        result.add_error(f'{path}.options', 'Checkbox options cannot be empty', 'required')

    rules = _parse_validation_rules(raw.get('advancedValidationRules'),
                                    f'{path}.advancedValidationRules', result)
    logic = _parse_conditional_logic(raw.get('conditionalLogic'), f'{path}.conditionalLogic',
                                     field_id, known_field_ids, result)

    if field_id is None or field_type is None or label is None:
        return None

    return FormFieldDefinition(
        id=field_id,
        type=FormFieldType(field_type),
        label=label,
        name=name,
        is_required=is_required,
        default_value=raw.get('defaultValue'),
        options=options,
        rating_type=RatingType(rating_type) if rating_type is not None else None,
        allowed_file_types=allowed_file_types,
        advanced_validation_rules=rules,
        conditional_logic=logic,
        **attributes
    )


def _parse_settings(raw: Any, result: ParseResult) -> Optional[FormSettings]:
    if raw is None:
        return None
    if not isinstance(raw, dict):
        result.add_error('settings', 'Settings must be an object', 'type')
        return None

    return FormSettings(
        submit_button_text=_optional_string(raw, 'submitButtonText', 'settings', result) or 'Submit',
        custom_success_message=_optional_string(raw, 'customSuccessMessage', 'settings', result),
        redirect_url=_optional_string(raw, 'redirectUrl', 'settings', result),
        allow_multiple_submissions=_optional_bool(raw, 'allowMultipleSubmissions', 'settings',
                                                  result, default=True),
        collect_email=_optional_bool(raw, 'collectEmail', 'settings', result, default=False),
        require_login=_optional_bool(raw, 'requireLogin', 'settings', result, default=False),
    )


def _collect_field_ids(raw_sections: List[Any]) -> Set[str]:
    """First pass: every string field id, so forward references resolve."""
    ids = set()
    for raw_section in raw_sections:
        if not isinstance(raw_section, dict) or not isinstance(raw_section.get('fields'), list):
            continue
        for raw_field in raw_section['fields']:
            if isinstance(raw_field, dict) and isinstance(raw_field.get('id'), str):
                ids.add(raw_field['id'])
    return ids


def _check_uniqueness(sections: List[FormSectionDefinition],
                      positions: Dict[int, str], result: ParseResult):
    seen_ids: Dict[str, str] = {}
    seen_names: Dict[str, str] = {}
    for section in sections:
        for form_field in section.fields:
            path = positions[id(form_field)]
            if form_field.id in seen_ids:
                result.add_error(f'{path}.id',
                                 f'Duplicate field id "{form_field.id}" (also at {seen_ids[form_field.id]})',
                                 'duplicate')
            else:
                seen_ids[form_field.id] = path
            if form_field.name in seen_names:
                result.add_error(f'{path}.name',
                                 f'Duplicate field name "{form_field.name}"', 'duplicate')
            else:
                seen_names[form_field.name] = path


def parse_form_definition(raw: Any) -> ParseResult:
    """
    Parse an untyped document into a FormDefinition.

    Args:
        raw: Decoded JSON (normally a dict)

    Returns:
        ParseResult with the definition on success, or the full error list

    Raises:
        SchemaParseError: if the document is not an object at all
    """
    if not isinstance(raw, dict):
        raise SchemaParseError(
            f'Form definition must be an object, got {type(raw).__name__}',
            [ParseIssue('', 'Form definition must be an object', 'type')]
        )

    result = ParseResult()

    form_id = _required_string(raw, 'id', '', result)
    title = _required_string(raw, 'title', '', result)
    created_at = _required_string(raw, 'createdAt', '', result)
    updated_at = _required_string(raw, 'updatedAt', '', result)
    description = _optional_string(raw, 'description', '', result)
    user_id = _optional_string(raw, 'userId', '', result)

    status = raw.get('status')
    if status is None:
        status = FormStatus.DRAFT.value
    if status not in STATUS_VALUES:
        result.add_error('status', f'Must be one of: {", ".join(STATUS_VALUES)}', 'enum')
        status = FormStatus.DRAFT.value

    version = raw.get('version')
    if version is None:
        version = 1
    elif isinstance(version, bool) or not isinstance(version, int):
        result.add_error('version', 'Must be a whole number', 'type')
        version = 1

    settings = _parse_settings(raw.get('settings'), result)

    raw_sections = raw.get('sections')
    if raw_sections is None:
        result.add_error('sections', 'This field is required', 'required')
        raw_sections = []
    elif not isinstance(raw_sections, list):
        result.add_error('sections', 'Sections must be a list', 'type')
        raw_sections = []

    known_field_ids = _collect_field_ids(raw_sections)
    positions: Dict[int, str] = {}
    sections = []

    for i, raw_section in enumerate(raw_sections):
        prefix = f'sections[{i}]'
        if not isinstance(raw_section, dict):
            result.add_error(prefix, 'Section must be an object', 'type')
            continue

        section_id = _required_string(raw_section, 'id', prefix, result)
        raw_fields = raw_section.get('fields')
        if raw_fields is None:
            result.add_error(f'{prefix}.fields', 'This field is required', 'required')
            raw_fields = []
        elif not isinstance(raw_fields, list):
            result.add_error(f'{prefix}.fields', 'Fields must be a list', 'type')
            raw_fields = []

        fields = []
        for j, raw_field in enumerate(raw_fields):
            field_path = f'{prefix}.fields[{j}]'
            if not isinstance(raw_field, dict):
                result.add_error(field_path, 'Field must be an object', 'type')
                continue
            parsed = _parse_field(raw_field, field_path, known_field_ids, result)
            if parsed is not None:
                positions[id(parsed)] = field_path
                fields.append(parsed)

        if section_id is None:
            continue

        sections.append(FormSectionDefinition(
            id=section_id,
            title=_optional_string(raw_section, 'title', prefix, result),
            description=_optional_string(raw_section, 'description', prefix, result),
            fields=fields,
        ))

    _check_uniqueness(sections, positions, result)

    if result.errors:
        return result

    result.definition = FormDefinition(
        id=form_id,
        title=title,
        description=description,
        sections=sections,
        status=FormStatus(status),
        settings=settings,
        version=version,
        created_at=created_at,
        updated_at=updated_at,
        user_id=user_id,
    )
    return result


def parse_or_raise(raw: Any) -> FormDefinition:
    """Parse a document, raising SchemaParseError on any error."""
    return parse_form_definition(raw).raise_for_errors()


def serialize(definition: FormDefinition) -> Dict[str, Any]:
    """Serialize a definition back to its JSON wire format."""
    return definition.to_dict()


# Short alias used by callers of the engine
parse = parse_form_definition
