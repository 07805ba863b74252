"""
Field and form validation against a parsed form definition.

Validation Rules Documentation:
===============================

1. VISIBILITY
   - When the document and answer map are supplied, a field hidden by
     conditional logic is skipped entirely and is always valid
   - Presentational fields (heading, paragraph, divider) are never validated

2. REQUIRED
   - Required + empty value: "{label} is required"
   - Required single checkbox left unticked: "{label} must be checked"
   - Optional + empty: valid, no further checks
   - Required + empty: the remaining checks still run and their messages
     accumulate (e.g. minLength, an active pattern rule)

3. BUILT-IN CHECKS (all applicable messages accumulate)
   - Text length: minLength / maxLength against the string length
   - Number: must parse as a number, then min / max
   - Email: fixed RFC-light pattern
   - URL: absolute URL with scheme
   - Phone: digits, spaces, hyphens, parentheses and plus only
   - Date: must parse, then minDate / maxDate
   - Time: HH:MM or HH:MM:SS
   - File: size in MB against maxFileSizeMB, MIME / extension against allowedFileTypes
   - Rating: 1..maxRating (default 5)
   - Choice: value must be one of the field's options unless allowOther

4. ADVANCED RULES
   - Each active rule runs independently (isActive=false skips it)
   - Failure message is the rule's customMessage, or the rule default
   - A malformed regex fails that rule only
   - Patterns over MAX_PATTERN_LENGTH are treated as malformed; values over
     MAX_PATTERN_VALUE_LENGTH fail the pattern rule without matching
   - Unknown rule types are logged and pass
"""

import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from formrules.models import (
    FormDefinition, FormFieldDefinition, FormFieldType, ValidationRule,
    ValidationRuleType, FormValues, FormErrors,
)
from formrules.utils import (
    is_value_empty, coerce_to_number, format_number, parse_date_value,
    parse_time_value, parse_temporal, is_valid_url, is_number, get_logger,
)
from formrules.visibility import FieldIndex, evaluate_visibility


@dataclass
class FieldValidationResult:
    """Outcome of validating one field."""
    is_valid: bool = True
    error_messages: List[str] = field(default_factory=list)

    def add_error(self, message: str):
        self.error_messages.append(message)
        self.is_valid = False

    def to_dict(self) -> Dict[str, Any]:
        return {'isValid': self.is_valid, 'errorMessages': list(self.error_messages)}


@dataclass
class FormValidationResult:
    """Outcome of validating every field of a form."""
    is_valid: bool = True
    field_errors: FormErrors = field(default_factory=dict)

    def add_field_errors(self, field_id: str, messages: List[str]):
        if not messages:
            return
        self.field_errors[field_id] = list(messages)
        self.is_valid = False

    def get_first_error(self) -> Optional[str]:
        """First message in document order, for summary banners."""
        for messages in self.field_errors.values():
            if messages:
                return messages[0]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isValid': self.is_valid,
            'fieldErrors': {k: list(v) for k, v in self.field_errors.items()},
        }


DEFAULT_MAX_RATING = 5
BYTES_PER_MB = 1024 * 1024

# Regex patterns
EMAIL_PATTERN = re.compile(r'^[^\s@]+@[^\s@]+\.[^\s@]+$')
PHONE_PATTERN = re.compile(r'^[\d\s\-()+]+$')

# Default advanced-rule messages
RULE_MESSAGES = {
    ValidationRuleType.REQUIRED: 'This field is required',
    ValidationRuleType.MIN_LENGTH: 'Must be at least {length} characters',
    ValidationRuleType.MAX_LENGTH: 'Must be no more than {length} characters',
    ValidationRuleType.EXACT_LENGTH: 'Must be exactly {length} characters',
    ValidationRuleType.PATTERN: 'Invalid format',
    ValidationRuleType.IS_EMAIL: 'Must be a valid email address',
    ValidationRuleType.IS_URL: 'Must be a valid URL',
    ValidationRuleType.MIN_VALUE: 'Must be at least {value}',
    ValidationRuleType.MAX_VALUE: 'Must be no more than {value}',
    ValidationRuleType.NUMBER_INTEGER: 'Must be a whole number',
    ValidationRuleType.STRING_CONTAINS: 'Must contain "{substring}"',
    ValidationRuleType.STRING_NOT_CONTAINS: 'Must not contain "{substring}"',
}
INVALID_PATTERN_MESSAGE = 'Invalid validation pattern'

# Author regexes run against client input; bound both sides
MAX_PATTERN_LENGTH = 500
MAX_PATTERN_VALUE_LENGTH = 10000


def _check_text_length(form_field: FormFieldDefinition, value: Any, result: FieldValidationResult):
    if not isinstance(value, str):
        return
    if form_field.min_length is not None and len(value) < form_field.min_length:
        result.add_error(f'Must be at least {format_number(form_field.min_length)} characters')
    if form_field.max_length is not None and len(value) > form_field.max_length:
        result.add_error(f'Must be no more than {format_number(form_field.max_length)} characters')


def _check_number(form_field: FormFieldDefinition, value: Any, result: FieldValidationResult):
    number = coerce_to_number(value)
    if number is None:
        result.add_error('Must be a valid number')
        return
    if form_field.min is not None and number < form_field.min:
        result.add_error(f'Must be at least {format_number(form_field.min)}')
    if form_field.max is not None and number > form_field.max:
        result.add_error(f'Must be no more than {format_number(form_field.max)}')


def _check_date(form_field: FormFieldDefinition, value: Any, result: FieldValidationResult):
    parsed = parse_date_value(value)
    if parsed is None:
        result.add_error('Must be a valid date')
        return

    min_date = parse_date_value(form_field.min_date)
    if min_date is not None and parsed < min_date:
        result.add_error(f'Date must be after {form_field.min_date}')

    max_date = parse_date_value(form_field.max_date)
    if max_date is not None and parsed > max_date:
        result.add_error(f'Date must be before {form_field.max_date}')


def file_type_allowed(mime_type: Optional[str], file_name: Optional[str],
                      allowed_types: List[str]) -> bool:
    """
    Check a file against allowedFileTypes.

    Entries may be exact MIME types ('application/pdf'), wildcard MIME
    types ('image/*'), or extensions ('.pdf' or 'pdf').
    """
    mime = (mime_type or '').lower()
    name = (file_name or '').lower()

    for allowed in allowed_types:
        candidate = allowed.strip().lower()
        if not candidate:
            continue
        if candidate.startswith('.'):
            if name.endswith(candidate):
                return True
        elif '/' in candidate:
            if candidate.endswith('/*'):
                if mime.startswith(candidate[:-1]):
                    return True
            elif mime == candidate:
                return True
        elif name.endswith('.' + candidate):
            return True
    return False


def _check_files(form_field: FormFieldDefinition, value: Any, result: FieldValidationResult):
    files = value if isinstance(value, list) else [value]
    too_large = False
    wrong_type = False

    for upload in files:
        if isinstance(upload, dict):
            size = upload.get('size')
            mime_type = upload.get('type')
            file_name = upload.get('name')
        elif isinstance(upload, str):
            size, mime_type, file_name = None, None, upload
        else:
            continue

        if (form_field.max_file_size_mb is not None and is_number(size)
                and size > form_field.max_file_size_mb * BYTES_PER_MB):
            too_large = True
        if form_field.allowed_file_types and not file_type_allowed(
                mime_type, file_name, form_field.allowed_file_types):
            wrong_type = True

    if too_large:
        result.add_error(f'File size must be less than {format_number(form_field.max_file_size_mb)}MB')
    if wrong_type:
        result.add_error(f'File type must be one of: {", ".join(form_field.allowed_file_types)}')


def _check_rating(form_field: FormFieldDefinition, value: Any, result: FieldValidationResult):
    max_rating = form_field.max_rating or DEFAULT_MAX_RATING
    rating = coerce_to_number(value)
    if rating is None or rating < 1 or rating > max_rating:
        result.add_error(f'Rating must be between 1 and {format_number(max_rating)}')


def _check_choice(form_field: FormFieldDefinition, value: Any, result: FieldValidationResult):
    if form_field.allow_other or not form_field.options:
        return

    option_values = {o.value for o in form_field.options}
    multiple = (form_field.type == FormFieldType.CHECKBOX
                or form_field.allow_multiple_selection)

    if isinstance(value, list):
        selected = value if multiple else None
    else:
        selected = [value]

    if selected is None or not all(isinstance(v, str) and v in option_values for v in selected):
        result.add_error('Please select a valid option')


def check_built_in_rules(form_field: FormFieldDefinition, value: Any) -> List[str]:
    """
    Run the type-derived checks.

    Length limits apply to any string, including the empty one. Format
    checks only look at non-empty values.

    Returns:
        List of error messages (empty when the value passes)
    """
    result = FieldValidationResult()
    field_type = form_field.type

    _check_text_length(form_field, value, result)

    if is_value_empty(value):
        return result.error_messages

    if field_type == FormFieldType.NUMBER:
        _check_number(form_field, value, result)
    elif field_type == FormFieldType.EMAIL:
        if not isinstance(value, str) or not EMAIL_PATTERN.match(value):
            result.add_error('Must be a valid email address')
    elif field_type == FormFieldType.URL:
        if not is_valid_url(value):
            result.add_error('Must be a valid URL')
    elif field_type == FormFieldType.TEL:
        if not isinstance(value, str) or not PHONE_PATTERN.match(value):
            result.add_error('Must be a valid phone number')
    elif field_type == FormFieldType.DATE:
        _check_date(form_field, value, result)
    elif field_type == FormFieldType.TIME:
        if parse_time_value(value) is None:
            result.add_error('Must be a valid time')
    elif field_type == FormFieldType.FILE:
        _check_files(form_field, value, result)
    elif field_type == FormFieldType.RATING:
        _check_rating(form_field, value, result)
    elif field_type in (FormFieldType.SELECT, FormFieldType.RADIO, FormFieldType.CHECKBOX):
        _check_choice(form_field, value, result)

    return result.error_messages


def _value_length(value: Any) -> Optional[int]:
    if isinstance(value, (str, list)):
        return len(value)
    return None


def _compare_bound(form_field: FormFieldDefinition, value: Any, bound: Any) -> Optional[int]:
    """
    Compare a value with a minValue/maxValue bound.

    Returns -1, 0 or 1, or None when the two cannot be compared.
    Date and time fields compare as calendar values.
    """
    if form_field.type in (FormFieldType.DATE, FormFieldType.TIME):
        prefer_time = form_field.type == FormFieldType.TIME
        left = parse_temporal(value, prefer_time)
        right = parse_temporal(bound, prefer_time)
        if left is None or right is None or type(left) is not type(right):
            return None
    else:
        left = coerce_to_number(value)
        right = coerce_to_number(bound)
        if left is None or right is None:
            return None
    return (left > right) - (left < right)


def check_rule(form_field: FormFieldDefinition, value: Any, rule: ValidationRule) -> Optional[str]:
    """
    Evaluate one advanced validation rule.

    Args:
        form_field: The field definition (for type context)
        value: The current, non-empty value
        rule: The rule to evaluate

    Returns:
        The failure message, or None if the rule passes
    """
    try:
        rule_type = ValidationRuleType(rule.type)
    except ValueError:
        get_logger().warning('Unknown validation rule type: %s', rule.type)
        return None

    params = rule.params or {}

    def failure(**fmt) -> str:
        if rule.custom_message:
            return rule.custom_message
        return RULE_MESSAGES[rule_type].format(**fmt)

    if rule_type == ValidationRuleType.REQUIRED:
        return failure() if is_value_empty(value) else None

    if rule_type in (ValidationRuleType.MIN_LENGTH, ValidationRuleType.MAX_LENGTH,
                     ValidationRuleType.EXACT_LENGTH):
        expected = coerce_to_number(params.get('length'))
        actual = _value_length(value)
        if expected is None or actual is None:
            return None
        if rule_type == ValidationRuleType.MIN_LENGTH:
            failed = actual < expected
        elif rule_type == ValidationRuleType.MAX_LENGTH:
            failed = actual > expected
        else:
            failed = actual != expected
        return failure(length=format_number(expected)) if failed else None

    if rule_type == ValidationRuleType.PATTERN:
        pattern = params.get('pattern')
        if not isinstance(value, str) or not isinstance(pattern, str) or not pattern:
            return None
        if len(pattern) > MAX_PATTERN_LENGTH:
            get_logger().warning('Regex pattern in rule %s exceeds %d characters',
                                 rule.id, MAX_PATTERN_LENGTH)
            return INVALID_PATTERN_MESSAGE
        if len(value) > MAX_PATTERN_VALUE_LENGTH:
            return failure()
        try:
            matched = re.search(pattern, value) is not None
        except re.error as e:
            get_logger().warning('Invalid regex pattern %r in rule %s: %s', pattern, rule.id, e)
            return INVALID_PATTERN_MESSAGE
        return None if matched else failure()

    if rule_type == ValidationRuleType.IS_EMAIL:
        if not isinstance(value, str):
            return None
        return None if EMAIL_PATTERN.match(value) else failure()

    if rule_type == ValidationRuleType.IS_URL:
        if not isinstance(value, str):
            return None
        return None if is_valid_url(value) else failure()

    if rule_type in (ValidationRuleType.MIN_VALUE, ValidationRuleType.MAX_VALUE):
        bound = params.get('value')
        if bound is None:
            return None
        comparison = _compare_bound(form_field, value, bound)
        if comparison is None:
            return None
        if rule_type == ValidationRuleType.MIN_VALUE:
            failed = comparison < 0
        else:
            failed = comparison > 0
        shown = format_number(bound) if is_number(bound) else bound
        return failure(value=shown) if failed else None

    if rule_type == ValidationRuleType.NUMBER_INTEGER:
        number = coerce_to_number(value)
        if number is None:
            return None
        return None if float(number).is_integer() else failure()

    # STRING_CONTAINS / STRING_NOT_CONTAINS
    substring = params.get('substring')
    if not isinstance(value, str) or not isinstance(substring, str) or not substring:
        return None
    if rule_type == ValidationRuleType.STRING_CONTAINS:
        return None if substring in value else failure(substring=substring)
    return failure(substring=substring) if substring in value else None


def _validate_field(form_field: FormFieldDefinition, value: Any,
                    fields_by_id: Optional[FieldIndex],
                    values: Optional[FormValues]) -> FieldValidationResult:
    result = FieldValidationResult()

    if form_field.is_presentational:
        return result

    if fields_by_id is not None and values is not None:
        if not evaluate_visibility(form_field, fields_by_id, values):
            return result

    empty = is_value_empty(value)

    if form_field.is_required:
        if empty:
            result.add_error(f'{form_field.label} is required')
        elif (form_field.type == FormFieldType.CHECKBOX and not form_field.options
              and value is False):
            result.add_error(f'{form_field.label} must be checked')

    if empty and not form_field.is_required:
        return result

    for message in check_built_in_rules(form_field, value):
        result.add_error(message)

    for rule in form_field.advanced_validation_rules or []:
        if rule.is_active is False:
            continue
        message = check_rule(form_field, value, rule)
        if message:
            result.add_error(message)

    return result


def validate_field(form_field: FormFieldDefinition, value: Any,
                   definition: Optional[FormDefinition] = None,
                   values: Optional[FormValues] = None) -> FieldValidationResult:
    """
    Validate a single field's value.

    Args:
        form_field: The field definition
        value: The field's current answer
        definition: The owning document; with `values`, enables the
            visibility check so hidden fields are skipped
        values: The full answer map

    Returns:
        FieldValidationResult with every applicable error message
    """
    fields_by_id = None
    if definition is not None and values is not None:
        fields_by_id = definition.fields_by_id()
    return _validate_field(form_field, value, fields_by_id, values)


def validate_form(definition: FormDefinition, values: Optional[FormValues]) -> FormValidationResult:
    """
    Validate every input field of a form against the answer map.

    Hidden fields and presentational fields never produce errors.
    """
    values = values or {}
    fields_by_id = definition.fields_by_id()
    result = FormValidationResult()

    for form_field in definition.get_all_fields():
        if form_field.is_presentational:
            continue
        field_result = _validate_field(form_field, values.get(form_field.id), fields_by_id, values)
        if not field_result.is_valid:
            result.add_field_errors(form_field.id, field_result.error_messages)

    return result


def get_submission_values(definition: FormDefinition, values: Optional[FormValues]) -> FormValues:
    """
    Answers that belong in a submission: visible input fields only.

    Answers for hidden fields, presentational fields, and ids that are not
    in the document are dropped.
    """
    values = values or {}
    fields_by_id = definition.fields_by_id()
    return {
        f.id: values[f.id]
        for f in definition.get_all_fields()
        if not f.is_presentational
        and f.id in values
        and evaluate_visibility(f, fields_by_id, values)
    }
