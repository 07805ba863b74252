"""
Publish-readiness check.

Inspects a parsed form document (no answers involved) and reports the
problems an author should fix before publishing. Errors block publishing,
warnings are advisory.

The definition may come from parse() or be built in code (an editor
composing a form, a migration). Built definitions skip the parser, so the
structural checks the parser also enforces (options on choice fields,
existing logic sources) are repeated here.

Readiness Rules:
================

Errors:
- Form has no fields
- Input field without a label
- Select/radio field without options
- Conditional logic referencing a field that does not exist
- settings.redirectUrl that is unsafe (script schemes, protocol-relative,
  non-http(s))

Warnings:
- Conditional logic reading a presentational field (it never has an answer)
- pattern rule whose regex does not compile or is too long to run
- Duplicate option values within one field
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from formrules.models import FormDefinition, FormFieldDefinition, FormFieldType, ValidationRuleType
from formrules.utils import check_redirect_url
from formrules.validation import MAX_PATTERN_LENGTH


class ReadinessIssueType(str, Enum):
    ERROR = 'error'
    WARNING = 'warning'


@dataclass
class ReadinessIssue:
    """A single publish blocker or advisory."""
    type: ReadinessIssueType
    message: str
    field_id: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'type': self.type.value, 'message': self.message}
        if self.field_id is not None:
            data['fieldId'] = self.field_id
        return data


@dataclass
class ReadinessResult:
    """Container for readiness results."""
    issues: List[ReadinessIssue] = field(default_factory=list)

    @property
    def is_ready(self) -> bool:
        return not any(i.type == ReadinessIssueType.ERROR for i in self.issues)

    @property
    def errors(self) -> List[ReadinessIssue]:
        return [i for i in self.issues if i.type == ReadinessIssueType.ERROR]

    @property
    def warnings(self) -> List[ReadinessIssue]:
        return [i for i in self.issues if i.type == ReadinessIssueType.WARNING]

    def add_error(self, message: str, field_id: Optional[str] = None):
        self.issues.append(ReadinessIssue(ReadinessIssueType.ERROR, message, field_id))

    def add_warning(self, message: str, field_id: Optional[str] = None):
        self.issues.append(ReadinessIssue(ReadinessIssueType.WARNING, message, field_id))

    def to_dict(self) -> Dict[str, Any]:
        return {
            'isReady': self.is_ready,
            'issues': [i.to_dict() for i in self.issues],
        }


def _display_name(form_field: FormFieldDefinition) -> str:
    return form_field.label or form_field.name or form_field.id


def _check_field(form_field: FormFieldDefinition, result: ReadinessResult):
    if not form_field.is_presentational and not form_field.label.strip():
        result.add_error(f'Field "{form_field.id}" is missing a label', form_field.id)

    if form_field.type in (FormFieldType.SELECT, FormFieldType.RADIO) and not form_field.options:
        result.add_error(f'"{_display_name(form_field)}" needs at least one option', form_field.id)

    if form_field.options:
        seen = set()
        for option in form_field.options:
            if option.value in seen:
                result.add_warning(
                    f'"{_display_name(form_field)}" has duplicate option value "{option.value}"',
                    form_field.id
                )
            seen.add(option.value)

    for rule in form_field.advanced_validation_rules or []:
        if rule.type != ValidationRuleType.PATTERN:
            continue
        pattern = rule.params.get('pattern')
        if not isinstance(pattern, str):
            continue
        if len(pattern) > MAX_PATTERN_LENGTH:
            result.add_warning(
                f'"{_display_name(form_field)}" has a validation pattern longer than '
                f'{MAX_PATTERN_LENGTH} characters',
                form_field.id
            )
            continue
        try:
            re.compile(pattern)
        except re.error:
            result.add_warning(
                f'"{_display_name(form_field)}" has an invalid validation pattern: {pattern}',
                form_field.id
            )


def _check_logic_references(form_field: FormFieldDefinition,
                            fields_by_id: Dict[str, FormFieldDefinition],
                            result: ReadinessResult):
    for block in form_field.conditional_logic or []:
        for condition in block.conditions:
            source = fields_by_id.get(condition.source_field_id)
            if source is None:
                result.add_error(
                    f'Conditional logic on "{_display_name(form_field)}" references '
                    f'a field that does not exist ({condition.source_field_id})',
                    form_field.id
                )
            elif source.is_presentational:
                result.add_warning(
                    f'Conditional logic on "{_display_name(form_field)}" depends on '
                    f'"{_display_name(source)}", which never has a value',
                    form_field.id
                )


def check_form_readiness(definition: FormDefinition) -> ReadinessResult:
    """
    Check whether a form can be published.

    Args:
        definition: The form document, parsed or built in code

    Returns:
        ReadinessResult; is_ready is False when any error was found
    """
    result = ReadinessResult()
    all_fields = definition.get_all_fields()

    if not all_fields:
        result.add_error('Form has no fields')

    fields_by_id = definition.fields_by_id()
    for form_field in all_fields:
        _check_field(form_field, result)
        _check_logic_references(form_field, fields_by_id, result)

    if definition.settings is not None:
        reason = check_redirect_url(definition.settings.redirect_url)
        if reason:
            result.add_error(f'Redirect URL is not allowed: {reason}')

    return result
