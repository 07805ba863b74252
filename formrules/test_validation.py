"""
Unit tests for field and form validation.
"""

import pytest
from formrules.models import (
    FormFieldDefinition, FormFieldType, FieldOption, ValidationRule, ValidationRuleType,
)
from formrules.parser import parse_or_raise
from formrules.validation import (
    validate_field, validate_form, get_submission_values, check_rule,
    file_type_allowed, FieldValidationResult, FormValidationResult,
    MAX_PATTERN_LENGTH, MAX_PATTERN_VALUE_LENGTH,
)
from formrules.utils import is_value_empty


def make_field(field_id='f', field_type=FormFieldType.TEXT, label='Field', **kwargs):
    return FormFieldDefinition(id=field_id, type=field_type, label=label, name=field_id, **kwargs)


def rule(rule_type, custom_message='', is_active=True, **params):
    return ValidationRule(id='r1', type=rule_type, params=params,
                          custom_message=custom_message, is_active=is_active)


def errors_for(form_field, value):
    return validate_field(form_field, value).error_messages


class TestResults:
    def test_field_result_initially_valid(self):
        result = FieldValidationResult()
        assert result.is_valid is True
        assert result.error_messages == []

    def test_field_result_add_error(self):
        result = FieldValidationResult()
        result.add_error('message')
        assert result.is_valid is False
        assert result.to_dict() == {'isValid': False, 'errorMessages': ['message']}

    def test_form_result_ignores_empty_messages(self):
        result = FormValidationResult()
        result.add_field_errors('a', [])
        assert result.is_valid is True
        result.add_field_errors('b', ['bad'])
        assert result.to_dict() == {'isValid': False, 'fieldErrors': {'b': ['bad']}}
        assert result.get_first_error() == 'bad'


class TestEmptiness:
    @pytest.mark.parametrize('value', ['', None, [], {}])
    def test_empty(self, value):
        assert is_value_empty(value) is True

    @pytest.mark.parametrize('value', [0, False, ' ', ['a'], {'k': 1}])
    def test_not_empty(self, value):
        assert is_value_empty(value) is False


class TestRequired:
    def test_required_empty(self):
        f = make_field(label='Full name', is_required=True)
        assert errors_for(f, '') == ['Full name is required']

    def test_required_filled(self):
        f = make_field(label='Full name', is_required=True)
        assert validate_field(f, 'x').is_valid is True

    def test_required_empty_accumulates_other_checks(self):
        f = make_field(label='Name', is_required=True, min_length=3,
                       advanced_validation_rules=[rule(ValidationRuleType.PATTERN, pattern='^[A-Z]+$')])
        assert errors_for(f, '') == [
            'Name is required', 'Must be at least 3 characters', 'Invalid format'
        ]

    def test_required_empty_skips_format_checks(self):
        f = make_field(field_type=FormFieldType.NUMBER, label='Age', is_required=True, min=1)
        assert errors_for(f, '') == ['Age is required']
        assert errors_for(f, None) == ['Age is required']

    def test_optional_empty_is_valid(self):
        f = make_field(min_length=3, advanced_validation_rules=[rule(ValidationRuleType.IS_EMAIL)])
        assert validate_field(f, None).is_valid is True

    def test_zero_is_an_answer(self):
        f = make_field(field_type=FormFieldType.NUMBER, is_required=True)
        assert validate_field(f, 0).is_valid is True

    def test_required_single_checkbox(self):
        f = make_field(field_type=FormFieldType.CHECKBOX, label='Terms', is_required=True)
        assert errors_for(f, False) == ['Terms must be checked']
        assert validate_field(f, True).is_valid is True

    def test_required_multi_select_empty_list(self):
        f = make_field(field_type=FormFieldType.CHECKBOX, label='Pets', is_required=True,
                       allow_multiple_selection=True,
                       options=[FieldOption('o1', 'Cat', 'cat')])
        assert errors_for(f, []) == ['Pets is required']


class TestTextLength:
    def test_min_length(self):
        f = make_field(min_length=3)
        assert errors_for(f, 'ab') == ['Must be at least 3 characters']

    def test_max_length(self):
        f = make_field(field_type=FormFieldType.TEXTAREA, max_length=5)
        assert errors_for(f, 'abcdef') == ['Must be no more than 5 characters']

    def test_within_bounds(self):
        f = make_field(min_length=1, max_length=5)
        assert validate_field(f, 'abc').is_valid is True


class TestNumber:
    @pytest.fixture
    def number_field(self):
        return make_field(field_type=FormFieldType.NUMBER, min=1, max=100)

    def test_below_min(self, number_field):
        assert errors_for(number_field, '0') == ['Must be at least 1']

    def test_above_max(self, number_field):
        assert errors_for(number_field, '101') == ['Must be no more than 100']

    def test_not_a_number(self, number_field):
        assert errors_for(number_field, 'abc') == ['Must be a valid number']

    def test_in_range(self, number_field):
        assert validate_field(number_field, 50).is_valid is True
        assert validate_field(number_field, '1').is_valid is True

    def test_boolean_is_not_a_number(self, number_field):
        assert errors_for(number_field, True) == ['Must be a valid number']

    def test_integer_too_large_for_float(self, number_field):
        assert errors_for(number_field, 10 ** 400) == ['Must be a valid number']

    def test_huge_numeric_string(self, number_field):
        assert errors_for(number_field, '1' + '0' * 400) == ['Must be a valid number']


class TestTypedFormats:
    def test_email(self):
        f = make_field(field_type=FormFieldType.EMAIL)
        assert errors_for(f, 'not-an-email') == ['Must be a valid email address']
        assert validate_field(f, 'jane@example.com').is_valid is True

    def test_url(self):
        f = make_field(field_type=FormFieldType.URL)
        assert errors_for(f, 'example dot com') == ['Must be a valid URL']
        assert validate_field(f, 'https://example.com/path').is_valid is True

    def test_phone(self):
        f = make_field(field_type=FormFieldType.TEL)
        assert errors_for(f, 'call me') == ['Must be a valid phone number']
        assert validate_field(f, '+61 (07) 3000-1234').is_valid is True

    def test_time(self):
        f = make_field(field_type=FormFieldType.TIME)
        assert errors_for(f, '25:99') == ['Must be a valid time']
        assert validate_field(f, '09:30').is_valid is True


class TestDate:
    @pytest.fixture
    def date_field(self):
        return make_field(field_type=FormFieldType.DATE,
                          min_date='2024-01-01', max_date='2024-12-31')

    def test_invalid_date(self, date_field):
        assert errors_for(date_field, '31/02/2024') == ['Must be a valid date']

    def test_before_min(self, date_field):
        assert errors_for(date_field, '2023-12-31') == ['Date must be after 2024-01-01']

    def test_after_max(self, date_field):
        assert errors_for(date_field, '2025-01-01') == ['Date must be before 2024-12-31']

    def test_within_range(self, date_field):
        assert validate_field(date_field, '2024-06-15').is_valid is True

    def test_offset_past_calendar_limit(self, date_field):
        assert errors_for(date_field, '0001-01-01T00:00:00+05:00') == ['Must be a valid date']


class TestFile:
    def test_file_too_large(self):
        f = make_field(field_type=FormFieldType.FILE, max_file_size_mb=1)
        upload = {'name': 'big.pdf', 'size': 2 * 1024 * 1024, 'type': 'application/pdf'}
        assert errors_for(f, upload) == ['File size must be less than 1MB']

    def test_file_type_not_allowed(self):
        f = make_field(field_type=FormFieldType.FILE, allowed_file_types=['image/*', '.pdf'])
        upload = [{'name': 'notes.txt', 'size': 10, 'type': 'text/plain'}]
        assert errors_for(f, upload) == ['File type must be one of: image/*, .pdf']

    def test_allowed_upload(self):
        f = make_field(field_type=FormFieldType.FILE, max_file_size_mb=5,
                       allowed_file_types=['image/*', '.pdf'])
        uploads = [
            {'name': 'photo.JPG', 'size': 1000, 'type': 'image/jpeg'},
            {'name': 'doc.pdf', 'size': 1000, 'type': ''},
        ]
        assert validate_field(f, uploads).is_valid is True

    def test_unrepresentable_size_ignored(self):
        f = make_field(field_type=FormFieldType.FILE, max_file_size_mb=1)
        assert validate_field(f, {'name': 'a.pdf', 'size': 10 ** 400}).is_valid is True

    def test_file_type_matching(self):
        assert file_type_allowed('application/pdf', 'a.pdf', ['application/pdf']) is True
        assert file_type_allowed('image/png', 'a.png', ['image/*']) is True
        assert file_type_allowed('', 'a.docx', ['docx']) is True
        assert file_type_allowed('text/plain', 'a.txt', ['image/*', 'pdf']) is False


class TestRatingAndChoice:
    def test_rating_default_max(self):
        f = make_field(field_type=FormFieldType.RATING)
        assert errors_for(f, 6) == ['Rating must be between 1 and 5']
        assert validate_field(f, 5).is_valid is True

    def test_rating_custom_max(self):
        f = make_field(field_type=FormFieldType.RATING, max_rating=10)
        assert validate_field(f, 8).is_valid is True
        assert errors_for(f, 0) == ['Rating must be between 1 and 10']

    def test_select_unknown_option(self):
        f = make_field(field_type=FormFieldType.SELECT,
                       options=[FieldOption('o1', 'Red', 'red')])
        assert errors_for(f, 'green') == ['Please select a valid option']
        assert validate_field(f, 'red').is_valid is True

    def test_allow_other(self):
        f = make_field(field_type=FormFieldType.RADIO, allow_other=True,
                       options=[FieldOption('o1', 'Red', 'red')])
        assert validate_field(f, 'green').is_valid is True

    def test_checkbox_group_values(self):
        f = make_field(field_type=FormFieldType.CHECKBOX, allow_multiple_selection=True,
                       options=[FieldOption('o1', 'Cat', 'cat'), FieldOption('o2', 'Dog', 'dog')])
        assert validate_field(f, ['cat', 'dog']).is_valid is True
        assert errors_for(f, ['cat', 'fish']) == ['Please select a valid option']


class TestAdvancedRules:
    def test_pattern_with_custom_message(self):
        f = make_field(advanced_validation_rules=[
            rule(ValidationRuleType.PATTERN, custom_message='Must be uppercase letters only',
                 pattern='^[A-Z]+$')
        ])
        assert errors_for(f, 'abc') == ['Must be uppercase letters only']
        assert validate_field(f, 'ABC').is_valid is True

    def test_inactive_rule_skipped(self):
        f = make_field(advanced_validation_rules=[
            rule(ValidationRuleType.PATTERN, custom_message='Must be uppercase letters only',
                 is_active=False, pattern='^[A-Z]+$')
        ])
        assert validate_field(f, 'abc').is_valid is True
        assert validate_field(f, 'ABC').is_valid is True

    def test_malformed_pattern(self):
        f = make_field(advanced_validation_rules=[rule(ValidationRuleType.PATTERN, pattern='[a-')])
        assert errors_for(f, 'anything') == ['Invalid validation pattern']

    def test_overlong_pattern_not_run(self):
        f = make_field(advanced_validation_rules=[
            rule(ValidationRuleType.PATTERN, pattern='(a+)+' + 'a' * MAX_PATTERN_LENGTH)
        ])
        assert errors_for(f, 'aaaa') == ['Invalid validation pattern']

    def test_overlong_value_fails_pattern(self):
        f = make_field(advanced_validation_rules=[
            rule(ValidationRuleType.PATTERN, custom_message='Letters only', pattern='^(a+)+$')
        ])
        assert errors_for(f, 'a' * (MAX_PATTERN_VALUE_LENGTH + 1)) == ['Letters only']

    def test_malformed_pattern_does_not_stop_other_rules(self):
        f = make_field(advanced_validation_rules=[
            rule(ValidationRuleType.PATTERN, pattern='('),
            rule(ValidationRuleType.MIN_LENGTH, length=10),
        ])
        assert errors_for(f, 'short') == [
            'Invalid validation pattern', 'Must be at least 10 characters'
        ]

    @pytest.mark.parametrize('rule_type,params,value,message', [
        (ValidationRuleType.MIN_LENGTH, {'length': 3}, 'ab', 'Must be at least 3 characters'),
        (ValidationRuleType.MAX_LENGTH, {'length': 2}, 'abc', 'Must be no more than 2 characters'),
        (ValidationRuleType.EXACT_LENGTH, {'length': 4}, 'abc', 'Must be exactly 4 characters'),
        (ValidationRuleType.PATTERN, {'pattern': '^\\d+$'}, 'abc', 'Invalid format'),
        (ValidationRuleType.IS_EMAIL, {}, 'nope', 'Must be a valid email address'),
        (ValidationRuleType.IS_URL, {}, 'nope', 'Must be a valid URL'),
        (ValidationRuleType.MIN_VALUE, {'value': 10}, '5', 'Must be at least 10'),
        (ValidationRuleType.MAX_VALUE, {'value': 10}, 11, 'Must be no more than 10'),
        (ValidationRuleType.NUMBER_INTEGER, {}, '2.5', 'Must be a whole number'),
        (ValidationRuleType.STRING_CONTAINS, {'substring': 'x'}, 'abc', 'Must contain "x"'),
        (ValidationRuleType.STRING_NOT_CONTAINS, {'substring': 'b'}, 'abc', 'Must not contain "b"'),
    ])
    def test_default_messages(self, rule_type, params, value, message):
        f = make_field()
        assert check_rule(f, value, rule(rule_type, **params)) == message

    @pytest.mark.parametrize('rule_type,params,value', [
        (ValidationRuleType.MIN_LENGTH, {'length': 3}, 'abc'),
        (ValidationRuleType.MAX_LENGTH, {'length': 3}, 'abc'),
        (ValidationRuleType.EXACT_LENGTH, {'length': 3}, 'abc'),
        (ValidationRuleType.PATTERN, {'pattern': '^[a-c]+$'}, 'abc'),
        (ValidationRuleType.IS_EMAIL, {}, 'a@b.co'),
        (ValidationRuleType.IS_URL, {}, 'http://a.example'),
        (ValidationRuleType.MIN_VALUE, {'value': 1}, 1),
        (ValidationRuleType.MAX_VALUE, {'value': 1}, '1'),
        (ValidationRuleType.NUMBER_INTEGER, {}, '4'),
        (ValidationRuleType.STRING_CONTAINS, {'substring': 'b'}, 'abc'),
        (ValidationRuleType.STRING_NOT_CONTAINS, {'substring': 'z'}, 'abc'),
        (ValidationRuleType.REQUIRED, {}, 'abc'),
    ])
    def test_passing_values(self, rule_type, params, value):
        assert check_rule(make_field(), value, rule(rule_type, **params)) is None

    def test_every_rule_type_handled(self):
        for rule_type in ValidationRuleType:
            result = check_rule(make_field(), 'value', rule(rule_type))
            assert result is None or isinstance(result, str)

    def test_required_rule_on_empty_value(self):
        assert check_rule(make_field(), '', rule(ValidationRuleType.REQUIRED)) == 'This field is required'

    def test_required_rule_alongside_is_required(self):
        f = make_field(is_required=True, advanced_validation_rules=[
            rule(ValidationRuleType.REQUIRED, custom_message='Please answer')
        ])
        assert errors_for(f, '') == ['Field is required', 'Please answer']

    def test_optional_empty_skips_required_rule(self):
        f = make_field(advanced_validation_rules=[rule(ValidationRuleType.REQUIRED)])
        assert validate_field(f, '').is_valid is True

    def test_unknown_rule_type_passes(self):
        assert check_rule(make_field(), 'abc', rule('isPostcode')) is None

    def test_min_value_on_date_field(self):
        f = make_field(field_type=FormFieldType.DATE)
        assert check_rule(f, '2024-01-01', rule(ValidationRuleType.MIN_VALUE,
                                                 value='2024-02-01')) == 'Must be at least 2024-02-01'

    def test_number_integer_skips_text(self):
        assert check_rule(make_field(), 'abc', rule(ValidationRuleType.NUMBER_INTEGER)) is None

    def test_accumulates_messages(self):
        f = make_field(min_length=5, advanced_validation_rules=[
            rule(ValidationRuleType.STRING_CONTAINS, substring='@'),
        ])
        assert errors_for(f, 'abc') == ['Must be at least 5 characters', 'Must contain "@"']


class TestPresentationalFields:
    @pytest.mark.parametrize('field_type', [
        FormFieldType.HEADING, FormFieldType.PARAGRAPH, FormFieldType.DIVIDER
    ])
    def test_never_validated(self, field_type):
        f = make_field(field_type=field_type, is_required=True)
        assert validate_field(f, None).is_valid is True


@pytest.fixture
def conditional_form():
    return parse_or_raise({
        'id': 'form', 'title': 'Feedback',
        'createdAt': '2024-01-01', 'updatedAt': '2024-01-01',
        'sections': [{'id': 's1', 'fields': [
            {'id': 'show-optional', 'type': 'checkbox', 'label': 'Add details'},
            {'id': 'details', 'type': 'text', 'label': 'Details', 'isRequired': True,
             'conditionalLogic': [{
                 'id': 'b1', 'action': 'show', 'logicType': 'all',
                 'conditions': [{'sourceFieldId': 'show-optional', 'operator': 'equals',
                                 'value': True}],
             }]},
            {'id': 'heading', 'type': 'heading', 'label': 'Thanks', 'level': 2},
        ]}],
    })


class TestFormValidation:
    def test_hidden_required_field_is_valid(self, conditional_form):
        result = validate_form(conditional_form, {'show-optional': False})
        assert result.is_valid is True
        assert result.field_errors == {}

    def test_shown_required_field_is_enforced(self, conditional_form):
        result = validate_form(conditional_form, {'show-optional': True})
        assert result.is_valid is False
        assert result.field_errors == {'details': ['Details is required']}

    def test_shown_required_field_filled(self, conditional_form):
        result = validate_form(conditional_form, {'show-optional': True, 'details': 'More'})
        assert result.is_valid is True

    def test_validate_field_with_document_skips_hidden(self, conditional_form):
        details = conditional_form.find_field('details')
        values = {'show-optional': False}
        assert validate_field(details, '', conditional_form, values).is_valid is True
        assert validate_field(details, '').is_valid is False

    def test_none_values(self, conditional_form):
        assert validate_form(conditional_form, None).is_valid is True


class TestSubmissionValues:
    def test_drops_hidden_and_unknown_answers(self, conditional_form):
        values = {'show-optional': False, 'details': 'stale', 'stray': 1, 'heading': 'x'}
        assert get_submission_values(conditional_form, values) == {'show-optional': False}

    def test_keeps_visible_answers(self, conditional_form):
        values = {'show-optional': True, 'details': 'More'}
        assert get_submission_values(conditional_form, values) == values
