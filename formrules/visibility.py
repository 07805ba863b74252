"""
Visibility Evaluator

Determines which fields are shown given the current answers. All decisions
come from the field's conditional-logic blocks and the raw answer map.

Visibility Rules:
=================

1. A field without conditional logic follows its static default
   (visible unless isHidden is set)
2. Blocks without conditions take no part in the decision
3. A block matches when ALL (logicType=all) or ANY (logicType=any) of its
   conditions hold
4. A matched HIDE block hides the field, whatever else matched
5. Otherwise a matched SHOW block shows the field
6. If nothing matched, a field carrying SHOW blocks stays hidden (show
   blocks gate the field); a field with only HIDE blocks falls back to its
   static default

Dependency Safety:
==================
Conditions always read values[sourceFieldId] directly, never the computed
visibility of the source field. Visibility is therefore a pure function of
the answer map and two fields that reference each other cannot loop.
"""

from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from formrules.models import (
    FormDefinition, FormFieldDefinition, ConditionalLogicBlock,
    ConditionalLogicRule, ConditionOperator, ConditionalAction, LogicType,
    FormFieldType, FormValues,
)
from formrules.utils import (
    is_value_empty, is_number, coerce_to_number, parse_temporal, get_logger,
)


FieldIndex = Dict[str, FormFieldDefinition]

COMPARISON_OPERATORS = frozenset([
    ConditionOperator.IS_GREATER_THAN,
    ConditionOperator.IS_GREATER_THAN_OR_EQUALS,
    ConditionOperator.IS_LESS_THAN,
    ConditionOperator.IS_LESS_THAN_OR_EQUALS,
])


def strict_equals(left: Any, right: Any) -> bool:
    """
    Type-aware equality with no coercion.

    Booleans only equal booleans, numbers only equal numbers (1 == 1.0),
    strings only equal strings. Lists and dicts compare element-wise.
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if is_number(left) or is_number(right):
        return is_number(left) and is_number(right) and left == right
    if left is None or right is None:
        return left is None and right is None
    if type(left) is not type(right):
        if isinstance(left, (list, tuple)) and isinstance(right, (list, tuple)):
            return _sequence_equals(left, right)
        return False
    if isinstance(left, (list, tuple)):
        return _sequence_equals(left, right)
    if isinstance(left, dict):
        return (left.keys() == right.keys()
                and all(strict_equals(left[k], right[k]) for k in left))
    return left == right


def _sequence_equals(left, right) -> bool:
    return len(left) == len(right) and all(strict_equals(a, b) for a, b in zip(left, right))


def _contains(actual: Any, expected: Any) -> bool:
    if isinstance(actual, str):
        return isinstance(expected, str) and expected in actual
    if isinstance(actual, (list, tuple)):
        return any(strict_equals(item, expected) for item in actual)
    return False


def _is_one_of(actual: Any, expected: Any) -> bool:
    candidates = expected if isinstance(expected, (list, tuple)) else [expected]
    if isinstance(actual, (list, tuple)):
        return any(_contains(candidates, item) for item in actual)
    return _contains(candidates, actual)


def _compare_numbers(actual: Any, expected: Any, operator: ConditionOperator) -> bool:
    left = coerce_to_number(actual)
    right = coerce_to_number(expected)
    if left is None or right is None:
        return False

    if operator == ConditionOperator.IS_GREATER_THAN:
        return left > right
    if operator == ConditionOperator.IS_GREATER_THAN_OR_EQUALS:
        return left >= right
    if operator == ConditionOperator.IS_LESS_THAN:
        return left < right
    return left <= right


def _compare_temporal(actual: Any, expected: Any, operator: ConditionOperator,
                      source_type: Optional[FormFieldType]) -> bool:
    prefer_time = source_type == FormFieldType.TIME
    left = parse_temporal(actual, prefer_time)
    right = parse_temporal(expected, prefer_time)
    if left is None or right is None or type(left) is not type(right):
        return False

    if operator == ConditionOperator.IS_BEFORE:
        return left < right
    if operator == ConditionOperator.IS_AFTER:
        return left > right
    if operator == ConditionOperator.IS_ON_OR_BEFORE:
        return left <= right
    return left >= right


def evaluate_operator(operator: Union[ConditionOperator, str], actual: Any, expected: Any,
                      source_type: Optional[FormFieldType] = None) -> bool:
    """
    Apply a comparator to an answer and the condition's value.

    Never raises: mismatched types, unparseable numbers or dates, and
    unknown operators all evaluate to False.

    Args:
        operator: The comparator (enum member or raw wire string)
        actual: The current answer of the source field
        expected: The value stored on the condition
        source_type: Type of the source field, used as a parsing hint

    Returns:
        Whether the condition holds
    """
    try:
        operator = ConditionOperator(operator)
    except ValueError:
        get_logger().warning('Unknown conditional logic operator: %s', operator)
        return False

    if operator == ConditionOperator.EQUALS:
        return strict_equals(actual, expected)
    if operator == ConditionOperator.NOT_EQUALS:
        return not strict_equals(actual, expected)
    if operator == ConditionOperator.CONTAINS:
        return _contains(actual, expected)
    if operator == ConditionOperator.NOT_CONTAINS:
        if not isinstance(actual, (str, list, tuple)):
            return False
        if isinstance(actual, str) and not isinstance(expected, str):
            return False
        return not _contains(actual, expected)
    if operator == ConditionOperator.STARTS_WITH:
        return isinstance(actual, str) and isinstance(expected, str) and actual.startswith(expected)
    if operator == ConditionOperator.ENDS_WITH:
        return isinstance(actual, str) and isinstance(expected, str) and actual.endswith(expected)
    if operator in COMPARISON_OPERATORS:
        return _compare_numbers(actual, expected, operator)
    if operator == ConditionOperator.IS_EMPTY:
        return is_value_empty(actual)
    if operator == ConditionOperator.IS_NOT_EMPTY:
        return not is_value_empty(actual)
    if operator == ConditionOperator.IS_ONE_OF:
        return _is_one_of(actual, expected)
    if operator == ConditionOperator.IS_NONE_OF:
        return not _is_one_of(actual, expected)
    return _compare_temporal(actual, expected, operator, source_type)


def evaluate_condition(condition: ConditionalLogicRule, values: FormValues,
                       fields_by_id: Optional[FieldIndex] = None) -> bool:
    """Evaluate one condition against the raw answer map."""
    source_field = fields_by_id.get(condition.source_field_id) if fields_by_id else None
    return evaluate_operator(
        condition.operator,
        values.get(condition.source_field_id),
        condition.value,
        source_field.type if source_field is not None else None,
    )


def evaluate_block(block: ConditionalLogicBlock, values: FormValues,
                   fields_by_id: Optional[FieldIndex] = None) -> bool:
    """Combine a block's conditions with AND (all) or OR (any)."""
    results = (evaluate_condition(c, values, fields_by_id) for c in block.conditions)
    if block.logic_type == LogicType.ALL:
        return all(results)
    return any(results)


def index_fields(all_fields: Union[Mapping[str, FormFieldDefinition],
                                   Iterable[FormFieldDefinition], None]) -> FieldIndex:
    """Build an id -> field map from a field list (or pass a map through)."""
    if all_fields is None:
        return {}
    if isinstance(all_fields, Mapping):
        return dict(all_fields)
    return {f.id: f for f in all_fields}


def evaluate_visibility(form_field: FormFieldDefinition, fields_by_id: FieldIndex,
                        values: FormValues) -> bool:
    """Visibility against a prebuilt field index (see the rules above)."""
    static_default = not form_field.is_hidden
    blocks = [b for b in (form_field.conditional_logic or []) if b.conditions]
    if not blocks:
        return static_default

    has_show_block = False
    show_matched = False
    for block in blocks:
        if block.action == ConditionalAction.SHOW:
            has_show_block = True
        if evaluate_block(block, values, fields_by_id):
            if block.action == ConditionalAction.HIDE:
                return False
            show_matched = True

    if show_matched:
        return True
    if has_show_block:
        return False
    return static_default


def is_field_visible(form_field: FormFieldDefinition,
                     all_fields: Union[Mapping[str, FormFieldDefinition],
                                       Iterable[FormFieldDefinition], None],
                     values: Optional[FormValues]) -> bool:
    """
    Check whether a field is currently shown.

    Args:
        form_field: The field whose visibility is being determined
        all_fields: Every field in the document (list or id -> field map),
            used for source-field type hints
        values: The current answer map (never mutated)

    Returns:
        True if the field should be rendered and validated
    """
    return evaluate_visibility(form_field, index_fields(all_fields), values or {})


def get_visible_fields(definition: FormDefinition,
                       values: Optional[FormValues]) -> List[FormFieldDefinition]:
    """All currently visible fields, in document order."""
    fields_by_id = definition.fields_by_id()
    values = values or {}
    return [
        f for f in definition.get_all_fields()
        if evaluate_visibility(f, fields_by_id, values)
    ]


def is_field_id_visible(definition: FormDefinition, field_id: str,
                        values: Optional[FormValues]) -> bool:
    """Visibility by id; unknown ids are never visible."""
    fields_by_id = definition.fields_by_id()
    form_field = fields_by_id.get(field_id)
    if form_field is None:
        return False
    return evaluate_visibility(form_field, fields_by_id, values or {})


def get_dependent_field_ids(definition: FormDefinition, source_field_id: str) -> List[str]:
    """
    Ids of fields whose visibility reads the given field.

    Lets a renderer re-evaluate only the affected fields after a change.
    """
    dependents = []
    for form_field in definition.get_all_fields():
        for block in form_field.conditional_logic or []:
            if any(c.source_field_id == source_field_id for c in block.conditions):
                dependents.append(form_field.id)
                break
    return dependents
