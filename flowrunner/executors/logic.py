"""Logic executors: condition (branching) and transform (data shaping)."""

import copy
from typing import Any, Dict

from ..core.exceptions import ConditionEvaluationError, TransformError
from ..models.core import (
    BranchSelector,
    ConditionConfig,
    ConditionOperator,
    NodeType,
    StepResult,
    TransformConfig,
    Transformation,
    TransformOperation,
)
from .base import StepContext, StepExecutor
from .paths import MISSING, delete_value_by_path, get_value_by_path, set_value_by_path

NUMERIC_OPERATORS = {
    ConditionOperator.GREATER_THAN,
    ConditionOperator.LESS_THAN,
    ConditionOperator.GREATER_THAN_OR_EQUALS,
    ConditionOperator.LESS_THAN_OR_EQUALS,
}


def _as_text(value: Any) -> str:
    if value is None or value is MISSING:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return value
    return float(str(value).strip())


class ConditionExecutor(StepExecutor):
    """
    Evaluates ``expression operator value`` against the input payload.

    The input is passed through unchanged; the boolean result is returned
    as the branch selector for the branch resolver.
    """

    node_type = NodeType.CONDITION.value
    config_model = ConditionConfig
    config_error = ConditionEvaluationError

    async def run(self, config: ConditionConfig, inputs, context: StepContext) -> StepResult:
        actual = get_value_by_path(inputs, config.expression)
        result = self.evaluate(config.operator, actual, config.value, context)

        return StepResult(
            output=copy.deepcopy(inputs),
            branch=BranchSelector.TRUE if result else BranchSelector.FALSE,
            details={
                "expression": config.expression,
                "operator": config.operator.value,
                "value": config.value,
                "actual": None if actual is MISSING else actual,
                "result": result,
            },
        )

    def evaluate(self, operator: ConditionOperator, actual: Any, expected: Any, context: StepContext) -> bool:
        if operator in NUMERIC_OPERATORS:
            try:
                left, right = _as_number(actual), _as_number(expected)
            except (TypeError, ValueError):
                raise ConditionEvaluationError(
                    f"Operator '{operator.value}' needs numbers, got {_as_text(actual)!r} and {_as_text(expected)!r}",
                    node_id=context.node_id,
                    node_type=self.node_type,
                )
            if operator == ConditionOperator.GREATER_THAN:
                return left > right
            if operator == ConditionOperator.LESS_THAN:
                return left < right
            if operator == ConditionOperator.GREATER_THAN_OR_EQUALS:
                return left >= right
            return left <= right

        if operator == ConditionOperator.EQUALS:
            return self._equals(actual, expected)
        if operator == ConditionOperator.NOT_EQUALS:
            return not self._equals(actual, expected)
        if operator in (ConditionOperator.CONTAINS, ConditionOperator.NOT_CONTAINS):
            if isinstance(actual, (list, tuple, set, dict)):
                found = expected in actual
            else:
                found = _as_text(expected) in _as_text(actual)
            return found if operator == ConditionOperator.CONTAINS else not found
        if operator == ConditionOperator.STARTS_WITH:
            return _as_text(actual).startswith(_as_text(expected))
        if operator == ConditionOperator.ENDS_WITH:
            return _as_text(actual).endswith(_as_text(expected))
        if operator == ConditionOperator.IS_EMPTY:
            return actual is MISSING or actual is None or actual == ""
        if operator == ConditionOperator.IS_NOT_EMPTY:
            return not (actual is MISSING or actual is None or actual == "")
        if operator == ConditionOperator.IS_TRUE:
            return actual is True or _as_text(actual).lower() == "true"
        if operator == ConditionOperator.IS_FALSE:
            return actual is False or _as_text(actual).lower() == "false"

        raise ConditionEvaluationError(
            f"Unsupported operator '{operator}'", node_id=context.node_id, node_type=self.node_type
        )

    @staticmethod
    def _equals(actual: Any, expected: Any) -> bool:
        if actual is MISSING:
            return expected is None
        if actual == expected:
            return True
        # Canvas forms submit comparison values as strings.
        if actual is None or expected is None:
            return False
        return _as_text(actual) == _as_text(expected)


class TransformExecutor(StepExecutor):
    """Applies the configured transformations, in order, to a copy of the input payload."""

    node_type = NodeType.TRANSFORM.value
    config_model = TransformConfig
    config_error = TransformError

    async def run(self, config: TransformConfig, inputs, context: StepContext) -> StepResult:
        payload = copy.deepcopy(inputs)
        for transformation in config.transformations:
            self.apply(payload, transformation, context)

        return StepResult(
            output=payload,
            details={"transformations": [t.model_dump(mode="json") for t in config.transformations]},
        )

    def apply(self, payload: Dict[str, Any], transformation: Transformation, context: StepContext) -> None:
        field, operation, operand = transformation.field, transformation.operation, transformation.value

        def fail(reason: str) -> TransformError:
            return TransformError(
                f"Cannot {operation.value} '{field}': {reason}",
                field=field,
                operation=operation.value,
                node_id=context.node_id,
                node_type=self.node_type,
            )

        if operation == TransformOperation.DELETE:
            delete_value_by_path(payload, field)
            return

        current = get_value_by_path(payload, field)

        if operation == TransformOperation.RENAME:
            if not isinstance(operand, str) or not operand.strip():
                raise fail("rename needs the new field name as its value")
            if current is MISSING:
                raise fail("field does not exist")
            delete_value_by_path(payload, field)
            new_value, target = current, operand.strip()
        else:
            target = field
            if current is MISSING:
                current = None
            new_value = self._compute(operation, current, operand, fail)

        try:
            set_value_by_path(payload, target, new_value)
        except KeyError as e:
            raise fail(str(e))

    @staticmethod
    def _compute(operation: TransformOperation, current: Any, operand: Any, fail) -> Any:
        if operation == TransformOperation.SET:
            return operand
        if operation == TransformOperation.APPEND:
            return _as_text(current) + _as_text(operand)
        if operation == TransformOperation.PREPEND:
            return _as_text(operand) + _as_text(current)
        if operation == TransformOperation.UPPERCASE:
            return _as_text(current).upper()
        if operation == TransformOperation.LOWERCASE:
            return _as_text(current).lower()
        if operation == TransformOperation.TRIM:
            return _as_text(current).strip()
        if operation == TransformOperation.REPLACE:
            if not isinstance(operand, str) or not operand.split("|", 1)[0]:
                raise fail("replace needs a 'search|replacement' value")
            search, _, replacement = operand.partition("|")
            return _as_text(current).replace(search, replacement, 1)

        # Arithmetic
        default_operand = 1 if operation in (TransformOperation.MULTIPLY, TransformOperation.DIVIDE) else 0
        try:
            left = _as_number(current if current is not None else 0)
            right = _as_number(operand if operand is not None else default_operand)
        except (TypeError, ValueError):
            raise fail(f"{current!r} and {operand!r} are not both numeric")

        if operation == TransformOperation.ADD:
            return left + right
        if operation == TransformOperation.SUBTRACT:
            return left - right
        if operation == TransformOperation.MULTIPLY:
            return left * right
        if right == 0:
            raise fail("division by zero")
        return left / right
