"""Validates concrete values against SchemaNode trees.

Violations are accumulated rather than raised, so a single verdict can
report every problem found in a request or response.
"""

from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel

from api_contract.spec.base import SchemaNode, SchemaType
from api_contract.spec.errors import (
    MissingRequiredParameterError,
    SchemaMismatchError,
    ScenarioError,
    UndocumentedStatusError,
)
from api_contract.spec.resolver import ReferenceResolver
from api_contract.validator.formats import check_format


class ViolationKind(str, Enum):
    SCHEMA_MISMATCH = "schema_mismatch"
    MISSING_REQUIRED = "missing_required"
    UNDOCUMENTED_STATUS = "undocumented_status"


_ERRORS = {
    ViolationKind.SCHEMA_MISMATCH: SchemaMismatchError,
    ViolationKind.MISSING_REQUIRED: MissingRequiredParameterError,
    ViolationKind.UNDOCUMENTED_STATUS: UndocumentedStatusError,
}


class Violation(BaseModel):
    """One mismatch between a value and its declared contract."""

    path: str
    expected: str
    actual: str
    kind: ViolationKind = ViolationKind.SCHEMA_MISMATCH

    def to_error(self) -> ScenarioError:
        return _ERRORS[self.kind](self.path, self.expected, self.actual)

    def __str__(self) -> str:
        return str(self.to_error())


class ValidationVerdict(BaseModel):
    violations: list[Violation] = []

    @property
    def passed(self) -> bool:
        return not self.violations

    def extend(self, other: "ValidationVerdict") -> "ValidationVerdict":
        self.violations.extend(other.violations)
        return self

    def add(self, path: str, expected: str, actual: str, kind: ViolationKind = ViolationKind.SCHEMA_MISMATCH) -> None:
        self.violations.append(Violation(path=path, expected=expected, actual=actual, kind=kind))

    def errors(self) -> list[ScenarioError]:
        return [v.to_error() for v in self.violations]


def describe(value: Any) -> str:
    """JSON kind of a Python value."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, int):
        return "integer"
    if isinstance(value, float):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, (list, tuple)):
        return "array"
    if isinstance(value, Mapping):
        return "object"
    return type(value).__name__


def kind_matches(schema_type: SchemaType, value: Any) -> bool:
    if schema_type is SchemaType.OBJECT:
        return isinstance(value, Mapping)
    if schema_type is SchemaType.ARRAY:
        return isinstance(value, (list, tuple))
    if schema_type is SchemaType.STRING:
        return isinstance(value, str)
    if schema_type is SchemaType.BOOLEAN:
        return isinstance(value, bool)
    if isinstance(value, bool):
        return False
    if schema_type is SchemaType.INTEGER:
        return isinstance(value, int)
    if schema_type is SchemaType.NUMBER:
        return isinstance(value, (int, float))
    return False


def _same_literal(a: Any, b: Any) -> bool:
    return a == b and isinstance(a, bool) == isinstance(b, bool)


def _join(path: str, key: str) -> str:
    return f"{path}.{key}" if path else key


class SchemaValidator:
    """Checks values against schemas, expanding references on demand.

    A validator owns its resolver cache; use one per scenario when
    validating from several threads.
    """

    def __init__(self, components: Mapping[str, SchemaNode] | None = None, resolver: ReferenceResolver | None = None):
        self.resolver = resolver or ReferenceResolver(components or {})

    def validate(self, node: SchemaNode, value: Any, path: str = "") -> ValidationVerdict:
        verdict = ValidationVerdict()
        self._check(node, value, path, verdict)
        return verdict

    def _check(self, node: SchemaNode, value: Any, path: str, verdict: ValidationVerdict) -> None:
        if node.is_reference:
            node = self.resolver.resolve(node)

        if value is None and node.nullable:
            return
        if not kind_matches(node.type, value):
            verdict.add(path, node.type.value, describe(value))
            return

        if node.type is SchemaType.OBJECT:
            self._check_object(node, value, path, verdict)
        elif node.type is SchemaType.ARRAY:
            for index, element in enumerate(value):
                self._check(node.items, element, f"{path}[{index}]", verdict)
        else:
            self._check_scalar(node, value, path, verdict)

    def _check_object(self, node: SchemaNode, value: Mapping, path: str, verdict: ValidationVerdict) -> None:
        properties = node.properties or {}
        for name in sorted(node.required):
            if name not in value:
                verdict.add(_join(path, name), "required property", "missing", ViolationKind.MISSING_REQUIRED)
        for key, item in value.items():
            child = properties.get(key)
            if child is not None:
                self._check(child, item, _join(path, str(key)), verdict)
            elif not node.additional_properties:
                verdict.add(_join(path, str(key)), "no additional properties", describe(item))

    def _check_scalar(self, node: SchemaNode, value: Any, path: str, verdict: ValidationVerdict) -> None:
        if node.format and not check_format(node.format, value):
            verdict.add(path, f"format {node.format}", repr(value))
        if node.enum is not None and not any(_same_literal(value, allowed) for allowed in node.enum):
            verdict.add(path, f"one of {list(node.enum)}", repr(value))


def validate(node: SchemaNode, value: Any, components: Mapping[str, SchemaNode] | None = None) -> ValidationVerdict:
    return SchemaValidator(components).validate(node, value)
