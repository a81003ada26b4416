"""Execution of one example scenario against its declared operation.

Each scenario moves through DEFINED -> EXECUTED -> VALIDATED and ends in
PASSED or FAILED. A ScenarioExecution is private to the thread running it;
the operation and component library it reads come from a frozen registry.
"""

import logging
from enum import Enum
from typing import Any, Mapping

from pydantic import BaseModel

from api_contract.harness.transport import HttpRequest, HttpResponse, Transport
from api_contract.spec.base import HttpMethod, Operation, ParamLocation, Scenario, SchemaNode, render_path
from api_contract.spec.errors import ScenarioStateError, TransportError
from api_contract.validator.schema import SchemaValidator, ValidationVerdict, Violation, ViolationKind, describe

logger = logging.getLogger(__name__)

FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")


def _name_key(location: ParamLocation, name: str) -> str:
    """HTTP header names are case-insensitive."""
    return name.lower() if location is ParamLocation.HEADER else name


def _by_name(location: ParamLocation, values: dict[str, Any]) -> dict[str, Any]:
    return {_name_key(location, name): value for name, value in values.items()}


class ScenarioState(str, Enum):
    DEFINED = "defined"
    EXECUTED = "executed"
    VALIDATED = "validated"
    PASSED = "passed"
    FAILED = "failed"


class ScenarioResult(BaseModel):
    """Terminal outcome of one scenario, as recorded in the contract report."""

    path: str
    method: HttpMethod
    scenario: str
    state: ScenarioState
    status: int | None = None
    violations: list[Violation] = []
    error: str | None = None
    response_body: Any = None

    @property
    def passed(self) -> bool:
        return self.state is ScenarioState.PASSED

    @property
    def label(self) -> str:
        return f"{self.method.value.upper()} {self.path} [{self.scenario}]"


class ScenarioExecution:
    def __init__(self, operation: Operation, scenario: Scenario, components: Mapping[str, SchemaNode]):
        self.operation = operation
        self.scenario = scenario
        self.validator = SchemaValidator(components)
        self.state = ScenarioState.DEFINED
        self.history: list[ScenarioState] = [ScenarioState.DEFINED]
        self.request: HttpRequest | None = None
        self.response: HttpResponse | None = None
        self.verdict: ValidationVerdict | None = None
        self.error: str | None = None

    def _require(self, state: ScenarioState) -> None:
        if self.state is not state:
            raise ScenarioStateError(
                f"{self.operation.display_name} [{self.scenario.name}] is {self.state.value}, expected {state.value}"
            )

    def _enter(self, state: ScenarioState) -> None:
        self.state = state
        self.history.append(state)

    # -- Defined -> Executed ----------------------------------------------------

    def build_request(self) -> HttpRequest:
        op, sc = self.operation, self.scenario
        form = None
        content_type = op.consumes[0] if op.consumes else "application/json"
        if sc.form or op.parameters_in(ParamLocation.FORM_DATA):
            form = dict(sc.form)
            content_type = next((t for t in op.consumes if t in FORM_TYPES), "application/x-www-form-urlencoded")
        return HttpRequest(
            method=op.method.value,
            path=render_path(op.path, sc.path_params),
            query=dict(sc.query),
            headers={name: str(value) for name, value in sc.headers.items()},
            body=sc.body,
            form=form,
            content_type=content_type,
        )

    def execute(self, transport: Transport) -> HttpResponse | None:
        """Send the scenario's request. A transport failure ends the scenario."""
        self._require(ScenarioState.DEFINED)
        self.request = self.build_request()
        try:
            self.response = transport(self.request)
        except TransportError as e:
            logger.warning("%s [%s]: %s", self.operation.display_name, self.scenario.name, e)
            self.error = str(e)
            self._enter(ScenarioState.FAILED)
            return None
        except Exception as e:
            # any callable may be a transport; its failure ends only this scenario
            logger.exception("%s [%s]: transport raised", self.operation.display_name, self.scenario.name)
            self.error = f"{type(e).__name__}: {e}"
            self._enter(ScenarioState.FAILED)
            return None
        self._enter(ScenarioState.EXECUTED)
        return self.response

    # -- Executed -> Validated -> Passed/Failed ---------------------------------

    def validate(self) -> ValidationVerdict:
        self._require(ScenarioState.EXECUTED)
        verdict = ValidationVerdict()
        self._validate_parameters(verdict)
        self._validate_response(verdict)
        self.verdict = verdict
        self._enter(ScenarioState.VALIDATED)
        self._enter(ScenarioState.PASSED if verdict.passed else ScenarioState.FAILED)
        return verdict

    def _validate_parameters(self, verdict: ValidationVerdict) -> None:
        op, sc = self.operation, self.scenario
        for param in op.parameters:
            if param.location is ParamLocation.BODY:
                present, value, where = sc.body is not None, sc.body, "body"
            else:
                supplied = _by_name(param.location, sc.values(param.location))
                key = _name_key(param.location, param.name)
                present, value = key in supplied, supplied.get(key)
                where = f"{param.location.value}.{param.name}"

            if not present:
                if param.required:
                    verdict.add(where, f"required {param.location.value} parameter", "missing", ViolationKind.MISSING_REQUIRED)
                continue
            verdict.extend(self.validator.validate(param.schema_node, value, where))

        for location in (ParamLocation.PATH, ParamLocation.QUERY, ParamLocation.HEADER, ParamLocation.FORM_DATA):
            declared = {_name_key(location, p.name) for p in op.parameters_in(location)}
            for name in sorted(sc.values(location)):
                if _name_key(location, name) in declared:
                    continue
                verdict.add(f"{location.value}.{name}", "declared parameter", "undeclared")
        if sc.body is not None and not op.parameters_in(ParamLocation.BODY):
            verdict.add("body", "no request body", describe(sc.body))

    def _validate_response(self, verdict: ValidationVerdict) -> None:
        status = self.response.status
        expected = self.scenario.expect_status
        if expected is not None and status != expected:
            verdict.add("status", str(expected), str(status))

        spec = self.operation.responses.get(status)
        if spec is None:
            documented = ", ".join(str(code) for code in sorted(self.operation.responses)) or "none"
            verdict.add("status", f"documented status ({documented})", str(status), ViolationKind.UNDOCUMENTED_STATUS)
            return
        if spec.schema_node is not None:
            verdict.extend(self.validator.validate(spec.schema_node, self.response.body, "response"))

    # -- driving ------------------------------------------------------------------

    def run(self, transport: Transport) -> ScenarioResult:
        if self.execute(transport) is not None:
            self.validate()
        return self.result()

    def result(self) -> ScenarioResult:
        if self.state not in (ScenarioState.PASSED, ScenarioState.FAILED):
            raise ScenarioStateError(f"{self.operation.display_name} [{self.scenario.name}] has not finished")
        return ScenarioResult(
            path=self.operation.path,
            method=self.operation.method,
            scenario=self.scenario.name,
            state=self.state,
            status=self.response.status if self.response else None,
            violations=list(self.verdict.violations) if self.verdict else [],
            error=self.error,
            response_body=self.response.body if self.response else None,
        )
