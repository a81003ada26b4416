from pathlib import Path

import pytest

from api_contract.harness.scenario import ScenarioExecution
from api_contract.harness.transport import HttpResponse
from api_contract.loader.detect import detect_format
from api_contract.loader.openapi import load_openapi
from api_contract.spec.base import HttpMethod, ParamLocation, SchemaType
from api_contract.spec.errors import (
    CyclicReferenceError,
    DeclarationError,
    DuplicateComponentError,
)
from api_contract.spec.registry import SpecRegistry

FIXTURES = Path(__file__).parent / "fixtures"


class TestDetectFormat:
    def test_detect_openapi_yaml(self):
        assert detect_format(str(FIXTURES / "lap_times.yaml")) == "openapi"

    def test_detect_swagger2(self):
        assert detect_format(str(FIXTURES / "swagger2.yaml")) == "openapi"

    def test_detect_python_file(self):
        assert detect_format(str(FIXTURES / "lap_times_spec.py")) == "python"

    def test_dotted_module_name(self):
        assert detect_format("myapp.contracts.lap_times") == "python"

    def test_missing_document(self, tmp_path):
        with pytest.raises(DeclarationError, match="not found"):
            detect_format(str(tmp_path / "missing.yaml"))

    def test_unknown_document(self, tmp_path):
        f = tmp_path / "notes.yaml"
        f.write_text("title: API Docs\n")
        with pytest.raises(DeclarationError):
            detect_format(str(f))

    def test_broken_json(self, tmp_path):
        f = tmp_path / "openapi.json"
        f.write_text('{"openapi": ')
        with pytest.raises(DeclarationError, match="Cannot parse"):
            detect_format(str(f))


class TestOpenApi3:
    @pytest.fixture
    def registry(self):
        return load_openapi(FIXTURES / "lap_times.yaml", SpecRegistry())

    def test_operations_count(self, registry):
        assert [op.display_name for op in registry.operations()] == [
            "GET /api/v1/lap_times",
            "POST /api/v1/lap_times",
            "GET /api/v1/lap_times/{id}",
        ]

    def test_query_parameter(self, registry):
        op = registry.get("get", "/api/v1/lap_times")
        assert op.summary == "List lap times"
        assert op.tags == frozenset({"Lap Times"})
        [param] = op.parameters
        assert (param.name, param.location, param.required) == ("driver_id", ParamLocation.QUERY, False)
        assert param.schema_node.type is SchemaType.INTEGER

    def test_request_body(self, registry):
        op = registry.get("post", "/api/v1/lap_times")
        [body] = op.parameters_in(ParamLocation.BODY)
        assert body.required
        assert body.schema_node.reference == "#/components/schemas/LapTimeInput"
        assert op.consumes == ("application/json",)

    def test_path_level_parameters_inherited(self, registry):
        op = registry.get("get", "/api/v1/lap_times/{id}")
        [param] = op.parameters_in(ParamLocation.PATH)
        assert param.name == "id"
        assert param.required

    def test_responses(self, registry):
        op = registry.get("get", "/api/v1/lap_times/{id}")
        assert sorted(op.responses) == [200, 404]
        assert op.responses[200].schema_node.reference == "#/components/schemas/LapTime"
        assert op.responses[404].schema_node is None

    def test_scenarios(self, registry):
        op = registry.get("post", "/api/v1/lap_times")
        assert [s.name for s in op.scenarios] == ["valid lap", "incomplete lap"]
        incomplete = op.scenarios[1]
        assert incomplete.body == {"driver_id": 1}
        assert incomplete.expect_status == 422
        assert incomplete.tags == frozenset({"negative"})

    def test_components_and_security_schemes(self, registry):
        assert set(registry.components) == {"LapTimeInput", "LapTime", "Error"}
        recorded_at = registry.components["LapTime"].properties["recorded_at"]
        assert recorded_at.format == "date-time"
        assert registry.security_schemes["bearer_auth"]["bearerFormat"] == "JWT"

    def test_origin_names_file_and_operation(self, registry):
        origin = registry.get("post", "/api/v1/lap_times").origin
        assert origin.endswith("lap_times.yaml:POST /api/v1/lap_times")

    def test_freezes_cleanly(self, registry):
        assert registry.freeze().frozen


class TestSwagger2:
    @pytest.fixture
    def registry(self):
        return load_openapi(FIXTURES / "swagger2.yaml", SpecRegistry())

    def test_body_parameter(self, registry):
        op = registry.get("post", "/drivers")
        [body] = op.parameters
        assert body.location is ParamLocation.BODY
        assert body.name == "driver"
        assert body.schema_node.reference == "#/components/schemas/Driver"
        assert op.responses[201].schema_node.reference == "#/components/schemas/Driver"

    def test_form_data_parameters(self, registry):
        op = registry.get("put", "/drivers/{id}/photo")
        fields = {p.name: p for p in op.parameters_in(ParamLocation.FORM_DATA)}
        assert set(fields) == {"caption", "taken_on"}
        assert fields["taken_on"].required
        assert fields["taken_on"].schema_node.format == "date"
        assert op.consumes == ("multipart/form-data",)
        assert op.method is HttpMethod.PUT

    def test_definitions_become_components(self, registry):
        driver = registry.components["Driver"]
        assert driver.required == frozenset({"name"})
        assert driver.properties["team"].nullable


class TestErrors:
    def test_cyclic_components_fail_at_freeze(self):
        registry = load_openapi(FIXTURES / "cyclic.yaml", SpecRegistry())
        with pytest.raises(CyclicReferenceError):
            registry.freeze()

    def test_loading_twice_is_a_duplicate(self):
        registry = load_openapi(FIXTURES / "lap_times.yaml", SpecRegistry())
        with pytest.raises(DuplicateComponentError):
            load_openapi(FIXTURES / "lap_times.yaml", registry)

    def test_not_a_mapping(self, tmp_path):
        f = tmp_path / "list.yaml"
        f.write_text("- openapi\n")
        with pytest.raises(DeclarationError):
            load_openapi(f, SpecRegistry())

    def test_path_parameter_mismatch(self, tmp_path):
        f = tmp_path / "bad.yaml"
        f.write_text(
            "openapi: 3.0.3\n"
            "info: {title: Bad, version: v1}\n"
            "paths:\n"
            "  /laps/{id}:\n"
            "    get:\n"
            "      responses:\n"
            "        '200': {description: ok}\n"
        )
        with pytest.raises(DeclarationError, match="path parameters"):
            load_openapi(f, SpecRegistry())

    def test_cookie_parameters_skipped(self, tmp_path):
        f = tmp_path / "cookie.yaml"
        f.write_text(
            "openapi: 3.0.3\n"
            "info: {title: Cookie, version: v1}\n"
            "paths:\n"
            "  /laps:\n"
            "    get:\n"
            "      parameters:\n"
            "        - {name: session, in: cookie, schema: {type: string}}\n"
            "      responses:\n"
            "        '200': {description: ok}\n"
        )
        registry = load_openapi(f, SpecRegistry())
        assert registry.get("get", "/laps").parameters == ()


class TestScenarioValues:
    DOCUMENT = (
        "openapi: 3.0.3\n"
        "info: {title: Stamps, version: v1}\n"
        "paths:\n"
        "  /laps:\n"
        "    post:\n"
        "      requestBody:\n"
        "        required: true\n"
        "        content:\n"
        "          application/json:\n"
        "            schema:\n"
        "              type: object\n"
        "              properties:\n"
        "                recorded_at: {type: string, format: date-time}\n"
        "                session_day: {type: string, format: date}\n"
        "      responses:\n"
        "        '201': {description: created}\n"
        "      x-scenarios:\n"
        "        - name: stamped\n"
        "          body: {recorded_at: 2024-05-01T12:00:00Z, session_day: 2024-05-01}\n"
        "          expect: 201\n"
    )

    def test_unquoted_timestamps_stay_strings(self, tmp_path):
        f = tmp_path / "stamps.yaml"
        f.write_text(self.DOCUMENT)
        registry = load_openapi(f, SpecRegistry()).freeze()
        operation = registry.get("post", "/laps")
        assert operation.scenarios[0].body == {"recorded_at": "2024-05-01T12:00:00Z", "session_day": "2024-05-01"}

        execution = ScenarioExecution(operation, operation.scenarios[0], registry.components)
        result = execution.run(lambda request: HttpResponse(status=201))
        assert result.passed, result.violations
        assert execution.request.body["recorded_at"] == "2024-05-01T12:00:00Z"

    def test_unparseable_document(self, tmp_path):
        f = tmp_path / "broken.yaml"
        f.write_text("openapi: [unclosed\n")
        with pytest.raises(DeclarationError, match="Cannot parse"):
            load_openapi(f, SpecRegistry())
