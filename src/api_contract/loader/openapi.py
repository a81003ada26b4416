"""OpenAPI / Swagger document loader.

Registers the components and operations of an OpenAPI 3.x or Swagger 2.0
document. Operations may carry example scenarios under ``x-scenarios``:

    x-scenarios:
      - name: valid lap
        body: {driver_id: 1, circuit_id: 1, time_ms: 80000, lap_number: 1}
        expect: 201
"""

import logging
from pathlib import Path

import yaml

from api_contract.spec.base import (
    HttpMethod,
    Operation,
    Parameter,
    ParamLocation,
    ResponseSpec,
    Scenario,
    SchemaNode,
    SchemaType,
)
from api_contract.spec.errors import DeclarationError
from api_contract.spec.registry import SpecRegistry

logger = logging.getLogger(__name__)

METHODS = {m.value for m in HttpMethod}
FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")
INLINE_SCHEMA_KEYS = ("type", "format", "enum", "items", "description")


class DocumentLoader(yaml.SafeLoader):
    """SafeLoader that leaves timestamps as the strings they were written as."""


DocumentLoader.yaml_implicit_resolvers = {
    first: [(tag, regexp) for tag, regexp in resolvers if tag != "tag:yaml.org,2002:timestamp"]
    for first, resolvers in yaml.SafeLoader.yaml_implicit_resolvers.items()
}


def load_openapi(file_path: Path, registry: SpecRegistry) -> SpecRegistry:
    """Register every component and operation of an OpenAPI/Swagger file."""
    text = file_path.read_text(encoding="utf-8")
    try:
        doc = yaml.load(text, Loader=DocumentLoader)
    except yaml.YAMLError as e:
        raise DeclarationError(f"Cannot parse {file_path}: {e}") from e
    if not isinstance(doc, dict):
        raise DeclarationError(f"{file_path} is not an OpenAPI document")

    try:
        _register_components(doc, registry)
        for path, item in (doc.get("paths") or {}).items():
            shared = item.get("parameters", [])
            for method, operation in item.items():
                if method.lower() not in METHODS:
                    continue
                origin = f"{file_path}:{method.upper()} {path}"
                registry.register(_parse_operation(doc, path, method.lower(), operation, shared, origin))
    except (ValueError, KeyError, TypeError) as e:
        raise DeclarationError(f"Invalid declaration in {file_path}: {e}") from e

    logger.info("Loaded %s", file_path)
    return registry


def _register_components(doc: dict, registry: SpecRegistry) -> None:
    components = doc.get("components", {})
    schemas = components.get("schemas") or doc.get("definitions") or {}
    for name, schema in schemas.items():
        registry.register_component(name, SchemaNode.from_openapi(schema))

    schemes = components.get("securitySchemes") or doc.get("securityDefinitions") or {}
    for name, scheme in schemes.items():
        registry.register_security_scheme(name, scheme)


def _deref(doc: dict, item: dict) -> dict:
    """Follow a local ``$ref`` to a reusable parameter, body or response."""
    ref = item.get("$ref")
    if not ref:
        return item
    if not ref.startswith("#/"):
        raise ValueError(f"only local references are supported: {ref}")
    target = doc
    for part in ref[2:].split("/"):
        target = target[part.replace("~1", "/").replace("~0", "~")]
    return target


def _parse_operation(doc: dict, path: str, method: str, operation: dict, shared: list, origin: str) -> Operation:
    params = _parse_parameters(doc, _merge_parameters(doc, shared, operation.get("parameters", [])))
    consumes = tuple(operation.get("consumes") or doc.get("consumes") or ())

    body = operation.get("requestBody")
    if body:
        body_params, body_types = _parse_request_body(doc, body)
        params.extend(body_params)
        consumes = body_types

    responses, produces = _parse_responses(doc, operation.get("responses", {}))
    produces = tuple(operation.get("produces") or doc.get("produces") or produces)

    security = operation.get("security", doc.get("security"))
    return Operation(
        path=path,
        method=HttpMethod(method),
        summary=operation.get("summary", ""),
        description=operation.get("description", ""),
        operation_id=operation.get("operationId"),
        tags=frozenset(operation.get("tags", [])),
        parameters=tuple(params),
        responses=responses,
        consumes=consumes or ("application/json",),
        produces=produces or ("application/json",),
        security=tuple(security) if security is not None else None,
        deprecated=bool(operation.get("deprecated", False)),
        scenarios=tuple(_parse_scenario(s) for s in operation.get("x-scenarios", [])),
        origin=origin,
    )


def _merge_parameters(doc: dict, shared: list, own: list) -> list[dict]:
    """Path-level parameters, overridden by operation parameters of the same name and location."""
    merged: dict[tuple[str, str], dict] = {}
    for p in [*shared, *own]:
        p = _deref(doc, p)
        merged[(p["name"], p.get("in", "query"))] = p
    return list(merged.values())


def _parse_parameters(doc: dict, params: list[dict]) -> list[Parameter]:
    result = []
    for p in params:
        location = p.get("in", "query")
        if location == "cookie":
            logger.warning("Skipping cookie parameter '%s'", p["name"])
            continue
        if location == "body":
            location = ParamLocation.BODY.value

        if "schema" in p:
            schema = SchemaNode.from_openapi(p["schema"])
        else:
            # Swagger 2 non-body parameters describe their type inline
            schema = SchemaNode.from_openapi({k: p[k] for k in INLINE_SCHEMA_KEYS if k in p})

        result.append(
            Parameter(
                name=p["name"],
                location=ParamLocation(location),
                schema=schema,
                required=p.get("required", False) or location == "path",
                description=p.get("description", ""),
            )
        )
    return result


def _parse_request_body(doc: dict, body: dict) -> tuple[list[Parameter], tuple[str, ...]]:
    body = _deref(doc, body)
    content = body.get("content", {})
    if not content:
        return [], ()
    media_types = tuple(content)
    content_type = _detect_content_type(content)
    schema = SchemaNode.from_openapi(content[content_type].get("schema", {"type": "object"}))
    required = body.get("required", False)

    if content_type in FORM_TYPES and schema.type is SchemaType.OBJECT:
        fields = [
            Parameter(
                name=name,
                location=ParamLocation.FORM_DATA,
                schema=field,
                required=name in schema.required,
            )
            for name, field in (schema.properties or {}).items()
        ]
        return fields, media_types

    param = Parameter(
        name="body",
        location=ParamLocation.BODY,
        schema=schema,
        required=required,
        description=body.get("description", ""),
    )
    return [param], media_types


def _detect_content_type(content: dict) -> str:
    for content_type in ("application/json", *FORM_TYPES):
        if content_type in content:
            return content_type
    return next(iter(content))


def _parse_responses(doc: dict, responses: dict) -> tuple[dict[int, ResponseSpec], tuple[str, ...]]:
    result = {}
    produces: tuple[str, ...] = ()
    for status_code, resp in responses.items():
        if not str(status_code).isdigit():
            logger.warning("Skipping non-numeric response '%s'", status_code)
            continue
        resp = _deref(doc, resp)
        schema = None
        content = resp.get("content")
        if content:
            produces = produces or tuple(content)
            raw = content[_detect_content_type(content)].get("schema")
            schema = SchemaNode.from_openapi(raw) if raw else None
        elif "schema" in resp:
            schema = SchemaNode.from_openapi(resp["schema"])
        result[int(status_code)] = ResponseSpec(description=resp.get("description", ""), schema=schema)
    return result, produces


def _parse_scenario(data: dict) -> Scenario:
    return Scenario(
        name=data["name"],
        path_params=data.get("path", {}),
        query=data.get("query", {}),
        headers=data.get("headers", {}),
        form=data.get("form", {}),
        body=data.get("body"),
        expect_status=data.get("expect"),
        description=data.get("description", ""),
        tags=frozenset(data.get("tags", [])),
        environments=frozenset(data.get("environments", [])),
    )
