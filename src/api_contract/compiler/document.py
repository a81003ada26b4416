"""Compiles a frozen registry into an OpenAPI 3 document.

Output order is fixed (paths sorted, methods in canonical order,
components by name, responses by status) so that compiling an unchanged
registry twice yields byte-identical text. References are emitted in their
compact ``$ref`` form.
"""

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict

from api_contract.spec.base import METHOD_ORDER, HttpMethod, Operation, ParamLocation, SchemaNode
from api_contract.spec.errors import RegistryNotFrozenError
from api_contract.spec.registry import SpecRegistry

logger = logging.getLogger(__name__)

OPENAPI_VERSION = "3.0.3"
FORM_TYPES = ("multipart/form-data", "application/x-www-form-urlencoded")
QUERY_LOCATIONS = (ParamLocation.PATH, ParamLocation.QUERY, ParamLocation.HEADER)


class Info(BaseModel):
    model_config = ConfigDict(frozen=True)

    title: str = "API V1"
    version: str = "v1"
    description: str = ""


class Server(BaseModel):
    model_config = ConfigDict(frozen=True)

    url: str
    variables: dict[str, dict[str, Any]] = {}


class Document(BaseModel):
    """The compiled OpenAPI document. Built once, never modified."""

    model_config = ConfigDict(frozen=True)

    info: Info
    servers: tuple[Server, ...] = ()
    schemas: dict[str, SchemaNode] = {}
    security_schemes: dict[str, dict[str, Any]] = {}
    paths: dict[str, dict[HttpMethod, Operation]] = {}
    examples: dict[tuple[str, HttpMethod, int], dict[str, Any]] = {}

    def to_dict(self) -> dict:
        data: dict[str, Any] = {
            "openapi": OPENAPI_VERSION,
            "info": self.info.model_dump(),
        }
        if self.servers:
            data["servers"] = [{"url": s.url, "variables": dict(s.variables)} for s in self.servers]
        data["paths"] = {
            path: {
                method.value: self._operation(self.paths[path][method])
                for method in sorted(self.paths[path], key=METHOD_ORDER.__getitem__)
            }
            for path in sorted(self.paths)
        }
        components: dict[str, Any] = {
            "schemas": {name: self.schemas[name].to_openapi() for name in sorted(self.schemas)},
        }
        if self.security_schemes:
            components["securitySchemes"] = {
                name: dict(self.security_schemes[name]) for name in sorted(self.security_schemes)
            }
        data["components"] = components
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True, default_flow_style=False)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"

    def write(self, path: Path, fmt: str = "auto") -> Path:
        """Write the document as YAML or JSON. ``auto`` follows the file suffix."""
        if fmt == "auto":
            fmt = "json" if path.suffix.lower() == ".json" else "yaml"
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.to_json() if fmt == "json" else self.to_yaml(), encoding="utf-8")
        logger.info("Wrote %s document to %s", fmt, path)
        return path

    # -- operation rendering --------------------------------------------------

    def _operation(self, op: Operation) -> dict:
        entry: dict[str, Any] = {}
        if op.tags:
            entry["tags"] = sorted(op.tags)
        if op.summary:
            entry["summary"] = op.summary
        if op.description:
            entry["description"] = op.description
        if op.operation_id:
            entry["operationId"] = op.operation_id
        if op.deprecated:
            entry["deprecated"] = True

        parameters = [self._parameter(p) for p in op.parameters if p.location in QUERY_LOCATIONS]
        if parameters:
            entry["parameters"] = parameters
        request_body = self._request_body(op)
        if request_body:
            entry["requestBody"] = request_body

        entry["responses"] = {
            str(status): self._response(op, status) for status in sorted(op.responses)
        }
        if op.security is not None:
            entry["security"] = [dict(requirement) for requirement in op.security]
        return entry

    @staticmethod
    def _parameter(param) -> dict:
        data: dict[str, Any] = {"name": param.name, "in": param.location.value}
        if param.description:
            data["description"] = param.description
        data["required"] = param.required
        data["schema"] = param.schema_node.to_openapi()
        return data

    def _request_body(self, op: Operation) -> dict | None:
        bodies = op.parameters_in(ParamLocation.BODY)
        if bodies:
            body = bodies[0]
            media_types = [t for t in op.consumes if t not in FORM_TYPES] or ["application/json"]
            data: dict[str, Any] = {}
            if body.description:
                data["description"] = body.description
            data["required"] = body.required
            data["content"] = {t: {"schema": body.schema_node.to_openapi()} for t in media_types}
            return data

        fields = op.parameters_in(ParamLocation.FORM_DATA)
        if not fields:
            return None
        schema = SchemaNode.object_of(
            {p.name: p.schema_node for p in fields},
            required=[p.name for p in fields if p.required],
        )
        media_type = next((t for t in op.consumes if t in FORM_TYPES), "application/x-www-form-urlencoded")
        return {
            "required": any(p.required for p in fields),
            "content": {media_type: {"schema": schema.to_openapi()}},
        }

    def _response(self, op: Operation, status: int) -> dict:
        spec = op.responses[status]
        data: dict[str, Any] = {"description": spec.description}
        examples = self.examples.get((op.path, op.method, status))
        if spec.schema_node is None and not examples:
            return data

        media_types = list(op.produces) or ["application/json"]
        content: dict[str, Any] = {}
        for media_type in media_types:
            media: dict[str, Any] = {}
            if spec.schema_node is not None:
                media["schema"] = spec.schema_node.to_openapi()
            if examples and media_type == media_types[0]:
                media["examples"] = {name: {"value": examples[name]} for name in sorted(examples)}
            content[media_type] = media
        data["content"] = content
        return data


def compile_document(
    registry: SpecRegistry,
    info: Info | None = None,
    servers=(),
    examples: dict | None = None,
) -> Document:
    """Build the document for a frozen registry."""
    if not registry.frozen:
        raise RegistryNotFrozenError()

    paths: dict[str, dict[HttpMethod, Operation]] = {}
    for operation in registry.operations():
        paths.setdefault(operation.path, {})[operation.method] = operation

    return Document(
        info=info or Info(),
        servers=tuple(servers),
        schemas=dict(registry.components),
        security_schemes=dict(registry.security_schemes),
        paths=paths,
        examples=dict(examples or {}),
    )
