"""Swagger 2.0 assembler.

Swagger 2.0 has no request body object: query, path, header, form and
body inputs all end up in one flat ``parameters`` list.
"""

import logging

from api_docgen.assembler.base import (
    DEFAULT_RESPONSE_DESCRIPTION,
    X_RESPONSE_DESCRIPTION,
    Assembler,
    copy_fields,
    extension_keys,
    is_form_only,
)
from api_docgen.errors import ConfigurationError
from api_docgen.metadata import default_info
from api_docgen.models import RouteDescriptor
from api_docgen.resolver import X_CONSUME, ShorthandProperty
from api_docgen.url import format_param_url, generate_params_schema, has_params

logger = logging.getLogger(__name__)

SWAGGER_VERSION = "2.0"
_HEADER_FIELDS = ("description", "type")


def replace_unsupported(schema):
    """Rewrite JSON Schema keywords Swagger 2.0 cannot express, in place."""
    if isinstance(schema, list):
        for item in schema:
            replace_unsupported(item)
        return schema
    if not isinstance(schema, dict):
        return schema

    if "patternProperties" in schema:
        schema["additionalProperties"] = {"type": "string"}
        del schema["patternProperties"]
    elif "const" in schema:
        schema["enum"] = [schema.pop("const")]

    for key, value in schema.items():
        if key in ("properties", "definitions") and isinstance(value, dict):
            for prop in value.values():
                replace_unsupported(prop)
        elif key not in ("enum", "default", "example", "examples"):
            replace_unsupported(value)
    return schema


class SwaggerAssembler(Assembler):
    dialect = "swagger"

    @property
    def config(self):
        return self.options.swagger

    @property
    def document_security(self) -> list[dict]:
        return self.config.security or []

    @property
    def security_schemes(self) -> dict:
        return self.config.security_definitions or {}

    def build_envelope(self) -> dict:
        config = self.config
        document = {
            "swagger": SWAGGER_VERSION,
            "info": config.info or default_info(self.options.package_name),
            "definitions": self._definitions(),
            "paths": dict(config.paths or {}),
        }
        if config.host:
            document["host"] = config.host
        if config.schemes:
            document["schemes"] = config.schemes
        if config.base_path:
            document["basePath"] = config.base_path
        if config.consumes:
            document["consumes"] = config.consumes
        if config.produces:
            document["produces"] = config.produces
        if config.security_definitions:
            document["securityDefinitions"] = config.security_definitions
        if config.security:
            document["security"] = config.security
        if config.tags:
            document["tags"] = config.tags
        if config.external_docs:
            document["externalDocs"] = config.external_docs
        document.update(config.extensions)
        return document

    def _definitions(self) -> dict:
        # user supplied definitions are never overwritten by registered schemas
        definitions = dict(self.config.definitions or {})
        for name, schema in self.resolver.definitions().items():
            definitions.setdefault(name, schema)
        return definitions

    def normalize_url(self, url: str) -> str:
        base_path = self.config.base_path
        if self.options.strip_base_path and base_path and url.startswith(base_path):
            url = url[len(base_path):]
        if not url.startswith("/"):
            url = "/" + url
        return format_param_url(url)

    def build_operation(self, route: RouteDescriptor, schema: dict | None, url: str) -> dict:
        if route.links:
            raise ConfigurationError(
                f"Swagger (OpenAPI v2) does not support Links (route {route.url}). "
                "Generate an OpenAPI 3 document instead by passing an `openapi` block."
            )

        operation: dict = {}
        parameters: list[dict] = []
        excluded = self.security_exclusions(schema)

        if schema:
            copy_fields(
                schema,
                operation,
                ("operationId", "summary", "description", "externalDocs", "tags", "produces", "consumes"),
            )
            if schema.get("querystring"):
                parameters.extend(self._parameters("query", schema["querystring"], excluded.get("query", [])))
            if schema.get("body"):
                if is_form_only(schema.get("consumes")) or is_form_only(self.config.consumes):
                    parameters.extend(self._parameters("formData", schema["body"]))
                else:
                    parameters.append(self._body_parameter(schema["body"]))
            if schema.get("params"):
                parameters.extend(self._parameters("path", schema["params"]))
            if schema.get("headers"):
                parameters.extend(self._parameters("header", schema["headers"], excluded.get("header", [])))
            if schema.get("cookies"):
                logger.debug("Swagger 2.0 has no cookie parameters, ignoring cookies of %s", route.url)
            if parameters:
                operation["parameters"] = parameters
            copy_fields(schema, operation, ("deprecated", "security"))
            operation.update(extension_keys(schema))

        if not (schema and schema.get("params")) and has_params(url):
            parameters.extend(self._parameters("path", generate_params_schema(url)))
            operation["parameters"] = parameters

        operation["responses"] = self._responses(schema.get("response") if schema else None)
        return operation

    def _parameters(self, location: str, fragment: dict, excluded: list[str] | None = None) -> list[dict]:
        properties = self.resolver.unwrap_shorthand(self.resolver.resolve(fragment))
        return [
            self._parameter(location, name, prop)
            for name, prop in properties.items()
            if not self.is_excluded(location, name, excluded or [])
        ]

    def _parameter(self, location: str, name: str, prop: ShorthandProperty) -> dict:
        schema = self._inline_ref(prop.schema)

        if location in ("query", "header") and schema.get(X_CONSUME):
            raise ConfigurationError(
                "Complex serialization is not supported by Swagger. "
                f'Remove "{X_CONSUME}" for "{name}" querystring/header schema or '
                "generate an OpenAPI document instead"
            )

        parameter = {"name": name, "in": location, "required": prop.required}
        if location == "header":
            # nested schema detail cannot be expressed on a Swagger header
            copy_fields(schema, parameter, _HEADER_FIELDS)
            return parameter

        schema.pop("$id", None)
        if location == "path":
            parameter["required"] = True
        elif location == "formData" and schema.get("contentEncoding") == "binary":
            del schema["contentEncoding"]
            schema["type"] = "file"

        parameter.update(schema)
        return parameter

    def _inline_ref(self, schema: dict) -> dict:
        # non-body parameters cannot use $ref in Swagger 2.0
        if isinstance(schema.get("$ref"), str):
            target = self.resolver.lookup(schema["$ref"])
            rest = {key: value for key, value in schema.items() if key != "$ref"}
            return {**target, **rest}
        return dict(schema)

    def _body_parameter(self, body: dict) -> dict:
        resolved = replace_unsupported(self.resolver.resolve(body))
        parameter = {"name": "body", "in": "body"}
        if resolved.get("description"):
            parameter["description"] = resolved["description"]
        parameter["schema"] = resolved
        return parameter

    def _responses(self, response: dict | None) -> dict:
        if not response:
            return {"200": {"description": DEFAULT_RESPONSE_DESCRIPTION}}

        status_codes = [str(code) for code in response]
        responses = {}
        for code, raw in response.items():
            code = str(code)
            if not isinstance(raw, dict):
                logger.debug("Ignoring non-object response schema for status %s", code)
                continue

            upper = code.upper()
            # Swagger 2.0 has no distinct range keys; an explicit code wins
            if "XX" in upper and upper.replace("XX", "00") in status_codes:
                continue
            if code != "default":
                code = upper

            resolved = self.resolver.resolve(raw)
            resolved.pop("$schema", None)

            entry = {
                "description": raw.get(X_RESPONSE_DESCRIPTION)
                or raw.get("description")
                or self.resolver.find_description(raw)
                or DEFAULT_RESPONSE_DESCRIPTION
            }
            headers = resolved.pop("headers", None)
            if raw.get("headers"):
                # Swagger 2.0 header objects carry no "required" and no $ref
                entry["headers"] = {
                    name: self._inline_ref(prop.schema)
                    for name, prop in self.resolver.unwrap_shorthand(headers).items()
                }

            if raw.get("type") != "null":
                resolved.pop(X_RESPONSE_DESCRIPTION, None)
                entry["schema"] = replace_unsupported(resolved)

            responses[code] = entry
        return responses
