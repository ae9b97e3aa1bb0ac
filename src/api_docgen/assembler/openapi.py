"""OpenAPI 3 assembler.

Besides building operations, this module converts JSON Schema fragments to
the OpenAPI 3.0 schema dialect: references move from ``#/definitions/`` to
``#/components/schemas/``, ``const`` becomes a one-item ``enum`` and a
single ``patternProperties`` entry becomes ``additionalProperties``.
"""

import copy
import logging
import re
from urllib.parse import urlparse

from api_docgen.assembler.base import (
    DEFAULT_MEDIA_TYPE,
    DEFAULT_RESPONSE_DESCRIPTION,
    X_EXAMPLES,
    X_RESPONSE_DESCRIPTION,
    Assembler,
    copy_fields,
    extension_keys,
)
from api_docgen.errors import ConfigurationError
from api_docgen.metadata import default_info
from api_docgen.models import RouteDescriptor
from api_docgen.resolver import COMPONENTS_PREFIX, DEFINITIONS_PREFIX, X_CONSUME, ShorthandProperty
from api_docgen.url import format_param_url, generate_params_schema, has_params

logger = logging.getLogger(__name__)

_SERVER_VARIABLE = re.compile(r"\{([^{}]+)\}")
_DROPPED_KEYWORDS = frozenset({"$id", "$schema", "definitions"})
_DATA_KEYWORDS = frozenset({"enum", "default", "example", "examples", X_EXAMPLES})


def convert_json_schema_to_openapi3(schema):
    """Return a copy of a JSON Schema fragment expressed in the OpenAPI 3.0 dialect."""
    if isinstance(schema, list):
        return [convert_json_schema_to_openapi3(item) for item in schema]
    if not isinstance(schema, dict):
        return schema

    result = {}
    for key, value in schema.items():
        if key in _DROPPED_KEYWORDS:
            continue

        if key == "$ref" and isinstance(value, str):
            if value.startswith(DEFINITIONS_PREFIX):
                value = COMPONENTS_PREFIX + value[len(DEFINITIONS_PREFIX):]
            result["$ref"] = value
        elif key == "const":
            if "enum" not in schema:
                result["enum"] = [copy.deepcopy(value)]
        elif key == "patternProperties" and isinstance(value, dict):
            if "additionalProperties" in schema or not value:
                continue
            if len(value) == 1:
                result["additionalProperties"] = convert_json_schema_to_openapi3(next(iter(value.values())))
            else:
                result["additionalProperties"] = True
        elif key == "properties" and isinstance(value, dict):
            result[key] = {name: convert_json_schema_to_openapi3(prop) for name, prop in value.items()}
        elif key in _DATA_KEYWORDS:
            result[key] = copy.deepcopy(value)
        else:
            result[key] = convert_json_schema_to_openapi3(value)
    return result


def resolve_server_urls(servers: list[dict] | None) -> list[str]:
    """Substitute every ``{variable}`` of the server urls with its default value."""
    resolved = []
    for server in servers or []:
        template = server.get("url", "")
        variables = server.get("variables") or {}
        url = template
        for match in _SERVER_VARIABLE.finditer(template):
            default = (variables.get(match.group(1)) or {}).get("default")
            if default is None:
                raise ConfigurationError(
                    f"Server URL {template} could not be resolved. "
                    "Make sure to provide a default value for each URL variable."
                )
            url = url.replace(match.group(0), str(default), 1)
        resolved.append(url)
    return resolved


def schema_to_media(schema: dict) -> dict:
    """Wrap a schema into a media type object, lifting its examples out of it."""
    media = {"schema": schema}

    examples = schema.get("examples")
    if isinstance(examples, list) and examples:
        if len(examples) == 1:
            media["example"] = examples[0]
        else:
            media["examples"] = {f"example{index}": {"value": value} for index, value in enumerate(examples, 1)}
        del schema["examples"]

    if schema.get(X_EXAMPLES):
        media.pop("example", None)
        media["examples"] = schema.pop(X_EXAMPLES)
    return media


def resolve_schema_examples(schema: dict) -> None:
    """Turn ``x-examples``/``examples`` of every nested schema into ``example``."""
    if not isinstance(schema, dict):
        return

    example = schema.pop(X_EXAMPLES, None)
    examples = schema.pop("examples", None)
    if example is None and isinstance(examples, list) and examples:
        example = examples[0]
    if example is not None:
        schema["example"] = example

    nested = []
    if schema.get("type") == "object":
        nested.extend((schema.get("properties") or {}).values())
        nested.extend((schema.get("patternProperties") or {}).values())
        if isinstance(schema.get("additionalProperties"), dict):
            nested.append(schema["additionalProperties"])
    elif schema.get("type") == "array":
        nested.extend(schema[key] for key in ("items", "contains") if isinstance(schema.get(key), dict))
    for child in nested:
        resolve_schema_examples(child)


def schema_to_media_recursive(schema: dict) -> dict:
    media = schema_to_media(schema)
    resolve_schema_examples(schema)
    return media


def prepare_component_schema(schema: dict) -> dict:
    component = convert_json_schema_to_openapi3(schema)
    resolve_schema_examples(component)
    return component


def _explicit_content(schema: dict) -> dict | None:
    content = schema.get("content")
    if isinstance(content, dict) and content:
        first = next(iter(content.values()))
        if isinstance(first, dict) and "schema" in first:
            return content
    return None


class OpenApiAssembler(Assembler):
    dialect = "openapi"

    def __init__(self, options, resolver):
        super().__init__(options, resolver)
        self._server_urls = resolve_server_urls(self.config.servers)

    @property
    def config(self):
        return self.options.openapi

    @property
    def components(self) -> dict:
        return self.config.components or {}

    @property
    def document_security(self) -> list[dict]:
        return self.config.security or []

    @property
    def security_schemes(self) -> dict:
        return self.components.get("securitySchemes") or {}

    def security_parameter(self, scheme: dict) -> tuple[str, str] | None:
        if scheme.get("type") == "http" and str(scheme.get("scheme", "")).lower() == "bearer":
            return "header", "authorization"
        return super().security_parameter(scheme)

    def build_envelope(self) -> dict:
        config = self.config
        document = {
            "openapi": config.openapi,
            "info": config.info or default_info(self.options.package_name),
            "components": {**self.components, "schemas": self._component_schemas()},
            "paths": dict(config.paths or {}),
        }
        if config.servers:
            document["servers"] = config.servers
        if config.webhooks:
            document["webhooks"] = config.webhooks
        if config.security:
            document["security"] = config.security
        if config.tags:
            document["tags"] = config.tags
        if config.external_docs:
            document["externalDocs"] = config.external_docs
        document.update(config.extensions)
        return document

    def _component_schemas(self) -> dict:
        # user supplied components come first and are never overwritten
        schemas = dict(self.components.get("schemas") or {})
        for name, schema in self.resolver.definitions().items():
            if name not in schemas:
                schemas[name] = prepare_component_schema(schema)
        return schemas

    def normalize_url(self, url: str) -> str:
        if self.options.strip_base_path:
            for server_url in self._server_urls:
                base_path = server_url if server_url.startswith("/") else urlparse(server_url).path
                if base_path and base_path != "/" and url.startswith(base_path):
                    url = url[len(base_path):]
                    break
        if not url.startswith("/"):
            url = "/" + url
        return format_param_url(url)

    def build_operation(self, route: RouteDescriptor, schema: dict | None, url: str) -> dict:
        operation: dict = {}
        parameters: list[dict] = []
        excluded = self.security_exclusions(schema)

        if schema:
            copy_fields(schema, operation, ("operationId", "summary", "tags", "description", "externalDocs"))
            if schema.get("querystring"):
                parameters.extend(self._parameters("query", schema["querystring"], excluded.get("query", [])))
            if schema.get("body"):
                operation["requestBody"] = self._request_body(schema["body"], schema.get("consumes"))
            if schema.get("params"):
                parameters.extend(self._parameters("path", schema["params"]))
            if schema.get("headers"):
                parameters.extend(self._parameters("header", schema["headers"], excluded.get("header", [])))
            if schema.get("cookies"):
                parameters.extend(self._parameters("cookie", schema["cookies"], excluded.get("cookie", [])))
            if parameters:
                operation["parameters"] = parameters
            copy_fields(schema, operation, ("deprecated", "security", "servers"))
            if schema.get("callbacks"):
                operation["callbacks"] = self._callbacks(schema["callbacks"])
            operation.update(extension_keys(schema))

        if not (schema and schema.get("params")) and has_params(url):
            parameters.extend(self._parameters("path", generate_params_schema(url)))
            operation["parameters"] = parameters

        operation["responses"] = self._responses(
            schema.get("response") if schema else None,
            schema.get("produces") if schema else None,
        )

        for status_code, links in (route.links or {}).items():
            key = str(status_code)
            key = key if key == "default" else key.upper()
            response = operation["responses"].get(key)
            if not isinstance(response, dict):
                raise ConfigurationError(f"missing status code {status_code} in route {route.url}")
            response["links"] = links

        return operation

    def _parameters(self, location: str, fragment: dict, excluded: list[str] | None = None) -> list[dict]:
        resolved = self.resolver.resolve(fragment)
        properties = self.resolver.unwrap_shorthand(resolved)
        return [
            self._parameter(location, name, prop, resolved)
            for name, prop in properties.items()
            if not self.is_excluded(location, name, excluded or [])
        ]

    def _parameter(self, location: str, name: str, prop: ShorthandProperty, parent: dict) -> dict:
        schema = convert_json_schema_to_openapi3(prop.schema)
        media = schema_to_media(schema)

        if location == "path":
            parameter = {"in": location, "name": name, "required": True, **media}
        else:
            parameter = {"in": location, "name": name, "required": prop.required}
            media_type = schema.pop(X_CONSUME, None)
            if media_type:
                # complex serialization, e.g. JSON in a query string
                if prop.raw_required is not None:
                    schema["required"] = prop.raw_required
                parameter["content"] = {media_type: media}
            else:
                parameter = {**parameter, **media}

            if parent.get("style"):
                parameter["style"] = parent["style"]
            if parent.get("explode") is not None:
                parameter["explode"] = parent["explode"]
            if location == "query" and parent.get("allowReserved") is True:
                parameter["allowReserved"] = True

        if schema.get("description"):
            parameter["description"] = schema["description"]
        if "schema" in parameter:
            parameter["schema"].pop("required", None)
            parameter["schema"].pop("description", None)
        return parameter

    def _request_body(self, body: dict, consumes: list[str] | None) -> dict:
        resolved = convert_json_schema_to_openapi3(self.resolver.resolve(body))
        request_body: dict = {"content": {}}

        content = _explicit_content(resolved)
        if content:
            for media_type, media in content.items():
                request_body["content"][media_type] = schema_to_media_recursive(media["schema"])
            if resolved.get("required") is True:
                request_body["required"] = True
        else:
            media = schema_to_media_recursive(resolved)
            for media_type in consumes or [DEFAULT_MEDIA_TYPE]:
                request_body["content"][media_type] = media
            if isinstance(resolved.get("required"), list) and resolved["required"]:
                request_body["required"] = True

        if isinstance(resolved.get("description"), str) and resolved["description"]:
            request_body["description"] = resolved["description"]
        return request_body

    def _responses(self, response: dict | None, produces: list[str] | None) -> dict:
        if not response:
            return {"200": {"description": DEFAULT_RESPONSE_DESCRIPTION}}

        responses = {}
        for code, raw in response.items():
            code = str(code)
            if not isinstance(raw, dict):
                logger.debug("Ignoring non-object response schema for status %s", code)
                continue
            if code != "default":
                # OpenAPI range keys must be upper case: 2XX
                code = code.upper()

            resolved = convert_json_schema_to_openapi3(self.resolver.resolve(raw))
            entry = {
                "description": resolved.get(X_RESPONSE_DESCRIPTION)
                or raw.get("description")
                or self.resolver.find_description(raw)
                or DEFAULT_RESPONSE_DESCRIPTION
            }

            headers = resolved.pop("headers", None)
            if raw.get("headers") and isinstance(headers, dict):
                entry["headers"] = {}
                for name, prop in self.resolver.unwrap_shorthand(headers).items():
                    header_schema = dict(prop.schema)
                    item = {"schema": header_schema}
                    description = header_schema.pop("description", None)
                    if description:
                        item["description"] = description
                    if prop.required:
                        item["required"] = True
                    entry["headers"][name] = item

            if raw.get("type") != "null":
                resolved.pop(X_RESPONSE_DESCRIPTION, None)
                content = _explicit_content(resolved)
                if content:
                    entry["content"] = content
                else:
                    media = schema_to_media_recursive(resolved)
                    entry["content"] = {media_type: media for media_type in produces or [DEFAULT_MEDIA_TYPE]}

            responses[code] = entry
        return responses

    def _callbacks(self, callbacks: dict) -> dict:
        result: dict = {}
        if not isinstance(callbacks, dict):
            return result

        for event, expressions in callbacks.items():
            if not isinstance(expressions, dict):
                continue
            result[event] = {}
            for expression, methods in expressions.items():
                if not expression or not isinstance(methods, dict):
                    continue
                result[event][expression] = {}
                for method, method_schema in methods.items():
                    if not method or not isinstance(method_schema, dict):
                        continue

                    item = {}
                    if method_schema.get("requestBody"):
                        item["requestBody"] = convert_json_schema_to_openapi3(
                            self.resolver.resolve(method_schema["requestBody"])
                        )
                    if isinstance(method_schema.get("responses"), dict):
                        item["responses"] = convert_json_schema_to_openapi3(
                            self.resolver.resolve(method_schema["responses"])
                        )
                    else:
                        item["responses"] = {"2XX": {"description": DEFAULT_RESPONSE_DESCRIPTION}}
                    result[event][expression][method] = item
        return result
