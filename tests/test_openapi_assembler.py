import pytest

from api_docgen.errors import ConfigurationError, UnresolvedReferenceError
from api_docgen.generator import DocumentGenerator
from api_docgen.assembler.openapi import (
    convert_json_schema_to_openapi3,
    resolve_server_urls,
    schema_to_media,
)

INFO = {"title": "Test", "version": "1.0.0"}


def _generate(routes, schemas=(), build_local_reference=None, **openapi):
    generator = DocumentGenerator({
        "openapi": {"info": INFO, **openapi},
        "build_local_reference": build_local_reference,
    })
    for schema in schemas:
        generator.sink.record_schema(schema)
    for route in routes:
        generator.sink.record_route(route)
    generator.sink.complete_registration()
    return generator.generate()


def _by_id(schema, index):
    return schema["$id"]


class TestEnvelope:
    def test_minimal_document(self):
        document = _generate([])
        assert document == {
            "openapi": "3.0.3",
            "info": INFO,
            "components": {"schemas": {}},
            "paths": {},
        }

    def test_empty_openapi_block_selects_openapi(self):
        generator = DocumentGenerator({"openapi": {}})
        assert generator.dialect == "openapi"

    def test_component_schemas_converted(self):
        document = _generate(
            [],
            schemas=[
                {"$id": "Tag", "type": "string", "const": "pet"},
                {"$id": "Pet", "type": "object", "properties": {"tag": {"$ref": "Tag#"}}, "examples": [{"tag": "pet"}]},
            ],
            build_local_reference=_by_id,
        )
        schemas = document["components"]["schemas"]
        assert schemas["Tag"] == {"type": "string", "enum": ["pet"]}
        assert schemas["Pet"]["properties"]["tag"] == {"$ref": "#/components/schemas/Tag"}
        assert schemas["Pet"]["example"] == {"tag": "pet"}

    def test_user_components_kept(self):
        document = _generate(
            [],
            schemas=[{"$id": "Pet", "type": "object"}],
            build_local_reference=_by_id,
            components={
                "schemas": {"Pet": {"type": "string"}},
                "securitySchemes": {"bearer": {"type": "http", "scheme": "bearer"}},
            },
        )
        assert document["components"]["schemas"] == {"Pet": {"type": "string"}}
        assert "bearer" in document["components"]["securitySchemes"]

    def test_servers_and_extensions(self):
        document = _generate(
            [],
            servers=[{"url": "https://api.example.com/v1"}],
            externalDocs={"url": "https://docs.example.com"},
            **{"x-audience": "public"},
        )
        assert document["servers"] == [{"url": "https://api.example.com/v1"}]
        assert document["externalDocs"]["url"] == "https://docs.example.com"
        assert document["x-audience"] == "public"


class TestServers:
    def test_variables_resolved_to_defaults(self):
        servers = [{"url": "{scheme}://localhost:{port}/api", "variables": {
            "scheme": {"default": "http"}, "port": {"default": 3000},
        }}]
        assert resolve_server_urls(servers) == ["http://localhost:3000/api"]

    def test_missing_default_raises(self):
        with pytest.raises(ConfigurationError, match="could not be resolved"):
            resolve_server_urls([{"url": "http://localhost:{port}"}])

    def test_server_path_stripped_from_routes(self):
        document = _generate(
            [{"method": "GET", "url": "/api/pets"}],
            servers=[{"url": "http://localhost:{port}/api", "variables": {"port": {"default": "80"}}}],
        )
        assert list(document["paths"]) == ["/pets"]

    def test_base_path_kept_when_disabled(self):
        generator = DocumentGenerator({
            "openapi": {"info": INFO, "servers": [{"url": "/api"}]},
            "stripBasePath": False,
        })
        generator.sink.record_route({"method": "GET", "url": "/api/pets"})
        generator.sink.complete_registration()
        assert list(generator.generate()["paths"]) == ["/api/pets"]


class TestParameters:
    def test_query_parameter_shape(self):
        document = _generate([{"method": "GET", "url": "/pets", "schema": {"querystring": {
            "type": "object",
            "required": ["limit"],
            "properties": {"limit": {"type": "integer", "description": "Page size", "examples": [10]}},
        }}}])
        assert document["paths"]["/pets"]["get"]["parameters"] == [{
            "schema": {"type": "integer"},
            "example": 10,
            "in": "query",
            "name": "limit",
            "required": True,
            "description": "Page size",
        }]

    def test_x_consume_becomes_content(self):
        document = _generate([{"method": "GET", "url": "/search", "schema": {"querystring": {
            "type": "object",
            "properties": {"filter": {
                "type": "object",
                "x-consume": "application/json",
                "required": ["field"],
                "properties": {"field": {"type": "string"}},
            }},
        }}}])
        parameter = document["paths"]["/search"]["get"]["parameters"][0]
        assert parameter["in"] == "query"
        assert parameter["required"] is False
        assert parameter["content"] == {"application/json": {"schema": {
            "type": "object",
            "properties": {"field": {"type": "string"}},
            "required": ["field"],
        }}}

    def test_style_and_explode_from_parent(self):
        document = _generate([{"method": "GET", "url": "/pets", "schema": {"querystring": {
            "type": "object",
            "style": "deepObject",
            "explode": False,
            "allowReserved": True,
            "properties": {"filter": {"type": "object"}},
        }}}])
        parameter = document["paths"]["/pets"]["get"]["parameters"][0]
        assert parameter["style"] == "deepObject"
        assert parameter["explode"] is False
        assert parameter["allowReserved"] is True

    def test_path_and_cookie_parameters(self):
        document = _generate([{"method": "GET", "url": "/pets/:id", "schema": {
            "params": {"type": "object", "properties": {"id": {"type": "integer"}}},
            "cookies": {"type": "object", "properties": {"session": {"type": "string"}}},
        }}])
        parameters = document["paths"]["/pets/{id}"]["get"]["parameters"]
        assert parameters == [
            {"schema": {"type": "integer"}, "in": "path", "name": "id", "required": True},
            {"schema": {"type": "string"}, "in": "cookie", "name": "session", "required": False},
        ]

    def test_bearer_scheme_excludes_authorization_header(self):
        document = _generate(
            [{"method": "GET", "url": "/me", "schema": {
                "security": [{"bearer": []}],
                "headers": {"type": "object", "properties": {
                    "Authorization": {"type": "string"},
                    "x-trace": {"type": "string"},
                }},
            }}],
            components={"securitySchemes": {"bearer": {"type": "http", "scheme": "bearer"}}},
        )
        parameters = document["paths"]["/me"]["get"]["parameters"]
        assert [p["name"] for p in parameters] == ["x-trace"]

    def test_parameter_keys_lead_with_location_and_name(self):
        document = _generate([{"method": "GET", "url": "/pets/:id", "schema": {
            "params": {"type": "object", "properties": {"id": {"type": "integer"}}},
            "querystring": {"type": "object", "properties": {"limit": {"type": "integer", "examples": [10]}}},
        }}])
        path_parameter, query_parameter = document["paths"]["/pets/{id}"]["get"]["parameters"]
        assert list(path_parameter) == ["in", "name", "required", "schema"]
        assert list(query_parameter) == ["in", "name", "required", "schema", "example"]


class TestRequestBody:
    def test_body_uses_consumes(self):
        document = _generate(
            [{"method": "POST", "url": "/pets", "schema": {
                "consumes": ["application/json", "application/xml"],
                "body": {"type": "object", "required": ["name"], "description": "New pet",
                         "properties": {"name": {"type": "string"}}},
            }}],
        )
        body = document["paths"]["/pets"]["post"]["requestBody"]
        assert set(body["content"]) == {"application/json", "application/xml"}
        assert body["required"] is True
        assert body["description"] == "New pet"

    def test_body_ref_rewritten_to_components(self):
        document = _generate(
            [{"method": "POST", "url": "/pets", "schema": {"body": {"$ref": "Pet#"}}}],
            schemas=[{"$id": "Pet", "type": "object"}],
            build_local_reference=_by_id,
        )
        body = document["paths"]["/pets"]["post"]["requestBody"]
        assert body == {"content": {"application/json": {"schema": {"$ref": "#/components/schemas/Pet"}}}}

    def test_explicit_content(self):
        document = _generate([{"method": "POST", "url": "/upload", "schema": {"body": {
            "required": True,
            "content": {"text/plain": {"schema": {"type": "string", "examples": ["a", "b"]}}},
        }}}])
        body = document["paths"]["/upload"]["post"]["requestBody"]
        assert body["required"] is True
        assert body["content"]["text/plain"] == {
            "schema": {"type": "string"},
            "examples": {"example1": {"value": "a"}, "example2": {"value": "b"}},
        }


class TestResponses:
    def test_default_response(self):
        document = _generate([{"method": "GET", "url": "/health"}])
        assert document["paths"]["/health"]["get"]["responses"] == {"200": {"description": "Default Response"}}

    def test_range_keys_upper_cased(self):
        document = _generate([{"method": "GET", "url": "/pets", "schema": {"response": {
            "2xx": {"type": "object"},
            "default": {"type": "object", "description": "Error"},
        }}}])
        responses = document["paths"]["/pets"]["get"]["responses"]
        assert set(responses) == {"2XX", "default"}
        assert responses["default"]["description"] == "Error"

    def test_null_response_has_no_content(self):
        document = _generate([{"method": "DELETE", "url": "/pets/:id", "schema": {"response": {
            204: {"type": "null", "description": "Deleted"},
        }}}])
        assert document["paths"]["/pets/{id}"]["delete"]["responses"]["204"] == {"description": "Deleted"}

    def test_produces_and_headers(self):
        document = _generate([{"method": "GET", "url": "/pets", "schema": {
            "produces": ["application/xml"],
            "response": {200: {
                "type": "array",
                "headers": {"X-Total": {"type": "integer", "description": "Total count"}},
            }},
        }}])
        response = document["paths"]["/pets"]["get"]["responses"]["200"]
        assert response["headers"] == {"X-Total": {"schema": {"type": "integer"}, "description": "Total count"}}
        assert response["content"] == {"application/xml": {"schema": {"type": "array"}}}

    def test_description_from_referenced_schema(self):
        document = _generate(
            [{"method": "GET", "url": "/pets/:id", "schema": {"response": {200: {"$ref": "Pet#"}}}}],
            schemas=[{"$id": "Pet", "type": "object", "description": "A pet"}],
        )
        response = document["paths"]["/pets/{id}"]["get"]["responses"]["200"]
        assert response["description"] == "A pet"
        assert response["content"]["application/json"]["schema"] == {"$ref": "#/components/schemas/def-0"}

    def test_object_form_headers(self):
        document = _generate([{"method": "GET", "url": "/pets", "schema": {"response": {200: {
            "type": "array",
            "headers": {
                "type": "object",
                "required": ["X-Rate"],
                "properties": {
                    "X-Rate": {"type": "integer"},
                    "X-Trace": {"type": "string", "description": "Trace id"},
                },
            },
        }}}}])
        response = document["paths"]["/pets"]["get"]["responses"]["200"]
        assert response["headers"] == {
            "X-Rate": {"schema": {"type": "integer"}, "required": True},
            "X-Trace": {"schema": {"type": "string"}, "description": "Trace id"},
        }
        assert response["content"] == {"application/json": {"schema": {"type": "array"}}}

    def test_non_object_header_values_skipped(self):
        document = _generate([{"method": "GET", "url": "/pets", "schema": {"response": {200: {
            "type": "object",
            "headers": {"X-A": True, "X-B": {"type": "string"}},
        }}}}])
        response = document["paths"]["/pets"]["get"]["responses"]["200"]
        assert response["headers"] == {"X-B": {"schema": {"type": "string"}}}

    def test_local_ref_to_user_component_kept(self):
        document = _generate(
            [{"method": "GET", "url": "/pets", "schema": {"response": {200: {"$ref": "#/components/schemas/Pet"}}}}],
            components={"schemas": {"Pet": {"type": "object", "description": "A pet"}}},
        )
        response = document["paths"]["/pets"]["get"]["responses"]["200"]
        assert response["description"] == "A pet"
        assert response["content"]["application/json"]["schema"] == {"$ref": "#/components/schemas/Pet"}
        assert document["components"]["schemas"] == {"Pet": {"type": "object", "description": "A pet"}}

    def test_unknown_local_ref_raises(self):
        with pytest.raises(UnresolvedReferenceError):
            _generate([{"method": "POST", "url": "/pets", "schema": {"body": {
                "properties": {"a": {"$ref": "#/definitions/Nope"}},
            }}}])


class TestLinks:
    def test_links_attached_to_response(self):
        links = {"self": {"operationId": "getPet", "parameters": {"id": "$response.body#/id"}}}
        document = _generate([{
            "method": "POST",
            "url": "/pets",
            "schema": {"response": {201: {"type": "object"}}},
            "links": {201: links},
        }])
        assert document["paths"]["/pets"]["post"]["responses"]["201"]["links"] == links

    def test_links_on_default_response(self):
        document = _generate([{"method": "GET", "url": "/pets", "links": {"200": {"next": {"operationId": "x"}}}}])
        assert "next" in document["paths"]["/pets"]["get"]["responses"]["200"]["links"]

    def test_links_missing_status_code(self):
        route = {
            "method": "GET",
            "url": "/pets",
            "schema": {"response": {200: {"type": "object"}}},
            "links": {404: {"self": {"operationId": "x"}}},
        }
        with pytest.raises(ConfigurationError, match="missing status code 404 in route /pets"):
            _generate([route])


class TestCallbacks:
    def test_callbacks(self):
        document = _generate([{"method": "POST", "url": "/subscribe", "schema": {"callbacks": {
            "onEvent": {
                "{$request.body#/callbackUrl}": {
                    "post": {"requestBody": {"content": {"application/json": {"schema": {"$ref": "Event#"}}}}},
                    "put": "not-a-schema",
                },
            },
            "broken": "not-a-mapping",
        }}}], schemas=[{"$id": "Event", "type": "object"}], build_local_reference=_by_id)
        callbacks = document["paths"]["/subscribe"]["post"]["callbacks"]
        assert set(callbacks) == {"onEvent"}
        post = callbacks["onEvent"]["{$request.body#/callbackUrl}"]["post"]
        assert post["requestBody"]["content"]["application/json"]["schema"] == {"$ref": "#/components/schemas/Event"}
        assert post["responses"] == {"2XX": {"description": "Default Response"}}
        assert "put" not in callbacks["onEvent"]["{$request.body#/callbackUrl}"]


class TestConversion:
    def test_pattern_properties(self):
        assert convert_json_schema_to_openapi3(
            {"type": "object", "patternProperties": {"^a": {"type": "integer"}}}
        ) == {"type": "object", "additionalProperties": {"type": "integer"}}

    def test_multiple_pattern_properties(self):
        result = convert_json_schema_to_openapi3(
            {"type": "object", "patternProperties": {"^a": {}, "^b": {}}}
        )
        assert result["additionalProperties"] is True

    def test_explicit_additional_properties_wins(self):
        result = convert_json_schema_to_openapi3(
            {"patternProperties": {"^a": {}}, "additionalProperties": False}
        )
        assert result == {"additionalProperties": False}

    def test_schema_to_media_x_examples(self):
        schema = {"type": "string", "examples": ["a"], "x-examples": {"one": {"value": "a"}}}
        assert schema_to_media(schema) == {"schema": {"type": "string"}, "examples": {"one": {"value": "a"}}}
