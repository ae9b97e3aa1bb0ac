"""Data models for registered routes and generator options.

The host server records every route as a RouteDescriptor. Options use the
OpenAPI spelling (camelCase) as aliases so a manifest reads like the
document it produces; snake_case names are accepted as well.
"""

from typing import Callable

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

DEFAULT_HIDDEN_TAG = "X-HIDDEN"


class RouteDescriptor(BaseModel):
    """A registered endpoint: one URL pattern under one or more HTTP verbs."""

    model_config = ConfigDict(populate_by_name=True)

    methods: list[str] = Field(validation_alias=AliasChoices("methods", "method"))  # GET / POST / ...
    url: str  # /users/:id
    schema_: dict | None = Field(default=None, alias="schema")
    links: dict | None = None  # {status_code: {link_name: LinkObject}}, OpenAPI 3 only
    transform: Callable | bool | None = None  # route-level override, False disables
    expose_head_route: bool = False

    @field_validator("methods", mode="before")
    @classmethod
    def _wrap_single_method(cls, value):
        if isinstance(value, str):
            return [value]
        return value

    @field_validator("methods")
    @classmethod
    def _normalize_methods(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("a route needs at least one HTTP method")
        return [method.upper() for method in value]


class DocumentConfig(BaseModel):
    """Fields shared by both document dialects.

    Unknown keys are kept; the ones starting with ``x-`` are copied to the
    top level of the generated document.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    info: dict | None = None
    security: list[dict] | None = None
    tags: list[dict] | None = None
    external_docs: dict | None = None
    paths: dict | None = None

    @property
    def extensions(self) -> dict:
        return {key: value for key, value in (self.model_extra or {}).items() if key.startswith("x-")}


class SwaggerConfig(DocumentConfig):
    host: str | None = None
    schemes: list[str] | None = None
    base_path: str | None = None
    consumes: list[str] | None = None
    produces: list[str] | None = None
    definitions: dict | None = None
    security_definitions: dict | None = None


class OpenApiConfig(DocumentConfig):
    openapi: str = "3.0.3"
    servers: list[dict] | None = None
    components: dict | None = None
    webhooks: dict | None = None


class GeneratorOptions(BaseModel):
    """Everything that shapes one generated document.

    Supplying an ``openapi`` block (even an empty one) selects the
    OpenAPI 3 output; otherwise a Swagger 2.0 document is produced from
    the ``swagger`` block.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    swagger: SwaggerConfig = Field(default_factory=SwaggerConfig)
    openapi: OpenApiConfig | None = None
    hidden_tag: str = DEFAULT_HIDDEN_TAG
    hide_untagged: bool = False
    strip_base_path: bool = True
    expose_head_routes: bool = False
    transform: Callable | None = None  # (schema=, url=, route=) -> {"schema": ..., "url": ...}
    transform_object: Callable | None = None  # (document) -> document
    build_local_reference: Callable | None = None  # (schema, index) -> definition name
    package_name: str | None = None  # distribution used for the default info block

    @property
    def is_openapi(self) -> bool:
        return self.openapi is not None

    @property
    def user_definitions(self) -> dict:
        """Schemas supplied directly in the document block; local refs may target them."""
        if self.openapi is not None:
            schemas = (self.openapi.components or {}).get("schemas")
        else:
            schemas = self.swagger.definitions
        return schemas if isinstance(schemas, dict) else {}
