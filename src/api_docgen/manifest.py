"""Route manifest loading.

A manifest describes the routes and shared schemas of a server without
running it. It is a YAML (or JSON) mapping; nested ``scopes`` register
schemas and routes the way nested plugins of a server would:

    options:
      openapi:
        info: {title: Pets, version: 1.0.0}
    schemas:
      - {$id: Pet, type: object, properties: {name: {type: string}}}
    routes:
      - method: GET
        url: /pets/:id
        schema:
          response:
            200: {$ref: "Pet#"}
    scopes:
      - schemas: [...]
        routes: [...]
"""

import logging
from pathlib import Path

import yaml
from pydantic import ValidationError

from api_docgen.errors import ConfigurationError
from api_docgen.generator import DocumentGenerator
from api_docgen.models import GeneratorOptions, OpenApiConfig
from api_docgen.registry import RegistrationScope

logger = logging.getLogger(__name__)


def load_manifest(file_path: Path) -> dict:
    """Parse a YAML or JSON manifest file."""
    text = file_path.read_text(encoding="utf-8")
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"{file_path} is not valid YAML/JSON: {e}") from e

    if not isinstance(data, dict):
        raise ConfigurationError(f"{file_path} is not a manifest: expected a mapping at the top level")
    return data


def build_generator(manifest: dict, dialect: str | None = None) -> DocumentGenerator:
    """Register everything a manifest declares and return a ready generator.

    ``dialect`` ("openapi" or "swagger") overrides the dialect the options select.
    """
    try:
        options = GeneratorOptions.model_validate(manifest.get("options") or {})
    except ValidationError as e:
        raise ConfigurationError(f"invalid options: {e}") from e
    if dialect == "openapi" and options.openapi is None:
        options = options.model_copy(update={"openapi": OpenApiConfig()})
    elif dialect == "swagger":
        options = options.model_copy(update={"openapi": None})

    generator = DocumentGenerator(options)
    _register(generator.sink.scope(), manifest)
    generator.sink.complete_registration()
    logger.debug("Manifest registered %d routes", len(generator.sink.routes))
    return generator


def _register(scope: RegistrationScope, node: dict) -> None:
    for schema in node.get("schemas") or []:
        scope.add_schema(schema)
    for route in node.get("routes") or []:
        try:
            scope.add_route(route)
        except ValidationError as e:
            raise ConfigurationError(f"invalid route {route!r}: {e}") from e
    for child in node.get("scopes") or []:
        _register(scope.child(), child)
