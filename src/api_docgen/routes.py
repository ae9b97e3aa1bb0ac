"""Documentation endpoints backed by a DocumentGenerator.

The endpoints are framework-agnostic: each DocumentationRoute carries its
url, response content type and a zero-argument handler returning the body.
The host server mounts them; they are recorded as hidden routes so they
never appear in the document they serve.
"""

from typing import Callable

from pydantic import BaseModel

from api_docgen.generator import DocumentGenerator
from api_docgen.models import RouteDescriptor

JSON_CONTENT_TYPE = "application/json; charset=utf-8"
YAML_CONTENT_TYPE = "application/x-yaml"


class DocumentationRoute(BaseModel):
    url: str
    content_type: str
    handler: Callable[[], str]

    def descriptor(self) -> RouteDescriptor:
        return RouteDescriptor(methods=["GET"], url=self.url, schema={"hide": True})


def documentation_routes(generator: DocumentGenerator, prefix: str = "/documentation") -> list[DocumentationRoute]:
    """Return the ``<prefix>/json`` and ``<prefix>/yaml`` endpoints."""
    prefix = prefix.rstrip("/")
    return [
        DocumentationRoute(url=f"{prefix}/json", content_type=JSON_CONTENT_TYPE, handler=generator.to_json),
        DocumentationRoute(
            url=f"{prefix}/yaml",
            content_type=YAML_CONTENT_TYPE,
            handler=lambda: generator.generate(yaml=True),
        ),
    ]


def register_documentation_routes(generator: DocumentGenerator, prefix: str = "/documentation") -> list[DocumentationRoute]:
    """Create the documentation endpoints and record them, hidden, in the generator's sink."""
    routes = documentation_routes(generator, prefix)
    for route in routes:
        generator.sink.record_route(route.descriptor())
    return routes
