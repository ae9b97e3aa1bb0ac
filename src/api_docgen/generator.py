"""Document generation pipeline.

A DocumentGenerator owns one RegistrationSink and one cache. The host
server records routes and schemas into ``generator.sink`` and signals
``complete_registration()``; the first ``generate()`` call then builds the
document and every later call returns the cached result:

    generator = DocumentGenerator({"openapi": {"info": {"title": "Pets", "version": "1.0.0"}}})
    generator.sink.record_schema({"$id": "Pet", "type": "object"})
    generator.sink.record_route({"methods": "GET", "url": "/pets/:id", "schema": {...}})
    generator.sink.complete_registration()
    document = generator.generate()
    text = generator.generate(yaml=True)
"""

import json
import logging
import threading

import yaml

from api_docgen.assembler.base import Assembler
from api_docgen.assembler.openapi import OpenApiAssembler
from api_docgen.assembler.swagger import SwaggerAssembler
from api_docgen.errors import RegistrationIncompleteError
from api_docgen.models import GeneratorOptions
from api_docgen.registry import RegistrationSink
from api_docgen.resolver import ReferenceResolver
from api_docgen.visibility import apply_transform, should_route_hide

logger = logging.getLogger(__name__)


class _NoAliasDumper(yaml.SafeDumper):
    """Operations shared between verbs are written out in full, not as anchors."""

    def ignore_aliases(self, data):
        return True


def dump_yaml(document: dict) -> str:
    return yaml.dump(document, Dumper=_NoAliasDumper, sort_keys=False, allow_unicode=True)


class DocumentCache:
    """One structured and one serialized document, kept for the owner's lifetime."""

    def __init__(self):
        self.document: dict | None = None
        self.text: str | None = None
        self.lock = threading.Lock()


class DocumentGenerator:
    """Builds and caches the document for one set of registered routes."""

    def __init__(self, options: GeneratorOptions | dict | None = None, sink: RegistrationSink | None = None):
        if not isinstance(options, GeneratorOptions):
            options = GeneratorOptions.model_validate(options or {})
        self.options = options
        self.sink = sink or RegistrationSink(expose_head_routes=options.expose_head_routes)
        self.assembler_class: type[Assembler] = OpenApiAssembler if options.is_openapi else SwaggerAssembler
        self._cache = DocumentCache()

    @property
    def dialect(self) -> str:
        return self.assembler_class.dialect

    def generate(self, yaml: bool = False) -> dict | str:
        """Return the document, as a dict or (``yaml=True``) as YAML text."""
        cached = self._cache.text if yaml else self._cache.document
        if cached is not None:
            return cached

        with self._cache.lock:
            if yaml:
                if self._cache.text is None:
                    document = self._cache.document if self._cache.document is not None else self._build()
                    self._cache.text = dump_yaml(document)
                return self._cache.text

            if self._cache.document is None:
                self._cache.document = self._build()
            return self._cache.document

    def to_json(self) -> str:
        return json.dumps(self.generate(), ensure_ascii=False)

    def _build(self) -> dict:
        if not self.sink.is_complete:
            raise RegistrationIncompleteError(
                "generate() must be called after complete_registration(): routes and schemas are not final yet"
            )

        resolver = ReferenceResolver.build(
            self.sink, self.options.build_local_reference, self.options.user_definitions
        )
        assembler = self.assembler_class(self.options, resolver)
        document = assembler.build_envelope()
        paths = document["paths"]

        for route in self.sink.routes:
            schema, url = apply_transform(route, self.options.transform)
            if should_route_hide(schema, self.options.hidden_tag, self.options.hide_untagged):
                logger.debug("Hiding %s %s", ",".join(route.methods), url)
                continue

            path = assembler.normalize_url(url)
            operation = assembler.build_operation(route, schema, path)

            path_item = dict(paths.get(path) or {})
            for method in route.methods:
                path_item[method.lower()] = operation
            paths[path] = path_item

        if self.options.transform_object:
            document = self.options.transform_object(document)

        logger.info("Generated %s document with %d paths", assembler.dialect, len(paths))
        return document
