"""Reference resolution over the shared schema registry.

Every named schema gets a local definition name (``def-0``, ``def-1``, ...
by default) and every ``$ref`` that targets a registered identifier is
rewritten to point inside ``#/definitions/``. The OpenAPI 3 assembler later
moves that namespace to ``#/components/schemas/``.

Route-level slots for querystring, params, headers and cookies describe a
set of parameters rather than a value, so they are unwrapped into a flat
``{name: ShorthandProperty}`` map (see ``unwrap_shorthand``).
"""

import copy
import logging
from collections.abc import Iterable, Mapping
from typing import Any, Callable, NamedTuple

from api_docgen.errors import ConfigurationError, RegistrationIncompleteError, UnresolvedReferenceError
from api_docgen.registry import RegistrationSink

logger = logging.getLogger(__name__)

DEFINITIONS_PREFIX = "#/definitions/"
COMPONENTS_PREFIX = "#/components/schemas/"
X_CONSUME = "x-consume"

COMBINATORS = ("oneOf", "anyOf", "allOf")
# keywords holding instance data, never sub-schemas
_DATA_KEYWORDS = frozenset({"enum", "const", "default", "example", "examples", "x-examples"})


class ShorthandProperty(NamedTuple):
    """One property of an unwrapped querystring/params/headers/cookies schema."""

    schema: dict
    required: bool
    raw_required: Any = None  # the property's own ``required`` before unwrapping


def default_local_reference(schema: dict, index: int) -> str:
    """Name definitions ``def-<index>``, keeping the identifier as the title."""
    if not schema.get("title") and schema.get("$id"):
        schema["title"] = schema["$id"]
    return f"def-{index}"


def _escape_pointer(token: str) -> str:
    return token.replace("~", "~0").replace("/", "~1")


def _unescape_pointer(token: str) -> str:
    return token.replace("~1", "/").replace("~0", "~")


def _strip_local_prefix(ref: str) -> str | None:
    for prefix in (DEFINITIONS_PREFIX, COMPONENTS_PREFIX):
        if ref.startswith(prefix):
            return ref[len(prefix):]
    return None


def _longest_name(path: str, names: Iterable[str]) -> str | None:
    # definition names may themselves contain "/", so match the longest name first
    for name in sorted(names, key=len, reverse=True):
        if name and (path == name or path.startswith(name + "/")):
            return name
    return None


def _collect_refs(node: Any, refs: list[str]) -> None:
    if isinstance(node, dict):
        for key, value in node.items():
            if key == "$ref" and isinstance(value, str):
                refs.append(value)
            elif key not in _DATA_KEYWORDS:
                _collect_refs(value, refs)
    elif isinstance(node, list):
        for item in node:
            _collect_refs(item, refs)


def _strip_ids(node: Any) -> Any:
    if isinstance(node, dict):
        return {
            key: (value if key in _DATA_KEYWORDS else _strip_ids(value))
            for key, value in node.items()
            if not (key == "$id" and isinstance(value, str))
        }
    if isinstance(node, list):
        return [_strip_ids(item) for item in node]
    return node


class ReferenceResolver:
    """Flattens shared schemas and rewrites references into one namespace."""

    def __init__(
        self,
        schemas: Iterable[dict],
        build_local_reference: Callable | None = None,
        user_definitions: Mapping[str, Any] | None = None,
    ):
        naming = build_local_reference or default_local_reference
        self._named: dict[str, dict] = {}
        self._ids: dict[str, tuple[str, str]] = {}  # identifier -> (definition name, pointer)
        # definitions supplied with the document options; they shadow registered ones of the same name
        self._user_definitions = dict(user_definitions or {})

        for index, schema in enumerate(schemas):
            schema = copy.deepcopy(schema)
            key = naming(schema, index)
            if key in self._named:
                raise ConfigurationError(f"definition name {key!r} is produced for more than one schema")
            self._named[key] = schema
            self._index_ids(schema, key, "")

        self._definitions = self._flatten_all()
        self._targets = {**self._definitions, **self._user_definitions}

        # local pointers inside registered schemas must land on something
        refs: list[str] = []
        _collect_refs(self._definitions, refs)
        for ref in refs:
            self.lookup(ref)
        logger.debug("Resolver built with %d definitions", len(self._definitions))

    @classmethod
    def build(
        cls,
        source: RegistrationSink | Mapping[str, dict] | Iterable[dict],
        build_local_reference: Callable | None = None,
        user_definitions: Mapping[str, Any] | None = None,
    ) -> "ReferenceResolver":
        """Build a resolver from a completed sink, an id->schema mapping or a list of schemas."""
        if isinstance(source, RegistrationSink):
            if not source.is_complete:
                raise RegistrationIncompleteError(
                    "the schema registry can only be read after registration is complete"
                )
            schemas: Iterable[dict] = source.schemas.values()
        elif isinstance(source, Mapping):
            schemas = source.values()
        else:
            schemas = source
        return cls(schemas, build_local_reference, user_definitions)

    def definitions(self) -> dict[str, dict]:
        """All named schemas, flattened into ``#/definitions/`` and stripped of ``$id``."""
        return copy.deepcopy(self._definitions)

    def resolve(self, fragment: Any) -> Any:
        """Return a copy of a route-level fragment with every ``$ref`` pointing into ``#/definitions/``.

        Local references must target a registered or user supplied definition;
        ``#/definitions/<id>`` with a registered identifier is mapped to that
        schema's definition name.
        """
        return self._rewrite(fragment, None)

    def lookup(self, ref: str) -> dict:
        """Return a copy of the schema node a reference points at."""
        if not ref.startswith("#"):
            ref = self._rewrite_ref(ref, None)

        rest = _strip_local_prefix(ref)
        key = _longest_name(rest, self._targets) if rest is not None else None
        if key is None:
            raise UnresolvedReferenceError(ref)

        node: Any = self._targets[key]
        for token in filter(None, rest[len(key):].split("/")):
            token = _unescape_pointer(token)
            if isinstance(node, dict) and token in node:
                node = node[token]
            elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
                node = node[int(token)]
            else:
                raise UnresolvedReferenceError(ref)
        return copy.deepcopy(node)

    def find_description(self, fragment: Any) -> str | None:
        """Description of the named schema a ``{"$ref": ...}`` fragment points at."""
        if not isinstance(fragment, dict) or not isinstance(fragment.get("$ref"), str):
            return None
        try:
            target = self.lookup(fragment["$ref"])
        except UnresolvedReferenceError:
            # unknown targets carry no description
            return None
        return target.get("description") if isinstance(target, dict) else None

    def unwrap_shorthand(self, fragment: Any) -> dict[str, ShorthandProperty]:
        """Flatten a parameter-set schema into ``{name: ShorthandProperty}``.

        * ``{"type": "object", "properties": ..., "required": [...]}`` yields one
          entry per property, required when listed in the parent's ``required``.
        * ``oneOf``/``anyOf``/``allOf`` branches are unwrapped and merged, later
          branches overwriting earlier ones.
        * ``{"$ref": ...}`` unwraps the referenced object schema.
        * A bare ``{name: schema}`` map is taken as the property map itself.
        """
        return self._unwrap(fragment, frozenset())

    def _unwrap(self, fragment: Any, seen: frozenset) -> dict[str, ShorthandProperty]:
        if not isinstance(fragment, dict):
            return {}

        if isinstance(fragment.get("properties"), dict):
            required = fragment.get("required")
            required = required if isinstance(required, list) else []
            result = {}
            for name, prop in fragment["properties"].items():
                if isinstance(prop, dict):
                    result[name] = self._shorthand_property(prop, name in required)
            return result

        if any(isinstance(fragment.get(key), list) for key in COMBINATORS):
            merged: dict[str, ShorthandProperty] = {}
            for key in COMBINATORS:
                for branch in fragment.get(key) or []:
                    merged.update(self._unwrap(branch, seen))
            return merged

        if isinstance(fragment.get("$ref"), str):
            ref = fragment["$ref"]
            if ref in seen:
                raise ConfigurationError(f"circular $ref {ref!r} in a parameter schema")
            return self._unwrap(self.lookup(ref), seen | {ref})

        if "type" in fragment:
            # an object schema without properties declares no parameters
            return {}

        return {
            name: self._shorthand_property(prop, prop.get("required") is True)
            for name, prop in fragment.items()
            if isinstance(prop, dict)
        }

    @staticmethod
    def _shorthand_property(prop: dict, required: bool) -> ShorthandProperty:
        schema = {key: value for key, value in prop.items() if key != "required"}
        return ShorthandProperty(schema=schema, required=required, raw_required=prop.get("required"))

    def _index_ids(self, node: Any, key: str, pointer: str) -> None:
        if isinstance(node, dict):
            schema_id = node.get("$id")
            if isinstance(schema_id, str):
                uri = schema_id.partition("#")[0]
                if uri in self._ids:
                    logger.debug("Identifier %r already indexed, keeping the first", uri)
                else:
                    self._ids[uri] = (key, pointer)
            for name, value in node.items():
                if name not in _DATA_KEYWORDS:
                    self._index_ids(value, key, f"{pointer}/{_escape_pointer(name)}")
        elif isinstance(node, list):
            for index, item in enumerate(node):
                self._index_ids(item, key, f"{pointer}/{index}")

    def _flatten_all(self) -> dict[str, dict]:
        flattened = {key: self._rewrite(schema, key) for key, schema in self._named.items()}

        refs: list[str] = []
        _collect_refs(flattened, refs)

        definitions = {}
        for key, schema in flattened.items():
            schema = _strip_ids(schema)
            schema.pop("$schema", None)
            inner = f"{DEFINITIONS_PREFIX}{key}/definitions/"
            if "definitions" in schema and not any(ref.startswith(inner) for ref in refs):
                del schema["definitions"]
            definitions[key] = schema
        return definitions

    def _rewrite(self, node: Any, base_key: str | None) -> Any:
        if isinstance(node, dict):
            result = {}
            for key, value in node.items():
                if key == "$ref" and isinstance(value, str):
                    result[key] = self._rewrite_ref(value, base_key)
                elif key in _DATA_KEYWORDS:
                    result[key] = copy.deepcopy(value)
                else:
                    result[key] = self._rewrite(value, base_key)
            return result
        if isinstance(node, list):
            return [self._rewrite(item, base_key) for item in node]
        return node

    def _rewrite_ref(self, ref: str, base_key: str | None) -> str:
        if ref.startswith("#"):
            if base_key is None:
                return self._rewrite_local_ref(ref)
            # a local pointer inside a named schema becomes a pointer into its definition
            return f"{DEFINITIONS_PREFIX}{base_key}{ref[1:]}"

        uri, _, fragment = ref.partition("#")
        target = self._ids.get(uri)
        if target is None:
            raise UnresolvedReferenceError(ref)
        key, pointer = target
        return f"{DEFINITIONS_PREFIX}{key}{pointer}{fragment}"

    def _rewrite_local_ref(self, ref: str) -> str:
        rest = _strip_local_prefix(ref)
        if rest is None:
            # a route fragment has no document position for other local pointers
            raise UnresolvedReferenceError(ref)

        if _longest_name(rest, self._targets) is None:
            uri = _longest_name(rest, self._ids)
            if uri is None:
                raise UnresolvedReferenceError(ref)
            key, pointer = self._ids[uri]
            rest = f"{key}{pointer}{rest[len(uri):]}"

        ref = f"{DEFINITIONS_PREFIX}{rest}"
        self.lookup(ref)
        return ref
