"""Route and schema registration.

The host server pushes every route and every named schema into a
RegistrationSink while it sets itself up, then calls
``complete_registration()`` exactly once. After that the sink is frozen
and document generation may read it.

Schemas can be registered from nested scopes (a plugin inside a plugin).
A scope sees its own schemas and those of its ancestors; across scopes the
first schema registered under an identifier wins.
"""

import logging
import threading

from api_docgen.errors import ConfigurationError, RegistrationClosedError
from api_docgen.models import RouteDescriptor

logger = logging.getLogger(__name__)


class RegistrationSink:
    """Collects routes and shared schemas until registration completes."""

    def __init__(self, expose_head_routes: bool = False):
        self.expose_head_routes = expose_head_routes
        self._routes: list[RouteDescriptor] = []
        self._schemas: dict[str, dict] = {}
        self._complete = threading.Event()
        self._lock = threading.Lock()
        self._root = RegistrationScope(self)

    @property
    def routes(self) -> tuple[RouteDescriptor, ...]:
        return tuple(self._routes)

    @property
    def schemas(self) -> dict[str, dict]:
        return dict(self._schemas)

    @property
    def is_complete(self) -> bool:
        return self._complete.is_set()

    def scope(self) -> "RegistrationScope":
        """Return the root registration scope."""
        return self._root

    def record_route(self, route: RouteDescriptor | dict) -> RouteDescriptor | None:
        """Record a route. Returns the stored descriptor, or None when it was skipped."""
        if isinstance(route, dict):
            route = RouteDescriptor.model_validate(route)

        with self._lock:
            self._ensure_open()
            route = self._filter_head(route)
            if route is not None:
                self._routes.append(route)
        return route

    def record_schema(self, schema: dict, scope: "RegistrationScope | None" = None) -> None:
        """Record a named schema; the first schema seen for an identifier wins."""
        (scope or self._root).add_schema(schema)

    def complete_registration(self) -> None:
        """Signal that every route and schema is registered. Fires once."""
        with self._lock:
            self._ensure_open()
            self._complete.set()
        logger.debug(
            "Registration complete: %d routes, %d shared schemas",
            len(self._routes),
            len(self._schemas),
        )

    def wait_until_complete(self, timeout: float | None = None) -> bool:
        return self._complete.wait(timeout)

    def _store_schema(self, schema_id: str, schema: dict) -> None:
        with self._lock:
            self._ensure_open()
            if schema_id in self._schemas:
                logger.debug("Schema %r already registered by another scope, keeping the first", schema_id)
                return
            self._schemas[schema_id] = schema

    def _ensure_open(self) -> None:
        if self._complete.is_set():
            raise RegistrationClosedError("registration is already complete, the route and schema registries are frozen")

    def _filter_head(self, route: RouteDescriptor) -> RouteDescriptor | None:
        if "HEAD" not in route.methods:
            return route

        if not (self.expose_head_routes or route.expose_head_route):
            methods = [m for m in route.methods if m != "HEAD"]
            if not methods:
                return None
            return route.model_copy(update={"methods": methods})

        schema = route.schema_
        if route.methods == ["HEAD"] and schema and schema.get("operationId") is not None:
            # two operations sharing an operationId make the document invalid
            schema = {**schema, "operationId": f"{schema['operationId']}-head"}
            return route.model_copy(update={"schema_": schema})
        return route


class RegistrationScope:
    """A nested registration context, e.g. one plugin of the host server."""

    def __init__(self, sink: RegistrationSink, parent: "RegistrationScope | None" = None):
        self.sink = sink
        self.parent = parent
        self._schemas: dict[str, dict] = {}

    def child(self) -> "RegistrationScope":
        return RegistrationScope(self.sink, parent=self)

    def add_schema(self, schema: dict) -> None:
        schema_id = schema.get("$id") if isinstance(schema, dict) else None
        if not isinstance(schema_id, str) or not schema_id:
            raise ConfigurationError("shared schemas must declare a string $id")
        if schema_id in self._schemas:
            raise ConfigurationError(f"schema with $id {schema_id!r} is already declared in this scope")

        self.sink._store_schema(schema_id, schema)
        self._schemas[schema_id] = schema

    def add_route(self, route: RouteDescriptor | dict) -> RouteDescriptor | None:
        return self.sink.record_route(route)

    def get_schemas(self) -> dict[str, dict]:
        """Schemas visible from this scope: ancestors first, own schemas last."""
        visible = self.parent.get_schemas() if self.parent else {}
        for schema_id, schema in self._schemas.items():
            visible.setdefault(schema_id, schema)
        return visible
