"""Per-route visibility and transform hooks."""

from typing import Callable

from api_docgen.models import DEFAULT_HIDDEN_TAG, RouteDescriptor


def should_route_hide(schema: dict | None, hidden_tag: str = DEFAULT_HIDDEN_TAG, hide_untagged: bool = False) -> bool:
    """Return True when a route must be left out of the document."""
    if schema and schema.get("hide"):
        return True

    tags = (schema or {}).get("tags") or []
    if not tags and hide_untagged:
        return True

    return hidden_tag in tags


def apply_transform(route: RouteDescriptor, transform: Callable | None = None) -> tuple[dict | None, str]:
    """Run the route-level or document-level transform and return ``(schema, url)``.

    A route-level transform takes precedence over the document-level one;
    a route-level ``False`` disables transformation for that route. The
    transform's result replaces the schema; a result without ``url`` keeps
    the registered url.
    """
    if route.transform is False:
        return route.schema_, route.url
    if callable(route.transform):
        transform = route.transform
    if transform is None:
        return route.schema_, route.url

    result = transform(schema=route.schema_, url=route.url, route=route)
    return result.get("schema"), result.get("url", route.url)
