"""Shared assembler interface.

An assembler turns (route, schema) pairs into operation objects of one
document dialect and builds the surrounding document envelope. The
generator picks one assembler per document and never branches on the
dialect itself.
"""

import logging
from abc import ABC, abstractmethod

from api_docgen.models import GeneratorOptions, RouteDescriptor
from api_docgen.resolver import ReferenceResolver

logger = logging.getLogger(__name__)

DEFAULT_RESPONSE_DESCRIPTION = "Default Response"
DEFAULT_MEDIA_TYPE = "application/json"
X_RESPONSE_DESCRIPTION = "x-response-description"
X_EXAMPLES = "x-examples"

FORM_MEDIA_TYPES = ("application/x-www-form-urlencoded", "multipart/form-data")


def extension_keys(mapping: dict) -> dict:
    """Return the ``x-*`` entries of a mapping."""
    return {key: value for key, value in mapping.items() if isinstance(key, str) and key.startswith("x-")}


def copy_fields(source: dict, target: dict, keys: tuple[str, ...]) -> None:
    for key in keys:
        if source.get(key):
            target[key] = source[key]


def is_form_only(consumes: list[str] | None) -> bool:
    return bool(consumes) and len(consumes) == 1 and consumes[0] in FORM_MEDIA_TYPES


class Assembler(ABC):
    """Builds one document dialect from resolved route schemas."""

    dialect: str = ""

    def __init__(self, options: GeneratorOptions, resolver: ReferenceResolver):
        self.options = options
        self.resolver = resolver

    @abstractmethod
    def build_envelope(self) -> dict:
        """Return the top-level document with empty (or seeded) ``paths``."""

    @abstractmethod
    def normalize_url(self, url: str) -> str:
        """Return the path template a route url is documented under."""

    @abstractmethod
    def build_operation(self, route: RouteDescriptor, schema: dict | None, url: str) -> dict:
        """Return the operation object for one route."""

    @property
    @abstractmethod
    def document_security(self) -> list[dict]:
        """Document-level security requirements."""

    @property
    @abstractmethod
    def security_schemes(self) -> dict:
        """Security scheme definitions keyed by label."""

    def security_parameter(self, scheme: dict) -> tuple[str, str] | None:
        """Return the ``(location, name)`` a security scheme is sent in, if any."""
        location, name = scheme.get("in"), scheme.get("name")
        if location and name:
            return location, name
        return None

    def security_exclusions(self, schema: dict | None) -> dict[str, list[str]]:
        """Parameter names represented by a security scheme, grouped by location.

        Exclusion is scoped per location: a name is only dropped from the
        location its scheme is sent in.
        """
        requirements = list(self.document_security or []) + list((schema or {}).get("security") or [])
        exclusions: dict[str, list[str]] = {}
        for requirement in requirements:
            for label in requirement:
                scheme = self.security_schemes.get(label)
                if scheme is None:
                    logger.warning("Security requirement %r has no matching security scheme", label)
                    continue
                target = self.security_parameter(scheme)
                if target is None:
                    continue
                location, name = target
                exclusions.setdefault(location, []).append(name)
        return exclusions

    @staticmethod
    def is_excluded(location: str, name: str, excluded: list[str]) -> bool:
        if location == "header":
            # header names are case-insensitive
            return name.lower() in {item.lower() for item in excluded}
        return name in excluded
