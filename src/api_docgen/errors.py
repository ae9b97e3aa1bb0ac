"""Exception taxonomy for document generation.

Configuration and usage errors abort the whole generation call; nothing
is cached when one of them is raised.
"""


class ApiDocgenError(Exception):
    """Base class for every error raised by api_docgen."""


class ConfigurationError(ApiDocgenError, ValueError):
    """The routes, schemas or options cannot be expressed in the target document."""


class UnresolvedReferenceError(ConfigurationError):
    """A ``$ref`` points at a schema that is not registered."""

    def __init__(self, ref: str):
        super().__init__(f"Could not resolve $ref {ref!r}: no schema with this identifier is registered")
        self.ref = ref


class RegistrationIncompleteError(ApiDocgenError, RuntimeError):
    """Generation was requested before route/schema registration completed."""


class RegistrationClosedError(ApiDocgenError, RuntimeError):
    """A route or schema was recorded after registration completed."""
