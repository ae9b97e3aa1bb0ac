"""Host package metadata used for the default ``info`` block."""

import logging
import tomllib
from importlib import metadata
from pathlib import Path

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "1.0.0"


def read_package_metadata(package_name: str | None = None, search_dir: Path | None = None) -> dict:
    """Return ``{name, version, description}`` of the host package, or ``{}``.

    With ``package_name`` the installed distribution is queried, otherwise
    ``pyproject.toml`` in ``search_dir`` (default: the working directory) is
    read. Missing or unparsable metadata is never an error.
    """
    if package_name:
        try:
            meta = metadata.metadata(package_name)
        except metadata.PackageNotFoundError:
            logger.debug("Distribution %r is not installed", package_name)
            return {}
        return {"name": meta.get("Name"), "version": meta.get("Version"), "description": meta.get("Summary")}

    pyproject = (search_dir or Path.cwd()) / "pyproject.toml"
    try:
        data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
    except (OSError, UnicodeDecodeError, tomllib.TOMLDecodeError) as e:
        logger.debug("No usable package metadata at %s: %s", pyproject, e)
        return {}

    project = data.get("project")
    if not isinstance(project, dict):
        return {}
    return {key: project.get(key) for key in ("name", "version", "description")}


def default_info(package_name: str | None = None, search_dir: Path | None = None) -> dict:
    """Build an ``info`` object, falling back to an empty title and version 1.0.0."""
    pkg = read_package_metadata(package_name, search_dir)
    name, version, description = pkg.get("name"), pkg.get("version"), pkg.get("description")

    info = {
        "version": version if isinstance(version, str) and version else DEFAULT_VERSION,
        "title": name if isinstance(name, str) else "",
    }
    if isinstance(description, str) and description:
        info["description"] = description
    return info
