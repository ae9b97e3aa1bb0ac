"""CLI entry point for api-docgen."""

import json
import logging
from pathlib import Path

import click

from api_docgen.errors import ApiDocgenError
from api_docgen.manifest import build_generator, load_manifest
from api_docgen.url import format_param_url


def _output_format(output: Path | None, fmt: str) -> str:
    """Pick the output format; 'auto' follows the output file extension."""
    if fmt != "auto":
        return fmt
    if output is not None and output.suffix.lower() == ".json":
        return "json"
    return "yaml"


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Log generation details to stderr.")
def main(verbose: bool):
    """API Docgen: generate Swagger 2.0 / OpenAPI 3 documents from route manifests."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@main.command()
@click.argument("manifest_path", type=click.Path(exists=True, path_type=Path))
@click.option("-o", "--output", default=None, type=click.Path(path_type=Path), help="Output file path. Prints to stdout when omitted.")
@click.option("--format", "fmt", default="auto", type=click.Choice(["auto", "yaml", "json"]), help="Document format.")
@click.option("--openapi", "dialect", flag_value="openapi", default=None, help="Force an OpenAPI 3 document.")
@click.option("--swagger", "dialect", flag_value="swagger", help="Force a Swagger 2.0 document.")
def build(manifest_path: Path, output: Path | None, fmt: str, dialect: str | None):
    """Generate the API document described by a route manifest."""
    try:
        generator = build_generator(load_manifest(manifest_path), dialect=dialect)
        if _output_format(output, fmt) == "json":
            text = json.dumps(generator.generate(), indent=2, ensure_ascii=False) + "\n"
        else:
            text = generator.generate(yaml=True)
    except ApiDocgenError as e:
        raise click.ClickException(str(e)) from e

    if output is None:
        click.echo(text, nl=False)
        return

    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(text, encoding="utf-8")
    click.echo(f"{generator.dialect} document with {len(generator.generate()['paths'])} paths saved to {output}", err=True)


@main.command()
@click.argument("pattern")
def url(pattern: str):
    """Show the path template a route pattern is documented under."""
    click.echo(format_param_url(pattern))
