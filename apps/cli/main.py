"""Typer CLI entrypoint for pdfgen."""

from __future__ import annotations

import logging
from dataclasses import replace
from pathlib import Path
from typing import Annotated, Any, NoReturn

import typer
from pydantic import ValidationError

from apps.cli.io import (
    dump_json,
    read_json_object,
    read_yaml_object,
    write_bytes_atomic,
    write_json_atomic,
)
from pdfgen.config.settings import Settings, load_settings
from pdfgen.mapping.candidates import build_candidates
from pdfgen.mapping.enrollment import (
    EnrollmentSubmission,
    select_config_by_convention,
    select_config_by_rules,
)
from pdfgen.mapping.models import GenerateRequest
from pdfgen.orchestrator.pipeline import GenerationService, build_service
from pdfgen.preprocess.preprocessor import merge_under, preprocess
from pdfgen.preprocess.rules import parse_rules
from pdfgen.utils.errors import PdfGenError

app = typer.Typer(help="PDF generation service CLI", rich_markup_mode=None)

ExistingFile = Annotated[Path, typer.Option(..., exists=True, dir_okay=False, file_okay=True)]


@app.callback()
def cli_callback(
    verbose: Annotated[bool, typer.Option("--verbose", help="Log at INFO level.")] = False,
) -> None:
    """PDF generation from composed mapping configuration."""

    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


@app.command("generate")
def generate_command(
    request: ExistingFile,
    out: Annotated[Path, typer.Option(help="Output PDF path.")],
    config_repo: Annotated[Path | None, typer.Option(help="Local config tree root.")] = None,
) -> None:
    """Generate a document from a request JSON file."""

    try:
        parsed = GenerateRequest.model_validate(read_json_object(request))
    except (ValueError, ValidationError) as exc:
        _fail(f"invalid request: {exc}")

    service = _service(config_repo)
    try:
        document = service.generate(parsed)
    except PdfGenError as exc:
        _fail(f"{exc.error_kind}: {exc.message}")
    finally:
        service.close()

    write_bytes_atomic(out, document.content)
    typer.echo(f"INFO: wrote {len(document.content)} bytes to {out}")


@app.command("merge")
def merge_command(
    config: Annotated[str, typer.Option(help="Merge configuration name.")],
    payload: ExistingFile,
    out: Annotated[Path, typer.Option(help="Output PDF path.")],
    label: Annotated[str | None, typer.Option()] = None,
    config_repo: Annotated[Path | None, typer.Option(help="Local config tree root.")] = None,
) -> None:
    """Assemble a named merge configuration against a payload."""

    data = _read_payload(payload)
    service = _service(config_repo)
    try:
        document = service.merge(config, data, label=label)
    except PdfGenError as exc:
        _fail(f"{exc.error_kind}: {exc.message}")
    finally:
        service.close()

    write_bytes_atomic(out, document.content)
    typer.echo(f"INFO: wrote {len(document.content)} bytes to {out}")


@app.command("candidates")
def candidates_command(
    request: ExistingFile,
    candidate_order: Annotated[
        list[str] | None,
        typer.Option("--pattern", help="Candidate pattern; repeat to override the default order."),
    ] = None,
) -> None:
    """Print the ordered mapping candidates for a request."""

    try:
        parsed = GenerateRequest.model_validate(read_json_object(request))
    except (ValueError, ValidationError) as exc:
        _fail(f"invalid request: {exc}")

    patterns = candidate_order or list(load_settings().candidate_order) or None
    for candidate in build_candidates(parsed, patterns):
        typer.echo(candidate)


@app.command("select-config")
def select_config_command(
    enrollment: ExistingFile,
    use_rules: Annotated[
        bool, typer.Option("--rules", help="Apply business rules before the naming convention.")
    ] = False,
) -> None:
    """Print the merge configuration an enrollment submission selects."""

    try:
        parsed = EnrollmentSubmission.model_validate(read_json_object(enrollment))
    except (ValueError, ValidationError) as exc:
        _fail(f"invalid enrollment: {exc}")

    if use_rules:
        typer.echo(select_config_by_rules(parsed))
    else:
        typer.echo(select_config_by_convention(parsed))


@app.command("preprocess")
def preprocess_command(
    rules: ExistingFile,
    payload: ExistingFile,
    out: Annotated[Path | None, typer.Option(help="Write the result here.")] = None,
    merged: Annotated[
        bool, typer.Option("--merged", help="Layer the flattened keys under the payload.")
    ] = False,
) -> None:
    """Apply a preprocessing rule file to a payload and print the result."""

    data = _read_payload(payload)
    try:
        program = parse_rules(read_yaml_object(rules), source=str(rules))
    except (ValueError, PdfGenError) as exc:
        _fail(str(exc))

    result: dict[str, Any] = preprocess(data, program)
    if merged:
        result = merge_under(data, result)

    if out is None:
        typer.echo(dump_json(result))
        return
    write_json_atomic(out, result)
    typer.echo(f"INFO: wrote {out}")


def _service(config_repo: Path | None) -> GenerationService:
    settings: Settings = load_settings()
    if config_repo is not None:
        settings = replace(settings, config_repo_path=config_repo)
    return build_service(settings)


def _read_payload(path: Path) -> dict[str, Any]:
    try:
        data = read_json_object(path)
    except ValueError as exc:
        _fail(f"invalid payload: {exc}")
    return data


def _fail(message: str) -> NoReturn:
    typer.echo(f"ERROR: {message}", err=True)
    raise typer.Exit(code=1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
