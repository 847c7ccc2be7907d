"""Typer CLI entrypoint for the scoring engine."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Optional

import typer
import yaml
from pydantic import ValidationError

from .config import ConfigManager
from .container import ScoringContainer, create_container
from .errors import (
    ComponentValidationError,
    LockTimeoutError,
    ReconciliationError,
    ScoringConfigError,
)
from .logging import configure_logging
from .schemas.config import load_config

app = typer.Typer(help="Applicant composite scoring CLI.")

EXIT_INVALID = 2
EXIT_NOT_FOUND = 3
EXIT_RETRY = 75

ConfigOption = typer.Option(None, exists=True, readable=True, dir_okay=False, help="YAML settings path.")
DatabaseOption = typer.Option(None, help="SQLAlchemy database URL; overrides storage.url.")
LogLevelOption = typer.Option("WARNING", help="Log level for structured logging.")


def _build_container(
    config: Optional[Path],
    database_url: Optional[str],
    log_level: str,
) -> ScoringContainer:
    configure_logging(log_level)

    raw: Any = {}
    if config:
        try:
            raw = ConfigManager(config.parent).load(config.stem)
        except yaml.YAMLError as exc:
            raise typer.BadParameter(f"Invalid YAML: {exc}", param_hint="config") from exc
        if not isinstance(raw, dict):
            raise typer.BadParameter("Config file must be a YAML object", param_hint="config")
    try:
        settings = load_config(raw).to_settings()
    except ValidationError as exc:
        raise typer.BadParameter(str(exc), param_hint="config") from exc

    if database_url:
        settings.setdefault("storage", {})["url"] = database_url
    return create_container(settings=settings)


def _parse_json_object(value: Optional[str], name: str) -> Optional[dict]:
    if value is None:
        return None
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"invalid JSON ({exc})", param_hint=name) from exc
    if not isinstance(parsed, dict):
        raise typer.BadParameter("must be a JSON object", param_hint=name)
    return parsed


def _fail(exc: ReconciliationError) -> typer.Exit:
    typer.echo(f"Error: {exc}", err=True)
    if isinstance(exc, (ComponentValidationError, ScoringConfigError)):
        return typer.Exit(EXIT_INVALID)
    if isinstance(exc, LockTimeoutError):
        return typer.Exit(EXIT_RETRY)
    return typer.Exit(1)


def _echo_json(payload: Any) -> None:
    typer.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@app.command()
def update(
    applicant_id: int = typer.Option(..., help="Applicant id."),
    component: str = typer.Option(..., help="Component key, e.g. psymetrics."),
    update_json: Optional[str] = typer.Option(None, help="Normalized update as a JSON object."),
    fields_json: Optional[str] = typer.Option(None, help="Extracted field values to normalize."),
    config: Optional[Path] = ConfigOption,
    database_url: Optional[str] = DatabaseOption,
    log_level: str = LogLevelOption,
) -> None:
    """Apply one component update and recompute the composite."""
    if (update_json is None) == (fields_json is None):
        raise typer.BadParameter("Pass exactly one of --update-json or --fields-json.")
    container = _build_container(config, database_url, log_level)
    service = container.reconciliation_service()

    try:
        if update_json is not None:
            payload: Any = _parse_json_object(update_json, "update_json")
        else:
            fields = _parse_json_object(fields_json, "fields_json") or {}
            payload = container.normalizer_registry().normalize(component, fields)
        result = service.update_component_and_recompute(applicant_id, component, payload)
    except ReconciliationError as exc:
        raise _fail(exc) from exc
    _echo_json(result.model_dump(mode="json"))


@app.command()
def recompute(
    applicant_id: Optional[int] = typer.Option(None, help="Applicant id."),
    all_applicants: bool = typer.Option(False, "--all", help="Recompute every known applicant."),
    config: Optional[Path] = ConfigOption,
    database_url: Optional[str] = DatabaseOption,
    log_level: str = LogLevelOption,
) -> None:
    """Recompute composites from the stored components."""
    if (applicant_id is None) == (not all_applicants):
        raise typer.BadParameter("Pass either --applicant-id or --all.")
    container = _build_container(config, database_url, log_level)
    service = container.reconciliation_service()

    if all_applicants:
        try:
            targets = service.known_applicants()
        except ReconciliationError as exc:
            raise _fail(exc) from exc
    else:
        targets = [applicant_id]
    failures = 0
    for target in targets:
        try:
            result = service.recompute_now(target)
        except ReconciliationError as exc:
            if not all_applicants:
                raise _fail(exc) from exc
            failures += 1
            typer.echo(f"#{target}: {exc}", err=True)
            continue
        typer.echo(
            f"#{target}: {result.composite:.2f} points, grade {result.grade} ({result.status_flag})"
        )
    if failures:
        raise typer.Exit(1)


@app.command()
def snapshot(
    applicant_id: int = typer.Option(..., help="Applicant id."),
    config: Optional[Path] = ConfigOption,
    database_url: Optional[str] = DatabaseOption,
    log_level: str = LogLevelOption,
) -> None:
    """Print the stored composite snapshot."""
    container = _build_container(config, database_url, log_level)
    try:
        result = container.reconciliation_service().get_snapshot(applicant_id)
    except ReconciliationError as exc:
        raise _fail(exc) from exc
    if result is None:
        typer.echo(f"No snapshot for applicant {applicant_id}.", err=True)
        raise typer.Exit(EXIT_NOT_FOUND)
    _echo_json(result.model_dump(mode="json"))


@app.command("config-show")
def config_show(
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
) -> None:
    """Print the scoring configuration in effect."""
    container = _build_container(config, None, log_level)
    _echo_json(container.reconciliation_service().get_config().to_dict())


@app.command("config-set")
def config_set(
    weights_json: Optional[str] = typer.Option(None, help="Component weights as a JSON object."),
    bands_json: Optional[str] = typer.Option(None, help="Grade bands as a JSON object."),
    config: Optional[Path] = ConfigOption,
    log_level: str = LogLevelOption,
) -> None:
    """Change weights or bands; applies from the next recompute."""
    weights = _parse_json_object(weights_json, "weights_json")
    bands = _parse_json_object(bands_json, "bands_json")
    if weights is None and bands is None:
        raise typer.BadParameter("Pass --weights-json and/or --bands-json.")
    container = _build_container(config, None, log_level)
    try:
        updated = container.reconciliation_service().set_config(weights=weights, bands=bands)
    except ReconciliationError as exc:
        raise _fail(exc) from exc
    _echo_json(updated.to_dict())


@app.command()
def ingest(
    updates: Path = typer.Option(..., exists=True, readable=True, dir_okay=False, help="Updates JSONL path."),
    output: Optional[Path] = typer.Option(None, dir_okay=False, help="Report JSON path."),
    config: Optional[Path] = ConfigOption,
    database_url: Optional[str] = DatabaseOption,
    log_level: str = LogLevelOption,
) -> None:
    """Apply a JSONL file of component updates."""
    container = _build_container(config, database_url, log_level)
    report = container.batch_ingestor().run(updates)

    if output:
        output.parent.mkdir(parents=True, exist_ok=True)
        output.write_text(
            json.dumps(report.to_dict(), ensure_ascii=False, indent=2),
            encoding="utf-8",
        )
    for error in report.errors:
        typer.echo(error, err=True)
    typer.echo(f"Applied {len(report.applied)} updates, {len(report.errors)} errors.")
    if report.errors:
        raise typer.Exit(1)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
