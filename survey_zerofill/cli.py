from __future__ import annotations

import json
from dataclasses import replace
from typing import Any, Optional

import typer

from survey_zerofill.core.errors import (
    SurveyConfigError,
    SurveyError,
    SurveyExpandError,
    SurveyLoadError,
    SurveyValidationError,
)
from survey_zerofill.core.expand.expand_survey import (
    DUPLICATE_POLICIES,
    OccasionExpander,
    SkippedRecord,
    validate_species,
)
from survey_zerofill.core.expand.run_config import RunConfigError, load_and_merge
from survey_zerofill.core.io.load_species import load_species
from survey_zerofill.core.io.survey_csv import STDIO, LoadedSurvey, load_survey, write_survey
from survey_zerofill.core.model import sort_records
from survey_zerofill.core.validate.validate_survey import (
    summarize_survey,
    survey_summary,
    validate_survey,
)

app = typer.Typer(add_completion=False, no_args_is_help=True)


@app.callback()
def _callback() -> None:
    """Survey zero-fill CLI: one row per species for every {route,year}."""
    return


@app.command("expand")
def expand(
    path: str = typer.Argument(STDIO, help="Survey CSV to densify ('-' for stdin)"),
    species_file: Optional[str] = typer.Option(
        None, "--species", "-s", help="File containing the full species list, one AOU code per line"
    ),
    out: str = typer.Option(STDIO, "--out", "-o", help="Where to write the densified CSV ('-' for stdout)"),
    config_file: Optional[str] = typer.Option(
        None, "--config", help="Optional YAML file with run settings"
    ),
    on_duplicate: Optional[str] = typer.Option(
        None,
        "--on-duplicate",
        help="Repeated {route,year} block: fail (default) or allow",
    ),
    check_sorted: Optional[bool] = typer.Option(
        None,
        "--check-sorted/--no-check-sorted",
        help="Fail on records that are out of (route, year, species) order",
    ),
    sort_input: Optional[bool] = typer.Option(
        None, "--sort/--no-sort", help="Sort records before expanding them"
    ),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-fatal notices"),
) -> None:
    """Ensure every {route, year, species} tuple is present in the output CSV."""
    cfg = _load_run_config(config_file)

    if on_duplicate is not None:
        if on_duplicate not in DUPLICATE_POLICIES:
            _print_errors(
                [
                    SurveyConfigError(
                        code="E_UNKNOWN_DUPLICATE_POLICY",
                        message=f"unknown duplicate policy: {on_duplicate} (choose one of: {', '.join(DUPLICATE_POLICIES)})",
                        file=None,
                        path="on_duplicate",
                    )
                ]
            )
            raise typer.Exit(code=2)
        cfg["on_duplicate"] = on_duplicate
    if check_sorted is not None:
        cfg["check_sorted"] = check_sorted
    if sort_input is not None:
        cfg["sort_input"] = sort_input

    species = _load_species_or_exit(species_file or cfg["species_file"])
    survey = _load_survey_or_exit(path)
    if not quiet:
        _print_errors(survey.notices)

    records = sort_records(survey.records) if cfg["sort_input"] else survey.records
    label = survey.file or path

    def notice(n: SkippedRecord) -> None:
        if not quiet:
            typer.echo(f"{label}:{n}", err=True)

    expander = OccasionExpander(
        species,
        on_duplicate=cfg["on_duplicate"],
        check_sorted=cfg["check_sorted"],
        on_notice=notice,
    )

    try:
        rows = write_survey(expander.expand(records), out)
    except SurveyExpandError as e:
        # Rows already produced stay in the output.
        _print_errors([replace(e, file=label)])
        raise typer.Exit(code=2)

    summary = (
        f"OK: expanded {len(records)} records to {rows} rows "
        f"({expander.occasions} occasions, {len(expander.skipped)} skipped)"
    )
    typer.echo(summary, err=out == STDIO)


@app.command("validate")
def validate(
    path: str = typer.Argument(..., help="Survey CSV to check ('-' for stdin)"),
    species_file: str = typer.Option(..., "--species", "-s", help="File containing the full species list"),
    format: str = typer.Option("text", "--format", help="Output format: text|json"),
) -> None:
    """Check a survey CSV against the species list without writing anything."""
    if format not in ("text", "json"):
        err = SurveyValidationError(
            code="E_VALIDATE_UNKNOWN_FORMAT",
            message=f"unknown format: {format} (choose one of: text, json)",
            file=None,
            path="format",
        )
        _print_errors([err])
        raise typer.Exit(code=2)

    def _to_item(e: SurveyError) -> dict:
        if isinstance(e, SurveyLoadError):
            source = "load"
        elif isinstance(e, SurveyConfigError):
            source = "species"
        else:
            source = "validate"
        return {
            "code": e.code,
            "message": e.message,
            "file": e.file,
            "path": e.path,
            "severity": "warning" if e.is_warning else "error",
            "source": source,
        }

    def _emit_json(
        ok: bool,
        *,
        exit_code: int,
        errors: list[SurveyError],
        warnings: list[SurveyError],
        summary: dict | None,
    ) -> None:
        payload = {
            "tool": "survey-zerofill",
            "command": "validate",
            "ok": ok,
            "error_count": len(errors),
            "warning_count": len(warnings),
            "errors": [_to_item(e) for e in errors],
            "warnings": [_to_item(e) for e in warnings],
            "summary": summary,
        }
        typer.echo(json.dumps(payload, indent=2, sort_keys=True))
        raise typer.Exit(code=exit_code)

    try:
        species = validate_species(load_species(species_file))
        survey = load_survey(path)
    except SurveyLoadError as e:
        if format == "json":
            _emit_json(False, exit_code=1, errors=[e], warnings=[], summary=None)
        _print_errors([e])
        raise typer.Exit(code=1)
    except SurveyConfigError as e:
        err = replace(e, file=species_file)
        if format == "json":
            _emit_json(False, exit_code=2, errors=[err], warnings=[], summary=None)
        _print_errors([err])
        raise typer.Exit(code=2)

    errors, warnings = validate_survey(survey.records, species, file=survey.file)
    all_warnings: list[SurveyError] = [*survey.notices, *warnings]

    if format == "json":
        _emit_json(
            not errors,
            exit_code=2 if errors else 0,
            errors=list(errors),
            warnings=all_warnings,
            summary=None if errors else survey_summary(survey.records, species),
        )

    _print_errors(all_warnings)
    if errors:
        _print_errors(list(errors))
        raise typer.Exit(code=2)
    typer.echo(summarize_survey(survey.records, species))


@app.command("species")
def species_cmd(
    path: str = typer.Argument(..., help="File containing the full species list"),
) -> None:
    """List the canonical species codes, in emission order."""
    codes = _load_species_or_exit(path)
    typer.echo(f"Species: {len(codes)}")
    typer.echo(", ".join(str(c) for c in codes))


def _load_run_config(config_file: str | None) -> dict[str, Any]:
    try:
        return load_and_merge(config_file)
    except FileNotFoundError:
        _print_errors(
            [
                SurveyLoadError(
                    code="E_CONFIG_FILE_NOT_FOUND",
                    message=f"config file not found: {config_file}",
                    file=None,
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=1)
    except RunConfigError as e:
        _print_errors(
            [
                SurveyConfigError(
                    code="E_CONFIG_FILE_INVALID",
                    message=str(e),
                    file=config_file,
                    path="config",
                )
            ]
        )
        raise typer.Exit(code=2)


def _load_species_or_exit(species_file: str | None) -> list[int]:
    if not species_file:
        _print_errors(
            [
                SurveyConfigError(
                    code="E_SPECIES_REQUIRED",
                    message="-s/--species must be provided (or species_file set in --config)",
                    file=None,
                    path="species",
                )
            ]
        )
        raise typer.Exit(code=2)

    try:
        return validate_species(load_species(species_file))
    except SurveyLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)
    except SurveyConfigError as e:
        _print_errors([replace(e, file=species_file)])
        raise typer.Exit(code=2)


def _load_survey_or_exit(path: str) -> LoadedSurvey:
    try:
        return load_survey(path)
    except SurveyLoadError as e:
        _print_errors([e])
        raise typer.Exit(code=1)


def _print_errors(errors: list[SurveyError]) -> None:
    errors_sorted = sorted(errors, key=lambda e: (e.file or "", e.path or "", e.code))
    for e in errors_sorted:
        typer.echo(str(e), err=True)


def main() -> None:
    app(prog_name="survey-zerofill")


cli = typer.main.get_command(app)

if __name__ == "__main__":
    main()
