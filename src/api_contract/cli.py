"""CLI entry point for api-contract."""

import json
import logging
import sys
from pathlib import Path

import click
import yaml

from api_contract.compiler.document import compile_document
from api_contract.config import Settings, load_settings
from api_contract.harness.report import ContractReport
from api_contract.harness.runner import ContractRunner
from api_contract.harness.transport import RequestsTransport
from api_contract.loader.detect import detect_format
from api_contract.loader.module import load_module
from api_contract.loader.openapi import load_openapi
from api_contract.spec.errors import ContractCompileError
from api_contract.spec.registry import SpecRegistry

EXIT_OK = 0
EXIT_SCENARIO_FAILED = 1
EXIT_COMPILE_ERROR = 2


def _declare(targets: tuple[str, ...], settings: Settings) -> SpecRegistry:
    """Load every declaration target into a fresh registry and freeze it."""
    registry = SpecRegistry()
    for target in targets:
        if detect_format(target) == "openapi":
            load_openapi(Path(target), registry)
        else:
            load_module(target, registry)

    # schemes declared by the targets take precedence over the config file
    for name, scheme in settings.security_schemes.items():
        if name not in registry.security_schemes:
            registry.register_security_scheme(name, scheme)

    registry.freeze()
    click.echo(f"Declared {len(registry)} operations, {len(registry.components)} components.")
    return registry


def _fail(error: Exception) -> None:
    click.echo(f"Error: {error}", err=True)
    sys.exit(EXIT_COMPILE_ERROR)


def _echo_report(report: ContractReport) -> None:
    for result in report.results:
        mark = "PASS" if result.passed else "FAIL"
        click.echo(f"  {mark} {result.label}")
        if result.error:
            click.echo(f"       {result.error}")
        for violation in result.violations:
            click.echo(f"       {violation}")
    for label in report.skipped:
        click.echo(f"  SKIP {label}")

    summary = report.summary()
    click.echo(
        f"{summary['passed']} passed, {summary['failed']} failed, "
        f"{summary['skipped']} skipped ({summary['total']} scenarios)"
    )


def _write_report(report: ContractReport, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    data = report.to_dict()
    if path.suffix.lower() == ".json":
        path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    else:
        path.write_text(yaml.safe_dump(data, sort_keys=False), encoding="utf-8")
    click.echo(f"Report saved to {path}")


@click.group()
@click.option("-v", "--verbose", count=True, help="Increase log output (-v info, -vv debug).")
def main(verbose: int):
    """api-contract: verify live API exchanges against declared contracts and compile OpenAPI docs."""
    level = logging.WARNING - 10 * min(verbose, 2)
    logging.basicConfig(level=level, format="%(levelname)s %(name)s: %(message)s")


@main.command()
@click.argument("targets", nargs=-1, required=True)
@click.option("-o", "--output", type=click.Path(path_type=Path), default=None, help="Output path for the compiled document.")
@click.option("--format", "fmt", default="auto", type=click.Choice(["auto", "yaml", "json"]), help="Document format.")
@click.option("--fail-fast/--no-fail-fast", default=False, help="Cancel pending scenarios after the first failure.")
@click.option("-t", "--tag", "tags", multiple=True, help="Only run scenarios with this tag (repeatable).")
@click.option("-e", "--env", "environment", default=None, help="Environment to run against (see config 'environments').")
@click.option("--base-url", default=None, help="Base URL of the API under test.")
@click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path), default=None, help="YAML config file.")
@click.option("--workers", type=int, default=None, help="Number of scenarios run in parallel.")
@click.option("--report", "report_path", type=click.Path(path_type=Path), default=None, help="Write the contract report (YAML or JSON).")
@click.option("--capture-examples", is_flag=True, help="Embed passing response bodies as examples.")
def run(
    targets: tuple[str, ...],
    output: Path | None,
    fmt: str,
    fail_fast: bool,
    tags: tuple[str, ...],
    environment: str | None,
    base_url: str | None,
    config_path: Path | None,
    workers: int | None,
    report_path: Path | None,
    capture_examples: bool,
):
    """Run every declared scenario, then compile the API document."""
    try:
        settings = load_settings(config_path)
        registry = _declare(targets, settings)
        base_url = base_url or settings.base_url_for(environment)
    except ContractCompileError as e:
        _fail(e)

    if not base_url:
        raise click.UsageError("No base URL: pass --base-url, --env, or set API_BASE_URL.")

    # Step 1: verify the contract
    click.echo(f"Running scenarios against {base_url}...")
    transport = RequestsTransport(base_url, token=settings.api_token, timeout=settings.timeout)
    runner = ContractRunner(registry, transport, workers=workers or settings.workers, fail_fast=fail_fast)
    report = runner.run(tags=tags, environment=environment)
    _echo_report(report)

    # Step 2: compile the document, whatever the verdicts
    document = compile_document(
        registry,
        info=settings.info,
        servers=settings.servers,
        examples=report.examples() if capture_examples else None,
    )
    path = document.write(output or settings.output, fmt)
    click.echo(f"Document saved to {path}")

    if report_path:
        _write_report(report, report_path)

    sys.exit(EXIT_OK if report.passed else EXIT_SCENARIO_FAILED)


@main.command(name="compile")
@click.argument("targets", nargs=-1, required=True)
@click.option("-o", "--output", type=click.Path(path_type=Path), default=None, help="Output path for the compiled document.")
@click.option("--format", "fmt", default="auto", type=click.Choice(["auto", "yaml", "json"]), help="Document format.")
@click.option("--config", "config_path", type=click.Path(exists=True, path_type=Path), default=None, help="YAML config file.")
def compile_(targets: tuple[str, ...], output: Path | None, fmt: str, config_path: Path | None):
    """Compile the API document without running scenarios."""
    try:
        settings = load_settings(config_path)
        registry = _declare(targets, settings)
    except ContractCompileError as e:
        _fail(e)

    document = compile_document(registry, info=settings.info, servers=settings.servers)
    path = document.write(output or settings.output, fmt)
    click.echo(f"Document saved to {path}")
