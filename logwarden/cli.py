# logwarden/cli.py
"""
Command line interface for LogWarden

    logwarden serve            Run the REST API
    logwarden analyze FILE     Run the anomaly rules on a local CSV export
"""

import json
import logging
import sys

import click
from rich.console import Console
from rich.table import Table
from rich.panel import Panel

from . import __version__
from .core.errors import InputError
from .services.detector import get_detector
from .services.normalizer import normalize_csv, read_log_file
from .services.statistics import (
    anomaly_percentage, build_anomaly_details, compute_security_insights,
    compute_statistics, top_anomaly_types,
)

console = Console()


@click.group()
@click.version_option(__version__, prog_name="logwarden")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose):
    """LogWarden - rule-based anomaly detection for proxy logs"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s"
    )


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Auto-reload on code changes")
def serve(host, port, reload):
    """Run the REST API under uvicorn"""
    import uvicorn

    console.print(f"[bold green]LogWarden API[/] v{__version__} on http://{host}:{port}")
    uvicorn.run("logwarden.api.main:app", host=host, port=port, reload=reload)


@cli.command()
@click.argument("file", type=click.Path(dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Print the report as JSON")
@click.option("--limit", default=20, show_default=True, help="Max anomalous lines to list")
def analyze(file, as_json, limit):
    """
    Analyze a CSV log export locally

    Runs the rule engine only; no narrative is generated and nothing is stored.
    """
    try:
        records = normalize_csv(read_log_file(file))
    except InputError as e:
        console.print(f"[bold red]Error:[/] {e}")
        sys.exit(1)

    anomalies = get_detector().detect(records)
    stats = compute_statistics(anomalies)
    insights = compute_security_insights(records, anomalies)
    details = build_anomaly_details(records, anomalies)
    percentage = anomaly_percentage(stats.total_anomalies, len(records))

    if as_json:
        report = {
            "totalAnalyzed": len(records),
            "totalAnomalies": stats.total_anomalies,
            "anomalyPercentage": percentage,
            "statistics": stats.model_dump(),
            "topAnomalyTypes": [t.model_dump() for t in top_anomaly_types(stats)],
            "securityInsights": insights.model_dump(),
            "anomalyDetails": [d.model_dump(by_alias=True) for d in details],
        }
        click.echo(json.dumps(report, indent=2))
        return

    console.print(Panel(
        f"[bold]{len(records)}[/] entries analyzed, "
        f"[bold red]{stats.total_anomalies}[/] anomalous ({percentage}%)\n"
        f"Average confidence: {stats.average_confidence}%  "
        f"High confidence: {stats.high_confidence_anomalies}",
        title=f"LogWarden - {file}",
    ))

    if stats.anomaly_types:
        types_table = Table(title="Anomaly types")
        types_table.add_column("Type")
        types_table.add_column("Count", justify="right")
        for item in top_anomaly_types(stats, limit=len(stats.anomaly_types)):
            types_table.add_row(item.type, str(item.count))
        console.print(types_table)

    insights_table = Table(title="Security insights")
    insights_table.add_column("Metric")
    insights_table.add_column("Value", justify="right")
    for name, value in insights.model_dump().items():
        insights_table.add_row(name.replace("_", " ").capitalize(), str(value))
    console.print(insights_table)

    if details:
        lines_table = Table(title=f"Anomalous entries (first {min(limit, len(details))} of {len(details)})")
        lines_table.add_column("Timestamp")
        lines_table.add_column("Source IP")
        lines_table.add_column("Reason")
        lines_table.add_column("Conf.", justify="right")
        level_colors = {"High": "red", "Medium": "yellow", "Low": "white"}
        for detail in details[:limit]:
            info = detail.anomaly_details
            color = level_colors[info.confidence_level]
            lines_table.add_row(
                info.timestamp, info.source_ip, info.reason,
                f"[{color}]{info.confidence_score}[/]"
            )
        console.print(lines_table)


def main():
    """Entry point for the logwarden console script"""
    cli()


if __name__ == "__main__":
    main()
