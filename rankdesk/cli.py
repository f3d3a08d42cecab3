"""Command-line interface for Rankdesk."""

import csv
import sys
from datetime import datetime
from pathlib import Path

import click
from loguru import logger
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from rich import box

from .config import get_settings, PROJECT_ROOT
from .database import init_db, get_db_session, reset_db
from .errors import BatchResult, RankdeskError
from .services.app_rankings import AlertService, AppRankingUploader
from .services.import_classifier import CompetitorImporter, ImportStatus
from .services.rank_tracking import RankFetcher, RankHistory, RankTrackerService
from .services.reconciler import DirectorySync

# Rich console for pretty output
console = Console()


def _configure_logging(debug: bool):
    settings = get_settings()
    level = "DEBUG" if debug else settings.log_level.upper()

    logger.remove()
    logger.add(sys.stderr, level="DEBUG" if debug else "WARNING")

    log_path = Path(settings.log_file)
    if not log_path.is_absolute():
        log_path = PROJECT_ROOT / log_path
    log_path.parent.mkdir(parents=True, exist_ok=True)
    logger.add(str(log_path), rotation="10 MB", retention="30 days", level=level)


def _read_csv(file_path):
    with open(file_path, newline="", encoding="utf-8-sig") as f:
        return list(csv.DictReader(f))


def _parse_day(value):
    return datetime.strptime(value, "%Y-%m-%d").date() if value else None


def _show_batch(result: BatchResult, title: str):
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Count", justify="right", style="green")
    table.add_row("Succeeded", str(result.succeeded))
    table.add_row("Skipped", str(result.skipped))
    table.add_row("Failed", str(result.failed))
    console.print(table)

    for message in result.errors:
        console.print(f"  [yellow]- {message}")


@click.group()
@click.option('--debug/--no-debug', default=False, help='Enable debug logging')
def cli(debug):
    """Rankdesk: backlink reconciliation and rank tracking for SEO teams."""
    _configure_logging(debug)


@cli.command()
def init():
    """Initialize the database."""
    with console.status("[bold green]Initializing database..."):
        init_db()
    console.print("[green]Database initialized successfully!")


@cli.command()
@click.confirmation_option(prompt='This will delete all data. Are you sure?')
def reset():
    """Reset the database (deletes all data)."""
    reset_db()
    console.print("[yellow]Database has been reset.")


@cli.command()
def reconcile():
    """Rebuild the link directory from backlinks and prospects."""
    init_db()

    with get_db_session() as session:
        with console.status("[bold green]Reconciling domains..."):
            result = DirectorySync(session).run()
    _show_batch(result, "Link Directory Reconciliation")


@cli.command('import-directory')
@click.argument('file_path', type=click.Path(exists=True))
def import_directory(file_path):
    """Import link directory rows from a CSV export."""
    init_db()

    rows = _read_csv(file_path)
    if not rows:
        console.print("[red]No rows found in file.")
        return

    with get_db_session() as session:
        result = DirectorySync(session).import_rows(rows)
    _show_batch(result, f"Directory Import ({len(rows)} rows)")


@cli.command('analyze-import')
@click.argument('file_path', type=click.Path(exists=True))
@click.option('--competitor', required=True, help='Competitor domain the export belongs to')
@click.option('--add-new', default=0, help='Add the top N new opportunities as prospects')
@click.option('--limit', default=25, help='Maximum number of rows to show')
def analyze_import(file_path, competitor, add_new, limit):
    """Classify a competitor backlink export against existing data."""
    init_db()

    rows = _read_csv(file_path)

    with get_db_session() as session:
        importer = CompetitorImporter(session)
        try:
            report = importer.analyze(rows, competitor)
        except RankdeskError as exc:
            console.print(f"[red]{exc}")
            return

        stats = report.stats
        console.print(Panel.fit(
            f"[bold]{competitor}[/bold]  batch {report.import_batch_id}\n"
            f"New opportunities: [green]{stats['new_opportunities']}[/green]\n"
            f"In prospects: [yellow]{stats['in_prospects']}[/yellow]\n"
            f"Already have: [blue]{stats['already_have']}[/blue]\n"
            f"Skipped: {report.skipped}",
            title="Competitor Import",
            border_style="blue"
        ))

        status_color = {
            ImportStatus.NEW: "green",
            ImportStatus.IN_PROSPECTS: "yellow",
            ImportStatus.ALREADY_HAVE: "blue",
        }
        table = Table(title=f"Rows ({min(limit, len(report.rows))} shown)", box=box.ROUNDED)
        table.add_column("Status", width=13)
        table.add_column("Domain", style="cyan", max_width=30)
        table.add_column("DR", justify="right", width=4)
        table.add_column("Traffic", justify="right")
        table.add_column("Notes", max_width=30)

        for row in report.rows[:limit]:
            color = status_color[row.status]
            notes = ", ".join(row.existing_brands or []) or (row.prospect_status or "")
            table.add_row(
                f"[{color}]{row.status.value}[/{color}]",
                row.root_domain,
                str(row.domain_rating) if row.domain_rating is not None else "-",
                str(row.domain_traffic) if row.domain_traffic is not None else "-",
                notes,
            )
        console.print(table)

        if add_new:
            result = importer.add_prospects(report.new_rows()[:add_new], competitor)
            _show_batch(result, "Prospects Added")


@cli.command()
@click.argument('tracker_id', type=int)
@click.option('--start', help='First day (YYYY-MM-DD)')
@click.option('--end', help='Last day (YYYY-MM-DD)')
def stats(tracker_id, start, end):
    """Show ranking statistics for a rank tracker."""
    init_db()

    with get_db_session() as session:
        result = RankHistory(session).statistics(tracker_id, _parse_day(start), _parse_day(end))

    if not result.has_data:
        console.print(f"[yellow]No history for tracker {tracker_id}.")
        return

    table = Table(title=f"Rank Tracker #{tracker_id}", box=box.ROUNDED)
    table.add_column("Metric", style="cyan")
    table.add_column("Value", justify="right", style="green")
    for key, value in result.to_dict().items():
        table.add_row(key.replace("_", " ").title(), "-" if value is None else str(value))
    console.print(table)


@cli.command('add-tracker')
@click.argument('keyword')
@click.option('--country', required=True, help='Provider database, e.g. us')
@click.option('--domain', required=True, help='Domain whose position is tracked')
def add_tracker(keyword, country, domain):
    """Start tracking a keyword for a domain."""
    init_db()

    with get_db_session() as session:
        try:
            tracker = RankTrackerService(session).create(keyword, country, domain)
        except RankdeskError as exc:
            console.print(f"[red]{exc}")
            return
        console.print(f"[green]Created rank tracker #{tracker.id} for '{tracker.keyword}'.")


@cli.command()
@click.option('--active-only', is_flag=True, help='Hide paused trackers')
def trackers(active_only):
    """List rank trackers."""
    init_db()

    with get_db_session() as session:
        rows = RankTrackerService(session).list(active_only=active_only)

        table = Table(title=f"Rank Trackers ({len(rows)})", box=box.ROUNDED)
        table.add_column("ID", justify="right", width=5)
        table.add_column("Keyword", style="cyan", max_width=35)
        table.add_column("Country", width=7)
        table.add_column("Domain", max_width=30)
        table.add_column("Active", width=6)
        table.add_column("Last Checked")
        for tracker in rows:
            table.add_row(
                str(tracker.id),
                tracker.keyword,
                tracker.country,
                tracker.domain,
                "[green]yes" if tracker.is_active else "[yellow]no",
                tracker.last_checked.strftime("%Y-%m-%d %H:%M") if tracker.last_checked else "-",
            )
        console.print(table)


@cli.command('set-tracker-active')
@click.argument('tracker_id', type=int)
@click.option('--active/--inactive', default=True, help='Resume or pause the tracker')
def set_tracker_active(tracker_id, active):
    """Pause or resume a rank tracker."""
    init_db()

    with get_db_session() as session:
        try:
            RankTrackerService(session).set_active(tracker_id, active)
        except RankdeskError as exc:
            console.print(f"[red]{exc}")
            return
    console.print(f"[green]Tracker {tracker_id} is now {'active' if active else 'paused'}.")


@cli.command('delete-tracker')
@click.argument('tracker_id', type=int)
@click.confirmation_option(prompt='This deletes the tracker and its history. Are you sure?')
def delete_tracker(tracker_id):
    """Delete a rank tracker and its history."""
    init_db()

    with get_db_session() as session:
        try:
            RankTrackerService(session).delete(tracker_id)
        except RankdeskError as exc:
            console.print(f"[red]{exc}")
            return
    console.print(f"[yellow]Deleted tracker {tracker_id}.")


@cli.command('record-position')
@click.argument('tracker_id', type=int)
@click.argument('position', type=int)
@click.option('--date', 'day', help='Observation day (YYYY-MM-DD), default today')
@click.option('--url', help='Ranking URL')
@click.option('--traffic', type=int, help='Estimated traffic')
@click.option('--search-volume', type=int, help='Monthly search volume')
def record_position(tracker_id, position, day, url, traffic, search_volume):
    """Record a position observed by hand; 0 means not ranked."""
    init_db()

    with get_db_session() as session:
        try:
            row = RankTrackerService(session).record(
                tracker_id, position, _parse_day(day),
                url=url, traffic=traffic, search_volume=search_volume,
            )
        except RankdeskError as exc:
            console.print(f"[red]{exc}")
            return
        console.print(f"[green]Recorded position {row.position} for tracker {tracker_id} on {row.date}.")

@cli.command()
@click.argument('tracker_ids', type=int, nargs=-1, required=True)
def fetch(tracker_ids):
    """Fetch today's positions for one or more rank trackers."""
    init_db()

    with get_db_session() as session:
        with console.status("[bold green]Fetching positions..."):
            result = RankFetcher(session).fetch_batch(list(tracker_ids))
    _show_batch(result, "Rank Fetch")


@cli.command('upload-rankings')
@click.argument('app_id', type=int)
@click.argument('file_path', type=click.Path(exists=True))
def upload_rankings(app_id, file_path):
    """Upload app-store rankings for an app from a text or CSV file."""
    init_db()

    text = Path(file_path).read_text(encoding="utf-8-sig")
    with get_db_session() as session:
        try:
            summary = AppRankingUploader(session).upload(app_id, text)
        except RankdeskError as exc:
            console.print(f"[red]{exc}")
            return

    console.print(
        f"[green]Created {summary['created']}, updated {summary['updated']}, "
        f"skipped {summary['skipped']} line(s)."
    )


def _movers_table(title, movers, color):
    table = Table(title=title, box=box.ROUNDED)
    table.add_column("App", style="cyan", max_width=25)
    table.add_column("Keyword", max_width=30)
    table.add_column("Country", width=7)
    table.add_column("From", justify="right")
    table.add_column("To", justify="right")
    table.add_column("Change", justify="right", style=color)
    for mover in movers:
        table.add_row(
            mover.get("app_name") or "-",
            mover["keyword"] or "-",
            mover["country"] or "-",
            str(mover["previous_position"]),
            str(mover["current_position"]),
            f"{mover['change']:+d}",
        )
    return table


@cli.command()
@click.option('--date', 'day', help='Report date (YYYY-MM-DD); compares the two days before it')
def alerts(day):
    """Show yesterday's biggest ranking drops and improvements."""
    init_db()

    with get_db_session() as session:
        report = AlertService(session).daily_alerts(_parse_day(day))

    summary = report["summary"]
    console.print(Panel.fit(
        f"Drops: [red]{summary['total_drops']}[/red] "
        f"({summary['significant_drops']} significant)\n"
        f"Improvements: [green]{summary['total_improvements']}[/green] "
        f"({summary['significant_improvements']} significant)",
        title="Daily Ranking Alerts",
        border_style="blue"
    ))
    if report["top_drops"]:
        console.print(_movers_table("Top Drops", report["top_drops"], "red"))
    if report["top_improvements"]:
        console.print(_movers_table("Top Improvements", report["top_improvements"], "green"))


def main():
    """Main entry point."""
    cli()


if __name__ == '__main__':
    main()
