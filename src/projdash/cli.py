"""Typer CLI for projdash: serve, seed and projects commands."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Annotated

import typer

from projdash.config import Config
from projdash.models.projects import ProjectStatus

app = typer.Typer(
    name="projdash",
    help="Project dashboard: browse, filter and manage projects and their documents.",
    invoke_without_command=True,
)

CacheDirOption = Annotated[
    Path | None,
    typer.Option("--cache-dir", help="Directory holding the local database and documents"),
]

DEMO_PASSWORD = "projdash-demo"

DEMO_PROJECTS: list[dict[str, object]] = [
    {
        "title": "Internal Security Audit",
        "summary": "Quarterly access review",
        "creator": "Alex Morgan",
        "status": ProjectStatus.IN_PROGRESS,
    },
    {
        "title": "Client Onboarding Portal",
        "summary": "Requirements gathering",
        "creator": "James Wilson",
        "status": ProjectStatus.IN_PROGRESS,
    },
    {
        "title": "Annual Financial Report",
        "summary": "Drafting and audit preparation",
        "creator": "Elena Rodriguez",
        "status": ProjectStatus.COMPLETED,
    },
    {
        "title": "Website Redesign",
        "summary": "Homepage overhaul",
        "creator": "David Miller",
        "status": ProjectStatus.COMPLETED,
    },
    {
        "title": "Q3 Marketing Campaign",
        "summary": "Social media ads and email blasts",
        "creator": "Sarah Jenkins",
        "status": ProjectStatus.IN_PROGRESS,
    },
]

DEMO_MILESTONES = [
    (
        "Project Kickoff",
        "Initial stakeholder meeting and requirement gathering.",
        "2023-07-05",
        "Completed",
    ),
    (
        "Database Sync",
        "Live synchronization of primary and secondary clusters.",
        "2023-08-15",
        "In Progress",
    ),
    (
        "Final Deployment",
        "Switch-over to new production environment.",
        "2023-09-30",
        "Upcoming",
    ),
]

DEMO_TRANSACTIONS = [
    ("2023-10-24", "Cloud Storage Expansion - Tier 1", "Software", 4250.00, "Paid"),
    ("2023-10-22", "External Technical Audit Fee", "Labor", 12800.00, "Pending"),
    ("2023-10-18", "Network Switch Upgrades (5 Units)", "Hardware", 8420.00, "Paid"),
    ("2023-10-12", "Security Awareness Training Material", "Marketing", 1150.00, "Paid"),
]


def _config(cache_dir: Path | None) -> Config:
    return Config.from_env(cache_dir=cache_dir.expanduser() if cache_dir else None)


@app.callback(invoke_without_command=True)
def serve(ctx: typer.Context, cache_dir: CacheDirOption = None) -> None:
    """Start the projdash desktop application."""
    if ctx.invoked_subcommand is not None:
        return
    config = _config(cache_dir)
    from projdash.ui.app import run_app

    run_app(config)


@app.command()
def seed(cache_dir: CacheDirOption = None) -> None:
    """Fill the local store with demo projects, people, milestones and budget data."""
    config = _config(cache_dir)
    if config.use_remote:
        typer.echo("Seeding is only supported for the local store.", err=True)
        raise typer.Exit(code=1)
    created = asyncio.run(_do_seed(config))
    if created:
        typer.echo(f"Seeded {created} projects into {config.db_path}")


async def _do_seed(config: Config) -> int:
    """Create the demo data. Returns the number of projects created."""
    from projdash.data.db import Database
    from projdash.data.local_auth import LocalAuthProvider
    from projdash.data.local_store import LocalProjectStore
    from projdash.models.budget import TransactionStatus
    from projdash.models.projects import ProjectDraft, ProjectFilters
    from projdash.models.strategy import AIDirectionalSignal, StrategyFit, StrategyInfo

    async with Database(config.db_path) as db:
        store = LocalProjectStore(db, config.storage_dir)
        existing = await store.list_projects(ProjectFilters(), 1, 1)
        if existing.total:
            typer.echo(f"Store already holds {existing.total} projects; nothing to do.")
            return 0

        auth = LocalAuthProvider(db)
        created = 0
        for demo in DEMO_PROJECTS:
            creator = str(demo["creator"])
            email = creator.lower().replace(" ", ".") + "@example.com"
            session = await auth.sign_up(email, DEMO_PASSWORD, creator)
            project = await store.create_project(
                ProjectDraft(
                    title=str(demo["title"]),
                    summary=str(demo["summary"]),
                    status=ProjectStatus(demo["status"]),
                ),
                creator_id=session.user.id,
            )
            await store.upsert_strategy(
                project.id,
                project.project_no,
                StrategyInfo(
                    strategy_fit=StrategyFit.GROUP,
                    demand_urgency="Requested by the operations team for this quarter.",
                    product_and_edge=str(demo["summary"]),
                    ai_directional_signal=AIDirectionalSignal.NEED_MORE_INFO,
                ),
            )
            created += 1
            typer.echo(f"  {project.project_no}  {project.title}")

        # The newest project carries the demo timeline and budget.
        await store.set_total_budget(project.id, 124_500.0)
        for title, description, date, status in DEMO_MILESTONES:
            await store.add_milestone(project.id, title, date, description, status)
        for date, description, category, amount, status in DEMO_TRANSACTIONS:
            await store.add_transaction(
                project.id,
                date,
                amount,
                description=description,
                category=category,
                status=TransactionStatus(status),
            )
        await store.close()
    return created


@app.command()
def projects(
    project_no: Annotated[str, typer.Option("--project-no", help="Project number contains")] = "",
    keyword: Annotated[str, typer.Option("--keyword", help="Title or summary contains")] = "",
    status: Annotated[
        ProjectStatus | None, typer.Option("--status", help="Only projects in this status")
    ] = None,
    page: Annotated[int, typer.Option("--page", min=1)] = 1,
    per_page: Annotated[int | None, typer.Option("--per-page", min=1)] = None,
    cache_dir: CacheDirOption = None,
) -> None:
    """Print one page of projects matching the filters."""
    config = _config(cache_dir)
    code = asyncio.run(
        _do_projects(config, project_no, keyword, status, page, per_page or config.per_page)
    )
    if code:
        raise typer.Exit(code=code)


async def _do_projects(
    config: Config,
    project_no: str,
    keyword: str,
    status: ProjectStatus | None,
    page: int,
    per_page: int,
) -> int:
    from result import Err

    from projdash.models.projects import ProjectFilters, last_page
    from projdash.services.container import ServiceContainer
    from projdash.ui.theme import format_date

    services = await ServiceContainer.create(config)
    try:
        filters = ProjectFilters(project_no=project_no, keyword=keyword, status=status)
        result = await services.project_service.list_projects(filters, page, per_page)
    finally:
        await services.close()

    if isinstance(result, Err):
        typer.echo(f"Error: {result.err_value.user_message}", err=True)
        return 1
    listing = result.ok_value
    if not listing.items:
        typer.echo("No projects found.")
    for item in listing.items:
        typer.echo(
            f"{item.project_no:<10} {item.title[:36]:<36} {item.creator_name[:20]:<20} "
            f"{item.files_count:>5} {item.status.value:<12} {format_date(item.created_at)}"
        )
    typer.echo(
        f"Page {listing.page} of {last_page(listing.total, listing.per_page)} "
        f"({listing.total} projects)"
    )
    return 0
