"""Command-line interface for Trolley."""

from __future__ import annotations

import json
from typing import List, Optional

import typer

from trolley.db.settings_store import SqlSettingsStore
from trolley.db.shopping_items import SqlShoppingStorage
from trolley.engine import ShoppingListEngine
from trolley.host import USER_FACING, RecordingHost
from trolley.models.rows import describe
from trolley.models.shopping import AutoDeleteSetting
from trolley.policy.auto_delete import AutoDeleteSettingsController
from trolley.policy.sweeper import AutoDeleteSweeper

app = typer.Typer(help="Trolley shopping list commands.")


def _engine() -> tuple[ShoppingListEngine, RecordingHost]:
    host = RecordingHost()
    engine = ShoppingListEngine(SqlShoppingStorage(), SqlSettingsStore(), host)
    engine.refresh().result()
    return engine, host


def _echo_notices(host: RecordingHost) -> None:
    for directive in host.drain():
        if directive.kind in USER_FACING:
            typer.secho(
                f"! {directive.model_dump_json(exclude_none=True)}",
                fg=typer.colors.YELLOW,
            )


@app.command()
def show(
    as_json: bool = typer.Option(False, "--json", help="Print rows as JSON."),
) -> None:
    """Print the grouped shopping list."""

    engine, host = _engine()
    rows = engine.snapshot()
    if as_json:
        payload = [
            {"index": index, "kind": row.kind.value, "label": describe(row).strip()}
            for index, row in enumerate(rows)
        ]
        typer.echo(json.dumps(payload, indent=2))
    else:
        for row in rows[:-1]:
            typer.echo(describe(row))
        if engine.rows.is_empty:
            typer.echo("(shopping list is empty)")
    _echo_notices(host)


@app.command()
def add(titles: List[str] = typer.Argument(..., help="Titles of the items to add.")) -> None:
    """Add free-text items to My List."""

    engine, host = _engine()
    created = engine.add_manual_items(titles)
    typer.echo(f"Added {len(created)} item(s).")
    _echo_notices(host)


@app.command()
def sweep() -> None:
    """Run the auto delete sweep once."""

    removed = AutoDeleteSweeper(SqlShoppingStorage(), SqlSettingsStore()).sweep()
    typer.echo(f"Removed {removed} expired item(s).")


@app.command("auto-delete")
def auto_delete(
    setting: Optional[AutoDeleteSetting] = typer.Argument(
        None,
        help="Retention to select (immediately/seven_days/thirty_days).",
    ),
    toggle: bool = typer.Option(False, "--toggle", help="Switch auto delete on or off."),
) -> None:
    """Show or change the auto delete setting."""

    controller = AutoDeleteSettingsController(SqlSettingsStore())
    if toggle:
        controller.toggle_auto_delete()
    elif setting is not None:
        controller.select_retention(setting)
    typer.echo(f"Auto delete: {controller.setting.value}")


def main(argv: Optional[list[str]] = None) -> None:
    """Entry point for the `trolley` console script."""
    app(prog_name="trolley", args=argv)


if __name__ == "__main__":
    main()
