"""
Flask CLI commands for pass maintenance.
"""

import click
from flask.cli import with_appcontext

from hallpass.extensions import db
from hallpass.models import School


@click.command('reset-passes')
@click.option('--school-id', type=int, default=None,
              help='Only reset this school. Defaults to every school.')
@with_appcontext
def reset_passes_command(school_id):
    """
    Return all active passes now, exactly as the midnight reset does.

    Useful for operational testing without waiting for midnight.
    """
    from flask import current_app
    from hallpass.scheduled_tasks import get_reset_scheduler

    reset_scheduler = get_reset_scheduler(current_app._get_current_object())

    if school_id is not None:
        if db.session.get(School, school_id) is None:
            raise click.ClickException(f"School {school_id} not found")
        returned = reset_scheduler.manual_reset(school_id)
        click.echo(f"Returned {returned} active passes for school {school_id}")
        return

    summary = reset_scheduler.run_daily_reset()
    click.echo(f"Returned {summary['returned']} active passes")
    if summary['failed_schools']:
        failed = ", ".join(str(s) for s in summary['failed_schools'])
        raise click.ClickException(f"Reset failed for schools: {failed}")


@click.command('next-reset')
@with_appcontext
def next_reset_command():
    """Show how long until the next midnight pass reset."""
    from flask import current_app
    from hallpass.scheduled_tasks import get_reset_scheduler

    reset_scheduler = get_reset_scheduler(current_app._get_current_object())
    remaining = reset_scheduler.time_until_next_reset()
    click.echo(
        f"Next pass reset in {remaining['hours']}h {remaining['minutes']}m "
        f"({reset_scheduler.tz.zone})"
    )


def init_app(app):
    """Register CLI commands with Flask app."""
    app.cli.add_command(reset_passes_command)
    app.cli.add_command(next_reset_command)
