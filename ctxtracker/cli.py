import itertools
import logging
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import click

from ctxtracker.api import ApiClient
from ctxtracker.config import API_ENV, CONTEXTS_FILENAME, HOME_ENV
from ctxtracker.errors import ContextTrackerError
from ctxtracker.models import Context
from ctxtracker.storage.context_storage import ContextStore
from ctxtracker.storage.local_storage import touch_context_change
from ctxtracker.utils.utils import format_clock

__version__ = "0.1.0"

logger = logging.getLogger(__name__)


@dataclass
class CliState:
    """Dependencies shared by all commands; tests inject their own"""
    store: Optional[ContextStore] = None
    api: Optional[ApiClient] = None


def filter_contexts(contexts: List[Context], search: str = "") -> List[Context]:
    """Case-insensitive substring match on the context name"""
    needle = (search or "").lower()
    return [c for c in contexts if needle in c.name.lower()]


def _rgb(color: str):
    value = (color or "").lstrip("#")
    if len(value) != 6:
        return None
    try:
        return tuple(int(value[i:i + 2], 16) for i in (0, 2, 4))
    except ValueError:
        return None


def _swatch(context: Context) -> str:
    return click.style("●", fg=_rgb(context.color))


def _fail(message: str, exc: Exception = None):
    if exc is not None:
        message = f"{message}: {exc}"
    click.secho(message, fg="red", err=True)
    raise SystemExit(1)


@click.group()
@click.version_option(version=__version__, prog_name="ctxtracker")
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.option('--home', type=click.Path(file_okay=False, path_type=Path), envvar=HOME_ENV,
              help='Directory holding contexts.json')
@click.option('--api-url', envvar=API_ENV, help='Base URL of the session service')
@click.pass_context
def cli(ctx, verbose, home, api_url):
    """Track developer work contexts and sessions"""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    state = ctx.ensure_object(CliState)
    if state.store is None:
        state.store = ContextStore(home / CONTEXTS_FILENAME if home else None)
    if state.api is None:
        state.api = ApiClient(base_url=api_url)


@cli.command('list')
@click.option('--search', '-s', default='', help='Filter contexts by name')
@click.pass_obj
def list_contexts(state, search):
    """List available contexts"""
    try:
        contexts = state.store.load_all()
    except OSError as exc:
        _fail("Failed to load contexts", exc)

    current = next((c for c in contexts if c.is_active), None)
    if current:
        click.echo("Current Context")
        click.echo(f"  {_swatch(current)} {current.name}  Active")
        click.echo()

    matches = filter_contexts(contexts, search)
    click.echo("Available Contexts")
    if not matches:
        click.echo("  No matching contexts")
        return
    for c in matches:
        marker = "  Active" if c.is_active else ""
        click.echo(f"  {_swatch(c)} {c.name} [{c.id}]{marker}")


@cli.command()
@click.pass_obj
def current(state):
    """Show the current context"""
    try:
        context = state.store.get_current()
    except OSError as exc:
        _fail("Failed to load context", exc)
    if context is None:
        click.echo("No Context")
        return
    click.echo(f"{_swatch(context)} Active: {context.name}")
    for note in context.notes:
        click.echo(f"  - {note}")
    for resource in context.resources:
        click.echo(f"  🔗 {resource}")


@cli.command()
@click.argument('key')
@click.pass_obj
def switch(state, key):
    """Switch to the context with the given id or name"""
    store = state.store
    try:
        target = store.find(key)
    except OSError as exc:
        _fail("Failed to load contexts", exc)
    if target is None:
        _fail(f"Context not found: {key}")

    try:
        store.set_current(target)
        touch_context_change(store.kv)
    except (ContextTrackerError, OSError, sqlite3.Error) as exc:
        logger.error("Switch context error: %s", exc)
        _fail("Failed to switch context", exc)
    click.secho(f"Switched to {target.name}", fg="green")


@cli.command()
@click.argument('name')
@click.option('--color', '-c', help='Display color, e.g. #FF6B6B')
@click.pass_obj
def create(state, name, color):
    """Create a new context"""
    try:
        context = state.store.create(name, color)
    except (ContextTrackerError, OSError) as exc:
        _fail("Failed to create context", exc)
    click.secho(f"Created context {context.name} [{context.id}]", fg="green")


def _attach(state, kind: str, value: str):
    store = state.store
    try:
        context = store.get_current()
        if context is None:
            _fail("No Context: switch to a context first")
        if kind == "note":
            store.add_note(context.id, value)
        else:
            store.add_resource(context.id, value)
    except (ContextTrackerError, OSError, sqlite3.Error) as exc:
        _fail(f"Failed to add {kind}", exc)
    click.secho(f"Added {kind} to {context.name}", fg="green")


@cli.command()
@click.argument('text')
@click.pass_obj
def note(state, text):
    """Capture a thought on the current context"""
    _attach(state, "note", text)


@cli.command()
@click.argument('url')
@click.pass_obj
def resource(state, url):
    """Attach a resource link to the current context"""
    _attach(state, "resource", url)


@cli.command()
@click.option('--interval', '-i', default=1.0, show_default=True, help='Seconds between checks')
@click.option('--count', '-n', type=int, default=None, help='Stop after this many checks')
@click.pass_obj
def watch(state, interval, count):
    """Poll the current context and print it whenever it changes"""
    last = object()
    checks = itertools.count() if count is None else range(count)
    for i in checks:
        if i:
            time.sleep(interval)
        try:
            context = state.store.get_current()
        except OSError as exc:
            logger.error("Failed to load context: %s", exc)
            continue
        key = (context.id, context.name) if context else None
        if key != last:
            click.echo(f"{_swatch(context)} {context.name}" if context else "No Context")
            last = key


@cli.group()
def session():
    """Work with sessions on the tracking service"""


def _first_active(api: ApiClient):
    sessions, count = api.get_active_sessions()
    if count > 0 and sessions:
        return sessions[0]
    return None


@session.command('start')
@click.argument('name')
@click.option('--description', '-d', default=None, help='Context description')
@click.pass_obj
def session_start(state, name, description):
    """Start a session in a (new) context called NAME"""
    try:
        remote = state.api.create_context(name, description)
        started = state.api.start_session(remote.context_id)
    except ContextTrackerError as exc:
        logger.error("Failed to start session: %s", exc)
        _fail("Failed to start session", exc)
    click.secho(f"Started {name} session (#{started.session_id})", fg="green")


@session.command('end')
@click.pass_obj
def session_end(state):
    """End the active session"""
    try:
        active = _first_active(state.api)
        if active is None:
            click.echo("No active session")
            return
        state.api.end_session(active.session_id)
    except ContextTrackerError as exc:
        _fail("Failed to end session", exc)
    click.secho("Session ended", fg="green")


@session.command('events')
@click.pass_obj
def session_events(state):
    """List events recorded for the active session"""
    try:
        active = _first_active(state.api)
        if active is None:
            click.echo("No active session")
            return
        events = state.api.get_session_events(active.session_id)
    except ContextTrackerError as exc:
        _fail("Failed to load session events", exc)
    if not events:
        click.echo("No events yet")
        return
    for event in events:
        detail = f"  {event.event_data}" if event.event_data else ""
        click.echo(f"{format_clock(event.timestamp)}  {event.event_type}{detail}")


@session.command('summary')
@click.pass_obj
def session_summary(state):
    """Generate a summary of the active session"""
    try:
        active = _first_active(state.api)
        if active is None:
            click.echo("No active session")
            return
        summary = state.api.generate_summary(active.session_id)
    except ContextTrackerError as exc:
        _fail("Failed to generate summary", exc)

    click.secho("Overview", bold=True)
    click.echo(summary.overview)
    for title, items in (
        ("Key Topics", summary.key_topics),
        ("Learning Highlights", summary.learning_highlights),
        ("Resources Used", summary.resources_used),
    ):
        if items:
            click.secho(title, bold=True)
            for item in items:
                click.echo(f"  - {item}")
    if summary.conclusion:
        click.secho("Conclusion", bold=True)
        click.echo(summary.conclusion)


@session.command('status')
@click.option('--watch', 'follow', is_flag=True, help='Keep polling')
@click.option('--interval', '-i', default=5.0, show_default=True, help='Seconds between polls')
@click.option('--count', '-n', type=int, default=None, help='Stop after this many polls')
@click.pass_obj
def session_status(state, follow, interval, count):
    """Show whether a session is recording"""
    if not follow:
        count = 1
    checks = itertools.count() if count is None else range(count)
    for i in checks:
        if i:
            time.sleep(interval)
        try:
            active = _first_active(state.api)
        except ContextTrackerError as exc:
            # keep polling through transient failures
            logger.error("Failed to check active session: %s", exc)
            if not follow:
                _fail("Failed to check session status", exc)
            continue
        if active is None:
            click.echo("Idle")
        else:
            click.echo(f"Recording... since {format_clock(active.start_time)} (session #{active.session_id})")


@session.command('contexts')
@click.pass_obj
def session_contexts(state):
    """List contexts known to the tracking service"""
    try:
        contexts = state.api.get_contexts()
    except ContextTrackerError as exc:
        _fail("Failed to load contexts", exc)
    if not contexts:
        click.echo("No contexts")
        return
    for c in contexts:
        description = f" - {c.description}" if c.description else ""
        click.echo(f"{c.name} [{c.context_id}]{description}")


if __name__ == '__main__':
    cli()
