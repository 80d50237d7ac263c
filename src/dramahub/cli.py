"""Command-line interface for DramaHub."""

import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

import click
from dotenv import load_dotenv

from .canonical import Drama, Episode, IssueReport, Platform, UserProfile
from .catalog import ROWS, SORT_ORDERS, CatalogService, sort_dramas
from .config_provider import ConfigProvider, get_default_config_provider
from .continue_watching import ContinueWatchingStore
from .errors import SyncFailure
from .my_list import MyList
from .queries import StatusQuery
from .state import AppState
from .sync_bridge import NullSyncBridge, SyncQueue
from .workflows import SessionWorkflow

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


class App:
    """Services wired together for one CLI invocation."""

    def __init__(self, provider: ConfigProvider):
        self.config = provider.config
        self.repo = self.config.get_repository()
        self.state = AppState.load(
            self.repo,
            debounce_seconds=self.config.debounce_seconds,
            default_platform=self.config.platform,
        )
        self.bridge = self.config.get_sync_bridge()
        self.queue = SyncQueue(self.bridge, self.repo)
        self.store = ContinueWatchingStore(self.state, self.queue)
        self.my_list = MyList(self.state)
        self.catalog = CatalogService(self.state, self.config.get_adapter)
        self.session = SessionWorkflow(self.state, self.store, self.bridge, self.repo)

    @property
    def remote_enabled(self) -> bool:
        return not isinstance(self.bridge, NullSyncBridge)

    def close(self) -> None:
        self.catalog.close()
        self.state.close()


def _print_dramas(dramas: List[Drama]) -> None:
    if not dramas:
        click.echo("No dramas found")
        return
    for drama in dramas:
        badge = " 🆕" if drama.show_new_badge() else ""
        title = drama.title or "(untitled)"
        click.echo(f"  {drama.id:<14} {title}{badge}  [{drama.episode_label()}]")


def _find_episode(episodes: List[Episode], wanted: Optional[str]) -> Optional[Episode]:
    if not episodes:
        return None
    if wanted is None:
        return episodes[0]
    for episode in episodes:
        if episode.id == wanted:
            return episode
    if wanted.isdigit():
        number = int(wanted)
        return next((e for e in episodes if e.number == number), None)
    return None


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.option("--config", "config_path", type=click.Path(path_type=Path), help="Path to settings.toml")
@click.pass_context
def main(ctx: click.Context, verbose: bool, config_path: Optional[Path]):
    """
    Browse drama providers and keep your watch progress in sync.

    Configure in settings.toml (see DRAMAHUB_CONFIG) or a .env file.
    """
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    provider = ctx.obj if isinstance(ctx.obj, ConfigProvider) else get_default_config_provider(config_path)
    app = App(provider)
    ctx.obj = app
    ctx.call_on_close(app.close)


# ============================================================
# Catalog
# ============================================================

@main.command()
@click.option("--page", "-p", type=int, default=1, help="Homepage page (pages accumulate)")
@click.option("--row", type=click.Choice(ROWS), help="Curated row instead of the homepage")
@click.option("--classifier", help="Dubbed row classifier (dramabox)")
@click.option("--sort", "order", type=click.Choice(SORT_ORDERS), default="latest", help="Sort order")
@click.pass_obj
def browse(app: App, page: int, row: Optional[str], classifier: Optional[str], order: str):
    """Browse the active platform's catalog."""
    if row:
        dramas = app.catalog.row(row, page=page, classifier=classifier)
        label = row
    else:
        for current in range(1, max(1, page) + 1):
            dramas = app.catalog.homepage(current)
        label = f"home (pages 1-{max(1, page)})"
    click.echo(f"\n📺 {app.state.platform.value} · {label}\n")
    _print_dramas(sort_dramas(dramas, order))


@main.command()
@click.argument("query")
@click.pass_obj
def search(app: App, query: str):
    """Search the active platform."""
    _print_dramas(app.catalog.search(query))


@main.command()
@click.argument("drama_id")
@click.pass_obj
def episodes(app: App, drama_id: str):
    """List the episodes of a drama."""
    items = app.catalog.episodes(drama_id)
    if not items:
        click.echo(f"No episodes found for {drama_id}")
        return
    for episode in items:
        number = episode.number if episode.number is not None else "?"
        duration = f" ({episode.duration})" if episode.duration else ""
        click.echo(f"  {number:>4}. {episode.title}{duration}  id={episode.id}")


@main.command()
@click.argument("drama_id")
@click.option("--episode", "-e", "episode_ref", help="Episode id or number (default: where you left off)")
@click.pass_obj
def play(app: App, drama_id: str, episode_ref: Optional[str]):
    """Resolve the playback URL and resume position of an episode."""
    items = app.catalog.episodes(drama_id)
    if episode_ref is None:
        entry = app.store.get_entry(drama_id)
        if entry is not None:
            episode_ref = entry.episode_id
    episode = _find_episode(items, episode_ref) or _find_episode(items, None)
    if episode is None:
        click.echo(f"✗ No playable episode for {drama_id}", err=True)
        sys.exit(1)

    url = app.catalog.resolve_playback_url(episode, drama_id)
    position = app.store.resume_position(drama_id, episode.id)
    click.echo(f"Episode:  {episode.title} (id={episode.id})")
    click.echo(f"URL:      {url or 'unavailable'}")
    click.echo(f"Resume:   {position}s")


@main.command()
@click.argument("drama_id")
@click.argument("episode_id")
@click.argument("seconds", type=float)
@click.option("--episode-no", type=int, help="Episode number for display")
@click.pass_obj
def progress(app: App, drama_id: str, episode_id: str, seconds: float, episode_no: Optional[int]):
    """Record watch progress for an episode."""
    drama = app.catalog.detail(drama_id) or Drama(id=drama_id, title="")
    entry = app.store.update_progress(drama, episode_id, seconds, episode_no=episode_no)
    if entry is None:
        click.echo("Progress below 1s, nothing recorded")
        return
    click.echo(f"✓ {entry.drama_title}: episode {entry.episode_label()} at {entry.progress}s")
    if app.queue.last_error:
        click.echo(f"⚠ Saved locally, remote sync failed: {app.queue.last_error}", err=True)


@main.command("continue")
@click.option("--clear", is_flag=True, help="Remove all entries for the current user")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def continue_watching(app: App, clear: bool, as_json: bool):
    """Show (or clear) continue watching for the current user."""
    if clear:
        removed = app.store.clear_for_current_user()
        click.echo(f"✓ Cleared {removed} entries")
        return

    entries = app.store.get_for_current_user()
    if as_json:
        click.echo(json.dumps([e.to_dict() for e in entries], indent=2, ensure_ascii=False))
        return
    if not entries:
        click.echo("Nothing to continue")
        return
    click.echo(f"\n⏯  Continue watching ({app.store.user_key}, {app.state.platform.value})\n")
    for entry in entries:
        click.echo(f"  {entry.drama_id:<14} {entry.drama_title}  Ep {entry.episode_label()} · {entry.progress}s")


# ============================================================
# My-List
# ============================================================

@main.group()
def mylist():
    """Manage saved dramas."""
    pass


@mylist.command("list")
@click.pass_obj
def mylist_list(app: App):
    """List saved dramas on the active platform."""
    _print_dramas([saved.drama for saved in app.my_list.items()])


@mylist.command("add")
@click.argument("drama_id")
@click.pass_obj
def mylist_add(app: App, drama_id: str):
    """Save a drama."""
    drama = app.catalog.detail(drama_id)
    if drama is None:
        click.echo(f"✗ Drama not found: {drama_id}", err=True)
        sys.exit(1)
    if app.my_list.add(drama):
        click.echo(f"✓ Saved {drama.title or drama.id}")
    else:
        click.echo(f"Already saved: {drama.title or drama.id}")


@mylist.command("remove")
@click.argument("drama_id")
@click.pass_obj
def mylist_remove(app: App, drama_id: str):
    """Remove a saved drama."""
    if app.my_list.remove(drama_id):
        click.echo(f"✓ Removed {drama_id}")
    else:
        click.echo(f"✗ Not in my list: {drama_id}", err=True)
        sys.exit(1)


@mylist.command("clear")
@click.option("--all", "all_platforms", is_flag=True, help="Clear every platform")
@click.confirmation_option(prompt="Are you sure you want to clear your list?")
@click.pass_obj
def mylist_clear(app: App, all_platforms: bool):
    """Remove saved dramas."""
    removed = app.my_list.clear_all() if all_platforms else app.my_list.clear_platform()
    click.echo(f"✓ Removed {removed} saved dramas")


# ============================================================
# Platform and session
# ============================================================

@main.command()
@click.argument("name", required=False, type=click.Choice([p.value for p in Platform]))
@click.pass_obj
def platform(app: App, name: Optional[str]):
    """Show or switch the active platform."""
    if name is None:
        click.echo(app.state.platform.value)
        return
    app.state.set(platform=Platform(name))
    click.echo(f"✓ Active platform: {name}")


@main.command()
@click.argument("email")
@click.option("--name", help="Display name (default: part before @)")
@click.option("--uid", help="Remote account id (enables sync)")
@click.option("--picture", help="Avatar URL")
@click.pass_obj
def login(app: App, email: str, name: Optional[str], uid: Optional[str], picture: Optional[str]):
    """Sign in and pull continue watching from the remote store."""
    profile = UserProfile(name=name or email.split("@")[0], email=email, uid=uid, picture=picture)
    result = app.session.sign_in(profile, progress_callback=click.echo)
    if uid:
        click.echo(f"✓ Pulled {result.pulled} entries, {result.applied} applied")
    for error in result.errors:
        click.echo(f"⚠ {error}", err=True)


@main.command()
@click.pass_obj
def logout(app: App):
    """Sign out (continue watching falls back to the guest ledger)."""
    app.session.sign_out()
    click.echo("✓ Signed out")


@main.command()
@click.argument("title")
@click.argument("description")
@click.option("--page", default="/report", show_default=True, help="Where the problem happened")
@click.pass_obj
def report(app: App, title: str, description: str, page: str):
    """Report a playback or account problem on the active platform."""
    user = app.state.user
    if not app.remote_enabled or user is None or not user.uid:
        click.echo("✗ Sign in with a remote account (login --uid) before reporting", err=True)
        sys.exit(1)
    issue = IssueReport(title=title, description=description, platform=app.state.platform.value, page=page)
    if not issue.is_complete:
        click.echo("✗ Title and description are required", err=True)
        sys.exit(1)
    try:
        report_id = app.bridge.save_issue_report(user.uid, issue)
    except SyncFailure as e:
        app.repo.log_sync("report", "failed", user_id=user.uid, notes=str(e))
        click.echo(f"✗ {e}", err=True)
        sys.exit(1)
    app.repo.log_sync("report", "success", user_id=user.uid, target=report_id)
    click.echo(f"✓ Report sent ({report_id})")


# ============================================================
# Sync
# ============================================================

@main.group()
def sync():
    """Remote sync of continue watching."""
    pass


@sync.command("pull")
@click.pass_obj
def sync_pull(app: App):
    """Replace local continue watching with the remote copy."""
    result = app.session.pull()
    for error in result.errors:
        click.echo(f"✗ {error}", err=True)
    if result.errors:
        sys.exit(1)
    click.echo(f"✓ Pulled {result.pulled} entries, {result.applied} applied")


@sync.command("status")
@click.option("--json", "as_json", is_flag=True, help="Output as JSON")
@click.pass_obj
def sync_status(app: App, as_json: bool):
    """Show local ledger and sync health."""
    health = StatusQuery(app.state, app.repo, remote_enabled=app.remote_enabled).health_check()
    stats = health['stats']
    issues = health['issues']

    if as_json:
        output = {
            'status': health['status'],
            'stats': {
                'user': stats.user_key,
                'platform': stats.platform,
                'ledger_entries': stats.ledger_entries,
                'entries_by_platform': stats.entries_by_platform,
                'my_list_items': stats.my_list_items,
                'sync_jobs': stats.sync_jobs,
                'sync_failed': stats.sync_failed,
                'success_rate': stats.success_rate,
            },
            'issues': [{'severity': i.severity, 'message': i.message} for i in issues],
        }
        click.echo(json.dumps(output, indent=2))
        return

    status_emoji = {"healthy": "✅", "degraded": "⚠️", "unhealthy": "❌"}
    click.echo(f"\n{status_emoji.get(health['status'], '?')} Sync Status: {health['status'].upper()}\n")
    click.echo("📊 Statistics:")
    click.echo(f"   User:     {stats.user_key} on {stats.platform}")
    click.echo(f"   Ledger:   {stats.ledger_entries} entries")
    click.echo(f"   My list:  {stats.my_list_items} dramas")
    click.echo(f"   Jobs:     {stats.sync_succeeded}/{stats.sync_jobs} succeeded ({stats.success_rate:.0f}%)")
    if stats.last_sync:
        click.echo(f"\n   Last sync: {stats.last_sync} ({stats.last_sync_status})")
    else:
        click.echo("\n   Last sync: Never")

    if issues:
        click.echo("\n⚠️  Issues:")
        for issue in issues:
            icon = "❌" if issue.severity == "error" else "⚠️"
            click.echo(f"   {icon} {issue.message}")
            if issue.context:
                click.echo(f"      → {issue.context}")


@sync.command("failures")
@click.option("--limit", "-n", type=int, default=20, help="Number of failures to show")
@click.pass_obj
def sync_failures(app: App, limit: int):
    """List recent failed sync jobs."""
    failures = app.repo.get_sync_failures(limit)
    if not failures:
        click.echo("No failed sync jobs")
        return
    for row in failures:
        target = f" {row.target}" if row.target else ""
        click.echo(f"  {row.timestamp} {row.operation}{target}: {row.notes}")


# ============================================================
# HTTP cache
# ============================================================

@main.group()
def cache():
    """Manage the provider HTTP cache."""
    pass


@cache.command("clear")
@click.pass_obj
def cache_clear(app: App):
    """Clear cached provider responses for every platform."""
    for p in Platform:
        app.config.provider_session(p).clear()
    click.echo("✓ HTTP cache cleared")


@cache.command("stats")
@click.pass_obj
def cache_stats(app: App):
    """Show the HTTP cache of the active platform."""
    stats = app.config.provider_session(app.state.platform).stats()
    for key, value in stats.items():
        click.echo(f"  {key}: {value}")


if __name__ == "__main__":
    main()
