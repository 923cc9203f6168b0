"""
Command-line interface for Spootify.

Controls playback on the active Spotify device, searches the catalog and
browses playlists from the terminal using Click framework.
"""

import functools

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from spotipy.oauth2 import SpotifyOauthError

from spootify.api.spotify import SpotifyGateway, format_duration, format_playback_state
from spootify.cli.auth import AuthManager
from spootify.cli.config_store import ConfigStore
from spootify.errors import NoActiveDevice, NotFound, SpootifyError, SpotifyAPIError

console = Console()

SEARCH_TYPES = ["track", "artist", "album", "playlist"]


def handle_errors(f):
    """Print failures and exit with status 1"""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (SpotifyAPIError, SpootifyError) as e:
            console.print(f"[red]✗ Error:[/red] {e.message}")
            raise SystemExit(1)
    return wrapper


def get_gateway(ctx):
    obj = ctx.ensure_object(dict)
    if obj.get("gateway") is None:
        obj["gateway"] = SpotifyGateway(obj["auth"].get_valid_access_token())
    return obj["gateway"]


def _artists(names):
    return ", ".join(names) if isinstance(names, list) else names or ""


@click.group()
@click.version_option(version="1.0.0")
@click.pass_context
def cli(ctx):
    """
    🎵 Spootify - Spotify from the command line

    Control playback, search music and browse your playlists.
    """
    obj = ctx.ensure_object(dict)
    obj.setdefault("store", ConfigStore())
    obj.setdefault("auth", AuthManager(obj["store"]))


@cli.command()
@click.pass_context
@handle_errors
def auth(ctx):
    """Sign in with Spotify."""
    try:
        ctx.obj["auth"].authenticate()
    except SpotifyOauthError as e:
        console.print(f"[red]✗ Authentication failed:[/red] {e}")
        raise SystemExit(1)
    console.print("[green]✓[/green] Authentication successful!")


@cli.command()
@click.argument("query", required=False)
@click.pass_context
@handle_errors
def play(ctx, query):
    """Resume playback, or search for QUERY and play the first match."""
    gateway = get_gateway(ctx)

    if not query:
        gateway.start_playback()
        console.print("[green]▶[/green] Playback resumed")
        return

    tracks = gateway.search_tracks(query, limit=1)
    if not tracks:
        raise NotFound(f"No track found for \"{query}\"")
    if not gateway.get_active_devices():
        raise NoActiveDevice()

    track = tracks[0]
    gateway.start_playback(uris=[track.uri])
    console.print(f"[green]▶[/green] Playing [bold]{track.name}[/bold] - {track.artist_names}")


@cli.command()
@click.pass_context
@handle_errors
def pause(ctx):
    """Pause playback."""
    get_gateway(ctx).pause()
    console.print("[yellow]⏸[/yellow] Playback paused")


@cli.command(name="next")
@click.pass_context
@handle_errors
def next_track(ctx):
    """Skip to the next track."""
    get_gateway(ctx).next_track()
    console.print("[green]⏭[/green] Next track")


@cli.command()
@click.pass_context
@handle_errors
def previous(ctx):
    """Go back to the previous track."""
    get_gateway(ctx).previous_track()
    console.print("[green]⏮[/green] Previous track")


@cli.command()
@click.pass_context
@handle_errors
def status(ctx):
    """Show what is playing."""
    state = format_playback_state(get_gateway(ctx).get_playback_state())
    track = state.get("track")
    if not track:
        console.print("[yellow]No active playback[/yellow]")
        return

    icon = "▶" if state["isPlaying"] else "⏸"
    lines = [
        f"[bold]{track['name']}[/bold]",
        f"{_artists(track['artists'])}",
        f"[dim]{track['album']['name']}[/dim]",
        "",
        f"{icon} {format_duration(state.get('progress'))} / {format_duration(track.get('duration'))}",
        f"Device: {state['device']['name']} ({state['device']['type']})  Volume: {state['device']['volume']}%",
        f"Shuffle: {'on' if state.get('shuffleState') else 'off'}  Repeat: {state.get('repeatState')}",
    ]
    console.print(Panel.fit("\n".join(lines), title="Now playing", border_style="green"))


@cli.command()
@click.argument("query")
@click.option("--type", "-t", "search_type", type=click.Choice(SEARCH_TYPES), default="track", help="What to search for")
@click.option("--limit", "-l", type=click.IntRange(1, 50), default=10, help="Number of results")
@click.pass_context
@handle_errors
def search(ctx, query, search_type, limit):
    """Search for tracks, artists, albums or playlists."""
    data = get_gateway(ctx).search(query, types=(search_type,), limit=limit)
    items = [i for i in data.get(f"{search_type}s", {}).get("items", []) if i]
    if not items:
        console.print(f"[yellow]No results for \"{query}\"[/yellow]")
        return

    table = Table(title=f"Search: {query}", show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=4)
    table.add_column("Name", style="green")

    if search_type == "track":
        table.add_column("Artist", style="cyan")
        table.add_column("Album")
        table.add_column("Duration", justify="right")
        for i, item in enumerate(items, 1):
            table.add_row(
                str(i), item["name"],
                _artists([a["name"] for a in item.get("artists", [])]),
                (item.get("album") or {}).get("name", ""),
                format_duration(item.get("duration_ms"))
            )
    elif search_type == "album":
        table.add_column("Artist", style="cyan")
        table.add_column("Released")
        for i, item in enumerate(items, 1):
            table.add_row(str(i), item["name"], _artists([a["name"] for a in item.get("artists", [])]), item.get("release_date", ""))
    elif search_type == "artist":
        table.add_column("Genres")
        for i, item in enumerate(items, 1):
            table.add_row(str(i), item["name"], ", ".join(item.get("genres", [])[:3]))
    else:
        table.add_column("Owner", style="cyan")
        table.add_column("Tracks", justify="right")
        for i, item in enumerate(items, 1):
            table.add_row(
                str(i), item["name"],
                (item.get("owner") or {}).get("display_name", ""),
                str((item.get("tracks") or {}).get("total", 0))
            )

    console.print(table)


@cli.command()
@click.pass_context
@handle_errors
def playlists(ctx):
    """List your playlists."""
    data = get_gateway(ctx).get_playlists(limit=50)
    items = [p for p in data.get("items", []) if p]
    if not items:
        console.print("[yellow]No playlists found[/yellow]")
        return

    table = Table(title="Your playlists", show_header=True, header_style="bold magenta")
    table.add_column("Name", style="green")
    table.add_column("Tracks", justify="right")
    table.add_column("Owner", style="cyan")
    table.add_column("ID", style="dim")
    for item in items:
        table.add_row(
            item["name"],
            str((item.get("tracks") or {}).get("total", 0)),
            (item.get("owner") or {}).get("display_name", ""),
            item["id"]
        )
    console.print(table)


@cli.command()
@click.argument("playlist_id")
@click.pass_context
@handle_errors
def playlist(ctx, playlist_id):
    """Show the tracks of a playlist."""
    gateway = get_gateway(ctx)
    info = gateway.get_playlist(playlist_id)
    page = gateway.get_playlist_tracks(playlist_id, limit=50)

    table = Table(title=info.get("name", playlist_id), show_header=True, header_style="bold magenta")
    table.add_column("#", style="dim", width=4)
    table.add_column("Title", style="green")
    table.add_column("Artist", style="cyan")
    table.add_column("Duration", justify="right")
    for i, item in enumerate([i for i in page.get("items", []) if i.get("track")], 1):
        track = item["track"]
        table.add_row(
            str(i), track.get("name", ""),
            _artists([a["name"] for a in track.get("artists", [])]),
            format_duration(track.get("duration_ms"))
        )
    console.print(table)


@cli.command()
@click.option("--reset", is_flag=True, help="Delete the stored configuration")
@click.pass_context
def config(ctx, reset):
    """Show or reset the configuration."""
    store = ctx.obj["store"]
    if reset:
        store.reset()
        console.print("[green]✓[/green] Configuration reset")
        return

    data = store.load()
    table = Table(title=str(store.path), show_header=True, header_style="bold magenta")
    table.add_column("Key", style="cyan")
    table.add_column("Value")
    for key in sorted(data):
        value = data[key]
        if key in ("access_token", "refresh_token") and value:
            value = f"{value[:6]}…"
        table.add_row(key, str(value))
    if not data:
        table.add_row("[dim]empty[/dim]", "")
    console.print(table)


def main():
    cli(obj={})


if __name__ == "__main__":
    main()
