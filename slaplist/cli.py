"""Command-line interface for slaplist."""

import json
import shutil
import sys
from importlib import metadata
from pathlib import Path
from typing import Optional, Tuple

try:
    import click
except ImportError:
    print("Error: click not installed", file=sys.stderr)
    print("Install with: pip install click", file=sys.stderr)
    sys.exit(1)

from .config import USER_CONFIG_PATH, Config
from .models import CollectionSource, RecommendationResult
from .orchestrator import RecommendationCancelled, RecommendationOrchestrator
from .quota import QuotaManager
from .rate_limiter import get_rate_limit_stats
from .sources.youtube import YouTubeClient, extract_video_id
from .store.sqlite import SQLiteCatalog


class DefaultGroup(click.Group):
    """Click group that defaults to a specified command when no command is given."""

    def __init__(self, *args, **kwargs):
        self.default_command = kwargs.pop("default_command", None)
        super().__init__(*args, **kwargs)

    def parse_args(self, ctx, args):
        # Unknown first word (not a flag) is a seed for the default command
        if (
            args
            and args[0] not in self.commands
            and self.default_command is not None
            and not args[0].startswith("-")
        ):
            args.insert(0, self.default_command)

        return super().parse_args(ctx, args)


def result_to_dict(result: RecommendationResult) -> dict:
    """Shape a recommendation result for JSON output."""
    stats = result.stats
    return {
        "recommendations": [
            {
                "id": score.track.id,
                "artist": score.track.artist,
                "title": score.track.title,
                "label": score.track.label,
                "genre": score.track.genre,
                "bpm": score.track.bpm,
                "key": score.track.key,
                "release_year": score.track.release_year,
                "youtube_url": score.track.youtube_url,
                "discogs_url": score.track.discogs_url,
                "frequency": score.frequency,
                "found_in_collections": sorted(score.found_in_collections),
            }
            for score in result.recommendations
        ],
        "total_unique_tracks_found": result.total_unique_tracks_found,
        "collections_processed": result.collections_processed,
        "stats": {
            "api_search_calls": stats.api_search_calls,
            "api_fetch_calls": stats.api_fetch_calls,
            "total_api_calls": stats.total_api_calls,
            "cache_hits": stats.cache_hits,
            "quota_blocked": stats.quota_blocked,
            "quota_used": stats.quota_used,
        },
    }


def open_catalog(config: Config) -> SQLiteCatalog:
    """Open the configured catalog database."""
    return SQLiteCatalog(config.database_path)


@click.group(cls=DefaultGroup, default_command="recommend", invoke_without_command=True)
@click.version_option(package_name="slaplist")
@click.pass_context
def cli(ctx):
    """Slaplist - find tracks that keep showing up next to the ones you love."""
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())
        ctx.exit()


@cli.command()
@click.argument("seeds", nargs=-1, required=True)
@click.option(
    "--collections-per-track",
    "-c",
    type=click.IntRange(min=1),
    help="Playlists to explore per seed (overrides config)",
)
@click.option(
    "--results",
    "-n",
    type=click.IntRange(min=1),
    help="Number of recommendations (overrides config)",
)
@click.option(
    "--by-id/--by-query",
    default=None,
    help="Treat seeds as YouTube URLs/video ids instead of search text",
)
@click.option(
    "--diversify/--no-diversify",
    default=None,
    help="Exclude already explored playlist titles from later searches",
)
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON")
@click.option("--verbose", "-v", is_flag=True, help="Show progress")
def recommend(
    seeds: Tuple[str, ...],
    collections_per_track: Optional[int],
    results: Optional[int],
    by_id: Optional[bool],
    diversify: Optional[bool],
    as_json: bool,
    verbose: bool,
):
    """Recommend tracks that co-occur with SEEDS in YouTube playlists.

    Each seed is a search like "daft punk one more time", or with --by-id a
    YouTube URL or video id.
    """
    config = Config()

    api_key = config.youtube_api_key
    if not api_key:
        click.echo("❌ YouTube API key is not configured", err=True)
        click.echo("   Set youtube.api_key in config or SLAPLIST_YOUTUBE_API_KEY", err=True)
        sys.exit(1)

    if by_id is None:
        by_id = config.seed_mode == "track_id"
    if diversify is None:
        diversify = config.diversify

    seed_list = list(seeds)
    if by_id:
        seed_list = []
        for seed in seeds:
            video_id = extract_video_id(seed)
            if video_id is None:
                click.echo(f"❌ Not a YouTube video URL or id: {seed}", err=True)
                sys.exit(1)
            seed_list.append(video_id)

    catalog = open_catalog(config)
    provider = YouTubeClient(api_key, config.youtube_application_name, verbose=verbose)
    orchestrator = RecommendationOrchestrator(
        catalog, provider, config.recommendation_settings(), verbose=verbose
    )

    try:
        result = orchestrator.recommend(
            seed_list,
            collections_per_track=collections_per_track or config.collections_per_track,
            results_to_return=results or config.results_to_return,
            seed_mode="track_id" if by_id else "query",
            diversify=diversify,
        )
    except (KeyboardInterrupt, RecommendationCancelled):
        click.echo("\n⚠️ Cancelled (already synced playlists are kept)")
        sys.exit(1)
    except Exception as e:
        click.echo(f"❌ Error: {e}", err=True)
        sys.exit(1)
    finally:
        catalog.close()

    if verbose:
        for service, data in get_rate_limit_stats().items():
            click.echo(
                f"⏳ {service.title()} pacing: {data['calls_last_minute']} calls in the last "
                f"minute, waited {data['seconds_waited']:.2f}s",
                err=True,
            )

    if as_json:
        click.echo(json.dumps(result_to_dict(result), indent=2))
        return

    _print_result(result)


def _print_result(result: RecommendationResult):
    stats = result.stats
    click.echo(
        f"🎧 {len(result.recommendations)} recommendations "
        f"({result.total_unique_tracks_found} tracks in "
        f"{result.collections_processed} playlists)"
    )
    click.echo()

    for idx, score in enumerate(result.recommendations, 1):
        track = score.track
        click.echo(f"{idx:3}. {track.artist} - {track.title}  [{score.frequency}]")
        if track.youtube_url:
            click.echo(f"     {track.youtube_url}")
        click.echo(f"     in: {', '.join(sorted(score.found_in_collections))}")

    click.echo()
    click.echo("━" * 60)
    click.echo(
        f"📊 API calls: {stats.total_api_calls} "
        f"({stats.api_search_calls} search, {stats.api_fetch_calls} fetch)"
    )
    click.echo(f"   Cache hits: {stats.cache_hits}")
    click.echo(f"   Quota units used: {stats.quota_used}")
    if stats.quota_blocked:
        click.echo(f"   ⛔ Skipped for quota: {stats.quota_blocked}")


@cli.command()
@click.option(
    "--source",
    "-s",
    type=click.Choice([s.value for s in CollectionSource]),
    default=CollectionSource.YOUTUBE.value,
    help="Quota source (default: youtube)",
)
def quota(source: str):
    """Show today's API quota usage."""
    config = Config()
    settings = config.recommendation_settings()

    with open_catalog(config) as catalog:
        tracker = QuotaManager(catalog.quota, settings.quota_limits).get_or_create_today(
            CollectionSource(source)
        )

    click.echo(f"📊 {tracker.source.value} quota for {tracker.day.isoformat()} (UTC)")
    click.echo(f"   Used: {tracker.units_used}/{tracker.daily_limit} ({tracker.usage_percent}%)")
    click.echo(f"   Remaining: {tracker.remaining}")
    click.echo(f"   Search calls: {tracker.search_calls}")
    click.echo(f"   Fetch calls: {tracker.fetch_calls}")
    if tracker.is_exhausted:
        click.echo("   ⛔ Exhausted until tomorrow (UTC)")


@cli.command("catalog-stats")
def catalog_stats():
    """Show how much has been collected so far."""
    config = Config()

    with open_catalog(config) as catalog:
        tracks = catalog.tracks.count()
        collections = catalog.collections.count()
        youtube = catalog.collections.count(CollectionSource.YOUTUBE)
        unenriched = len(catalog.tracks.get_needing_enrichment(limit=1_000_000))
        recent = catalog.statistics.recent(limit=1)

    click.echo("📚 Catalog")
    click.echo(f"   Tracks: {tracks} ({unenriched} never enriched)")
    click.echo(f"   Collections: {collections} ({youtube} YouTube)")
    if recent:
        last = recent[0]
        click.echo(
            f"   Last run: {last.completed_at:%Y-%m-%d %H:%M} UTC, "
            f"{len(last.input_queries)} seeds, {last.total_api_calls} API calls"
        )


@cli.command("top-tracks")
@click.option("--limit", "-n", type=click.IntRange(min=1), default=20, help="Rows to show")
@click.option("--search", "-q", "query", help="Only tracks whose artist or title match")
def top_tracks(limit: int, query: Optional[str]):
    """List the tracks found in the most playlists."""
    config = Config()

    with open_catalog(config) as catalog:
        if query:
            rows = [
                (track, len(catalog.collections.get_containing_track(track.id)))
                for track in catalog.tracks.search(query, limit=limit)
            ]
            rows.sort(key=lambda row: (-row[1], row[0].title))
        else:
            rows = catalog.tracks.get_most_connected(limit=limit)

    if not rows:
        click.echo("No tracks yet. Run: slaplist recommend \"<artist> <title>\"")
        return

    for idx, (track, count) in enumerate(rows, 1):
        click.echo(f"{idx:3}. {track.artist} - {track.title}  [{count} playlists]")


@cli.command("check-setup")
def check_setup():
    """Verify dependencies and configuration."""
    click.echo("🔍 Checking slaplist setup...")
    click.echo()

    all_ok = True

    try:
        import requests

        click.echo(f"✅ requests: {requests.__version__}")
    except ImportError:
        click.echo("❌ requests: Not installed", err=True)
        click.echo("   Install: pip install requests", err=True)
        all_ok = False

    try:
        import yaml

        click.echo(f"✅ PyYAML: {yaml.__version__}")
    except ImportError:
        click.echo("❌ PyYAML: Not installed", err=True)
        click.echo("   Install: pip install pyyaml", err=True)
        all_ok = False

    click.echo(f"✅ click: {metadata.version('click')}")

    try:
        config = Config()
        click.echo(f"✅ Configuration: {config.config_path}")
        if config.youtube_api_key:
            click.echo("✅ YouTube API key: set")
        else:
            click.echo("❌ YouTube API key: missing", err=True)
            all_ok = False
    except SystemExit:
        click.echo("⚠️ Configuration: config.yaml not found")
        click.echo("   Run: slaplist init")
        all_ok = False

    click.echo()

    if all_ok:
        click.echo("🎉 Ready. Try: slaplist \"<artist> <title>\"")
    else:
        click.echo("⚠️ Setup incomplete, see above.", err=True)
        sys.exit(1)


@cli.command()
def init():
    """Create a configuration file in ~/.config/slaplist/."""
    config_path = USER_CONFIG_PATH

    if config_path.exists():
        click.echo(f"✅ Config already exists: {config_path}")
        return

    example = Path(__file__).parent.parent / "config.example.yaml"
    if not example.exists():
        click.echo(f"❌ Example config not found at {example}", err=True)
        sys.exit(1)

    config_path.parent.mkdir(parents=True, exist_ok=True)
    shutil.copy(example, config_path)

    click.echo(f"✅ Created config: {config_path}")
    click.echo()
    click.echo("🔑 Add a YouTube Data API key:")
    click.echo("  1. https://console.cloud.google.com/apis/credentials")
    click.echo(f"  2. Edit youtube.api_key in {config_path}")
    click.echo("     or export SLAPLIST_YOUTUBE_API_KEY='your_key'")


def main():
    """Main entry point."""
    cli()


if __name__ == "__main__":
    main()
