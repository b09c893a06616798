"""
Anime Stream CLI - Management commands for the application.

Usage:
    python -m animestream.cli [COMMAND] [OPTIONS]

Commands:
    import-episodes  Import episodes from a saved HTML <option> list
    check-sources    Report local episode sources whose files are missing
    serve            Run the API server
"""

import typer
import logging
from pathlib import Path

app = typer.Typer(
    name="animestream",
    help="Anime Stream management commands"
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s"
)


@app.command()
def import_episodes(
    anime_id: int = typer.Argument(..., help="Anime to attach the episodes to"),
    html_file: str = typer.Argument(..., help="File containing the <option> list"),
    server: int = typer.Option(
        1,
        "--server", "-s",
        min=1,
        help="Server slot to fill (server1, server2, ...)"
    ),
    overwrite: bool = typer.Option(
        False,
        "--overwrite",
        help="Replace sources already set on the server slot"
    )
):
    """
    Import episodes from an HTML episode picker.

    Each <option value="URL">Episode N</option> becomes episode N with
    the URL as its source on the chosen server slot.
    """
    from animestream.services.catalog_service import AnimeNotFound
    from animestream.services.document_store import DocumentStoreError
    from animestream.services.episode_importer import get_episode_importer

    path = Path(html_file)
    if not path.exists():
        typer.echo(f"File not found: {html_file}", err=True)
        raise typer.Exit(1)

    markup = path.read_text(encoding="utf-8")

    try:
        report = get_episode_importer().import_episodes(
            anime_id, markup, server_index=server, overwrite=overwrite
        )
    except (AnimeNotFound, DocumentStoreError) as e:
        typer.echo(str(e), err=True)
        raise typer.Exit(1)

    typer.echo(f"Created: {len(report.created)}")
    typer.echo(f"Updated: {len(report.updated)}")
    typer.echo(f"Skipped: {len(report.skipped)}")


@app.command()
def check_sources():
    """List episodes whose local video file does not exist."""
    from animestream.core.streaming import ResourceNotFound, is_remote_source, resolve_local_path
    from animestream.services.catalog_service import get_catalog_service

    catalog = get_catalog_service()
    missing = 0
    checked = 0

    for anime in catalog.list_animes():
        for episode in catalog.list_episodes(anime.id):
            for key, source in sorted(episode.sources.items()):
                if is_remote_source(source):
                    continue
                checked += 1
                try:
                    resolve_local_path(source, catalog.content_root)
                except ResourceNotFound:
                    missing += 1
                    typer.echo(f"[{anime.id}] {anime.title} - episode {episode.episode_number} {key}: {source}")

    typer.echo()
    typer.echo(f"Checked {checked} local sources, {missing} missing")
    if missing:
        raise typer.Exit(1)


@app.command()
def serve(
    host: str = typer.Option(None, "--host", help="Bind address (default from settings)"),
    port: int = typer.Option(None, "--port", "-p", help="Port (default from settings)"),
    reload: bool = typer.Option(False, "--reload", help="Auto-reload on code changes")
):
    """Run the API server with uvicorn."""
    import uvicorn
    from animestream.core.config import settings

    uvicorn.run(
        "animestream.main:app",
        host=host or settings.api_host,
        port=port or settings.api_port,
        reload=reload
    )


if __name__ == "__main__":
    app()
