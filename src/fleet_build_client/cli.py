"""Command line entry point: ``fleet-build``."""

import asyncio
import logging
from pathlib import Path
from typing import NoReturn, Optional

import typer

from .build.trigger import trigger_build
from .config import Settings
from .core.types import DeviceRegistration
from .device import fetch_device_image_url
from .exceptions import FleetBuildError
from .pull import pull_image
from .tar.source import create_source_archive

app = typer.Typer(
    name="fleet-build",
    help="Build device images remotely and pull their filesystems.",
    no_args_is_help=True,
    add_completion=False,
)


def _settings() -> Settings:
    settings = Settings()
    logging.basicConfig(level=settings.log_level.upper(), format="%(message)s")
    return settings


def _fail(error: FleetBuildError) -> NoReturn:
    typer.secho(f"Error: {error}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1)


def _require_token(token: Optional[str], settings: Settings) -> str:
    token = token or settings.api_token
    if not token:
        typer.secho(
            "Error: an API token is required (--token or FLEET_BUILD_API_TOKEN)",
            fg=typer.colors.RED,
            err=True,
        )
        raise typer.Exit(code=2)
    return token


@app.command(name="build", help="Upload a source directory and follow the build log.")
def build_cmd(
    source: Path = typer.Argument(..., help="Directory holding the Dockerfile."),
    owner: str = typer.Option(..., help="Username owning the application."),
    app_name: str = typer.Option(..., "--app", help="Application name."),
    token: Optional[str] = typer.Option(None, help="API token."),
) -> None:
    settings = _settings()
    token = _require_token(token, settings)

    try:
        archive = create_source_archive(source)
        success = asyncio.run(
            trigger_build(
                token,
                owner,
                app_name,
                archive,
                builder_url=settings.builder_url,
                timeout=settings.request_timeout,
            )
        )
    except FleetBuildError as e:
        _fail(e)

    if not success:
        typer.secho("Build failed", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command(name="pull", help="Pull a device image and extract its filesystem.")
def pull_cmd(
    image: Optional[str] = typer.Argument(
        None, help="Image reference; looked up from the device state when omitted."
    ),
    uuid: str = typer.Option(..., help="Device UUID."),
    api_key: str = typer.Option(..., help="Device provisioning API key."),
    device_id: int = typer.Option(0, help="Device id."),
    target: Optional[Path] = typer.Option(None, help="Extraction directory."),
    tag: str = typer.Option("latest", help="Tag to pull."),
    platform: Optional[str] = typer.Option(None, help="os/architecture[/variant]."),
    token: Optional[str] = typer.Option(None, help="API token for the device state lookup."),
) -> None:
    settings = _settings()
    registration = DeviceRegistration(id=device_id, uuid=uuid, api_key=api_key)

    async def run() -> Path:
        image_url = image
        if image_url is None:
            image_url = await fetch_device_image_url(
                _require_token(token, settings),
                uuid,
                api_url=settings.api_url,
                timeout=settings.request_timeout,
            )
        return await pull_image(
            image_url,
            registration,
            target_dir=target,
            tag=tag,
            platform=platform,
            settings=settings,
        )

    try:
        path = asyncio.run(run())
    except FleetBuildError as e:
        _fail(e)

    typer.echo(str(path))


def main() -> None:
    app()


if __name__ == "__main__":
    main()
