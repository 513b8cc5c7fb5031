"""CLI entry point for webpair."""

import asyncio
from pathlib import Path

import click

from webpair import __version__
from webpair.config import load_config
from webpair.errors import ConfigError
from webpair.logging import setup_logging


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """webpair - pair this device with the LaterBox web companion."""
    ctx.ensure_object(dict)
    try:
        ctx.obj["config"] = load_config(config)
    except ConfigError as e:
        raise click.ClickException(str(e))
    ctx.obj["logger"] = setup_logging(ctx.obj["config"])


@main.command()
@click.argument("payload")
@click.pass_context
def pair(ctx: click.Context, payload: str) -> None:
    """Pair using scanned QR PAYLOAD text, then serve until Ctrl+C."""
    from webpair.endpoint import LocalEndpointLauncher
    from webpair.pairing import (
        CallbackHandoff,
        LocalEndpointInfo,
        PairingController,
        PairingPhase,
        RelayHandshakeClient,
    )

    config = ctx.obj["config"]

    async def on_paired(endpoint: LocalEndpointInfo) -> None:
        click.echo(f"Paired. Browser connects to http://{endpoint.host}:{endpoint.port}")

    async def _pair() -> int:
        try:
            launcher = LocalEndpointLauncher(config.endpoint)
        except ValueError as e:
            click.echo(f"Error: {e}", err=True)
            return 1
        relay_client = RelayHandshakeClient(connect_timeout=config.relay.connect_timeout)
        controller = PairingController(launcher, relay_client, CallbackHandoff(on_paired))

        try:
            await controller.handle_scan(payload)
            if controller.phase != PairingPhase.CONNECTED:
                click.echo(f"Error: {controller.error}", err=True)
                return 1

            click.echo("Press Ctrl+C to stop")
            await asyncio.Event().wait()
            return 0
        finally:
            await controller.close()
            await relay_client.close()
            await launcher.stop()

    try:
        code = asyncio.run(_pair())
    except KeyboardInterrupt:
        click.echo("\nShutting down...")
        code = 0
    if code:
        raise SystemExit(code)


@main.command()
@click.option("--host", default=None, help="Address to bind (default from config).")
@click.option("--port", type=int, default=None, help="Port to bind (default from config).")
@click.pass_context
def relay(ctx: click.Context, host: str | None, port: int | None) -> None:
    """Run the development rendezvous relay."""
    from webpair.relay import RelayServer

    config = ctx.obj["config"]
    bind_host = host or config.relay.host
    bind_port = port if port is not None else config.relay.port

    async def _serve() -> None:
        server = RelayServer(ttl_seconds=config.relay.session_ttl)
        runner = await server.start(bind_host, bind_port)
        click.echo(f"Relay listening on {bind_host}:{bind_port}")
        click.echo("Press Ctrl+C to stop")
        try:
            await asyncio.Event().wait()
        finally:
            await runner.cleanup()

    try:
        asyncio.run(_serve())
    except KeyboardInterrupt:
        click.echo("\nShutting down...")


@main.command()
@click.option("--relay-url", required=True, help="Base URL of the relay, e.g. http://host:8080.")
@click.option(
    "--png",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Save the QR code as PNG instead of printing it.",
)
def qr(relay_url: str, png: Path | None) -> None:
    """Create a relay session and show its pairing QR code."""
    import aiohttp

    from webpair.pairing import PairingRequest, encode_payload
    from webpair.pairing.payload import PAYLOAD_KIND, PROTOCOL_VERSION
    from webpair.qr import PayloadQr

    async def _create() -> dict:
        async with aiohttp.ClientSession() as session:
            async with session.post(f"{relay_url.rstrip('/')}/create") as response:
                response.raise_for_status()
                return await response.json()

    try:
        data = asyncio.run(_create())
    except aiohttp.ClientError as e:
        raise click.ClickException(f"Could not create relay session: {e}")

    request = PairingRequest(
        kind=PAYLOAD_KIND,
        version=PROTOCOL_VERSION,
        session_id=data["sessionId"],
        token=data["token"],
        relay_address=data["relay"],
    )
    generator = PayloadQr(request)

    if png is not None:
        generator.to_png(str(png))
        click.echo(f"QR code saved to: {png}")
    else:
        click.echo(generator.to_terminal())
    click.echo(encode_payload(request))


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"webpair version {__version__}")
