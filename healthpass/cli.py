# healthpass/cli.py
"""
Command line tools for a scanning station.

    healthpass scan --token <session-jwt> [--camera 0]
    healthpass qr <share-token-id> --out health-qr-code.png
"""
import logging
from pathlib import Path

import click

from healthpass import codec, config, models, qr, sharing, views
from healthpass.auth import session_context
from healthpass.db import SessionLocal, init_db
from healthpass.errors import HealthPassError
from healthpass.store import Store

logger = logging.getLogger("healthpass.cli")


def _log_session_change(event, user):
    logger.info("session %s%s", event, f" ({user.id})" if user else "")


@click.group()
def cli():
    """HealthPass scanning station"""
    logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    init_db()


@cli.command("scan")
@click.option("--token", required=True, help="Session JWT of the person scanning.")
@click.option("--camera", type=int, default=config.SCANNER_CAMERA_INDEX, show_default=True)
def scan(token: str, camera: int):
    """Scan a share QR code with the camera and print the patient view."""
    unsubscribe = session_context.subscribe(_log_session_change)
    db = SessionLocal()
    try:
        user = session_context.set_session(token)
        with qr.ScannerSession(camera_index=camera) as scanner:
            click.echo("Scanning... press Ctrl+C to stop", err=True)
            payload = qr.scan_until_valid(scanner)
        if payload is None:
            raise click.ClickException("scanner stopped before a share code was read")
        view = sharing.resolve_payload(Store(db), payload, requester=user.id)
        click.echo(views.patient_view_out(view).model_dump_json(indent=2))
    except HealthPassError as e:
        raise click.ClickException(e.message) from e
    finally:
        db.close()
        session_context.sign_out()
        unsubscribe()


@cli.command("qr")
@click.argument("token_id")
@click.option("--out", default=qr.DOWNLOAD_FILENAME, show_default=True, type=click.Path(dir_okay=False))
def render(token_id: str, out: str):
    """Write the QR image for a share token."""
    db = SessionLocal()
    try:
        token = Store(db).get(models.ShareToken, token_id)
        if token is None:
            raise click.ClickException("share token not found")
        Path(out).write_bytes(qr.render_png(codec.encode(token)))
        click.echo(out)
    finally:
        db.close()
