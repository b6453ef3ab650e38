"""Typer-based operator CLI for the Meta DM relay."""

import os

os.environ.setdefault("LOGFIRE_IGNORE_NO_CONFIG", "1")

from pathlib import Path

_project_root = Path(__file__).resolve().parent.parent.parent
from dotenv import load_dotenv

load_dotenv(_project_root / ".env")
load_dotenv(_project_root / ".env.local")

import asyncio
import json
from typing import Optional

import typer
from pydantic import ValidationError

from src.config import get_settings
from src.logging_config import redact_tokens
from src.models.meta_models import OutboundMessage
from src.services.meta_service import (
    MetaLookupError,
    MetaService,
    MetaServiceError,
    get_meta_service,
)

app = typer.Typer(help="Send Messenger / Instagram messages and inspect pages.")


def _access_token_option():
    return typer.Option(
        ...,
        "--access-token",
        "-t",
        envvar="META_ACCESS_TOKEN",
        help="Page access token (defaults to META_ACCESS_TOKEN)",
    )


def _build_service() -> MetaService:
    """Build the Graph API client from settings, or defaults if they don't load."""
    try:
        settings = get_settings()
    except ValidationError:
        # META_VERIFY_TOKEN is only required by the webhook server
        return MetaService()
    return get_meta_service(settings)


def _echo_json(data: dict) -> None:
    typer.echo(json.dumps(redact_tokens(data), indent=2))


@app.command()
def send(
    recipient_id: str = typer.Argument(..., help="Recipient PSID / IGSID"),
    text: str = typer.Argument(..., help="Message text"),
    access_token: str = _access_token_option(),
    instagram_account_id: Optional[str] = typer.Option(
        None,
        "--instagram-account-id",
        "-i",
        help="Send as Instagram DM from this business account",
    ),
):
    """Send one message immediately (no queue, no pacing)."""
    message = OutboundMessage(
        recipient_id=recipient_id,
        text=text,
        access_token=access_token,
        instagram_account_id=instagram_account_id,
    )
    try:
        result = asyncio.run(_build_service().send_message(message))
    except MetaServiceError as e:
        typer.secho(f"Send failed: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    typer.secho(
        f"Sent via {message.platform.value}: {result.message_id}",
        fg=typer.colors.GREEN,
    )


@app.command("page-info")
def page_info(
    page_id: str = typer.Argument(..., help="Facebook Page ID"),
    access_token: str = _access_token_option(),
):
    """Show page metadata."""
    try:
        info = asyncio.run(_build_service().get_page_info(page_id, access_token))
    except MetaLookupError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    _echo_json(info.model_dump(exclude_none=True))


@app.command("instagram-account")
def instagram_account(
    page_id: str = typer.Argument(..., help="Facebook Page ID"),
    access_token: str = _access_token_option(),
):
    """Show the Instagram business account linked to a page."""
    account_id = asyncio.run(
        _build_service().get_instagram_account_id(page_id, access_token)
    )
    if account_id is None:
        typer.secho("No Instagram business account linked", fg=typer.colors.YELLOW)
        raise typer.Exit(code=1)
    typer.echo(account_id)


@app.command()
def subscribe(
    page_id: str = typer.Argument(..., help="Facebook Page ID"),
    access_token: str = _access_token_option(),
):
    """Subscribe the app to the page's message webhooks."""
    try:
        data = asyncio.run(_build_service().subscribe_to_webhook(page_id, access_token))
    except MetaLookupError as e:
        typer.secho(str(e), fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    _echo_json(data)


if __name__ == "__main__":
    app()
