"""
SiliconChat CLI: terminal front end for on-device chat.

Registered as `silicon-chat` console script via pyproject.toml.
"""

from __future__ import annotations

import asyncio
import logging
import platform
import sys
from pathlib import Path

import click

from .config import ChatSettings
from .controller import ChatEvent, ChatEventKind, ConversationController
from .exceptions import AppleFMSetupError, require_apple_fm
from .models import Role, utc_now
from .protocols import ModelCapability, create_capability
from .session import ModelSessionManager
from .transcript import EXPORT_FORMATS, export_transcript, format_metadata

logger = logging.getLogger("silicon_chat")

HELP_TEXT = """\
Commands:
  /help                       Show this help
  /clear                      Clear the conversation and start a fresh model session
  /regen                      Regenerate the last assistant reply
  /export [txt|jsonl] [path]  Save the conversation to a file
  /quit                       Leave the chat (Ctrl-D works too)"""


def _resolve_log_level(level: str | int, fallback: int = logging.WARNING) -> int:
    if isinstance(level, int):
        return level
    if level.isdigit():
        return int(level)
    resolved = logging.getLevelName(level.upper())
    if isinstance(resolved, int):
        return resolved
    logger.warning(
        "[SiliconChat] Unsupported log level '%s'; falling back to %s.",
        level,
        logging.getLevelName(fallback),
    )
    return fallback


def _configure_logging(level: str | int) -> None:
    logging.basicConfig(
        level=_resolve_log_level(level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def build_controller(
    settings: ChatSettings, capability: ModelCapability | None = None
) -> ConversationController:
    """Wire capability, session manager and controller from *settings*."""
    if capability is None:
        capability = create_capability(settings.instructions)
    manager = ModelSessionManager(
        capability,
        response_timeout=settings.response_timeout,
        unsafe_markers=settings.unsafe_markers,
    )
    return ConversationController(manager, relaxed_safety=settings.relaxed_safety)


class TerminalRenderer:
    """Prints controller events to the terminal."""

    def __call__(self, event: ChatEvent) -> None:
        if event.kind is ChatEventKind.MESSAGE_APPENDED and event.message is not None:
            message = event.message
            if message.role is Role.USER:
                return
            click.secho("Assistant:", fg="green", bold=True)
            click.echo(message.text)
            metadata = format_metadata(message)
            if metadata:
                click.secho(metadata, dim=True)
            click.echo()
        elif event.kind is ChatEventKind.MESSAGES_CLEARED:
            click.secho("Conversation cleared.", fg="cyan")


def _show_alert(controller: ConversationController) -> None:
    if controller.show_error and controller.error_message:
        click.secho(f"Error: {controller.error_message}", fg="red", err=True)
        controller.dismiss_error()


def _export(controller: ConversationController, args: list[str]) -> None:
    if controller.messages.is_empty:
        click.secho("Nothing to export.", fg="yellow")
        return

    fmt: str | None = None
    destination: Path | None = None
    if args:
        first = args[0].lower()
        if first in EXPORT_FORMATS:
            fmt = first
            if len(args) > 1:
                destination = Path(args[1]).expanduser()
        else:
            destination = Path(args[0]).expanduser()
    if destination is None:
        stamp = utc_now().strftime("%Y%m%d-%H%M%S")
        destination = Path.cwd() / f"silicon-chat-{stamp}.{fmt or 'txt'}"

    try:
        written = export_transcript(controller.messages, destination, fmt)
    except OSError as exc:
        click.secho(f"Export failed: {exc}", fg="red", err=True)
        return
    click.secho(f"Exported conversation to {written}", fg="cyan")


async def _read_line(prompt: str) -> str | None:
    try:
        return await asyncio.to_thread(
            click.prompt, prompt, default="", show_default=False, prompt_suffix="> "
        )
    except (click.Abort, EOFError):
        return None


async def _chat_loop(controller: ConversationController) -> None:
    unsubscribe = controller.subscribe(TerminalRenderer())
    try:
        _show_alert(controller)
        while True:
            line = await _read_line("You")
            if line is None:
                click.echo()
                break
            words = line.split()
            command = words[0].lower() if words else ""
            if command in {"/quit", "/exit"}:
                break
            if command == "/help":
                click.echo(HELP_TEXT)
                continue
            if command == "/clear":
                controller.clear()
                continue
            if command == "/export":
                _export(controller, words[1:])
                continue
            if command in {"/regen", "/regenerate"}:
                target = controller.messages.last_regenerable()
                task = controller.regenerate(target) if target is not None else None
                if task is None:
                    click.secho("Nothing to regenerate.", fg="yellow")
                    continue
            elif command.startswith("/"):
                click.secho(f"Unknown command: {command}. Try /help.", fg="yellow")
                continue
            else:
                task = controller.submit(line)
                if task is None:
                    continue
            await task
            _show_alert(controller)
    finally:
        unsubscribe()
        await controller.wait_idle()


# ── Main group ────────────────────────────────────────────────────────────────


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(package_name="silicon-chat")
@click.option("--instructions", default=None, help="System instructions for the model session.")
@click.option(
    "--strict-safety",
    is_flag=True,
    default=False,
    help="Keep the model's default guardrails instead of relaxed ones.",
)
@click.option(
    "--timeout",
    "response_timeout",
    type=float,
    default=None,
    help="Seconds to wait for a single model response.",
)
@click.option("--log-level", default=None, help="Logging level (debug, info, warning, ...).")
@click.pass_context
def cli(
    ctx: click.Context,
    instructions: str | None,
    strict_safety: bool,
    response_timeout: float | None,
    log_level: str | None,
) -> None:
    """SiliconChat: chat with the on-device Apple Foundation Model."""
    if response_timeout is not None and response_timeout <= 0:
        raise click.BadParameter("--timeout must be > 0", param_hint="--timeout")
    settings = ChatSettings.from_env().with_overrides(
        instructions=instructions,
        response_timeout=response_timeout,
        log_level=log_level.upper() if log_level else None,
        relaxed_safety=False if strict_safety else None,
    )
    _configure_logging(settings.log_level)
    ctx.obj = settings


@cli.command()
@click.pass_obj
def chat(settings: ChatSettings) -> None:
    """Start an interactive chat session."""
    require_apple_fm("silicon-chat chat")
    controller = build_controller(settings)
    click.secho("SiliconChat: on-device assistant. Type /help for commands.", fg="cyan", bold=True)
    asyncio.run(_chat_loop(controller))


@cli.command()
@click.argument("prompt")
@click.pass_obj
def ask(settings: ChatSettings, prompt: str) -> None:
    """Send a single PROMPT and print the reply."""
    if not prompt.strip():
        raise click.BadParameter("prompt must not be empty", param_hint="PROMPT")
    require_apple_fm("silicon-chat ask")
    controller = build_controller(settings)

    reply = asyncio.run(controller.send(prompt))
    if controller.error_message:
        click.secho(f"Error: {controller.error_message}", fg="red", err=True)
        raise SystemExit(1)
    if reply is not None:
        click.echo(reply.text)
        metadata = format_metadata(reply)
        if metadata:
            click.secho(metadata, dim=True, err=True)


@cli.command()
@click.pass_obj
def doctor(settings: ChatSettings) -> None:
    """Check platform, SDK installation and model availability."""
    click.echo(f"Platform:      {platform.system()} {platform.release()} ({sys.platform})")
    click.echo(f"Python:        {platform.python_version()}")
    try:
        require_apple_fm("silicon-chat doctor")
    except AppleFMSetupError as exc:
        click.secho("apple-fm-sdk:  missing", fg="red")
        click.echo(str(exc).strip(), err=True)
        raise SystemExit(1) from exc
    click.secho("apple-fm-sdk:  installed", fg="green")

    capability = create_capability(settings.instructions)
    manager = ModelSessionManager(capability, response_timeout=settings.response_timeout)
    if manager.check_availability():
        click.secho("Model:         available", fg="green")
        return
    reason = capability.unavailable_reason or "unknown"
    click.secho(f"Model:         unavailable ({reason})", fg="red")
    raise SystemExit(1)


# ── Entry point ───────────────────────────────────────────────────────────────


def cli_entry() -> None:
    """Entry point for the console_scripts."""
    try:
        cli()
    except AppleFMSetupError as exc:
        click.secho(str(exc), fg="red", err=True)
        raise SystemExit(2) from exc


if __name__ == "__main__":
    cli_entry()
