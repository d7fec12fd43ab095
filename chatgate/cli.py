import asyncio
import json

import click


@click.group()
def main() -> None:
    """Chatgate - inbound message queueing and lifecycle hooks for chat agents."""


def _load_config(config_path: str | None):
    from chatgate.inbound.models.config import ConfigLoadError, load_messages_config
    from chatgate.inbound.settings import get_settings

    try:
        return load_messages_config(config_path or get_settings().config_path)
    except ConfigLoadError as exc:
        raise click.ClickException(str(exc)) from exc


@main.command()
@click.option("--channel", default=None, help="Channel to resolve (default: global settings only).")
@click.option("--config", "config_path", default=None, help="Config file (default: from CHATGATE_CONFIG_PATH).")
def resolve(channel: str | None, config_path: str | None) -> None:
    """Print the effective queue settings for a channel."""
    from chatgate.inbound.queue.resolver import resolve_queue_settings

    resolved = resolve_queue_settings(_load_config(config_path), channel)
    click.echo(resolved.model_dump_json(indent=2))


@main.command()
@click.option("--channel", default="cli", help="Channel name reported for each line.")
@click.option("--sender", default="local", help="Sender id reported for each line.")
@click.option("--config", "config_path", default=None, help="Config file (default: from CHATGATE_CONFIG_PATH).")
def gateway(channel: str, sender: str, config_path: str | None) -> None:
    """Run the IM Gateway over stdin, one message per line.

    Flushed batches are printed as JSON lines.
    """
    from chatgate.inbound.log import setup_logging_from_settings
    from chatgate.inbound.settings import get_settings

    settings = get_settings()
    setup_logging_from_settings(settings)
    config = _load_config(config_path)

    asyncio.run(_serve_stdin(config, channel=channel, sender=sender))


async def _serve_stdin(config, *, channel: str, sender: str) -> None:
    from chatgate.im_gateway.gateway import IMGateway
    from chatgate.inbound.hooks import get_hook_registry
    from chatgate.inbound.models.messages import Batch, InboundMessage
    from chatgate.inbound.queue.controller import InboundQueueController
    from chatgate.inbound.settings import get_settings

    settings = get_settings()

    async def echo_batch(batch: Batch) -> None:
        click.echo(
            json.dumps({
                "session_key": batch.session_key,
                "trigger": batch.trigger,
                "messages": batch.texts,
            })
        )

    controller = InboundQueueController(echo_batch, config=config)
    gw = IMGateway(controller, get_hook_registry(), agent_id=settings.agent_id)
    await gw.start()

    stdin = click.get_text_stream("stdin")
    loop = asyncio.get_running_loop()
    while True:
        line = await loop.run_in_executor(None, stdin.readline)
        if not line:
            break
        text = line.rstrip("\n")
        if not text:
            continue
        decision = await gw.receive(InboundMessage(channel=channel, sender_id=sender, text=text))
        if decision is not None and not decision.accepted:
            click.echo(f"dropped: {decision.reason}", err=True)

    await gw.stop(settings.drain_timeout)


if __name__ == "__main__":
    main()
