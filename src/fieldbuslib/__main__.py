import asyncio
import logging
import pathlib
from typing import Annotated

import typer

from fieldbuslib.config import DEFAULT_CONFIG_PATH, load_config
from fieldbuslib.session import endpoints_of, run_session
from fieldbuslib.telemetry import MqttPublisher
from fieldbuslib.types import ConfigError, TelemetryError

logger = logging.getLogger("fieldbuslib")

app = typer.Typer(add_completion=False)


@app.command()
def main(
    config: Annotated[
        pathlib.Path, typer.Option(help="Device descriptor file (yaml)")
    ] = DEFAULT_CONFIG_PATH,
    settle_delay: Annotated[
        float, typer.Option(help="Pause after connecting, in seconds")
    ] = 0.1,
    verbose: Annotated[bool, typer.Option("--verbose", "-v")] = False,
):
    """Connect to every configured station and run the demo operations."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    logger.info(f"Reading config file {config}")
    try:
        device_config = load_config(config)
    except ConfigError as e:
        logger.error(f"Cannot read config file: {e}")
        raise typer.Exit(code=1) from e
    logger.info(f"Config loaded, {len(endpoints_of(device_config))} stations")

    publisher = None
    if device_config.mqtt:
        publisher = MqttPublisher(device_config.mqtt)
        try:
            publisher.connect()
        except TelemetryError as e:
            logger.warning(f"Telemetry disabled: {e}")
            publisher = None

    try:
        asyncio.run(
            run_session(
                device_config, settle_delay=settle_delay, publisher=publisher
            )
        )
    finally:
        if publisher:
            publisher.disconnect()


if __name__ == "__main__":
    app()
