"""Run the arrival board: refresh snapshots in the background and render frames."""

from __future__ import annotations

import argparse
import logging
import threading

from transit_board.config import AgencySection, AppConfig, load_config
from transit_board.data.feed_client import FeedClient
from transit_board.data.pipeline import StopDataError, StopDataPipeline
from transit_board.data.snapshot_cache import SnapshotCache
from transit_board.logging_setup import setup_logging
from transit_board.logic.layout import data_to_layout
from transit_board.rendering import compose_error, compose_layout, save_frame

logger = logging.getLogger("transit_board")

DEFAULT_RENDER_INTERVAL_SECONDS = 60
NO_DATA_MESSAGE = "No arrival data cached yet for any configured agency"


def build_pipeline(config: AppConfig, stop_event: threading.Event | None = None) -> StopDataPipeline:
    client = FeedClient(
        config.api_key,
        base_url=config.feed.base_url,
        timeout_seconds=config.feed.timeout_seconds,
    )
    return StopDataPipeline(
        queries=config.stops,
        cache=SnapshotCache(config.cache.dir),
        destination_subs=config.destination_subs,
        client=client,
        refresh_interval_seconds=config.feed.refresh_interval_seconds,
        stop_event=stop_event,
    )


def render_once(pipeline: StopDataPipeline, config: AppConfig, output: str, rotate: bool = True) -> bool:
    """Render the current stop data to output; an error frame is written on failure."""
    width, height = config.layout.width, config.layout.height
    try:
        stop_data = pipeline.load()
    except StopDataError as exc:
        logger.error("Failed to load stop data: %s", exc)
        save_frame(compose_error(exc, width, height, rotate=rotate), output)
        return False

    layout = data_to_layout(stop_data, config.layout)
    sections = config.layout.left + config.layout.right
    if not layout.all_agencies and any(isinstance(section, AgencySection) for section in sections):
        logger.error(NO_DATA_MESSAGE)
        save_frame(compose_error(NO_DATA_MESSAGE, width, height, rotate=rotate), output)
        return False

    save_frame(compose_layout(layout, width, height, rotate=rotate), output)
    logger.info("Rendered %s (%d agencies)", output, len(stop_data))
    return True


def main() -> int:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--config", default="stops.yml", help="Path to the YAML config")
    parser.add_argument("--output", default="image.png", help="Where to write the rendered PNG")
    parser.add_argument(
        "--render-interval",
        type=float,
        default=DEFAULT_RENDER_INTERVAL_SECONDS,
        help="Seconds between rendered frames",
    )
    parser.add_argument("--once", action="store_true", help="Refresh once, render once and exit")
    parser.add_argument("--check-config", action="store_true", help="Validate the config and exit")
    parser.add_argument("--no-rotate", action="store_true", help="Keep frames in landscape orientation")
    args = parser.parse_args()

    config = load_config(args.config)
    if args.check_config:
        return 0

    setup_logging(config.log)
    rotate = not args.no_rotate
    stop_event = threading.Event()
    pipeline = build_pipeline(config, stop_event)

    if args.once:
        if pipeline.refresher is not None:
            pipeline.refresher.refresh_once()
        return 0 if render_once(pipeline, config, args.output, rotate) else 1

    with pipeline:
        try:
            while not stop_event.is_set():
                try:
                    render_once(pipeline, config, args.output, rotate)
                except OSError:
                    logger.exception("Failed to write frame to %s", args.output)
                stop_event.wait(timeout=args.render_interval)
        except KeyboardInterrupt:
            stop_event.set()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
