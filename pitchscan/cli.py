"""CLI for running analyses on a local video file: detect, performance."""

import asyncio
import mimetypes
from pathlib import Path

import click

from pitchscan.config import setup_logging
from pitchscan.errors import PipelineError, describe_failure
from pitchscan.schemas.analysis import DetectionResponse, PerformanceResponse
from pitchscan.services.analysis_pipeline import AnalysisPipeline, create_http_client
from pitchscan.types import MediaAsset


def load_media(video_path: str) -> MediaAsset:
    """Describe a local video file for upload."""
    path = Path(video_path)
    mime_type = mimetypes.guess_type(path.name)[0] or "video/mp4"
    return MediaAsset.from_path(path, mime_type)


async def _detect(video_path: str, mode: str) -> DetectionResponse:
    async with create_http_client() as http:
        pipeline = AnalysisPipeline.from_http(http)
        if mode == "frame":
            result = await pipeline.detect_players_in_best_frame(video_path)
        else:
            result = await pipeline.detect_players_in_video(load_media(video_path))
    return DetectionResponse.from_result(result)


async def _performance(video_path: str, player_id: str, player_name: str) -> PerformanceResponse:
    async with create_http_client() as http:
        pipeline = AnalysisPipeline.from_http(http)
        result = await pipeline.analyze_player_performance(load_media(video_path), player_name)
    return PerformanceResponse.from_result(result, player_id, player_name)


@click.group()
@click.option("--log-level", default=None, type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]), help="Override LOG_LEVEL")
def cli(log_level: str | None):
    """Football video player detection and performance analysis."""
    setup_logging(log_level)


@cli.command()
@click.argument("video_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--mode", default="video", type=click.Choice(["video", "frame"]), help="Whole-video or best-frame detection")
def detect(video_path: str, mode: str):
    """Detect players and team colors in a video."""
    try:
        response = asyncio.run(_detect(video_path, mode))
    except PipelineError as e:
        raise click.ClickException(describe_failure(e)) from e

    if response.degraded:
        click.echo(f"Warning: {response.warning}", err=True)
    click.echo(response.model_dump_json(indent=2))


@cli.command()
@click.argument("video_path", type=click.Path(exists=True, dir_okay=False))
@click.option("--player-name", required=True, help="Name of the player to analyze")
@click.option("--player-id", default="", help="Player ID echoed in the output")
def performance(video_path: str, player_name: str, player_id: str):
    """Score one player's performance in a video."""
    if not player_name.strip():
        raise click.BadParameter("Player name cannot be empty", param_hint="--player-name")
    try:
        response = asyncio.run(_performance(video_path, player_id, player_name.strip()))
    except PipelineError as e:
        raise click.ClickException(describe_failure(e)) from e

    if response.degraded:
        click.echo(f"Warning: {response.warning}", err=True)
    click.echo(response.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
