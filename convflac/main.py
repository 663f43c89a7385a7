import logging
from importlib.metadata import PackageNotFoundError, version
from pathlib import Path
from typing import List, Optional

import typer
from rich.console import Console

from convflac.config.input_files import prepare_input_files
from convflac.config.loader import apply_overrides, load_config
from convflac.config.models import PostAction
from convflac.domain.errors import ConfigurationError, ConvflacError
from convflac.infrastructure.codecs import CodecRunner
from convflac.infrastructure.event_bus import EventBus
from convflac.infrastructure.ffprobe import FFprobeAdapter
from convflac.infrastructure.housekeeping import HousekeepingService, scratch_directory
from convflac.infrastructure.logging import setup_logging
from convflac.infrastructure.tag_tools import TagToolAdapter
from convflac.infrastructure.trash import TrashAdapter
from convflac.pipeline.orchestrator import Orchestrator
from convflac.pipeline.transcode import TranscodePipeline
from convflac.ui.console import ConsoleReporter

APP_NAME = "convflac"
DEFAULT_CONFIG_NAME = "convflac.yaml"

app = typer.Typer(help="convflac - convert lossless audio files to FLAC")


def _version_callback(value: bool):
    if not value:
        return
    try:
        installed = version(APP_NAME)
    except PackageNotFoundError:
        installed = "unknown"
    typer.echo(f"{APP_NAME} {installed}")
    raise typer.Exit()


def _post_action(delete: bool, trash: bool, prompt: bool) -> Optional[PostAction]:
    chosen = [action for flag, action in (
        (delete, PostAction.DELETE),
        (trash, PostAction.TRASH),
        (prompt, PostAction.PROMPT),
    ) if flag]
    if len(chosen) > 1:
        raise ConfigurationError("Only one deletion option (-d, -m, -p) can be specified")
    return chosen[0] if chosen else None


def _default_config_path() -> Path:
    return Path(typer.get_app_dir(APP_NAME)) / DEFAULT_CONFIG_NAME


@app.command()
def convert(
    files: List[Path] = typer.Argument(..., help="Lossless audio files to convert", show_default=False),
    delete: bool = typer.Option(False, "--delete", "-d", help="Delete each input file after conversion"),
    trash: bool = typer.Option(False, "--trash", "-m", help="Move each input file to the trash after conversion"),
    prompt: bool = typer.Option(False, "--prompt", "-p", help="Ask before deleting each input file"),
    use_fallback: bool = typer.Option(False, "--ffmpeg", "-f", help="Decode with ffmpeg instead of the native tools"),
    threads: Optional[int] = typer.Option(None, "--threads", "-t", help="Number of files converted in parallel"),
    no_tags: bool = typer.Option(False, "--no-tags", "-n", help="Do not copy tags into the FLAC files"),
    overwrite: bool = typer.Option(False, "--overwrite", "-o", help="Overwrite existing FLAC files"),
    compression: Optional[int] = typer.Option(None, "--compression", "-c", help="FLAC compression level (0-8)"),
    config_path: Optional[Path] = typer.Option(None, "--config", help="Path to YAML config"),
    log_path: Optional[Path] = typer.Option(None, "--log-path", help="Path to log file (overrides config)"),
    debug: bool = typer.Option(False, "--debug", help="Enable verbose debug logging"),
    show_version: bool = typer.Option(
        False, "--version", "-V", callback=_version_callback, is_eager=True, help="Show version and exit"
    ),
):
    """Convert APE, ALAC, MLP, Shorten, TTA, WAV, WavPack and WMA Lossless files to FLAC."""
    console = Console(highlight=False)
    logger = logging.getLogger(__name__)

    try:
        config = load_config(config_path or _default_config_path())
        config = apply_overrides(
            config,
            threads=threads,
            compression=compression,
            overwrite=overwrite or None,
            copy_tags=False if no_tags else None,
            use_fallback=use_fallback or None,
            post_action=_post_action(delete, trash, prompt),
            log_path=str(log_path) if log_path is not None else None,
            debug=debug or None,
        )
        general = config.general

        input_files = prepare_input_files([str(path) for path in files])

        log_path_value = Path(general.log_path) if general.log_path else None
        logger = setup_logging(Path(typer.get_app_dir(APP_NAME)), debug=general.debug, log_path=log_path_value)
        logger.info(f"convflac started: files={len(input_files)}")
        logger.info(
            f"Config: threads={general.threads}, compression={general.compression}, "
            f"overwrite={general.overwrite}, copy_tags={general.copy_tags}, "
            f"use_fallback={general.use_fallback}, post_action={general.post_action.value}, "
            f"debug={general.debug}"
        )

        HousekeepingService().cleanup_scratch_files(scratch_directory(general.scratch_dir))

        bus = EventBus()
        reporter = ConsoleReporter(bus, console)
        pipeline = TranscodePipeline(
            config=general,
            event_bus=bus,
            codec_runner=CodecRunner(quiet=general.quiet, debug=general.debug),
            tag_tool=TagToolAdapter(),
            trash=TrashAdapter(),
            prompt=reporter.confirm_delete,
        )
        orchestrator = Orchestrator(
            config=config,
            event_bus=bus,
            pipeline=pipeline,
            probe=FFprobeAdapter(),
        )
        orchestrator.run(input_files)

    except KeyboardInterrupt:
        typer.secho("\nConversion stopped by user (Ctrl+C)", fg=typer.colors.YELLOW)
        raise typer.Exit(code=130)

    except typer.Exit:
        raise

    except (ConvflacError, ValueError) as e:
        logger.error(f"Error: {e}")
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)

    except Exception as e:
        logger.exception("Unexpected failure")
        typer.secho(f"Fatal Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
