"""Command-line interface for Parakeet TDT transcription."""

import json
import logging
from pathlib import Path

import click

OUTPUT_FORMATS = ["txt", "json", "srt"]

DEFAULT_MODEL = "mlx-community/parakeet-tdt-0.6b-v2"

DTYPES = {"float32": "float32", "float16": "float16", "bfloat16": "bfloat16"}


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _srt_timestamp(seconds: float) -> str:
    millis = int(round(seconds * 1000))
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    return f"{hours:02d}:{minutes:02d}:{secs:02d},{millis:03d}"


def format_result(result, fmt: str) -> str:
    """Render an AlignedResult as plain text, JSON or SRT subtitles."""
    if fmt == "json":
        return json.dumps(result.to_dict(), indent=2, ensure_ascii=False)
    if fmt == "srt":
        blocks = []
        for i, sentence in enumerate(result.sentences, 1):
            blocks.append(
                f"{i}\n{_srt_timestamp(sentence.start)} --> {_srt_timestamp(sentence.end)}\n"
                f"{sentence.text.strip()}\n"
            )
        return "\n".join(blocks)
    return result.text.strip() + "\n"


def _load(model: str, dtype: str):
    import torch

    from .errors import ModelLoadingError
    from .parakeet_model import ParakeetTDT

    try:
        return ParakeetTDT.from_pretrained(model, dtype=getattr(torch, DTYPES[dtype]))
    except ModelLoadingError as exc:
        raise click.ClickException(str(exc)) from exc


@click.group()
def cli():
    """Parakeet TDT: speech-to-text with a token-and-duration transducer."""


@cli.command()
@click.argument("audio", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--model", "-m", default=DEFAULT_MODEL, show_default=True, help="Model directory or HF repo id")
@click.option("--chunk-duration", default=None, type=float, help="Window length in seconds (default: single pass)")
@click.option("--overlap-duration", default=15.0, type=float, show_default=True)
@click.option("--format", "fmt", default="txt", type=click.Choice(OUTPUT_FORMATS), show_default=True)
@click.option("--output-dir", default=None, type=click.Path(file_okay=False), help="Write one file per input")
@click.option("--dtype", default="float32", type=click.Choice(list(DTYPES)), show_default=True)
@click.option("--verbose", "-v", is_flag=True)
def transcribe(audio, model, chunk_duration, overlap_duration, fmt, output_dir, dtype, verbose):
    """Transcribe one or more audio files."""
    from .errors import AudioProcessingError

    _setup_logging(verbose)
    logger = logging.getLogger("parakeet_tdt.cli")

    asr = _load(model, dtype)

    out_dir = Path(output_dir) if output_dir else None
    if out_dir is not None:
        out_dir.mkdir(parents=True, exist_ok=True)

    def progress(current: int, total: int) -> None:
        logger.info("Processed %.1f%%", 100.0 * current / total)

    for path in audio:
        logger.info("Transcribing %s", path)
        try:
            result = asr.transcribe(
                path,
                chunk_duration=chunk_duration,
                overlap_duration=overlap_duration,
                chunk_callback=progress if chunk_duration else None,
            )
        except (AudioProcessingError, ValueError) as exc:
            raise click.ClickException(f"{path}: {exc}") from exc

        rendered = format_result(result, fmt)
        if out_dir is None:
            click.echo(rendered, nl=False)
        else:
            target = out_dir / f"{Path(path).stem}.{fmt}"
            target.write_text(rendered, encoding="utf-8")
            click.echo(f"Wrote {target}")


@cli.command()
@click.argument("audio", type=click.Path(exists=True, dir_okay=False))
@click.option("--model", "-m", default=DEFAULT_MODEL, show_default=True, help="Model directory or HF repo id")
@click.option("--block-seconds", default=1.0, type=float, show_default=True, help="Seconds of audio per block")
@click.option("--context-size", default=(256, 256), type=(int, int), show_default=True, help="Keep/drop frames")
@click.option("--depth", default=1, type=int, show_default=True)
@click.option("--verbose", "-v", is_flag=True)
def stream(audio, model, block_seconds, context_size, depth, verbose):
    """Feed an audio file through a streaming session block by block."""
    from .audio import load_audio
    from .errors import AudioProcessingError

    _setup_logging(verbose)

    asr = _load(model, "float32")
    sample_rate = asr.preprocess_config.sample_rate
    try:
        waveform = load_audio(audio, sample_rate)
    except AudioProcessingError as exc:
        raise click.ClickException(str(exc)) from exc

    block = max(1, int(block_seconds * sample_rate))
    try:
        session = asr.transcribe_stream(context_size=tuple(context_size), depth=depth)
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    with session:
        for start in range(0, waveform.size(0), block):
            session.add_audio(waveform[start : start + block])
            click.echo(f"[{(start + block) / sample_rate:7.2f}s] {session.result.text.strip()}")
        click.echo(session.result.text.strip())


def main():
    cli()


if __name__ == "__main__":
    main()
