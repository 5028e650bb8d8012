"""Write CSV output next to a destination directory."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import TextIO

from .errors import DestinationUnwritable, IOFailure
from .models import ConversionResult, CsvDialect
from .sources import open_source
from .transform import CsvTransformer

logger = logging.getLogger(__name__)


def output_path_for(source_path: str | Path, destination_dir: str | Path) -> Path:
    """Absolute ``<destination_dir>/<source stem>.csv`` for a dataset path."""
    return Path(destination_dir).absolute() / f"{Path(source_path).stem}.csv"


def _check_destination(destination_dir: Path) -> None:
    if not destination_dir.is_dir():
        raise DestinationUnwritable(f"Destination directory does not exist: {destination_dir}")
    if not os.access(destination_dir, os.W_OK | os.X_OK):
        raise DestinationUnwritable(f"Destination directory is not writable: {destination_dir}")


def _open_output(target: Path) -> TextIO:
    try:
        # newline="" keeps the dialect's line terminator verbatim
        return target.open("w", encoding="utf-8", newline="")
    except OSError as exc:
        raise DestinationUnwritable(f"Cannot create {target}: {exc}") from exc


def write_to_file(text: str, source_path: str | Path, destination_dir: str | Path) -> Path:
    """Write already converted CSV ``text`` and return the absolute output path."""
    target = output_path_for(source_path, destination_dir)
    _check_destination(target.parent)
    with _open_output(target) as fh:
        try:
            fh.write(text)
        except OSError as exc:
            raise IOFailure(f"Failed writing {target}: {exc}") from exc
    logger.info("Wrote %s", target)
    return target


def convert_file(
    source_path: str | Path,
    destination_dir: str | Path,
    dialect: CsvDialect | None = None,
    *,
    encoding: str | None = None,
) -> ConversionResult:
    """Convert a dataset file, streaming rows straight into ``<stem>.csv``.

    A partially written file is removed if the conversion fails.
    """
    target = output_path_for(source_path, destination_dir)
    _check_destination(target.parent)

    source = open_source(source_path, encoding=encoding)
    transformer = CsvTransformer(source, dialect)
    try:
        fh = _open_output(target)
    except DestinationUnwritable:
        source.close()
        raise

    try:
        try:
            with fh:
                rows = transformer.write_to(fh)
        except OSError as exc:
            raise IOFailure(f"Failed writing {target}: {exc}") from exc
    except Exception:
        logger.warning("Removing partial output %s", target)
        target.unlink(missing_ok=True)
        raise

    return ConversionResult(
        metadata=source.metadata,
        output_path=str(target),
        num_rows=rows,
        columns=list(transformer.schema or ()),
    )
