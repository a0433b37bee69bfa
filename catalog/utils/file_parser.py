"""
Tabular file profiler with chunked CSV streaming and Excel support.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd

from catalog.core.config import settings
from catalog.core.exceptions import InvalidInputError
from catalog.core.logging import get_logger
from catalog.schemas.dataset import ColumnInfo
from catalog.services.type_inference import infer_data_type

logger = get_logger(__name__)


@dataclass
class ParsedFile:
    """Row count, column profile and leading rows of a parsed file."""
    row_count: int
    columns: List[ColumnInfo]
    preview: List[Dict[str, Any]] = field(default_factory=list)


class ColumnSampler:
    """Collects up to ``limit`` distinct non-empty values per column in first-seen order."""

    def __init__(self, names: List[str], limit: int):
        self.names = names
        self.limit = limit
        self.values: Dict[str, Dict[str, None]] = {name: {} for name in names}

    def is_full(self) -> bool:
        return all(len(seen) >= self.limit for seen in self.values.values())

    def add_frame(self, frame: pd.DataFrame) -> None:
        for name in self.names:
            seen = self.values[name]
            if len(seen) >= self.limit:
                continue
            for value in frame[name]:
                if not isinstance(value, str) or value == "":
                    continue
                seen.setdefault(value, None)
                if len(seen) >= self.limit:
                    break

    def profile(self, stored: int) -> List[ColumnInfo]:
        columns = []
        for name in self.names:
            samples = list(self.values[name])
            columns.append(ColumnInfo(
                name=name,
                data_type=infer_data_type(samples),
                sample_values=samples[:stored],
            ))
        return columns


class FileParser:
    """Profiles CSV and Excel files."""

    def __init__(
        self,
        sample_rows: int = settings.sample_rows,
        max_distinct: int = settings.max_distinct_samples,
        stored_samples: int = settings.stored_samples,
        chunk_size: int = settings.csv_chunk_size,
    ):
        self.sample_rows = sample_rows
        self.max_distinct = max_distinct
        self.stored_samples = stored_samples
        self.chunk_size = chunk_size

    def parse(self, file_path: Path, extension: str) -> ParsedFile:
        """
        Parse a stored file according to its extension.

        This is blocking; callers on the event loop run it in a worker thread.

        Raises:
            InvalidInputError: If the file is empty, malformed or of an unknown type
        """
        extension = extension.lower()
        if extension == ".csv":
            return self.parse_csv(file_path)
        if extension in (".xlsx", ".xls"):
            return self.parse_excel(file_path)
        raise InvalidInputError("Unsupported file format")

    def parse_csv(self, file_path: Path) -> ParsedFile:
        """
        Stream a CSV file chunk by chunk.

        Every data row is counted and sampled; only the first ``sample_rows``
        rows are kept for the preview.
        """
        row_count = 0
        preview: List[Dict[str, Any]] = []
        sampler: Optional[ColumnSampler] = None

        try:
            reader = pd.read_csv(
                file_path,
                dtype=str,
                keep_default_na=False,
                encoding="utf-8-sig",
                chunksize=self.chunk_size,
            )
            with reader:
                for chunk_num, chunk_df in enumerate(reader):
                    if sampler is None:
                        sampler = ColumnSampler([str(c) for c in chunk_df.columns], self.max_distinct)
                    chunk_df.columns = sampler.names

                    if len(preview) < self.sample_rows:
                        needed = self.sample_rows - len(preview)
                        preview.extend(_records(chunk_df.head(needed)))

                    if not sampler.is_full():
                        sampler.add_frame(chunk_df)
                    row_count += len(chunk_df)
                    logger.debug("Processed CSV chunk", chunk=chunk_num + 1, rows=len(chunk_df))
        except pd.errors.EmptyDataError:
            raise InvalidInputError("File is empty")
        except (pd.errors.ParserError, UnicodeDecodeError) as e:
            raise InvalidInputError(f"Error parsing CSV: {e}") from e

        if sampler is None or row_count == 0:
            raise InvalidInputError("File is empty")

        logger.info("CSV parsing complete", path=str(file_path), rows=row_count)
        return ParsedFile(
            row_count=row_count,
            columns=sampler.profile(self.stored_samples),
            preview=preview,
        )

    def parse_excel(self, file_path: Path) -> ParsedFile:
        """
        Load the first sheet of a workbook.

        Sampling only looks at the first ``sample_rows`` rows, unlike CSV
        where every row is sampled.
        """
        try:
            df = pd.read_excel(file_path, sheet_name=0, dtype=str, na_filter=False)
        except Exception as e:
            raise InvalidInputError(f"Error processing Excel file: {e}") from e

        if df.empty:
            raise InvalidInputError("Excel file is empty")

        names = [str(c) for c in df.columns]
        df.columns = names
        head = df.head(self.sample_rows)

        sampler = ColumnSampler(names, self.max_distinct)
        sampler.add_frame(head)

        logger.info("Excel parsing complete", path=str(file_path), rows=len(df))
        return ParsedFile(
            row_count=len(df),
            columns=sampler.profile(self.stored_samples),
            preview=_records(head),
        )


def _records(frame: pd.DataFrame) -> List[Dict[str, Any]]:
    """Rows as dictionaries with missing cells rendered as empty strings."""
    return frame.astype(object).where(frame.notna(), "").to_dict(orient="records")


# Shared instance for reuse
file_parser = FileParser()
