"""
Measurement log module for recorded beacon observations.

Provides functionality to:
- Parse delimited text logs of reference poses and beacon blobs
- Keep the accepted rows as an immutable, ordered log
- Write logs in the same format (used by the simulator)

Log format, one row per line after a header line:
    refx, refy, refz, refqw, refqx, refqy, refqz, sec, usec, [x, y, size]*
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

import numpy as np

logger = logging.getLogger(__name__)

# Resolution the recorded blob coordinates refer to (width, height).
IMAGE_SIZE: Tuple[int, int] = (640, 480)

REQUIRED_FIELDS = 9

LOG_HEADER_FIELDS = [
    "refx", "refy", "refz",
    "refqw", "refqx", "refqy", "refqz",
    "sec", "usec",
]


@dataclass(frozen=True)
class TimeValue:
    """Two-part timestamp: whole seconds and microseconds."""
    seconds: int = 0
    microseconds: int = 0

    def to_seconds(self) -> float:
        return self.seconds + self.microseconds / 1_000_000.0

    def seconds_since(self, other: "TimeValue") -> float:
        """Elapsed time from ``other`` to this value, in seconds."""
        return float(self.seconds - other.seconds) + \
            (self.microseconds - other.microseconds) / 1_000_000.0


@dataclass(frozen=True)
class BeaconMeasurement:
    """A single detected blob in image space."""
    x: float
    y: float
    size: float
    image_size: Tuple[int, int] = IMAGE_SIZE

    @property
    def location(self) -> Tuple[float, float]:
        return (self.x, self.y)


@dataclass
class MeasurementRow:
    """One timestamped row of the log: reference pose plus beacon blobs."""
    timestamp: TimeValue = field(default_factory=TimeValue)
    translation: np.ndarray = field(default_factory=lambda: np.zeros(3))
    rotation: np.ndarray = field(
        default_factory=lambda: np.array([1.0, 0.0, 0.0, 0.0])
    )  # [w, x, y, z]
    measurements: List[BeaconMeasurement] = field(default_factory=list)
    valid: bool = False
    line_number: int = 0

    @property
    def beacon_count(self) -> int:
        return len(self.measurements)

    def image_points(self) -> np.ndarray:
        """Beacon locations as an Nx2 array."""
        if not self.measurements:
            return np.zeros((0, 2), dtype=np.float64)
        return np.array([m.location for m in self.measurements], dtype=np.float64)


class MeasurementLog(Sequence):
    """
    Ordered, read-only collection of valid measurement rows.

    Usage:
        log = load_measurement_log("augmented-blobs.csv")
        for row in log:
            process_row(row)
    """

    def __init__(
        self,
        rows: Iterable[MeasurementRow] = (),
        source: Optional[str] = None,
        rows_dropped: int = 0
    ):
        self._rows: Tuple[MeasurementRow, ...] = tuple(rows)
        self.source = source
        self.rows_dropped = rows_dropped

    def __len__(self) -> int:
        return len(self._rows)

    def __getitem__(self, index):
        return self._rows[index]

    def __iter__(self) -> Iterator[MeasurementRow]:
        return iter(self._rows)

    @property
    def row_count(self) -> int:
        """Total number of accepted rows."""
        return len(self._rows)

    @property
    def is_empty(self) -> bool:
        return not self._rows

    def get_timestamp_range(self) -> Tuple[Optional[TimeValue], Optional[TimeValue]]:
        """
        Get the timestamp range of the log.

        Returns:
            Tuple of (earliest, latest) TimeValue, or (None, None) if empty
        """
        if not self._rows:
            return (None, None)

        timestamps = [r.timestamp for r in self._rows]
        key = TimeValue.to_seconds
        return (min(timestamps, key=key), max(timestamps, key=key))

    def get_duration_seconds(self) -> float:
        """
        Get the duration of the recording in seconds.

        Returns:
            Duration in seconds
        """
        if not self._rows:
            return 0.0

        first, last = self.get_timestamp_range()
        return last.seconds_since(first)


class RowParser:
    """
    Parse a single log line into a MeasurementRow.

    The row is valid once all required fields parse. Beacon values are
    collected in triples; reading stops at the first non-numeric beacon field
    and a partial triple at the end is discarded.
    """

    def __init__(self, delimiter: str = ","):
        self.delimiter = delimiter

    def parse(self, line: str, line_number: int = 0) -> MeasurementRow:
        """
        Parse one data line.

        Args:
            line: Line content without trailing newline
            line_number: 1-based line number for diagnostics

        Returns:
            MeasurementRow; ``valid`` is False if any field failed to parse
        """
        row = MeasurementRow(line_number=line_number)
        fields = [f.strip() for f in line.split(self.delimiter)]

        if len(fields) < REQUIRED_FIELDS:
            return row

        try:
            translation = [float(v) for v in fields[0:3]]
            rotation = [float(v) for v in fields[3:7]]
            seconds = int(fields[7])
            microseconds = int(fields[8])
        except ValueError:
            return row

        row.translation = np.array(translation, dtype=np.float64)
        row.rotation = np.array(rotation, dtype=np.float64)
        row.timestamp = TimeValue(seconds, microseconds)

        pieces: List[float] = []
        for raw in fields[REQUIRED_FIELDS:]:
            try:
                pieces.append(float(raw))
            except ValueError:
                logger.debug("Line %d: stopped reading beacons at %r", line_number, raw)
                break
            if len(pieces) == 3:
                row.measurements.append(BeaconMeasurement(*pieces))
                pieces = []

        if pieces:
            logger.debug(
                "Line %d: dropping %d leftover beacon field(s)", line_number, len(pieces)
            )

        row.valid = True
        return row


def load_measurement_log(path, delimiter: str = ",") -> MeasurementLog:
    """
    Load a measurement log file.

    A missing file or an empty header yields an empty log. Rows that fail to
    parse are skipped with a warning and loading continues.

    Args:
        path: Path to the delimited text log
        delimiter: Field separator

    Returns:
        MeasurementLog containing only valid rows
    """
    path = Path(path)
    parser = RowParser(delimiter=delimiter)
    rows: List[MeasurementRow] = []
    dropped = 0

    try:
        f = open(path, 'r', encoding='utf-8')
    except OSError as e:
        logger.error("Could not open measurement log %s: %s", path, e)
        return MeasurementLog(source=str(path))

    with f:
        header = f.readline().strip()
        if not header:
            logger.warning("Header row of %s was empty, not loading any rows", path)
            return MeasurementLog(source=str(path))

        for line_number, line in enumerate(f, start=2):
            line = line.rstrip("\r\n")
            if not line.strip():
                logger.debug("Skipping blank line %d", line_number)
                continue

            row = parser.parse(line, line_number)
            if row.valid:
                logger.debug("Row has %d blobs", row.beacon_count)
                rows.append(row)
            else:
                dropped += 1
                logger.warning("Could not parse row at line %d: %s", line_number, line)

    logger.info("Total of %d rows", len(rows))
    return MeasurementLog(rows, source=str(path), rows_dropped=dropped)


def format_row(row: MeasurementRow, delimiter: str = ",") -> str:
    """Render a row in log format."""
    values = [repr(float(v)) for v in row.translation]
    values += [repr(float(v)) for v in row.rotation]
    values += [str(int(row.timestamp.seconds)), str(int(row.timestamp.microseconds))]
    for m in row.measurements:
        values += [repr(float(m.x)), repr(float(m.y)), repr(float(m.size))]
    return delimiter.join(values)


def write_measurement_log(
    path,
    rows: Iterable[MeasurementRow],
    delimiter: str = ","
) -> int:
    """
    Write rows to a log file with a header line.

    Args:
        path: Output file path
        rows: Rows to write
        delimiter: Field separator

    Returns:
        Number of rows written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    count = 0
    with open(path, 'w', encoding='utf-8') as f:
        f.write(delimiter.join(LOG_HEADER_FIELDS + ["x", "y", "size"]) + '\n')
        for row in rows:
            f.write(format_row(row, delimiter) + '\n')
            count += 1

    return count
