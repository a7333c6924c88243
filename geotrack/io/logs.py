"""
Binary Observation and Track Logs

Record streams compatible with the Java DataOutputStream layout used by
existing GeoTrack logs. Files are plain concatenations of records with no
header; a reader stops at a clean end of file and raises LogFormatError on
a truncated record.

Observation record:
    [int id][double init_time][bool time_only][matrix z][matrix R]
    [position origin]

Track record:
    [int id][double init_time][double last_update_time][bool received_update]
    [matrix x][matrix P][position origin][position position]

with matrix = [int rows][int cols][rows*cols doubles] and
position = [double lat_rad][double lon_rad], all big-endian.

Usage:
    with ObservationLogWriter('output/observations.bin') as writer:
        writer.write(observation)

    for observation in ObservationLogReader('output/observations.bin'):
        session.process(observation)
"""

import io
import logging
from pathlib import Path
from typing import BinaryIO, Iterator, List, Optional, Union

from geotrack.tracking.filters import (
    KalmanPredictFilter,
    KalmanUpdateFilter,
    PredictFilter,
    UpdateFilter,
)
from geotrack.tracking.observation import PositionObservation
from geotrack.tracking.track import DEFAULT_VELOCITY_ACCURACY_MPS, PositionVelocityTrack

PathLike = Union[str, Path]


# =============================================================================
# SINGLE-RECORD SERIALIZATION
# =============================================================================


def serialize_observation(observation: PositionObservation) -> bytes:
    """Encode one observation record."""
    buffer = io.BytesIO()
    observation.write(buffer)
    return buffer.getvalue()


def deserialize_observation(data: bytes) -> PositionObservation:
    """
    Decode one observation record.

    Raises:
        LogFormatError: If the record is truncated or malformed
        EOFError: If ``data`` is empty
    """
    return PositionObservation.read(io.BytesIO(data))


def serialize_track(track: PositionVelocityTrack) -> bytes:
    """Encode one track record."""
    buffer = io.BytesIO()
    track.write(buffer)
    return buffer.getvalue()


def deserialize_track(
    data: bytes,
    predict_filter: Optional[PredictFilter] = None,
    update_filter: Optional[UpdateFilter] = None,
    velocity_accuracy_mps: float = DEFAULT_VELOCITY_ACCURACY_MPS,
) -> PositionVelocityTrack:
    """
    Decode one track record.

    Filters are not part of the record; fresh Kalman filters are attached
    unless others are given.
    """
    return PositionVelocityTrack.read(
        io.BytesIO(data),
        predict_filter or KalmanPredictFilter(),
        update_filter or KalmanUpdateFilter(),
        velocity_accuracy_mps,
    )


# =============================================================================
# FILE STREAMS
# =============================================================================


class _LogWriter:
    def __init__(self, filepath: PathLike, append: bool = False):
        self.filepath = Path(filepath)
        self._append = append
        self._stream: Optional[BinaryIO] = None
        self.count = 0

    def open(self) -> None:
        if self._stream is None:
            self.filepath.parent.mkdir(parents=True, exist_ok=True)
            self._stream = open(self.filepath, "ab" if self._append else "wb")

    def close(self) -> None:
        if self._stream is not None:
            self._stream.close()
            self._stream = None

    def _require_stream(self) -> BinaryIO:
        if self._stream is None:
            self.open()
        return self._stream

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class ObservationLogWriter(_LogWriter):
    """Appends observation records to a file."""

    def write(self, observation: PositionObservation) -> None:
        observation.write(self._require_stream())
        self.count += 1


class TrackLogWriter(_LogWriter):
    """Appends track records to a file."""

    def write(self, track: PositionVelocityTrack) -> None:
        track.write(self._require_stream())
        self.count += 1


class ObservationLogReader:
    """
    Iterates over the observation records of a file.

    Raises:
        FileNotFoundError: If the file does not exist
        LogFormatError: On a truncated or malformed record (during iteration)
    """

    def __init__(self, filepath: PathLike):
        self.filepath = Path(filepath)
        if not self.filepath.exists():
            raise FileNotFoundError(f"Observation log not found: {filepath}")

    def __iter__(self) -> Iterator[PositionObservation]:
        with open(self.filepath, "rb") as stream:
            while True:
                try:
                    yield PositionObservation.read(stream)
                except EOFError:
                    return

    def read_all(self) -> List[PositionObservation]:
        return list(self)


class TrackLogReader:
    """
    Iterates over the track records of a file.

    Each record becomes an independent READY track with its own fresh
    Kalman filters (process noise ``process_noise``).
    """

    def __init__(
        self,
        filepath: PathLike,
        process_noise: float = 0.0,
        velocity_accuracy_mps: float = DEFAULT_VELOCITY_ACCURACY_MPS,
        logger: Optional[logging.Logger] = None,
    ):
        self.filepath = Path(filepath)
        if not self.filepath.exists():
            raise FileNotFoundError(f"Track log not found: {filepath}")

        self.process_noise = process_noise
        self.velocity_accuracy_mps = velocity_accuracy_mps
        self._logger = logger

    def __iter__(self) -> Iterator[PositionVelocityTrack]:
        with open(self.filepath, "rb") as stream:
            while True:
                try:
                    yield PositionVelocityTrack.read(
                        stream,
                        KalmanPredictFilter(self.process_noise, logger=self._logger),
                        KalmanUpdateFilter(logger=self._logger),
                        self.velocity_accuracy_mps,
                        self._logger,
                    )
                except EOFError:
                    return

    def read_all(self) -> List[PositionVelocityTrack]:
        return list(self)
