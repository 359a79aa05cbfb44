"""KITTI OXTS inertial data reader.

Each OXTS record is one line of whitespace-separated values:

    lat lon alt roll pitch yaw vn ve vf vl vu ax ay az af al au
    wx wy wz wf wl wu pos_accuracy vel_accuracy navstat numsats
    posmode velmode orimode

KITTI raw recordings store one record per scan in oxts/data/<frame>.txt,
with the acquisition times listed in oxts/timestamps.txt.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from datetime import datetime
from pathlib import Path

import numpy as np

INVALID_STATUS = -1

_FLOAT_FIELDS = (
    "lat", "lon", "alt",
    "roll", "pitch", "yaw",
    "vn", "ve", "vf", "vl", "vu",
    "ax", "ay", "az", "af", "al", "au",
    "wx", "wy", "wz", "wf", "wl", "wu",
    "pos_accuracy", "vel_accuracy",
)  # fmt: skip
_INT_FIELDS = ("navstat", "numsats", "posmode", "velmode", "orimode")


@dataclass(frozen=True)
class IMUSample:
    """Single OXTS record.

    Attributes:
        timestamp: Seconds since the first record (0 if unknown)
        lat, lon, alt: GNSS position (deg, deg, m)
        roll, pitch, yaw: Orientation in radians
        vn, ve, vf, vl, vu: Velocities (north, east, forward, left, up) in m/s
        ax, ay, az, af, al, au: Accelerations in m/s²
        wx, wy, wz, wf, wl, wu: Angular rates in rad/s
        pos_accuracy, vel_accuracy: Accuracy figures
        navstat, numsats, posmode, velmode, orimode: Status and mode codes
    """

    timestamp: float = 0.0

    lat: float = 0.0
    lon: float = 0.0
    alt: float = 0.0

    roll: float = 0.0
    pitch: float = 0.0
    yaw: float = 0.0

    vn: float = 0.0
    ve: float = 0.0
    vf: float = 0.0
    vl: float = 0.0
    vu: float = 0.0

    ax: float = 0.0
    ay: float = 0.0
    az: float = 0.0
    af: float = 0.0
    al: float = 0.0
    au: float = 0.0

    wx: float = 0.0
    wy: float = 0.0
    wz: float = 0.0
    wf: float = 0.0
    wl: float = 0.0
    wu: float = 0.0

    pos_accuracy: float = 0.0
    vel_accuracy: float = 0.0
    navstat: int = INVALID_STATUS
    numsats: int = 0
    posmode: int = INVALID_STATUS
    velmode: int = INVALID_STATUS
    orimode: int = INVALID_STATUS

    @classmethod
    def from_kitti(cls, line: str, timestamp: float = 0.0) -> IMUSample:
        """Parse one OXTS record.

        Fields are read in their fixed order; a short record leaves the
        remaining fields at their defaults.

        Args:
            line: Whitespace-separated record
            timestamp: Timestamp to attach, in seconds

        Returns:
            Parsed IMUSample

        Raises:
            ValueError: If a field is not numeric
        """
        tokens = line.split()
        values: dict[str, float | int] = {"timestamp": timestamp}

        for name, token in zip(_FLOAT_FIELDS + _INT_FIELDS, tokens):
            try:
                number = float(token)
            except ValueError as e:
                raise ValueError(
                    f"Invalid OXTS field '{name}': '{token}'\n"
                    f"Expected {len(_FLOAT_FIELDS) + len(_INT_FIELDS)} numeric fields"
                ) from e
            values[name] = int(number) if name in _INT_FIELDS else number

        return cls(**values)

    @classmethod
    def from_file(cls, path: str | Path, timestamp: float = 0.0) -> IMUSample:
        """Read the first record of an OXTS file.

        Args:
            path: Path to the OXTS text file
            timestamp: Timestamp to attach, in seconds

        Returns:
            Parsed IMUSample, or a default sample if the file is empty

        Raises:
            FileNotFoundError: If the file cannot be opened
        """
        path = Path(path)
        try:
            with open(path, "r") as f:
                line = f.readline()
        except OSError as e:
            raise FileNotFoundError(f"Cannot open IMU file: {path}") from e

        if not line.strip():
            return cls(timestamp=timestamp)
        return cls.from_kitti(line, timestamp=timestamp)

    @property
    def acceleration(self) -> np.ndarray:
        """Acceleration (ax, ay, az) in m/s²."""
        return np.array([self.ax, self.ay, self.az], dtype=np.float64)

    @property
    def angular_velocity(self) -> np.ndarray:
        """Angular rate (wx, wy, wz) in rad/s."""
        return np.array([self.wx, self.wy, self.wz], dtype=np.float64)

    @property
    def rpy(self) -> np.ndarray:
        """Orientation (roll, pitch, yaw) in radians."""
        return np.array([self.roll, self.pitch, self.yaw], dtype=np.float64)

    def to_list(self) -> list[float | int]:
        """Return the record fields in OXTS order (without timestamp)."""
        return [getattr(self, f.name) for f in fields(self) if f.name != "timestamp"]


def _parse_timestamp(line: str) -> float:
    """Parse a KITTI timestamp like '2011-09-26 13:02:25.964389445' to seconds."""
    line = line.strip()
    date_part, _, frac = line.partition(".")
    stamp = datetime.strptime(date_part, "%Y-%m-%d %H:%M:%S").timestamp()
    if frac:
        stamp += float(f"0.{frac}")
    return stamp


class OxtsReader:
    """Reader for a KITTI oxts directory.

    Example usage:
        reader = OxtsReader("data/kitti/2011_09_26_drive_0001_sync/oxts")
        sample = reader.sample_at(10)
        if sample is not None:
            print(sample.roll, sample.pitch)
    """

    def __init__(self, oxts_path: str | Path) -> None:
        """Initialize OXTS reader.

        Args:
            oxts_path: Path to the oxts directory (containing data/) or to the
                data directory itself

        Raises:
            FileNotFoundError: If no OXTS records are found
        """
        oxts_path = Path(oxts_path)
        data_path = oxts_path / "data" if (oxts_path / "data").is_dir() else oxts_path

        if not data_path.is_dir():
            raise FileNotFoundError(f"OXTS directory not found: {data_path}")

        self._files = sorted(data_path.glob("*.txt"))
        if not self._files:
            raise FileNotFoundError(
                f"No OXTS records found in {data_path}\n"
                f"Expected KITTI format with one <frame>.txt per scan"
            )

        self._timestamps = self._load_timestamps(data_path.parent / "timestamps.txt")

    def _load_timestamps(self, path: Path) -> list[float]:
        """Load timestamps relative to the first record (empty if missing)."""
        if not path.exists():
            return []

        with open(path, "r") as f:
            stamps = [_parse_timestamp(line) for line in f if line.strip()]

        if not stamps:
            return []
        return [stamp - stamps[0] for stamp in stamps]

    def sample_at(self, frame_index: int) -> IMUSample | None:
        """Get the sample recorded with a scan.

        Args:
            frame_index: Scan position in the sequence

        Returns:
            IMUSample, or None if there is no record for this frame
        """
        if frame_index < 0 or frame_index >= len(self._files):
            return None

        timestamp = (
            self._timestamps[frame_index] if frame_index < len(self._timestamps) else 0.0
        )
        return IMUSample.from_file(self._files[frame_index], timestamp=timestamp)

    @property
    def files(self) -> list[Path]:
        return list(self._files)

    def __len__(self) -> int:
        """Number of OXTS records."""
        return len(self._files)
