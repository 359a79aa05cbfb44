"""Tests for the KITTI OXTS reader."""

from pathlib import Path

import numpy as np
import pytest

from lidarmap.io.imu_reader import INVALID_STATUS, IMUSample, OxtsReader

RECORD = "1.0 2.0 3.0 0.1 0.2 0.3 " + " ".join(["0"] * 17) + " 1 5 0 0 0"


@pytest.fixture
def oxts_dir(tmp_path: Path) -> Path:
    """Create a KITTI oxts directory with three records and timestamps."""
    oxts = tmp_path / "oxts"
    data = oxts / "data"
    data.mkdir(parents=True)

    for i in range(3):
        roll = 0.01 * i
        values = [49.0, 8.0, 110.0, roll, 0.02, 1.5] + [0.0] * 19 + [4, 10, 4, 4, 6]
        (data / f"{i:010d}.txt").write_text(" ".join(str(v) for v in values) + "\n")

    (oxts / "timestamps.txt").write_text(
        "2011-09-26 13:02:25.000000000\n"
        "2011-09-26 13:02:25.100000000\n"
        "2011-09-26 13:02:25.250000000\n"
    )
    return oxts


class TestIMUSample:
    """Test suite for IMUSample parsing."""

    def test_from_kitti(self):
        """Test parsing a record with missing trailing fields."""
        sample = IMUSample.from_kitti(RECORD)

        assert (sample.lat, sample.lon, sample.alt) == (1.0, 2.0, 3.0)
        assert (sample.roll, sample.pitch, sample.yaw) == (0.1, 0.2, 0.3)
        assert sample.pos_accuracy == 1.0
        assert sample.vel_accuracy == 5.0
        assert sample.navstat == 0
        assert sample.numsats == 0
        assert sample.posmode == 0
        assert sample.velmode == INVALID_STATUS
        assert sample.orimode == INVALID_STATUS

    def test_integer_fields(self):
        sample = IMUSample.from_kitti(" ".join(["0"] * 25) + " 4 10 4 4 6")

        assert isinstance(sample.navstat, int)
        assert (sample.navstat, sample.numsats, sample.posmode, sample.velmode, sample.orimode) == (
            4,
            10,
            4,
            4,
            6,
        )

    def test_invalid_field(self):
        with pytest.raises(ValueError, match="Invalid OXTS field 'alt'"):
            IMUSample.from_kitti("1.0 2.0 abc")

    def test_defaults(self):
        sample = IMUSample()

        assert sample.roll == 0.0
        assert sample.numsats == 0
        assert sample.navstat == INVALID_STATUS
        assert sample.posmode == INVALID_STATUS

    def test_from_file_first_line_only(self, tmp_path: Path):
        path = tmp_path / "record.txt"
        path.write_text(RECORD + "\n9 9 9 9 9 9\n")

        sample = IMUSample.from_file(path)

        assert sample.lat == 1.0
        assert sample.roll == 0.1

    def test_from_file_empty(self, tmp_path: Path):
        """Test that an empty file yields a default sample."""
        path = tmp_path / "empty.txt"
        path.write_text("")

        assert IMUSample.from_file(path) == IMUSample()

    def test_from_file_missing(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError, match="Cannot open IMU file"):
            IMUSample.from_file(tmp_path / "missing.txt")

    def test_vector_helpers(self):
        sample = IMUSample(roll=0.1, pitch=0.2, yaw=0.3, ax=1.0, ay=2.0, az=9.8, wz=0.5)

        np.testing.assert_array_equal(sample.rpy, [0.1, 0.2, 0.3])
        np.testing.assert_array_equal(sample.acceleration, [1.0, 2.0, 9.8])
        np.testing.assert_array_equal(sample.angular_velocity, [0.0, 0.0, 0.5])

    def test_to_list_order(self):
        values = IMUSample.from_kitti(RECORD).to_list()

        assert len(values) == 30
        assert values[:6] == [1.0, 2.0, 3.0, 0.1, 0.2, 0.3]
        assert values[-5:] == [0, 0, 0, INVALID_STATUS, INVALID_STATUS]


class TestOxtsReader:
    """Test suite for OxtsReader."""

    def test_len(self, oxts_dir: Path):
        assert len(OxtsReader(oxts_dir)) == 3

    def test_accepts_data_directory(self, oxts_dir: Path):
        assert len(OxtsReader(oxts_dir / "data")) == 3

    def test_sample_at(self, oxts_dir: Path):
        reader = OxtsReader(oxts_dir)

        sample = reader.sample_at(2)

        assert sample is not None
        assert sample.roll == pytest.approx(0.02)
        assert sample.numsats == 10
        assert sample.timestamp == pytest.approx(0.25, abs=1e-6)

    def test_sample_at_out_of_range(self, oxts_dir: Path):
        reader = OxtsReader(oxts_dir)

        assert reader.sample_at(3) is None
        assert reader.sample_at(-1) is None

    def test_missing_timestamps(self, oxts_dir: Path):
        (oxts_dir / "timestamps.txt").unlink()

        sample = OxtsReader(oxts_dir).sample_at(1)

        assert sample is not None
        assert sample.timestamp == 0.0

    def test_missing_directory(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError, match="OXTS directory not found"):
            OxtsReader(tmp_path / "nonexistent")

    def test_empty_directory(self, tmp_path: Path):
        with pytest.raises(FileNotFoundError, match="No OXTS records"):
            OxtsReader(tmp_path)
