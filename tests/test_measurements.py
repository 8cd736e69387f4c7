import logging
import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'src'))

from vbreplay.measurements import (  # noqa: E402
    BeaconMeasurement, MeasurementRow, RowParser, TimeValue,
    load_measurement_log, write_measurement_log
)

HEADER = "refx,refy,refz,refqw,refqx,refqy,refqz,sec,usec,x,y,size"


def _write(tmp_path, lines, name="log.csv") -> str:
    path = tmp_path / name
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return str(path)


def test_well_formed_rows_keep_reference_pose(tmp_path):
    path = _write(tmp_path, [
        HEADER,
        "0.1,-0.2,1.5,0.9,0.1,0.2,0.3,100,250000,10,20,3,30,40,4",
        "0.2,-0.1,1.4,1.0,0.0,0.0,0.0,100,500000,11,21,3",
    ])

    log = load_measurement_log(path)

    assert len(log) == 2
    first = log[0]
    assert first.valid
    np.testing.assert_array_equal(first.translation, [0.1, -0.2, 1.5])
    np.testing.assert_array_equal(first.rotation, [0.9, 0.1, 0.2, 0.3])
    assert first.timestamp == TimeValue(100, 250000)
    assert first.measurements == [
        BeaconMeasurement(10.0, 20.0, 3.0),
        BeaconMeasurement(30.0, 40.0, 4.0),
    ]
    assert first.measurements[0].image_size == (640, 480)
    assert log[1].beacon_count == 1


def test_rows_missing_required_fields_are_dropped(tmp_path):
    path = _write(tmp_path, [
        HEADER,
        "0,0,1,1,0,0,0,1,0",
        "0,0,1,1,0,0",
        "0,0,1,1,0,0,0,1",
        "0,0,abc,1,0,0,0,1,0",
        "0,0,1,1,0,0,0,2,0",
    ])

    log = load_measurement_log(path)

    assert len(log) == 2
    assert log.rows_dropped == 3
    assert [r.timestamp.seconds for r in log] == [1, 2]


def test_beacon_count_is_whole_triples_only(tmp_path):
    base = "0,0,1,1,0,0,0,1,0"
    path = _write(tmp_path, [
        HEADER,
        base,
        base + ",1",
        base + ",1,2",
        base + ",1,2,3,4,5,6,7",
        base + ",1,2,3,4,5,6,7,8",
    ])

    log = load_measurement_log(path)

    assert [r.beacon_count for r in log] == [0, 0, 0, 2, 2]
    assert all(r.valid for r in log)


def test_non_numeric_beacon_field_ends_beacons_but_keeps_row(tmp_path):
    path = _write(tmp_path, [
        HEADER,
        "0,0,1,1,0,0,0,1,0,1,2,3,4,x,6,7,8,9",
        "0,0,1,1,0,0,0,2,0,1,2,3,",
    ])

    log = load_measurement_log(path)

    assert len(log) == 2
    assert log[0].measurements == [BeaconMeasurement(1.0, 2.0, 3.0)]
    assert log[1].beacon_count == 1


def test_missing_file_gives_empty_log(tmp_path, caplog):
    with caplog.at_level(logging.ERROR):
        log = load_measurement_log(tmp_path / "does_not_exist.csv")

    assert len(log) == 0
    assert log.is_empty
    assert "Could not open" in caplog.text


def test_empty_header_gives_empty_log(tmp_path, caplog):
    path = _write(tmp_path, ["", "0,0,1,1,0,0,0,1,0"])

    with caplog.at_level(logging.WARNING):
        log = load_measurement_log(path)

    assert log.is_empty
    assert "Header row" in caplog.text

    empty = tmp_path / "empty.csv"
    empty.write_text("", encoding="utf-8")
    assert load_measurement_log(empty).is_empty


def test_three_row_log_with_missing_timestamp_renumbers(tmp_path, caplog):
    path = _write(tmp_path, [
        HEADER,
        "0.1,0.2,0.3,1,0,0,0,10,0,1,2,3",
        "0.4,0.5,0.6,1,0,0,0",
        "0.7,0.8,0.9,1,0,0,0,11,0,4,5,6",
    ])

    with caplog.at_level(logging.WARNING):
        log = load_measurement_log(path)

    assert len(log) == 2
    assert [row.timestamp.seconds for row in log] == [10, 11]
    np.testing.assert_array_equal(log[0].translation, [0.1, 0.2, 0.3])
    np.testing.assert_array_equal(log[1].translation, [0.7, 0.8, 0.9])
    assert [row.line_number for row in log] == [2, 4]
    assert "line 3" in caplog.text
    with pytest.raises(IndexError):
        log[2]


def test_custom_delimiter_and_blank_lines(tmp_path):
    path = _write(tmp_path, [
        HEADER.replace(",", ";"),
        "0;0;1;1;0;0;0;5;0;1;2;3",
        "",
        "0;0;1;1;0;0;0;5;500000\r",
    ])

    log = load_measurement_log(path, delimiter=";")

    assert len(log) == 2
    assert log.rows_dropped == 0
    assert log.get_duration_seconds() == pytest.approx(0.5)


def test_time_value_difference():
    a = TimeValue(10, 900000)
    b = TimeValue(12, 100000)

    assert b.seconds_since(a) == pytest.approx(1.2)
    assert a.seconds_since(b) == pytest.approx(-1.2)
    assert b.to_seconds() == pytest.approx(12.1)


def test_row_parser_marks_short_rows_invalid():
    parser = RowParser()

    assert not parser.parse("1,2,3").valid
    assert parser.parse("1,2,3,1,0,0,0,4,5").valid


def test_written_log_loads_back(tmp_path):
    rows = [
        MeasurementRow(
            timestamp=TimeValue(3, 14),
            translation=np.array([0.25, -0.5, 1.125]),
            rotation=np.array([0.5, 0.5, 0.5, 0.5]),
            measurements=[BeaconMeasurement(320.5, 240.25, 4.0)],
            valid=True,
        )
    ]
    path = tmp_path / "written.csv"

    assert write_measurement_log(path, rows) == 1
    log = load_measurement_log(path)

    assert len(log) == 1
    np.testing.assert_array_equal(log[0].translation, rows[0].translation)
    assert log[0].measurements == rows[0].measurements
    assert log[0].timestamp == TimeValue(3, 14)


def test_blank_lines_are_noted_at_debug(tmp_path, caplog):
    path = _write(tmp_path, [
        HEADER,
        "0,0,1,1,0,0,0,1,0",
        "   ",
        "0,0,1,1,0,0,0,2,0",
    ])

    with caplog.at_level(logging.DEBUG, logger="vbreplay.measurements"):
        log = load_measurement_log(path)

    assert len(log) == 2
    assert log.rows_dropped == 0
    assert "Skipping blank line 3" in caplog.text
