import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT / 'src'))

from vbreplay.camera import nominal_camera_parameters  # noqa: E402
from vbreplay.geo import IDENTITY_QUATERNION  # noqa: E402
from vbreplay.measurements import BeaconMeasurement, MeasurementRow, TimeValue  # noqa: E402
from vbreplay.posefilter import PoseFilter  # noqa: E402
from vbreplay.strategies import (  # noqa: E402
    FullSystemStrategy, RansacFilterStrategy, create_strategy
)
from vbreplay.tracking import BodyState  # noqa: E402


CAMERA = nominal_camera_parameters().create_undistorted_variant()


def _row(seconds, microseconds=0, beacons=4) -> MeasurementRow:
    return MeasurementRow(
        timestamp=TimeValue(seconds, microseconds),
        translation=np.zeros(3),
        rotation=IDENTITY_QUATERNION.copy(),
        measurements=[BeaconMeasurement(float(i), float(i), 3.0) for i in range(beacons)],
        valid=True,
    )


class ScriptedTarget:
    """Returns pre-scripted RANSAC outcomes, one per call."""

    def __init__(self, outcomes, body=None):
        self._outcomes = list(outcomes)
        self._body = body
        self.calls = 0

    def get_body(self):
        return self._body

    def estimate_pose(self, camera_params, measurements):
        success = self._outcomes[self.calls]
        self.calls += 1
        position = np.array([0.0, 0.0, float(self.calls)])
        return success, position, IDENTITY_QUATERNION.copy()


class RecordingFilter(PoseFilter):
    def __init__(self):
        super().__init__()
        self.dts = []

    def filter(self, dt, position, orientation):
        self.dts.append(dt)
        super().filter(dt, position, orientation)


class FakeBody:
    def __init__(self):
        self.state = None

    def has_pose_estimate(self):
        return self.state is not None

    def get_state(self):
        return self.state


class FakeSystem:
    def __init__(self, body):
        self.body = body
        self.frames = []

    def update_bodies_from_video_data(self, data):
        self.frames.append(data)
        self.body.state = BodyState(
            position=np.array([0.1, 0.2, float(len(self.frames))]),
            quaternion=np.array([0.0, 1.0, 0.0, 0.0]),
            timestamp=data.timestamp,
        )
        return [0]


def test_ransac_dt_skips_failed_rows():
    strategy = RansacFilterStrategy(filter_factory=RecordingFilter)
    target = ScriptedTarget([True, False, True])
    rows = [_row(10, 0), _row(10, 500000), _row(11, 250000)]

    estimates = [strategy.estimate(CAMERA, None, target, row) for row in rows]

    assert [e.available for e in estimates] == [True, False, True]
    assert strategy.pose_filter.dts == pytest.approx([1.0, 1.25])
    assert strategy.last_timestamp == TimeValue(11, 250000)


def test_ransac_first_success_uses_unit_dt():
    strategy = RansacFilterStrategy(filter_factory=RecordingFilter)
    target = ScriptedTarget([False, False, True, True])
    rows = [_row(5), _row(6), _row(7), _row(7, 100000)]

    for row in rows:
        strategy.estimate(CAMERA, None, target, row)

    assert strategy.pose_filter.dts == pytest.approx([1.0, 0.1])


def test_ransac_failure_leaves_state_alone():
    strategy = RansacFilterStrategy()
    target = ScriptedTarget([False])

    estimate = strategy.estimate(CAMERA, None, target, _row(1))

    assert not estimate.available
    assert estimate.isometry() is None
    assert strategy.is_first
    assert strategy.last_timestamp is None
    assert not strategy.pose_filter.has_state


def test_ransac_reports_filtered_pose():
    strategy = RansacFilterStrategy()
    target = ScriptedTarget([True])

    estimate = strategy.estimate(CAMERA, None, target, _row(1))

    assert estimate.available
    np.testing.assert_allclose(estimate.translation, [0.0, 0.0, 1.0])
    np.testing.assert_allclose(estimate.rotation, IDENTITY_QUATERNION)


def test_ransac_reset_starts_over():
    strategy = RansacFilterStrategy(filter_factory=RecordingFilter)
    target = ScriptedTarget([True, True, True])
    strategy.estimate(CAMERA, None, target, _row(1))
    strategy.estimate(CAMERA, None, target, _row(2))

    strategy.reset()
    strategy.estimate(CAMERA, None, target, _row(9))

    assert strategy.pose_filter.dts == [1.0]


def test_strategy_instances_do_not_share_filters():
    a = RansacFilterStrategy()
    b = RansacFilterStrategy()

    assert a.pose_filter is not b.pose_filter


def test_full_system_reports_body_state_verbatim():
    body = FakeBody()
    system = FakeSystem(body)
    target = ScriptedTarget([], body=body)
    strategy = FullSystemStrategy()
    row = _row(3, 42, beacons=5)

    estimate = strategy.estimate(CAMERA, system, target, row)

    assert len(system.frames) == 1
    frame = system.frames[0]
    assert frame.timestamp == TimeValue(3, 42)
    assert frame.measurements == row.measurements
    assert frame.camera_params is CAMERA
    assert estimate.available
    np.testing.assert_array_equal(estimate.translation, [0.1, 0.2, 1.0])
    np.testing.assert_array_equal(estimate.rotation, [0.0, 1.0, 0.0, 0.0])
    assert target.calls == 0


def test_full_system_without_estimate_is_unavailable():
    body = FakeBody()

    class NoUpdateSystem:
        def update_bodies_from_video_data(self, data):
            return []

    estimate = FullSystemStrategy().estimate(CAMERA, NoUpdateSystem(), ScriptedTarget([], body=body), _row(1))

    assert not estimate.available
    assert estimate.to_dict() == {"available": False}


def test_create_strategy_by_name():
    assert isinstance(create_strategy("full"), FullSystemStrategy)
    assert isinstance(create_strategy("ransac"), RansacFilterStrategy)
    with pytest.raises(ValueError):
        create_strategy("kalman")
