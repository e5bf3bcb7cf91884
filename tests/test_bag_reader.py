"""Tests for PointCloud2 and Imu message parsing."""

from types import SimpleNamespace

import numpy as np
import pytest

from ct_scan_registration.bag_reader import parse_imu, parse_pointcloud2


def make_cloud_msg(xyz, bigendian=False, with_z=True):
    """Pack (N, 3) points as float32 x, y, z followed by a float32 intensity."""
    n = len(xyz)
    order = '>' if bigendian else '<'
    packed = np.zeros((n, 4), dtype=np.dtype(f'{order}f4'))
    packed[:, :3] = xyz
    packed[:, 3] = 7.0
    names = ['x', 'y', 'z', 'intensity'] if with_z else ['x', 'y', 'w', 'intensity']
    fields = [SimpleNamespace(name=name, offset=4 * k, datatype=7, count=1)
              for k, name in enumerate(names)]
    return SimpleNamespace(
        width=n, height=1, point_step=16, fields=fields,
        is_bigendian=bigendian, data=packed.tobytes())


class TestParsePointCloud2:

    @pytest.mark.parametrize("bigendian", [False, True])
    def test_order_and_values(self, bigendian):
        xyz = np.array([[1.0, 2.0, 3.0], [np.nan, 0.0, 0.0], [-4.5, 0.25, 8.0]])
        out = parse_pointcloud2(make_cloud_msg(xyz, bigendian=bigendian))
        np.testing.assert_array_equal(out, xyz)
        assert out.dtype == np.float64

    def test_empty(self):
        out = parse_pointcloud2(make_cloud_msg(np.zeros((0, 3))))
        assert out.shape == (0, 3)

    def test_missing_field(self):
        with pytest.raises(ValueError):
            parse_pointcloud2(make_cloud_msg(np.ones((2, 3)), with_z=False))


class TestParseImu:

    def test_orientation_and_stamp(self):
        msg = SimpleNamespace(
            header=SimpleNamespace(stamp=SimpleNamespace(sec=12, nanosec=500000000)),
            orientation=SimpleNamespace(x=0.0, y=0.0, z=0.6, w=0.8),
        )
        sample = parse_imu(msg)
        assert sample.timestamp == pytest.approx(12.5)
        np.testing.assert_array_equal(sample.orientation, [0.0, 0.0, 0.6, 0.8])
