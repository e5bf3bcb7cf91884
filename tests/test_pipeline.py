"""Bag replay tests: chronological merge and the offline pipeline."""

import os

import numpy as np
import pytest
from rosbags.rosbag1 import Writer
from rosbags.typesys import Stores, get_typestore

from ct_scan_registration.bag_reader import read_bag
from ct_scan_registration.config import RegistrationConfig
from ct_scan_registration.pipeline import FeatureExtractionPipeline
from ct_scan_registration.types import FEATURE_CLOUD_NAMES

CLOUD_TOPIC = '/cloud'
IMU_TOPIC = '/imu'
N_CLOUDS = 5
# IMU every 100 ms from t=1.0 shares a stamp with every cloud (every 200 ms)
CLOUD_STAMPS_NS = [1_000_000_000 + 200_000_000 * k for k in range(N_CLOUDS)]
IMU_STAMPS_NS = [1_000_000_000 + 100_000_000 * j for j in range(10)]
DUPLICATE_IMU_NS = IMU_STAMPS_NS[3]


# =============================================================================
# Bag Fixtures
# =============================================================================


def _header(typestore, stamp_ns):
    Header = typestore.types['std_msgs/msg/Header']
    Time = typestore.types['builtin_interfaces/msg/Time']
    sec, nanosec = divmod(stamp_ns, 1_000_000_000)
    return Header(seq=0, stamp=Time(sec=sec, nanosec=nanosec), frame_id='laser')


def _cloud_msg(typestore, stamp_ns, xyz):
    PointCloud2 = typestore.types['sensor_msgs/msg/PointCloud2']
    PointField = typestore.types['sensor_msgs/msg/PointField']
    fields = [PointField(name=name, offset=4 * k, datatype=7, count=1)
              for k, name in enumerate(('x', 'y', 'z'))]
    data = np.frombuffer(xyz.astype('<f4').tobytes(), dtype=np.uint8)
    return PointCloud2(
        header=_header(typestore, stamp_ns), height=1, width=len(xyz),
        fields=fields, is_bigendian=False, point_step=12,
        row_step=12 * len(xyz), data=data, is_dense=True)


def _imu_msg(typestore, stamp_ns):
    Imu = typestore.types['sensor_msgs/msg/Imu']
    Quaternion = typestore.types['geometry_msgs/msg/Quaternion']
    Vector3 = typestore.types['geometry_msgs/msg/Vector3']
    return Imu(
        header=_header(typestore, stamp_ns),
        orientation=Quaternion(x=0.0, y=0.0, z=0.0, w=1.0),
        orientation_covariance=np.zeros(9),
        angular_velocity=Vector3(x=0.0, y=0.0, z=0.0),
        angular_velocity_covariance=np.zeros(9),
        linear_acceleration=Vector3(x=0.0, y=0.0, z=9.81),
        linear_acceleration_covariance=np.zeros(9),
    )


@pytest.fixture
def bag_path(tmp_path, square_outline):
    """Bag with 5 square-outline clouds and 11 IMU samples, one duplicated.

    On shared stamps the cloud is written before the IMU sample.
    """
    points, _ = square_outline
    typestore = get_typestore(Stores.ROS1_NOETIC)
    cloud_type = 'sensor_msgs/msg/PointCloud2'
    imu_type = 'sensor_msgs/msg/Imu'

    entries = [(ns, 0, 'cloud') for ns in CLOUD_STAMPS_NS]
    entries += [(ns, 1, 'imu') for ns in IMU_STAMPS_NS]
    entries.append((DUPLICATE_IMU_NS, 2, 'imu'))
    entries.sort()

    path = tmp_path / 'replay.bag'
    with Writer(path) as writer:
        cloud_conn = writer.add_connection(CLOUD_TOPIC, cloud_type,
                                           typestore=typestore)
        imu_conn = writer.add_connection(IMU_TOPIC, imu_type,
                                         typestore=typestore)
        for ns, _, kind in entries:
            if kind == 'cloud':
                msg = _cloud_msg(typestore, ns, points)
                writer.write(cloud_conn, ns,
                             typestore.serialize_ros1(msg, cloud_type))
            else:
                msg = _imu_msg(typestore, ns)
                writer.write(imu_conn, ns,
                             typestore.serialize_ros1(msg, imu_type))
    return str(path)


def _config(**kwargs):
    kwargs.setdefault('system_delay', 2)
    return RegistrationConfig(cloud_topic=CLOUD_TOPIC, imu_topic=IMU_TOPIC,
                              **kwargs)


# =============================================================================
# read_bag
# =============================================================================


class TestReadBag:

    def test_chronological_merge(self, bag_path):
        messages = list(read_bag(bag_path, CLOUD_TOPIC, IMU_TOPIC))
        kinds = [kind for kind, _ in messages]
        assert kinds.count('cloud') == N_CLOUDS
        assert kinds.count('imu') == len(IMU_STAMPS_NS) + 1

        stamps = [data.stamp if kind == 'cloud' else data.timestamp
                  for kind, data in messages]
        assert stamps == sorted(stamps)

    def test_imu_precedes_cloud_on_equal_stamp(self, bag_path):
        messages = list(read_bag(bag_path, CLOUD_TOPIC, IMU_TOPIC))
        for pos, (kind, data) in enumerate(messages):
            if kind != 'cloud':
                continue
            later_imu = [d for k, d in messages[pos + 1:]
                         if k == 'imu' and d.timestamp == data.stamp]
            earlier_imu = [d for k, d in messages[:pos]
                           if k == 'imu' and d.timestamp == data.stamp]
            assert later_imu == []
            assert len(earlier_imu) == 1

    def test_cloud_payload(self, bag_path, square_outline):
        points, _ = square_outline
        messages = list(read_bag(bag_path, CLOUD_TOPIC))
        assert [kind for kind, _ in messages] == ['cloud'] * N_CLOUDS
        _, first = messages[0]
        assert first.stamp == pytest.approx(1.0)
        np.testing.assert_allclose(first.points, points, atol=1e-6)


# =============================================================================
# FeatureExtractionPipeline
# =============================================================================


class TestFeatureExtractionPipeline:

    def test_warm_up_and_csv_output(self, bag_path, tmp_path, capsys):
        out_dir = tmp_path / 'features'
        count = FeatureExtractionPipeline(_config()).run(bag_path, str(out_dir))

        assert count == N_CLOUDS - 2
        files = sorted(os.listdir(out_dir))
        assert len(files) == count * (len(FEATURE_CLOUD_NAMES) + 1)
        assert files[0] == 'scan_000000_corner_less_sharp.csv'
        assert 'scan_000002_full_cloud.csv' in files
        assert 'Skipped 1 out-of-order IMU messages' in capsys.readouterr().out

    def test_skip_full_cloud(self, bag_path, tmp_path):
        out_dir = tmp_path / 'features'
        count = FeatureExtractionPipeline(_config()).run(
            bag_path, str(out_dir), include_full_cloud=False)
        files = os.listdir(out_dir)
        assert len(files) == count * len(FEATURE_CLOUD_NAMES)
        assert not any(name.endswith('_full_cloud.csv') for name in files)

    def test_without_imu(self, bag_path, tmp_path, capsys):
        pipeline = FeatureExtractionPipeline(_config(imu_en=False))
        assert pipeline.imu_buffer is None
        assert pipeline.run(bag_path, str(tmp_path / 'out')) == N_CLOUDS - 2
        assert 'out-of-order' not in capsys.readouterr().out

    def test_wrong_topic_processes_nothing(self, bag_path, tmp_path, capsys):
        config = _config()
        config.cloud_topic = '/missing'
        assert FeatureExtractionPipeline(config).run(
            bag_path, str(tmp_path / 'out')) == 0
        assert 'No cloud messages found' in capsys.readouterr().out
