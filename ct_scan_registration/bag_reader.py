"""ROS1 bag file reader using the rosbags library (no ROS install needed).

Parses sensor_msgs/PointCloud2 and sensor_msgs/Imu messages from .bag files.
"""
import numpy as np
from pathlib import Path

from rosbags.rosbag1 import Reader
from rosbags.typesys import Stores, get_typestore
from tqdm import tqdm

from .types import ImuSample, RawCloud


# PointField datatype -> (numpy dtype, size in bytes)
_POINTFIELD_DTYPES = {
    1: (np.uint8, 1),
    2: (np.int8, 1),
    3: (np.uint16, 2),
    4: (np.int16, 2),
    5: (np.uint32, 4),
    6: (np.int32, 4),
    7: (np.float32, 4),
    8: (np.float64, 8),
}


def _find_field(fields, name):
    """Find a field by name in PointCloud2 fields list."""
    for f in fields:
        if f.name == name:
            return f
    return None


def _stamp_to_sec(stamp) -> float:
    return stamp.sec + stamp.nanosec * 1e-9


def parse_pointcloud2(msg) -> np.ndarray:
    """Parse a PointCloud2 message into an (N, 3) float64 array.

    Points keep their message order; NaN and zero returns are left in place
    for the preprocessor to drop.
    """
    n_points = msg.width * msg.height
    if n_points == 0:
        return np.zeros((0, 3))

    fields = [_find_field(msg.fields, axis) for axis in ('x', 'y', 'z')]
    if any(f is None for f in fields):
        raise ValueError("PointCloud2 missing x/y/z fields")

    buf = np.frombuffer(bytes(msg.data), dtype=np.uint8)
    buf = buf[:n_points * msg.point_step].reshape(n_points, msg.point_step)

    xyz = np.zeros((n_points, 3), dtype=np.float64)
    for dim, ff in enumerate(fields):
        dt, sz = _POINTFIELD_DTYPES[ff.datatype]
        if msg.is_bigendian:
            dt = np.dtype(dt).newbyteorder('>')
        raw = buf[:, ff.offset:ff.offset + sz].copy()
        xyz[:, dim] = raw.view(dt).flatten().astype(np.float64)
    return xyz


def parse_imu(msg) -> ImuSample:
    """Parse a sensor_msgs/Imu message into an orientation sample."""
    q = msg.orientation
    return ImuSample(
        timestamp=_stamp_to_sec(msg.header.stamp),
        orientation=np.array([q.x, q.y, q.z, q.w]),
    )


def read_bag(bag_path: str, cloud_topic: str, imu_topic: str = None):
    """Read a ROS1 bag file and yield sensor data chronologically.

    Args:
        bag_path: Path to the .bag file.
        cloud_topic: Topic name for PointCloud2 messages.
        imu_topic: Topic name for IMU messages, None to skip IMU.

    Yields:
        Tuples of ('cloud', RawCloud) or ('imu', ImuSample), sorted by
        timestamp.
    """
    typestore = get_typestore(Stores.ROS1_NOETIC)
    bag = Path(bag_path)

    msgs = []

    with Reader(bag) as reader:
        for connection, _, rawdata in tqdm(
            reader.messages(), total=reader.message_count,
            desc="Reading bag", unit="msg", dynamic_ncols=True,
        ):
            topic = connection.topic
            if topic == cloud_topic:
                msg = typestore.deserialize_ros1(rawdata, connection.msgtype)
                stamp = _stamp_to_sec(msg.header.stamp)
                cloud = RawCloud(stamp=stamp, points=parse_pointcloud2(msg))
                msgs.append(('cloud', stamp, cloud))
            elif imu_topic is not None and topic == imu_topic:
                msg = typestore.deserialize_ros1(rawdata, connection.msgtype)
                imu = parse_imu(msg)
                msgs.append(('imu', imu.timestamp, imu))

    # IMU first on equal stamps so a scan sees its own orientation
    msgs.sort(key=lambda x: (x[1], x[0] != 'imu'))

    for msg_type, _, data in msgs:
        yield msg_type, data
