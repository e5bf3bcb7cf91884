"""Configuration loader for the scan registration front end.

Reads YAML config files laid out like the loam_velodyne launch parameters,
mapping the same parameter names used in RegistrationParams (scanPeriod,
maxCornerSharp, ...).
"""
import os

import yaml
from dataclasses import dataclass

# Less sharp corner quota is a fixed multiple of the sharp quota.
LESS_SHARP_MULTIPLIER = 10


@dataclass
class RegistrationConfig:
    """Full registration configuration."""
    # Topics
    cloud_topic: str = "/sync_scan_cloud_filtered"
    imu_topic: str = "/imu/data"

    # Sweep timing
    scan_period: float = 0.1
    system_delay: int = 20  # warm-up messages discarded

    # Feature selection
    n_feature_regions: int = 4
    curvature_region: int = 5
    max_corner_sharp: int = 2
    max_surface_flat: int = 4
    surface_curvature_threshold: float = 0.1
    less_flat_filter_size: float = 0.2

    # Preprocess
    scan_line: int = 0
    min_point_norm_sq: float = 0.0001

    # Unreliable point pre-pass
    occlusion_gap_sq: float = 0.1
    occlusion_ratio: float = 0.1
    grazing_angle: float = 10.0  # degrees between beam and surface

    # Neighbor suppression
    neighbor_gap_sq: float = 0.05
    suppression_distance_sq: float = 0.05

    # IMU
    imu_en: bool = True
    imu_history_size: int = 200

    @property
    def max_corner_less_sharp(self) -> int:
        return self.max_corner_sharp * LESS_SHARP_MULTIPLIER

    @property
    def min_scan_size(self) -> int:
        """Smallest working scan that leaves at least one point to classify."""
        return 2 * self.curvature_region + 2

    def validate(self):
        """Raise ValueError on parameter combinations the extractor cannot use."""
        if self.scan_period <= 0:
            raise ValueError(f"scanPeriod must be positive, got {self.scan_period}")
        if self.system_delay < 0:
            raise ValueError(f"systemDelay must be >= 0, got {self.system_delay}")
        if self.n_feature_regions < 1:
            raise ValueError(
                f"featureRegions must be >= 1, got {self.n_feature_regions}")
        if self.curvature_region < 1:
            raise ValueError(
                f"curvatureRegion must be >= 1, got {self.curvature_region}")
        if self.max_corner_sharp < 0 or self.max_surface_flat < 0:
            raise ValueError("feature quotas must be >= 0")
        if self.imu_history_size < 2:
            raise ValueError(
                f"imuHistorySize must be >= 2, got {self.imu_history_size}")
        return self


def load_config(yaml_path: str) -> RegistrationConfig:
    """Load configuration from a YAML file.

    Keys missing from the file keep their dataclass defaults.
    """
    if not os.path.isfile(yaml_path):
        raise FileNotFoundError(f"Config file not found: {yaml_path}")

    with open(yaml_path, 'r') as f:
        cfg = yaml.safe_load(f) or {}

    rc = RegistrationConfig()

    # Common
    common = cfg.get('common', {})
    rc.cloud_topic = common.get('cloud_topic', rc.cloud_topic)
    rc.imu_topic = common.get('imu_topic', rc.imu_topic)

    # Registration
    reg = cfg.get('registration', {})
    rc.scan_period = float(reg.get('scanPeriod', rc.scan_period))
    rc.system_delay = int(reg.get('systemDelay', rc.system_delay))
    rc.n_feature_regions = int(reg.get('featureRegions', rc.n_feature_regions))
    rc.curvature_region = int(reg.get('curvatureRegion', rc.curvature_region))
    rc.max_corner_sharp = int(reg.get('maxCornerSharp', rc.max_corner_sharp))
    rc.max_surface_flat = int(reg.get('maxSurfaceFlat', rc.max_surface_flat))
    rc.surface_curvature_threshold = float(reg.get(
        'surfaceCurvatureThreshold', rc.surface_curvature_threshold))
    rc.less_flat_filter_size = float(reg.get(
        'lessFlatFilterSize', rc.less_flat_filter_size))
    rc.scan_line = int(reg.get('scanLine', rc.scan_line))
    rc.min_point_norm_sq = float(reg.get('minPointNormSq', rc.min_point_norm_sq))
    rc.occlusion_gap_sq = float(reg.get('occlusionGapSq', rc.occlusion_gap_sq))
    rc.occlusion_ratio = float(reg.get('occlusionRatio', rc.occlusion_ratio))
    rc.grazing_angle = float(reg.get('grazingAngle', rc.grazing_angle))
    rc.neighbor_gap_sq = float(reg.get('neighborGapSq', rc.neighbor_gap_sq))
    rc.suppression_distance_sq = float(reg.get(
        'suppressionDistanceSq', rc.suppression_distance_sq))

    # IMU
    imu = cfg.get('imu', {})
    rc.imu_en = bool(imu.get('imu_en', rc.imu_en))
    rc.imu_history_size = int(imu.get('imuHistorySize', rc.imu_history_size))

    return rc.validate()
