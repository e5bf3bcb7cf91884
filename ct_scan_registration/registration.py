"""Scan registration for a continuously rotating 2D laser scanner.

Matches the message flow of loam_velodyne's CtRot2DScanRegistration:
sweep detection -> reset -> point filtering/compensation -> feature
extraction -> publish. Not thread-safe; callers must serialize messages.
"""
import numpy as np

from .config import RegistrationConfig
from .downsampler import voxel_grid_downsample
from .features import extract_features
from .preprocess import Preprocessor, valid_point_mask
from .sweep import SweepState, detect_sweep_boundary
from .types import ScanResult


class ScanRegistration:
    """Turn raw point messages into sweep-accumulated feature clouds."""

    def __init__(self, config: RegistrationConfig, emitter=None,
                 compensator=None):
        """
        Args:
            config: Registration parameters.
            emitter: Optional object with ``emit(ScanResult)``.
            compensator: Optional motion compensation source with
                ``begin_scan(scan_time, sweep_start_time)`` and
                ``transforms_for(rel_times)``.
        """
        self.config = config.validate()
        self.emitter = emitter
        self.compensator = compensator
        self.preprocessor = Preprocessor(
            scan_period=config.scan_period,
            scan_line=config.scan_line,
            min_point_norm_sq=config.min_point_norm_sq,
        )
        self.system_delay = config.system_delay
        self.sweep = SweepState()
        self.scan_count = 0

    def handle_cloud_message(self, points_raw: np.ndarray, stamp: float):
        """Entry point for transport: drops warm-up messages, then processes.

        Returns:
            ScanResult, or None while the sensor is still settling.
        """
        if self.system_delay > 0:
            self.system_delay -= 1
            return None
        return self.process(points_raw, stamp)

    def is_new_sweep(self, points_raw: np.ndarray, stamp: float) -> bool:
        """Sweep boundary test on the first and last valid raw points."""
        if len(points_raw) == 0:
            return False
        valid_idx = np.nonzero(
            valid_point_mask(points_raw, self.config.min_point_norm_sq))[0]
        if len(valid_idx) < 2:
            return False
        return detect_sweep_boundary(
            points_raw[valid_idx[0]], points_raw[valid_idx[-1]], stamp,
            self.sweep, self.config.scan_period)

    def reset(self, stamp: float, new_sweep: bool):
        """Start a new sweep if needed and set the compensation reference."""
        sweep = self.sweep
        if sweep.start_time is None:
            # nominal sweep 0 starts with the first processed message
            self.sweep = SweepState.begin(stamp, sweep.rotation_direction,
                                          sweep.index)
        elif new_sweep:
            self.sweep = SweepState.begin(stamp, -sweep.rotation_direction,
                                          sweep.index + 1)

        if self.compensator is not None:
            self.compensator.begin_scan(stamp, self.sweep.start_time)

    def process(self, points_raw: np.ndarray, stamp: float) -> ScanResult:
        """Process one raw message to completion and emit the result.

        Args:
            points_raw: (N, 3) points in sensor-native axes.
            stamp: Message time in seconds.
        """
        points_raw = np.asarray(points_raw, dtype=np.float64).reshape(-1, 3)

        new_sweep = self.is_new_sweep(points_raw, stamp)
        self.reset(stamp, new_sweep)

        scan = self.preprocessor.process(points_raw, self.compensator)
        features = extract_features(scan, self.config)

        sweep = self.sweep
        sweep.append('corner_sharp', features.corner_sharp)
        sweep.append('corner_less_sharp', features.corner_less_sharp)
        sweep.append('surface_flat', features.surface_flat)

        # down size less flat surface cloud of the current scan
        less_flat_ds = voxel_grid_downsample(
            features.less_flat_candidates, self.config.less_flat_filter_size)
        sweep.append('surface_less_flat', less_flat_ds)

        result = ScanResult(
            stamp=stamp,
            full_cloud=scan,
            corner_sharp=sweep.cloud('corner_sharp'),
            corner_less_sharp=sweep.cloud('corner_less_sharp'),
            surface_flat=sweep.cloud('surface_flat'),
            surface_less_flat=sweep.cloud('surface_less_flat'),
            sweep_index=sweep.index,
            new_sweep=new_sweep,
        )
        self.scan_count += 1

        if self.emitter is not None:
            self.emitter.emit(result)
        return result
