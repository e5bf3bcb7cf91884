"""Offline feature extraction pipeline.

Replays a rosbag through ScanRegistration exactly as the live node would:
one cloud message at a time, IMU orientation fed in between.
"""
import os
import time

from tqdm import tqdm

from .bag_reader import read_bag
from .config import RegistrationConfig
from .imu import ImuOrientationBuffer
from .numba_kernels import warmup as numba_warmup
from .output import BackgroundEmitter, CsvEmitter
from .registration import ScanRegistration


class FeatureExtractionPipeline:
    """Read a rosbag and write per-message feature clouds as CSV."""

    def __init__(self, config: RegistrationConfig):
        self.config = config
        self.imu_buffer = None
        if config.imu_en:
            self.imu_buffer = ImuOrientationBuffer(
                scan_period=config.scan_period,
                history_size=config.imu_history_size,
            )

    def run(self, bag_path: str, output_dir: str,
            include_full_cloud: bool = True) -> int:
        """Process an entire bag file.

        Args:
            bag_path: Path to the .bag file.
            output_dir: Directory for the per-message CSV files.
            include_full_cloud: Also write the compensated full scan.

        Returns:
            Number of processed (non warm-up) messages.
        """
        os.makedirs(output_dir, exist_ok=True)
        # Pre-compile all Numba JIT functions
        print("[Pipeline] Compiling Numba JIT kernels...")
        numba_warmup()
        print("[Pipeline] JIT compilation complete.")

        print(f"[Pipeline] Reading bag: {bag_path}")
        print(f"[Pipeline] Cloud topic: {self.config.cloud_topic}")
        print(f"[Pipeline] IMU topic: {self.config.imu_topic}")
        print(f"[Pipeline] IMU enabled: {self.config.imu_en}")

        imu_topic = self.config.imu_topic if self.config.imu_en else None
        messages = list(read_bag(bag_path, self.config.cloud_topic, imu_topic))
        n_clouds = sum(1 for msg_type, _ in messages if msg_type == 'cloud')
        print(f"\n[Pipeline] Loaded {n_clouds} cloud messages, "
              f"{len(messages) - n_clouds} IMU messages")

        if n_clouds == 0:
            print("[Pipeline] No cloud messages found. Check topic name.")
            return 0

        emitter = BackgroundEmitter(
            CsvEmitter(output_dir, include_full_cloud=include_full_cloud))
        registration = ScanRegistration(
            self.config, emitter=emitter, compensator=self.imu_buffer)

        t_start = time.time()
        skipped_imu = 0
        pbar = tqdm(total=n_clouds, desc="Extracting features",
                    unit="scan", dynamic_ncols=True)
        try:
            for msg_type, data in messages:
                if msg_type == 'imu':
                    try:
                        self.imu_buffer.add_sample(data)
                    except ValueError:
                        skipped_imu += 1
                    continue

                sweep_index = registration.sweep.index
                result = registration.handle_cloud_message(data.points, data.stamp)
                pbar.update(1)
                if result is None:
                    continue
                if result.sweep_index != sweep_index:
                    tqdm.write(f"[Pipeline] New sweep {result.sweep_index} "
                               f"at t={result.stamp:.3f}")
                pbar.set_postfix(sweep=result.sweep_index,
                                 sharp=len(result.corner_sharp),
                                 less_flat=len(result.surface_less_flat))
        finally:
            pbar.close()
            emitter.close()

        elapsed = time.time() - t_start
        count = registration.scan_count
        rate = count / elapsed if elapsed > 0 else 0.0
        print(f"\n[Pipeline] Done. {count} scans in {elapsed:.1f}s "
              f"({rate:.1f} scans/s)")
        if skipped_imu:
            print(f"[Pipeline] Skipped {skipped_imu} out-of-order IMU messages")
        if emitter.dropped:
            print(f"[Pipeline] WARNING: {emitter.dropped} results dropped "
                  f"by the output queue")
        print(f"[Pipeline] Feature clouds written to: {output_dir}")
        return count
