#!/usr/bin/env python3
"""Continuous-rotation 2D LiDAR feature extraction.

One-command processing: rosbag in -> per-scan feature clouds out.

Usage:
    python run.py my_scan.bag
    python run.py my_scan.bag --config custom.yaml
    python run.py my_scan.bag --output-dir results/
    python run.py my_scan.bag --no-imu

Outputs (all saved to --output-dir, default: <bag name>_features/ next to
the bag), one CSV per cloud per processed message:
    scan_000000_full_cloud.csv         - compensated full scan
    scan_000000_corner_sharp.csv       - sharp corner points of the sweep
    scan_000000_corner_less_sharp.csv  - less sharp corner points
    scan_000000_surface_flat.csv       - flat surface points
    scan_000000_surface_less_flat.csv  - downsampled less flat points
"""
import argparse
import os
import sys
import time

# Add this directory to path so ct_scan_registration is importable
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from ct_scan_registration.config import load_config
from ct_scan_registration.pipeline import FeatureExtractionPipeline


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description='Continuous-rotation 2D LiDAR feature extraction\n\n'
                    'Process a rosbag and produce per-scan CSV files for:\n'
                    '  1. Compensated full scan\n'
                    '  2. Sharp and less sharp corner points\n'
                    '  3. Flat and less flat surface points',
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('bag', help='Path to ROS1 .bag file')
    parser.add_argument('--config', default=None,
                        help='Path to YAML config file '
                             '(default: config/ct_2d.yaml in this folder)')
    parser.add_argument('--output-dir', default=None,
                        help='Output directory '
                             '(default: <bag name>_features next to the bag)')
    parser.add_argument('--cloud-topic', default=None,
                        help='Override point cloud topic from config')
    parser.add_argument('--imu-topic', default=None,
                        help='Override IMU topic from config')
    parser.add_argument('--no-imu', action='store_true',
                        help='Disable IMU motion compensation')
    parser.add_argument('--skip-full-cloud', action='store_true',
                        help='Do not write the full scan CSVs')
    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    bag_path = os.path.abspath(args.bag)
    if not os.path.isfile(bag_path):
        print(f"Error: Bag file not found: {bag_path}")
        sys.exit(1)

    # Config
    if args.config:
        config_path = os.path.abspath(args.config)
    else:
        config_path = os.path.join(
            os.path.dirname(os.path.abspath(__file__)), 'config', 'ct_2d.yaml')

    try:
        config = load_config(config_path)
    except (FileNotFoundError, ValueError) as exc:
        print(f"Error: {exc}")
        sys.exit(1)

    if args.cloud_topic:
        config.cloud_topic = args.cloud_topic
    if args.imu_topic:
        config.imu_topic = args.imu_topic
    if args.no_imu:
        config.imu_en = False

    # Output directory
    if args.output_dir:
        out_dir = os.path.abspath(args.output_dir)
    else:
        stem = os.path.splitext(os.path.basename(bag_path))[0]
        out_dir = os.path.join(os.path.dirname(bag_path), f"{stem}_features")
    os.makedirs(out_dir, exist_ok=True)

    print("=" * 60)
    print("  CT-2D Scan Registration")
    print("=" * 60)
    print(f"  Bag:        {bag_path}")
    print(f"  Config:     {config_path}")
    print(f"  Output dir: {out_dir}")
    print(f"  Scan period:        {config.scan_period:.3f}s")
    print(f"  Warm-up messages:   {config.system_delay}")
    print(f"  Feature regions:    {config.n_feature_regions}")
    print(f"  Corner quota:       {config.max_corner_sharp} sharp / "
          f"{config.max_corner_less_sharp} total")
    print(f"  Flat quota:         {config.max_surface_flat}")
    print("=" * 60)

    t0 = time.time()
    pipeline = FeatureExtractionPipeline(config)
    count = pipeline.run(bag_path, out_dir,
                         include_full_cloud=not args.skip_full_cloud)
    total = time.time() - t0

    print("\n" + "=" * 60)
    print("  Extraction Complete!")
    print("=" * 60)
    print(f"  Total time: {total:.1f}s")
    print(f"  Processed scans: {count}")
    print(f"  Outputs: {out_dir}/")
    print()


if __name__ == '__main__':
    main()
