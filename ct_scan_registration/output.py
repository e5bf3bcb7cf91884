"""Result emitters and point cloud writers.

An emitter receives exactly one ScanResult per processed message. The
registration never waits on it: BackgroundEmitter hands results to a worker
thread so a slow sink cannot stall the next message.
"""
import os
import queue
import threading

import numpy as np

from .types import ScanResult


def write_cloud_csv(filepath: str, points: np.ndarray):
    """Write a single point cloud as CSV.

    Columns: x,y,z,intensity

    Args:
        filepath: Output file path.
        points: (N, 4) array [x, y, z, intensity].
    """
    with open(filepath, 'w') as f:
        f.write("x,y,z,intensity\n")
        for i in range(len(points)):
            f.write(f"{points[i, 0]:.6f},{points[i, 1]:.6f},"
                    f"{points[i, 2]:.6f},{points[i, 3]:.6f}\n")


class CallbackEmitter:
    """Forward every result to a callable."""

    def __init__(self, callback):
        self.callback = callback

    def emit(self, result: ScanResult):
        self.callback(result)

    def close(self):
        pass


class CsvEmitter:
    """Write each result as one CSV per cloud into output_dir.

    Files are named scan_000042_corner_sharp.csv etc.; the counter is the
    emission order.
    """

    def __init__(self, output_dir: str, include_full_cloud: bool = True):
        os.makedirs(output_dir, exist_ok=True)
        self.output_dir = output_dir
        self.include_full_cloud = include_full_cloud
        self.count = 0

    def emit(self, result: ScanResult):
        for name, cloud in result.clouds().items():
            if name == 'full_cloud' and not self.include_full_cloud:
                continue
            path = os.path.join(self.output_dir,
                                f"scan_{self.count:06d}_{name}.csv")
            write_cloud_csv(path, cloud)
        self.count += 1

    def close(self):
        pass


class BackgroundEmitter:
    """Fire-and-forget wrapper that runs another emitter on a worker thread.

    emit() never blocks. The queue is unbounded by default, so every result
    reaches the sink. A positive max_queue caps memory instead: when the
    queue is full the result is dropped and counted in ``dropped``. The first
    exception raised by the sink stops delivery and is re-raised by close().
    """

    _STOP = object()

    def __init__(self, sink, max_queue: int = 0):
        self.sink = sink
        self.dropped = 0
        self.error = None
        self._queue = queue.Queue(maxsize=max_queue)
        self._thread = threading.Thread(target=self._worker, daemon=True)
        self._thread.start()

    def _worker(self):
        while True:
            item = self._queue.get()
            try:
                if item is self._STOP:
                    return
                if self.error is None:
                    self.sink.emit(item)
            except Exception as exc:
                self.error = exc
            finally:
                self._queue.task_done()

    def emit(self, result: ScanResult):
        try:
            self._queue.put_nowait(result)
        except queue.Full:
            self.dropped += 1

    def flush(self):
        """Wait until every queued result has been delivered."""
        self._queue.join()

    def close(self):
        """Deliver outstanding results, stop the worker and close the sink."""
        self._queue.put(self._STOP)
        self._thread.join()
        self.sink.close()
        if self.error is not None:
            raise self.error
