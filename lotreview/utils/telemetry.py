import time
import functools
import logging
import threading
import psutil
import os
from collections import deque
from typing import Optional, Any, List, Dict
from datetime import datetime

logger = logging.getLogger("PerformanceMonitor")

MAX_EVENTS = 50


class PerformanceMonitor:
    """
    Centralized store for performance metrics of ingestion, delivery and reporting.
    Keeps the most recent events in a process-local buffer, newest first.
    """
    _events: deque = deque(maxlen=MAX_EVENTS)
    _lock = threading.Lock()

    @staticmethod
    def get_logs() -> List[Dict[str, Any]]:
        with PerformanceMonitor._lock:
            return list(PerformanceMonitor._events)

    @staticmethod
    def log_event(operation: str, duration_sec: float, memory_delta_mb: float = 0.0, details: str = ""):
        entry = {
            "Timestamp": datetime.now().strftime("%H:%M:%S"),
            "Operation": operation,
            "Duration (s)": round(duration_sec, 4),
            "Memory Delta (MB)": round(memory_delta_mb, 2),
            "Details": details
        }

        with PerformanceMonitor._lock:
            PerformanceMonitor._events.appendleft(entry)

        logger.info(f"PERF | {operation} | {duration_sec:.4f}s | {memory_delta_mb:.2f}MB | {details}")

    @staticmethod
    def clear_logs():
        with PerformanceMonitor._lock:
            PerformanceMonitor._events.clear()


def get_process_memory_mb() -> float:
    """Returns current process memory usage in MB."""
    process = psutil.Process(os.getpid())
    return process.memory_info().rss / 1024 / 1024


def track_performance(operation_name: Optional[str] = None):
    """
    Decorator to track execution time and memory impact of a function.
    """
    def decorator(func):
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            op_name = operation_name or func.__name__

            start_time = time.perf_counter()
            start_mem = get_process_memory_mb()

            try:
                return func(*args, **kwargs)
            finally:
                duration = time.perf_counter() - start_time
                mem_delta = get_process_memory_mb() - start_mem
                PerformanceMonitor.log_event(op_name, duration, mem_delta)

        return wrapper
    return decorator
