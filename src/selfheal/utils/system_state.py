"""System state snapshots for the healing context."""

import logging
import os

import psutil

from ..models.healing_models import SystemState

logger = logging.getLogger(__name__)


def _normalized_load(cpu_percent: float) -> float:
    """1-minute load average per CPU, falling back to CPU percent."""
    try:
        load_1m, _, _ = psutil.getloadavg()
        cpus = psutil.cpu_count() or 1
        return max(0.0, min(load_1m / cpus, 1.0))
    except (AttributeError, OSError):
        return max(0.0, min(cpu_percent / 100.0, 1.0))


def capture_system_state(
    active_tests: int = 0, queue_length: int = 0, disk_path: str = os.sep
) -> SystemState:
    """
    Capture a load and resource snapshot.

    GOTCHA: cpu_percent(interval=None) compares against the previous call,
    so the first snapshot in a process may report 0.0

    Args:
        active_tests: Tests currently running, as known by the caller
        queue_length: Tests waiting to run
        disk_path: Path whose filesystem usage is reported

    Returns:
        SystemState snapshot (zeroed if psutil cannot read the system)
    """
    try:
        cpu_percent = psutil.cpu_percent(interval=None)
        memory_percent = psutil.virtual_memory().percent
        disk_percent = psutil.disk_usage(disk_path).percent
    except (psutil.Error, OSError) as e:
        logger.warning(f"Error getting system state: {e}")
        return SystemState(active_tests=active_tests, queue_length=queue_length)

    return SystemState(
        load=_normalized_load(cpu_percent),
        cpu_percent=cpu_percent,
        memory_percent=memory_percent,
        disk_percent=disk_percent,
        active_tests=active_tests,
        queue_length=queue_length,
    )
