import os
import signal
import time
from pathlib import Path


def read_pid(pid_path: Path) -> int | None:
    try:
        return int(pid_path.read_text().strip())
    except (ValueError, OSError):
        return None


def write_pid(pid_path: Path, pid: int) -> None:
    pid_path.parent.mkdir(parents=True, exist_ok=True)
    pid_path.write_text(str(pid))


def remove_pid(pid_path: Path) -> None:
    pid_path.unlink(missing_ok=True)


def is_process_running(pid: int) -> bool:
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def running_daemon_pid(pid_path: Path) -> int | None:
    """PID of the running daemon; a stale pid file is removed."""
    pid = read_pid(pid_path)
    if pid is None:
        return None
    if not is_process_running(pid):
        remove_pid(pid_path)
        return None
    return pid


def stop_daemon(pid_path: Path, timeout: float = 5.0) -> bool:
    pid = running_daemon_pid(pid_path)
    if pid is None:
        return False

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        remove_pid(pid_path)
        return False

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline and is_process_running(pid):
        time.sleep(0.1)
    return True
