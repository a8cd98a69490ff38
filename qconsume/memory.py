import os
import resource
import sys


def memory_usage() -> int:
    """Return the resident memory of this process in bytes.

    Reads the current resident set on Linux. Elsewhere falls back to the
    peak resident set reported by ``getrusage``.
    """
    try:
        with open("/proc/self/statm", "rb") as f:
            resident_pages = int(f.read().split()[1])
    except (OSError, IndexError, ValueError):
        pass
    else:
        return resident_pages * os.sysconf("SC_PAGE_SIZE")

    peak = resource.getrusage(resource.RUSAGE_SELF).ru_maxrss
    # macOS reports bytes, other platforms report kilobytes
    return peak if sys.platform == "darwin" else peak * 1024


def megabytes(value: int | float) -> int:
    return int(value * 1024 * 1024)
