import time


def _now_iso() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def _elapsed_ms(started: float) -> int:
    return int(round((time.monotonic() - started) * 1000))
