"""Test utilities for building Apex debug logs."""

HEADER = "64.0 APEX_CODE,FINEST;APEX_PROFILING,INFO;CALLOUT,INFO;DB,INFO;SYSTEM,DEBUG"

MS = 1_000_000


def event(ns: int, name: str, *fields: str) -> str:
    """Build one timestamped log line, e.g. ``12:00:00.002 (2000000)|METHOD_ENTRY|...``."""
    millis = ns // MS
    stamp = f"12:00:{millis // 1000:02d}.{millis % 1000:03d} ({ns})"
    return "|".join([stamp, name, *fields])


def build_log(*lines: str, header: str | None = HEADER) -> str:
    """Join lines into log text, prefixed by the level header unless it is None."""
    body = [header, *lines] if header is not None else list(lines)
    return "\n".join(body)


def trigger_start(ns: int, name: str = "AccountTrigger") -> str:
    return event(
        ns,
        "CODE_UNIT_STARTED",
        "[EXTERNAL]",
        "01q000000000001",
        f"{name} on Account trigger event BeforeInsert",
        f"__sfdc_trigger/{name}",
    )


def trigger_finish(ns: int, name: str = "AccountTrigger") -> str:
    return event(
        ns,
        "CODE_UNIT_FINISHED",
        f"{name} on Account trigger event BeforeInsert",
        f"__sfdc_trigger/{name}",
    )


def method_entry(ns: int, signature: str, line: int = 1) -> str:
    return event(ns, "METHOD_ENTRY", f"[{line}]", "01p000000000001", signature)


def method_exit(ns: int, signature: str, line: int = 1) -> str:
    return event(ns, "METHOD_EXIT", f"[{line}]", "01p000000000001", signature)
