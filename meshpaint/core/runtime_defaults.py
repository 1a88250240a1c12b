"""
Runtime defaults for the paint engine, gesture session and CLI.

Values can be overridden via environment variables to avoid hardcoded tuning
in multiple entrypoints.
"""

from __future__ import annotations

from dataclasses import dataclass
import os


ENV_CURSOR_RADIUS = "MESHPAINT_CURSOR_RADIUS"
ENV_EDGE_LIMIT_RATIO = "MESHPAINT_EDGE_LIMIT_RATIO"
ENV_MIN_EDGE_LENGTH = "MESHPAINT_MIN_EDGE_LENGTH"
ENV_MAX_SPLIT_DEPTH = "MESHPAINT_MAX_SPLIT_DEPTH"
ENV_SMART_FILL_ANGLE = "MESHPAINT_SMART_FILL_ANGLE"
ENV_GAP_AREA = "MESHPAINT_GAP_AREA"
ENV_HISTORY_LIMIT = "MESHPAINT_HISTORY_LIMIT"
ENV_STRICT_CHECKS = "MESHPAINT_STRICT_CHECKS"

# Wheel adjustment ranges (gesture session).
CURSOR_RADIUS_MIN = 0.4
CURSOR_RADIUS_MAX = 8.0
CURSOR_RADIUS_STEP = 0.2
SMART_FILL_ANGLE_MIN = 0.0
SMART_FILL_ANGLE_MAX = 90.0
SMART_FILL_ANGLE_STEP = 5.0
GAP_AREA_MIN = 0.0
GAP_AREA_MAX = 5.0
GAP_AREA_STEP = 0.1


@dataclass(frozen=True)
class RuntimeDefaults:
    cursor_radius: float
    edge_limit_ratio: float
    min_edge_length: float
    max_split_depth: int
    smart_fill_angle_deg: float
    gap_area: float
    history_limit: int
    strict_checks: bool


def _read_int_env(
    env_name: str,
    default: int,
    *,
    min_value: int | None = None,
    max_value: int | None = None,
) -> int:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = int(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if min_value is not None and value < min_value:
        return default
    if max_value is not None and value > max_value:
        return default
    return value


def _read_float_env(
    env_name: str,
    default: float,
    *,
    min_value: float | None = None,
    max_value: float | None = None,
) -> float:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    try:
        value = float(str(raw).strip())
    except (TypeError, ValueError):
        return default

    if value != value:  # NaN
        return default
    if min_value is not None and value < min_value:
        return default
    if max_value is not None and value > max_value:
        return default
    return value


def _read_bool_env(env_name: str, default: bool) -> bool:
    raw = os.environ.get(env_name)
    if raw is None:
        return default
    value = str(raw).strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    return default


def load_runtime_defaults() -> RuntimeDefaults:
    return RuntimeDefaults(
        cursor_radius=_read_float_env(
            ENV_CURSOR_RADIUS,
            2.0,
            min_value=CURSOR_RADIUS_MIN,
            max_value=CURSOR_RADIUS_MAX,
        ),
        edge_limit_ratio=_read_float_env(ENV_EDGE_LIMIT_RATIO, 0.2, min_value=0.01, max_value=1.0),
        min_edge_length=_read_float_env(ENV_MIN_EDGE_LENGTH, 0.01, min_value=1e-6),
        max_split_depth=_read_int_env(ENV_MAX_SPLIT_DEPTH, 8, min_value=0, max_value=16),
        smart_fill_angle_deg=_read_float_env(
            ENV_SMART_FILL_ANGLE,
            30.0,
            min_value=SMART_FILL_ANGLE_MIN,
            max_value=SMART_FILL_ANGLE_MAX,
        ),
        gap_area=_read_float_env(ENV_GAP_AREA, GAP_AREA_MIN, min_value=GAP_AREA_MIN, max_value=GAP_AREA_MAX),
        history_limit=_read_int_env(ENV_HISTORY_LIMIT, 50, min_value=1, max_value=10_000),
        strict_checks=_read_bool_env(ENV_STRICT_CHECKS, False),
    )


DEFAULTS = load_runtime_defaults()
