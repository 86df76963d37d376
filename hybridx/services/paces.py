"""
HybridX API - Running pace calculations.

Training paces from Jack Daniels' VDOT model. Benchmarks are race times in
seconds over known distances; paces come back in seconds per mile.
"""

import math
from typing import Dict, Mapping, Optional

METERS_PER_MILE = 1609.34

BENCHMARK_DISTANCES = {
    "mile": METERS_PER_MILE,
    "five_k": 5000.0,
    "ten_k": 10000.0,
    "half_marathon": 21097.5,
}

# Share of VDOT velocity for each training zone
ZONE_INTENSITY = {
    "recovery": 0.65,
    "easy": 0.70,
    "marathon": 0.83,
    "threshold": 0.88,
    "interval": 0.975,
    "repetition": 1.05,
}

EXPERIENCE_ADJUSTMENT = {
    "beginner": 1.08,
    "intermediate": 1.04,
}


def calculate_vdot(distance_meters: float, time_seconds: float) -> float:
    """VDOT for a race performance; 0 for non-positive times."""
    if time_seconds <= 0 or distance_meters <= 0:
        return 0.0
    minutes = time_seconds / 60
    velocity = distance_meters / minutes  # meters per minute
    percent_max = (
        0.8
        + 0.1894393 * math.exp(-0.012778 * minutes)
        + 0.2989558 * math.exp(-0.1932605 * minutes)
    )
    vo2 = -4.60 + 0.182258 * velocity + 0.000104 * velocity ** 2
    return vo2 / percent_max


def paces_from_vdot(vdot: float) -> Dict[str, float]:
    """Seconds per mile for each zone."""
    velocity = 29.54 + 5.000663 * vdot - 0.007546 * vdot ** 2  # meters per minute
    return {
        zone: METERS_PER_MILE / (velocity * share) * 60
        for zone, share in ZONE_INTENSITY.items()
    }


def calculate_training_paces(
    benchmark_paces: Optional[Mapping[str, float]],
    experience: str = "advanced",
) -> Optional[Dict[str, int]]:
    """
    Training paces from the best benchmark, or None without usable data.

    Beginners and intermediates get slightly slower paces.
    """
    if not benchmark_paces:
        return None

    best = 0.0
    for name, distance in BENCHMARK_DISTANCES.items():
        seconds = benchmark_paces.get(name) or 0
        best = max(best, calculate_vdot(distance, seconds))
    if best <= 0:
        return None

    factor = EXPERIENCE_ADJUSTMENT.get(experience, 1.0)
    return {zone: round(pace * factor) for zone, pace in paces_from_vdot(best).items()}


def time_string_to_seconds(value: str) -> int:
    """
    Parse "MM:SS", "HH:MM:SS" or "H:" into seconds; 0 when unparseable.

    Two-part values with a first part above 59 are read as HH:MM.
    """
    if not value or ":" not in value:
        return 0
    raw_parts = value.split(":")
    try:
        parts = [int(p) for p in raw_parts if p.strip()]
    except ValueError:
        return 0

    if len(parts) == 2:
        if parts[0] > 59:
            return parts[0] * 3600 + parts[1] * 60
        return parts[0] * 60 + parts[1]
    if len(parts) == 3:
        return parts[0] * 3600 + parts[1] * 60 + parts[2]
    if len(parts) == 1 and len(raw_parts) == 2:
        return parts[0] * 3600
    return 0


def seconds_to_time_string(total_seconds: float) -> str:
    """Format seconds as "M:SS" or "H:MM:SS"; empty for non-positive input."""
    if not total_seconds or total_seconds <= 0:
        return ""
    total = int(round(total_seconds))
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def format_pace(pace_seconds: float) -> str:
    if pace_seconds <= 0:
        return "N/A"
    total = int(round(pace_seconds))
    return f"{total // 60}:{total % 60:02d}"
