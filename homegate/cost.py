"""Electricity cost estimates in Saudi Riyals from sector tariffs."""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Dict, Optional

from .errors import PolicyDenied
from .policy import CAPABILITY_DENIED

if TYPE_CHECKING:
    from .household import Member


@dataclass(frozen=True)
class SectorConfig:
    label: str
    min_rate_halala: float
    max_rate_halala: float


SECTORS: Dict[str, SectorConfig] = {
    "residential": SectorConfig("Residential", 18, 30),
    "commercial": SectorConfig("Commercial/Industrial", 22, 32),
}

HALALA_PER_SAR = 100


def compute_cost(kwh: float, rate_halala: float) -> float:
    energy = kwh if math.isfinite(kwh) else 0.0
    return round(energy * rate_halala / HALALA_PER_SAR, 2)


def format_sar(amount: float) -> str:
    safe = amount if math.isfinite(amount) else 0.0
    return f"SAR {safe:.2f}"


def validate_usage(kwh: float) -> Optional[str]:
    if not math.isfinite(kwh):
        return "Enter a valid energy usage value in kWh."
    if kwh < 0:
        return "Energy usage must be zero or a positive number."
    return None


def validate_rate(rate_halala: float, sector: str) -> Optional[str]:
    config = SECTORS.get(sector)
    if config is None:
        return f"Unknown sector: {sector}. Use one of: {', '.join(SECTORS)}."
    if not math.isfinite(rate_halala):
        return "Enter a valid rate in halalas."
    if rate_halala < config.min_rate_halala or rate_halala > config.max_rate_halala:
        return (
            f"{config.label} rates must be between {config.min_rate_halala:g} and "
            f"{config.max_rate_halala:g} halalas per kWh."
        )
    return None


def validate_inputs(kwh: float, rate_halala: float, sector: str) -> Optional[str]:
    return validate_usage(kwh) or validate_rate(rate_halala, sector)


def estimate_cost(member: "Member", kwh: float, rate_halala: float, sector: str = "residential") -> float:
    """Cost of ``kwh`` at ``rate_halala`` for a member allowed to view power data."""
    if not member.policies.control("power"):
        raise PolicyDenied("You are not allowed to view power usage.", CAPABILITY_DENIED)
    error = validate_inputs(kwh, rate_halala, sector)
    if error:
        raise ValueError(error)
    return compute_cost(kwh, rate_halala)
