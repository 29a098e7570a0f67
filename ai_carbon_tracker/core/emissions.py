"""
Emission calculations.

Converts token counts into estimated CO2 mass using a single linear
emission factor, and expresses a mass as everyday equivalents.
"""

from dataclasses import dataclass

# kg CO2 per 1000 tokens
DEFAULT_EMISSION_FACTOR = 0.0004

# kg CO2 per unit of each everyday equivalent
KG_PER_TREE_YEAR = 21.0
KG_PER_KM_DRIVEN = 0.12
KG_PER_SMARTPHONE_CHARGE = 0.011
KG_PER_BULB_HOUR = 0.0006  # 60W incandescent


def calculate_emissions(total_tokens: int, emission_factor: float) -> float:
    """Estimate emitted mass for a number of tokens.

    Args:
        total_tokens: Tokens processed (input + output)
        emission_factor: kg CO2 per 1000 tokens

    Returns:
        Estimated mass in kg CO2

    Raises:
        ValueError: If either argument is negative
    """
    if total_tokens < 0:
        raise ValueError("total_tokens cannot be negative")
    if emission_factor < 0:
        raise ValueError("emission_factor cannot be negative")
    return (total_tokens / 1000) * emission_factor


@dataclass(frozen=True)
class Equivalents:
    """Everyday comparisons for an emitted mass."""
    trees_needed: float  # trees growing for a year to offset
    km_driven: float  # average car
    smartphone_charges: float
    bulb_hours: float  # 60W bulb


def compute_equivalents(mass_kg: float) -> Equivalents:
    """Express mass_kg as everyday equivalents."""
    return Equivalents(
        trees_needed=mass_kg / KG_PER_TREE_YEAR,
        km_driven=mass_kg / KG_PER_KM_DRIVEN,
        smartphone_charges=mass_kg / KG_PER_SMARTPHONE_CHARGE,
        bulb_hours=mass_kg / KG_PER_BULB_HOUR
    )
