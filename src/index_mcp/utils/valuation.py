"""Valuation heuristics for the tracked index.

No live distribution of historical PE ratios is available, so a fixed band
stands in for it: the index has traded roughly between 22x and 38x earnings.
"""

# PE ratio mapped to the 0th / 100th percentile
PE_FLOOR = 22.0
PE_CEILING = 38.0

# Substituted when the provider returns no usable PE ratio
DEFAULT_PE_RATIO = 32.5

# Rough tech-sector PE/PB ratio used to estimate price-to-book
SECTOR_PE_TO_PB = 6.5


def estimate_pe_percentile(pe_ratio: float) -> float:
    """
    Map a PE ratio onto a 0-100 historical percentile.

    Linear between PE_FLOOR (0) and PE_CEILING (100), clamped outside.

    Args:
        pe_ratio: Current trailing PE ratio

    Returns:
        Percentile rounded to one decimal
    """
    pct = (pe_ratio - PE_FLOOR) / (PE_CEILING - PE_FLOOR) * 100
    return round(min(100.0, max(0.0, pct)), 1)


def estimate_pb_ratio(pe_ratio: float) -> float:
    """Estimate price-to-book from PE via the sector-average divisor."""
    return round(pe_ratio / SECTOR_PE_TO_PB, 2)
