from typing import Optional


def safe_rate(numerator: float, denominator: float, ndigits: int = 2) -> Optional[float]:
    """Percentage numerator/denominator*100, or None when the denominator is zero."""
    if not denominator:
        return None
    return round(float(numerator) * 100.0 / float(denominator), ndigits)
