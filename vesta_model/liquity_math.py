"""
Fixed-point arithmetic helpers.

All amounts in the model are integers scaled by DECIMAL_PRECISION (1e18).
"""

DECIMAL_PRECISION = 10 ** 18
HALF_PRECISION = DECIMAL_PRECISION // 2

# Nominal ICR is scaled by 1e20 so small differences survive integer division
NICR_PRECISION = 10 ** 20

# Cap for dec_pow exponent, in minutes (1000 years)
MAX_POW_EXPONENT = 525_600_000

MAX_UINT256 = 2 ** 256 - 1

SECONDS_IN_ONE_MINUTE = 60


def dec(value, decimals=18):
    """Returns value scaled to the given number of decimals."""
    return value * 10 ** decimals


def dec_mul(x, y):
    """
    Multiplies two 18-decimal numbers, rounding half up.

    Args:
        x: First factor
        y: Second factor

    Returns:
        x * y / 1e18, rounded to the nearest unit
    """
    return (x * y + HALF_PRECISION) // DECIMAL_PRECISION


def dec_pow(base, minutes):
    """
    Raises an 18-decimal base to an integer power by repeated squaring.

    The exponent is capped at MAX_POW_EXPONENT; the loop runs at most
    log2(MAX_POW_EXPONENT) times.

    Args:
        base: 18-decimal base, expected to be <= 1e18
        minutes: Non-negative exponent

    Returns:
        base ** minutes as an 18-decimal number
    """
    if minutes < 0:
        raise ValueError("Exponent must be non-negative")
    if minutes > MAX_POW_EXPONENT:
        minutes = MAX_POW_EXPONENT

    if minutes == 0:
        return DECIMAL_PRECISION

    y = DECIMAL_PRECISION
    x = base
    n = minutes

    while n > 1:
        if n % 2 == 0:
            x = dec_mul(x, x)
            n = n // 2
        else:
            y = dec_mul(x, y)
            x = dec_mul(x, x)
            n = (n - 1) // 2

    return dec_mul(x, y)


def get_absolute_difference(a, b):
    return a - b if a >= b else b - a


def compute_cr(coll, debt, price):
    """
    Collateral ratio of a position: coll * price / debt.

    Returns MAX_UINT256 for a position without debt.
    """
    if debt > 0:
        return coll * price // debt
    return MAX_UINT256


def compute_nominal_cr(coll, debt):
    """Price-independent collateral ratio used to order positions."""
    if debt > 0:
        return coll * NICR_PRECISION // debt
    return MAX_UINT256


def issuance_factor(halving_period_seconds):
    """
    Per-minute decay factor for an issuance schedule with the given half-life.

    factor ** (halving_period / 60) == 0.5

    The root is taken in double precision. Its error of about 1e-16 relative
    compounds once per minute, so the half-life is off by roughly
    minutes * 1e-16, far inside a 1e-7 tolerance for any realistic period. The
    one-year default uses the published constant ONE_YEAR_ISSUANCE_FACTOR
    instead (see ProtocolConfig.issuance_factor).
    """
    if halving_period_seconds < SECONDS_IN_ONE_MINUTE:
        raise ValueError("Halving period must be at least one minute")
    minutes = halving_period_seconds / SECONDS_IN_ONE_MINUTE
    return int(round(DECIMAL_PRECISION * 2 ** (-1.0 / minutes)))
