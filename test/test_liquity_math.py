"""
Unit tests for the fixed-point helpers and the reward issuance curve.

The issuance reference values are those published for a one-year halving
period: fraction of the supply cap issued after each elapsed time, with the
matching total for a 32M cap.
"""

import unittest

from vesta_model import VestaProtocol
from vesta_model.config import ONE_DAY, ONE_HOUR, ONE_MINUTE, ONE_WEEK, ONE_YEAR, ONE_YEAR_ISSUANCE_FACTOR
from vesta_model.liquity_math import (DECIMAL_PRECISION, MAX_POW_EXPONENT, MAX_UINT256, compute_cr,
                                      compute_nominal_cr, dec, dec_mul, dec_pow, issuance_factor)

ONE_MONTH = 30 * ONE_DAY
SUPPLY_CAP = dec(32_000_000)
FRACTION_TOLERANCE = 10 ** 9


class TestFixedPoint(unittest.TestCase):

    def test_dec(self):
        self.assertEqual(dec(5), 5 * 10 ** 18)
        self.assertEqual(dec(5, 6), 5_000_000)

    def test_dec_mul_rounds_half_up(self):
        self.assertEqual(dec_mul(dec(2), dec(3)), dec(6))
        self.assertEqual(dec_mul(1, DECIMAL_PRECISION // 2), 1)
        self.assertEqual(dec_mul(1, DECIMAL_PRECISION // 2 - 1), 0)

    def test_dec_pow_small_exponents(self):
        half = DECIMAL_PRECISION // 2
        self.assertEqual(dec_pow(half, 0), DECIMAL_PRECISION)
        self.assertEqual(dec_pow(half, 1), half)
        self.assertEqual(dec_pow(half, 2), DECIMAL_PRECISION // 4)
        self.assertEqual(dec_pow(half, 3), DECIMAL_PRECISION // 8)

    def test_dec_pow_exponent_is_capped(self):
        base = 999999999999999999
        self.assertEqual(dec_pow(base, MAX_POW_EXPONENT + 1000), dec_pow(base, MAX_POW_EXPONENT))

    def test_dec_pow_rejects_negative_exponent(self):
        with self.assertRaises(ValueError):
            dec_pow(DECIMAL_PRECISION, -1)

    def test_compute_cr(self):
        self.assertEqual(compute_cr(dec(2), dec(100), dec(100)), dec(2))
        self.assertEqual(compute_cr(dec(2), 0, dec(100)), MAX_UINT256)

    def test_compute_nominal_cr(self):
        self.assertEqual(compute_nominal_cr(dec(1), dec(100)), DECIMAL_PRECISION)
        self.assertEqual(compute_nominal_cr(dec(1), 0), MAX_UINT256)

    def test_issuance_factor_for_one_year(self):
        self.assertAlmostEqual(issuance_factor(ONE_YEAR), ONE_YEAR_ISSUANCE_FACTOR, delta=2000)

    def test_issuance_factor_halves_over_shorter_periods(self):
        for period in (ONE_HOUR, ONE_DAY, ONE_MONTH):
            with self.subTest(period=period):
                factor = issuance_factor(period)
                remaining = dec_pow(factor, period // ONE_MINUTE)
                self.assertAlmostEqual(remaining, DECIMAL_PRECISION // 2, delta=DECIMAL_PRECISION // 2 // 10 ** 7)

    def test_issuance_factor_rejects_sub_minute_period(self):
        with self.assertRaises(ValueError):
            issuance_factor(30)


class TestIssuanceCurve(unittest.TestCase):
    """Cumulative issuance fraction and totals against the published reference values."""

    def setUp(self):
        self.protocol = VestaProtocol(vsta_supply=SUPPLY_CAP)
        self.pool = self.protocol.add_collateral("ETH", dec(200), reward_supply=SUPPLY_CAP)
        self.issuance = self.protocol.community_issuance

    def _advance_and_issue(self, seconds):
        self.protocol.update_time(seconds)
        self.issuance.issue_vsta(self.pool)
        return self.issuance.get_cumulative_issuance_fraction(self.pool), self.issuance.get_total_issued(self.pool)

    def test_zero_elapsed_time(self):
        self.assertEqual(self.issuance.get_cumulative_issuance_fraction(self.pool), 0)
        self.assertEqual(self.issuance.issue_vsta(self.pool), 0)
        self.assertEqual(self.issuance.get_total_issued(self.pool), 0)

    def test_fraction_is_constant_within_a_minute(self):
        self.protocol.update_time(59)
        self.assertEqual(self.issuance.get_cumulative_issuance_fraction(self.pool), 0)

    def test_one_minute(self):
        fraction, issued = self._advance_and_issue(ONE_MINUTE)
        self.assertAlmostEqual(fraction, 1318772305025, delta=10 ** 8)
        self.assertAlmostEqual(issued, 42200713760820460000, delta=42200713760820460000 // 10 ** 7)

    def test_one_hour(self):
        fraction, issued = self._advance_and_issue(ONE_HOUR)
        self.assertAlmostEqual(fraction, 79123260066094, delta=FRACTION_TOLERANCE)
        self.assertAlmostEqual(issued, 2531944322115010000000, delta=2531944322115010000000 // 10 ** 7)

    def test_one_day(self):
        fraction, issued = self._advance_and_issue(ONE_DAY)
        self.assertAlmostEqual(fraction, 1897231348441660, delta=FRACTION_TOLERANCE)
        self.assertAlmostEqual(issued, 60711403150133240000000, delta=60711403150133240000000 // 10 ** 7)

    def test_one_week(self):
        fraction, issued = self._advance_and_issue(ONE_WEEK)
        self.assertAlmostEqual(fraction, 13205268780628400, delta=FRACTION_TOLERANCE)
        self.assertAlmostEqual(issued, 422568600980110200000000, delta=422568600980110200000000 // 10 ** 7)

    def test_one_month(self):
        fraction, issued = self._advance_and_issue(ONE_MONTH)
        self.assertAlmostEqual(fraction, 55378538087966600, delta=FRACTION_TOLERANCE)
        self.assertAlmostEqual(issued, 1772113218814930000000000, delta=1772113218814930000000000 // 10 ** 7)

    def test_three_months(self):
        fraction, issued = self._advance_and_issue(3 * ONE_MONTH)
        self.assertAlmostEqual(fraction, 157105100752037000, delta=FRACTION_TOLERANCE)
        self.assertAlmostEqual(issued, 5027363224065180000000000, delta=5027363224065180000000000 // 10 ** 7)

    def test_half_life(self):
        fraction, issued = self._advance_and_issue(ONE_YEAR)
        self.assertAlmostEqual(fraction, DECIMAL_PRECISION // 2, delta=FRACTION_TOLERANCE)
        self.assertAlmostEqual(issued, SUPPLY_CAP // 2, delta=SUPPLY_CAP // 2 // 10 ** 7)

    def test_two_half_lives(self):
        fraction, issued = self._advance_and_issue(2 * ONE_YEAR)
        self.assertAlmostEqual(fraction, 750000000000000000, delta=FRACTION_TOLERANCE)
        self.assertAlmostEqual(issued, dec(24_000_000), delta=dec(24_000_000) // 10 ** 7)

    def test_four_and_ten_years(self):
        fraction, issued = self._advance_and_issue(4 * ONE_YEAR)
        self.assertAlmostEqual(fraction, 937500000000000000, delta=FRACTION_TOLERANCE)
        self.assertAlmostEqual(issued, dec(30_000_000), delta=dec(30_000_000) // 10 ** 7)

        fraction, issued = self._advance_and_issue(6 * ONE_YEAR)
        self.assertAlmostEqual(fraction, 999023437500000000, delta=FRACTION_TOLERANCE)
        self.assertAlmostEqual(issued, dec(31_968_750), delta=dec(31_968_750) // 10 ** 7)

    def test_fraction_saturates(self):
        self.protocol.update_time(30 * ONE_YEAR)
        fraction = self.issuance.get_cumulative_issuance_fraction(self.pool)
        self.assertAlmostEqual(fraction, 999999999068677000, delta=FRACTION_TOLERANCE)

        self.protocol.update_time(2000 * ONE_YEAR)
        self.assertEqual(self.issuance.get_cumulative_issuance_fraction(self.pool), DECIMAL_PRECISION)
        self.issuance.issue_vsta(self.pool)
        self.assertEqual(self.issuance.get_total_issued(self.pool), SUPPLY_CAP)
        self.assertEqual(self.issuance.issue_vsta(self.pool), 0)

    def test_fraction_is_monotonic(self):
        previous = 0
        for _ in range(50):
            self.protocol.update_time(ONE_WEEK)
            fraction = self.issuance.get_cumulative_issuance_fraction(self.pool)
            self.assertGreaterEqual(fraction, previous)
            previous = fraction

    def test_repeated_issue_at_same_time_issues_nothing(self):
        self.protocol.update_time(ONE_DAY)
        first = self.issuance.issue_vsta(self.pool)
        self.assertGreater(first, 0)
        self.assertEqual(self.issuance.issue_vsta(self.pool), 0)


if __name__ == "__main__":
    unittest.main()
