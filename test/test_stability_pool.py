"""
Unit tests for the StabilityPool module.

Offsets are driven directly through StabilityPool.offset by an account holding
the LIQUIDATION_ENGINE role, so the product-sum bookkeeping can be checked
without the liquidation math in between.
"""

import unittest

from vesta_model import (InsufficientBalanceError, PreconditionError, Role, SnapshotEra,
                         UnauthorizedError, ValidationError, VestaProtocol)
from vesta_model.config import ONE_HOUR, ONE_WEEK, SCALE_FACTOR
from vesta_model.liquity_math import DECIMAL_PRECISION, dec
from vesta_model.stability_pool import Snapshots


class StabilityPoolTestCase(unittest.TestCase):
    reward_supply = 0

    def setUp(self):
        """One ETH universe at $200 with a whale and three depositors holding VST."""
        self.protocol = VestaProtocol(vsta_supply=self.reward_supply)
        self.sp = self.protocol.add_collateral("ETH", dec(200), reward_supply=self.reward_supply)
        self.eth = self.protocol.collateral_tokens["ETH"]
        self.vst = self.protocol.vst_token

        self.engine = "engine"
        self.protocol.access_control.grant_role(Role.LIQUIDATION_ENGINE, self.engine)

        self.whale = "whale"
        self.alice = "alice"
        self.bob = "bob"
        self.carol = "carol"

        self._open(self.whale, dec(1000), dec(20000))
        for user in (self.alice, self.bob, self.carol):
            self._open(user, dec(100), dec(5000))

    def _open(self, owner, coll, debt):
        self.protocol.mint_collateral("ETH", owner, coll)
        self.protocol.open_trove("ETH", owner, coll, debt)

    def _provide(self, depositor, amount):
        return self.protocol.provide_to_stability_pool("ETH", depositor, amount)


class TestDeposits(StabilityPoolTestCase):

    def test_provide_without_offset_keeps_value(self):
        self._provide(self.alice, dec(1000))
        self._provide(self.alice, dec(500))

        self.assertEqual(self.sp.get_compounded_vst_deposit(self.alice), dec(1500))
        self.assertEqual(self.sp.get_total_vst_deposits(), dec(1500))
        self.assertEqual(self.vst.balance_of(self.sp), dec(1500))
        self.assertEqual(self.vst.balance_of(self.alice), dec(3500))

    def test_provide_rejects_zero_and_excess(self):
        with self.assertRaises(ValidationError):
            self._provide(self.alice, 0)
        with self.assertRaises(InsufficientBalanceError):
            self._provide(self.alice, dec(5000) + 1)
        self.assertEqual(self.sp.get_total_vst_deposits(), 0)

    def test_withdraw_rejects_missing_zero_and_excess(self):
        with self.assertRaises(PreconditionError):
            self.protocol.withdraw_from_stability_pool("ETH", self.alice, dec(1))

        self._provide(self.alice, dec(1000))
        with self.assertRaises(ValidationError):
            self.protocol.withdraw_from_stability_pool("ETH", self.alice, 0)
        with self.assertRaises(ValidationError):
            self.protocol.withdraw_from_stability_pool("ETH", self.alice, dec(1000) + 1)

    def test_full_withdrawal_removes_the_deposit(self):
        self._provide(self.alice, dec(1000))
        self.protocol.withdraw_from_stability_pool("ETH", self.alice, dec(1000))

        self.assertEqual(self.sp.get_deposit(self.alice), 0)
        self.assertIsNone(self.sp.get_deposit_snapshot(self.alice))
        self.assertEqual(self.sp.get_total_vst_deposits(), 0)
        self.assertEqual(self.vst.balance_of(self.alice), dec(5000))

    def test_partial_withdrawal(self):
        self._provide(self.alice, dec(1000))
        withdrawn = self.protocol.withdraw_from_stability_pool("ETH", self.alice, dec(400))

        self.assertEqual(withdrawn, dec(400))
        self.assertEqual(self.sp.get_compounded_vst_deposit(self.alice), dec(600))
        self.assertEqual(self.vst.balance_of(self.alice), dec(4400))

    def test_withdraw_refused_while_a_trove_is_under_mcr(self):
        """Depositors cannot leave ahead of a pending liquidation."""
        self._provide(self.alice, dec(1000))

        # Depositor troves drop to ICR 100%, the whale stays at 250%
        self.protocol.update_price("ETH", dec(50))
        with self.assertRaises(PreconditionError):
            self.protocol.withdraw_from_stability_pool("ETH", self.alice, dec(100))

        self.protocol.update_price("ETH", dec(200))
        self.protocol.withdraw_from_stability_pool("ETH", self.alice, dec(100))
        self.assertEqual(self.sp.get_compounded_vst_deposit(self.alice), dec(900))

    def test_withdraw_needs_a_fresh_price(self):
        self._provide(self.alice, dec(1000))
        self.protocol.update_time(5 * ONE_HOUR)
        with self.assertRaises(PreconditionError):
            self.protocol.withdraw_from_stability_pool("ETH", self.alice, dec(100))


class TestOffset(StabilityPoolTestCase):

    def test_offset_requires_liquidation_engine_role(self):
        self._provide(self.alice, dec(1000))
        with self.assertRaises(UnauthorizedError):
            self.sp.offset(dec(100), dec(1), caller=self.alice)

    def test_offset_with_empty_pool_does_nothing(self):
        debt_before = self.protocol.active_pool.get_vst_debt("ETH")
        self.sp.offset(dec(100), dec(1), caller=self.engine)

        self.assertEqual(self.sp.P, DECIMAL_PRECISION)
        self.assertEqual(self.sp.get_asset_balance(), 0)
        self.assertEqual(self.protocol.active_pool.get_vst_debt("ETH"), debt_before)

    def test_offset_is_shared_pro_rata(self):
        """Losses and collateral gains are proportional to the deposits."""
        self._provide(self.alice, dec(1000))
        self._provide(self.bob, dec(3000))
        active_debt = self.protocol.active_pool.get_vst_debt("ETH")

        self.sp.offset(dec(400), dec(4), caller=self.engine)

        # Loss per unit staked is rounded up by one
        self.assertEqual(self.sp.P, 9 * 10 ** 17 - 1)
        self.assertEqual(self.sp.get_total_vst_deposits(), dec(3600))
        self.assertEqual(self.vst.balance_of(self.sp), dec(3600))
        self.assertEqual(self.sp.get_asset_balance(), dec(4))
        self.assertEqual(self.protocol.active_pool.get_vst_debt("ETH"), active_debt - dec(400))

        self.assertEqual(self.sp.get_depositor_asset_gain(self.alice), dec(1))
        self.assertEqual(self.sp.get_depositor_asset_gain(self.bob), dec(3))
        self.assertAlmostEqual(self.sp.get_compounded_vst_deposit(self.alice), dec(900), delta=10 ** 4)
        self.assertAlmostEqual(self.sp.get_compounded_vst_deposit(self.bob), dec(2700), delta=10 ** 4)

    def test_deposits_never_exceed_pool_balance(self):
        self._provide(self.alice, dec(1000))
        self._provide(self.bob, dec(2000))
        self._provide(self.carol, dec(3000))

        for debt in (dec(123), dec(777), dec(1), dec(2500)):
            self.sp.offset(debt, debt // 100, caller=self.engine)

        depositors = (self.alice, self.bob, self.carol)
        compounded = sum(self.sp.get_compounded_vst_deposit(d) for d in depositors)
        gains = sum(self.sp.get_depositor_asset_gain(d) for d in depositors)

        self.assertLessEqual(compounded, self.sp.get_total_vst_deposits())
        self.assertLessEqual(gains, self.sp.get_asset_balance())
        self.assertAlmostEqual(compounded, self.sp.get_total_vst_deposits(), delta=10 ** 6)

    def test_value_is_conserved_across_deposits_offsets_and_withdrawals(self):
        """Compounded deposits plus absorbed debt equal net deposits, to rounding."""
        depositors = (self.alice, self.bob, self.carol)
        steps = [
            ("provide", self.alice, dec(1000)),
            ("provide", self.bob, dec(2000)),
            ("offset", None, dec(300)),
            ("provide", self.carol, dec(1500)),
            ("withdraw", self.bob, dec(500)),
            ("offset", None, dec(1234)),
            ("provide", self.alice, dec(250)),
            ("withdraw", self.carol, dec(700)),
            ("offset", None, 999 * DECIMAL_PRECISION + 7),
            ("withdraw", self.alice, dec(100)),
            ("offset", None, dec(17)),
        ]
        epsilon = 10 ** 5  # per operation

        provided = withdrawn = absorbed = 0
        for count, (action, depositor, amount) in enumerate(steps, start=1):
            if action == "provide":
                self._provide(depositor, amount)
                provided += amount
            elif action == "withdraw":
                withdrawn += self.protocol.withdraw_from_stability_pool("ETH", depositor, amount)
            else:
                self.sp.offset(amount, amount // 100, caller=self.engine)
                absorbed += amount

            with self.subTest(step=count, action=action):
                compounded = sum(self.sp.get_compounded_vst_deposit(d) for d in depositors)
                self.assertEqual(self.sp.get_total_vst_deposits(), provided - withdrawn - absorbed)
                self.assertEqual(self.vst.balance_of(self.sp), provided - withdrawn - absorbed)
                self.assertLessEqual(compounded + absorbed, provided - withdrawn)
                self.assertAlmostEqual(compounded + absorbed, provided - withdrawn, delta=epsilon * count)

    def test_provide_pays_out_collateral_gain(self):
        self._provide(self.alice, dec(1000))
        self._provide(self.bob, dec(3000))
        self.sp.offset(dec(400), dec(4), caller=self.engine)

        new_deposit = self._provide(self.alice, dec(100))

        self.assertEqual(self.eth.balance_of(self.alice), dec(1))
        self.assertEqual(self.sp.get_depositor_asset_gain(self.alice), 0)
        self.assertAlmostEqual(new_deposit, dec(1000), delta=10 ** 4)
        self.assertEqual(self.sp.get_asset_balance(), dec(3))

    def test_full_depletion_starts_a_new_epoch(self):
        self._provide(self.alice, dec(1000))
        self.sp.offset(dec(1000), dec(10), caller=self.engine)

        self.assertEqual(self.sp.current_epoch, 1)
        self.assertEqual(self.sp.current_scale, 0)
        self.assertEqual(self.sp.P, DECIMAL_PRECISION)
        self.assertEqual(self.sp.get_total_vst_deposits(), 0)
        self.assertEqual(self.sp.get_compounded_vst_deposit(self.alice), 0)
        self.assertEqual(self.sp.get_depositor_asset_gain(self.alice), dec(10))

        # Gains of an expired deposit remain claimable
        asset_gain, vsta_gain = self.protocol.claim_stability_pool_gains("ETH", self.alice)
        self.assertEqual(asset_gain, dec(10))
        self.assertEqual(vsta_gain, 0)
        self.assertEqual(self.sp.get_deposit(self.alice), 0)

        # New deposits after the epoch change start at full value
        self._provide(self.bob, dec(500))
        self.assertEqual(self.sp.get_compounded_vst_deposit(self.bob), dec(500))

    def test_scale_change(self):
        """A near-total offset drives P below the scale factor and bumps the scale."""
        self._provide(self.alice, dec(1000))
        self.sp.offset(dec(1000) - dec(1, 16), dec(5), caller=self.engine)

        self.assertEqual(self.sp.current_scale, 0)
        self.assertAlmostEqual(self.sp.get_compounded_vst_deposit(self.alice), dec(1, 16), delta=10 ** 4)

        self._provide(self.bob, dec(1000))
        self.sp.offset(dec(1000), dec(5), caller=self.engine)

        self.assertEqual(self.sp.current_scale, 1)
        self.assertGreaterEqual(self.sp.P, SCALE_FACTOR)
        self.assertEqual(self.sp.snapshot_era(self.sp.get_deposit_snapshot(self.bob)),
                         SnapshotEra.ONE_SCALE_BEHIND)

        bob_deposit = self.sp.get_compounded_vst_deposit(self.bob)
        self.assertAlmostEqual(bob_deposit, 9999900001000000, delta=10 ** 10)
        self.assertLessEqual(bob_deposit, self.sp.get_total_vst_deposits())

        # What is left of alice's deposit is below a billionth of it
        self.assertLessEqual(self.sp.get_compounded_vst_deposit(self.alice), 10 ** 12)

        # Both collateral gains are readable across the scale change
        alice_gain = self.sp.get_depositor_asset_gain(self.alice)
        bob_gain = self.sp.get_depositor_asset_gain(self.bob)
        self.assertAlmostEqual(alice_gain, dec(5), delta=dec(1, 14))
        self.assertAlmostEqual(bob_gain, dec(5), delta=dec(1, 14))
        self.assertLessEqual(alice_gain + bob_gain, self.sp.get_asset_balance())


class TestSnapshotEra(StabilityPoolTestCase):

    def test_eras(self):
        snapshot = Snapshots(P=DECIMAL_PRECISION, scale=0, epoch=0)
        self.assertEqual(self.sp.snapshot_era(snapshot), SnapshotEra.CURRENT_SCALE)

        self.sp.current_scale = 1
        self.assertEqual(self.sp.snapshot_era(snapshot), SnapshotEra.ONE_SCALE_BEHIND)

        self.sp.current_scale = 2
        self.assertEqual(self.sp.snapshot_era(snapshot), SnapshotEra.EXPIRED)

        self.sp.current_scale = 0
        self.sp.current_epoch = 1
        self.assertEqual(self.sp.snapshot_era(snapshot), SnapshotEra.EXPIRED)


class TestRewardGains(StabilityPoolTestCase):
    reward_supply = dec(1_000_000)

    def test_rewards_split_by_deposit_size(self):
        self._provide(self.alice, dec(1000))
        self._provide(self.bob, dec(3000))

        self.protocol.update_time(ONE_WEEK)
        _, alice_paid = self.protocol.claim_stability_pool_gains("ETH", self.alice)
        _, bob_paid = self.protocol.claim_stability_pool_gains("ETH", self.bob)

        issued = self.protocol.community_issuance.get_total_issued(self.sp)
        self.assertGreater(issued, 0)
        self.assertAlmostEqual(alice_paid, issued // 4, delta=10 ** 6)
        self.assertAlmostEqual(bob_paid, issued * 3 // 4, delta=10 ** 6)
        self.assertEqual(self.protocol.vsta_token.balance_of(self.alice), alice_paid)
        self.assertLessEqual(alice_paid + bob_paid, issued)

    def test_rewards_follow_deposit_changes(self):
        """A depositor joining late only earns from the time they joined."""
        self._provide(self.alice, dec(1000))
        self.protocol.update_time(ONE_WEEK)
        self._provide(self.bob, dec(1000))

        alice_before_bob = self.protocol.community_issuance.get_total_issued(self.sp)
        self.assertAlmostEqual(self.sp.get_depositor_vsta_gain(self.alice), alice_before_bob, delta=10 ** 6)
        self.assertEqual(self.sp.get_depositor_vsta_gain(self.bob), 0)

        self.protocol.update_time(ONE_WEEK)
        self.sp.trigger_vsta_issuance()
        second_week = self.protocol.community_issuance.get_total_issued(self.sp) - alice_before_bob

        self.assertAlmostEqual(self.sp.get_depositor_vsta_gain(self.bob), second_week // 2, delta=10 ** 6)
        self.assertAlmostEqual(self.sp.get_depositor_vsta_gain(self.alice),
                               alice_before_bob + second_week // 2, delta=10 ** 6)

    def test_no_rewards_accrue_to_an_empty_pool(self):
        self.protocol.update_time(ONE_WEEK)
        self._provide(self.alice, dec(1000))
        self.assertEqual(self.sp.get_depositor_vsta_gain(self.alice), 0)


if __name__ == "__main__":
    unittest.main()
