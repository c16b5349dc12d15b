"""
Unit tests for the asset to stability pool registry.
"""

import unittest

from vesta_model import PreconditionError, UnauthorizedError, ValidationError, VestaProtocol
from vesta_model.liquity_math import dec


class TestStabilityPoolManager(unittest.TestCase):
    def setUp(self):
        self.protocol = VestaProtocol(vsta_supply=dec(100))
        self.manager = self.protocol.stability_pool_manager
        self.admin = self.protocol.admin
        self.eth_pool = self.protocol.add_collateral("ETH", dec(2000))

    def test_resolve_registered_and_unknown(self):
        self.assertIs(self.manager.resolve("ETH"), self.eth_pool)
        self.assertIs(self.manager.get_asset_stability_pool("ETH"), self.eth_pool)
        self.assertIsNone(self.manager.resolve("DOGE"))
        with self.assertRaises(PreconditionError):
            self.manager.get_asset_stability_pool("DOGE")

    def test_is_stability_pool(self):
        self.assertTrue(self.manager.is_stability_pool(self.eth_pool))
        self.assertFalse(self.manager.is_stability_pool(self.protocol.community_issuance))

    def test_duplicate_registration_is_rejected(self):
        with self.assertRaises(ValidationError):
            self.manager.add_stability_pool("ETH", object(), self.admin)
        with self.assertRaises(ValidationError):
            self.manager.add_stability_pool("renBTC", self.eth_pool, self.admin)
        self.assertEqual(self.manager.assets(), ["ETH"])

    def test_registration_requires_admin(self):
        with self.assertRaises(UnauthorizedError):
            self.manager.add_stability_pool("renBTC", object(), "user")
        with self.assertRaises(UnauthorizedError):
            self.manager.remove_stability_pool("ETH", "user")

    def test_removed_pool_can_no_longer_be_funded(self):
        self.manager.remove_stability_pool("ETH", self.admin)

        self.assertIsNone(self.manager.resolve("ETH"))
        self.assertFalse(self.manager.is_stability_pool(self.eth_pool))
        with self.assertRaises(ValidationError):
            self.protocol.community_issuance.add_fund_to_stability_pool(
                self.eth_pool, dec(10), self.protocol.treasury)
        with self.assertRaises(ValidationError):
            self.manager.remove_stability_pool("ETH", self.admin)

    def test_liquidation_without_pool_redistributes_everything(self):
        self.protocol.mint_collateral("ETH", "alice", dec(1))
        self.protocol.mint_collateral("ETH", "bob", dec(1))
        self.protocol.open_trove("ETH", "alice", dec(1), dec(1000))
        self.protocol.open_trove("ETH", "bob", dec(1), dec(1500))
        self.manager.remove_stability_pool("ETH", self.admin)

        self.protocol.update_price("ETH", dec(1600))
        values = self.protocol.liquidate("ETH", "bob", "liquidator")

        self.assertEqual(values.debt_to_offset, 0)
        self.assertEqual(values.debt_to_redistribute, dec(1500))
        self.assertEqual(self.protocol.default_pool.get_vst_debt("ETH"), dec(1500))


if __name__ == "__main__":
    unittest.main()
