"""
Simple simulation for the Vesta protocol economic model.

Walks one ETH universe through a price drop: positions are opened, the
stability pool is funded, the price falls, the weakest position is liquidated
and the depositors collect their collateral and reward gains.
"""

import logging

from vesta_model import NotLiquidatableError, VestaProtocol
from vesta_model.config import ONE_DAY
from vesta_model.liquity_math import DECIMAL_PRECISION, dec


def fmt(amount):
    return f"{amount / DECIMAL_PRECISION:,.4f}"


def print_state(protocol, asset):
    state = protocol.get_system_state(asset)
    print(f"  {asset} price: ${fmt(state['price'])}")
    print(f"  Total collateral: {fmt(state['total_coll'])} {asset}")
    print(f"  Total debt: {fmt(state['total_debt'])} VST")
    print(f"  TCR: {state['tcr'] * 100:.2f}% (recovery mode: {state['recovery_mode']})")
    print(f"  Active troves: {state['active_troves']}")
    print(f"  Stability pool: {fmt(state['stability_vst'])} VST, {fmt(state['stability_coll'])} {asset}")


def run_basic_simulation():
    protocol = VestaProtocol(vsta_supply=dec(1_000_000))
    protocol.add_collateral("ETH", dec(2000), reward_supply=dec(500_000))

    print("Creating initial troves...")
    troves = {
        "whale": (dec(100), dec(60000)),
        "user0": (dec(5), dec(8000)),
        "user1": (dec(5), dec(7000)),
        "user2": (dec(8), dec(6000)),
    }
    for owner, (coll, debt) in troves.items():
        protocol.mint_collateral("ETH", owner, coll)
        icr = protocol.open_trove("ETH", owner, coll, debt)
        print(f"Trove of {owner}: {fmt(coll)} ETH, {fmt(debt)} VST, ICR {icr / DECIMAL_PRECISION * 100:.0f}%")

    print("\nAdding to stability pool...")
    protocol.provide_to_stability_pool("ETH", "whale", dec(10000))
    protocol.provide_to_stability_pool("ETH", "user2", dec(5000))
    print("Added 15,000 VST to the stability pool")

    print("\nInitial protocol state:")
    print_state(protocol, "ETH")

    protocol.update_time(ONE_DAY)
    new_price = dec(1700)
    print(f"\nSimulating price drop to ${fmt(new_price)}")
    protocol.update_price("ETH", new_price)

    for owner in troves:
        try:
            values = protocol.liquidate("ETH", owner, "liquidator")
        except NotLiquidatableError:
            continue
        print(f"Liquidated {owner}: {fmt(values.debt_to_offset)} VST offset, "
              f"{fmt(values.debt_to_redistribute)} VST redistributed, "
              f"{fmt(values.coll_surplus)} ETH surplus")

    print("\nDepositor gains:")
    for depositor in ("whale", "user2"):
        asset_gain, vsta_gain = protocol.claim_stability_pool_gains("ETH", depositor)
        print(f"  {depositor}: {fmt(asset_gain)} ETH, {fmt(vsta_gain)} VSTA")

    print("\nFinal protocol state:")
    print_state(protocol, "ETH")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    run_basic_simulation()
