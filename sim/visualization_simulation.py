"""
Visualization simulation for the Vesta protocol economic model.

Opens positions across a range of collateral ratios, funds the stability pool
and runs a 30 day random price walk with plots of the system history.
"""

import logging

import numpy as np

from vesta_model import VestaProtocol
from vesta_model.liquity_math import DECIMAL_PRECISION, dec


def run_visualization_simulation(seed=None, save_path=None):
    rng = np.random.default_rng(seed)
    protocol = VestaProtocol(vsta_supply=dec(1_000_000))
    protocol.add_collateral("ETH", dec(2000), reward_supply=dec(500_000))

    print("Creating initial troves...")
    protocol.mint_collateral("ETH", "whale", dec(500))
    protocol.open_trove("ETH", "whale", dec(500), dec(200_000))

    # Target collateral ratios from 160% to 240%
    for i in range(10):
        coll = int(rng.uniform(2.0, 10.0) * DECIMAL_PRECISION)
        target_cr = 1.6 + (i * 0.8 / 10)
        debt = int(coll * 2000 / target_cr)
        protocol.mint_collateral("ETH", f"user{i}", coll)
        protocol.open_trove("ETH", f"user{i}", coll, debt)
        print(f"Trove of user{i}: {coll / DECIMAL_PRECISION:.2f} ETH, "
              f"{debt / DECIMAL_PRECISION:.2f} VST, CR: {target_cr * 100:.0f}%")

    print("\nAdding to stability pool...")
    protocol.provide_to_stability_pool("ETH", "whale", dec(15000))
    print("Added 15,000 VST to the stability pool")

    print("\nRunning simulation with visualizations...")
    results = protocol.simulate_market_scenario("ETH", 30, price_volatility=0.03, plot_results=True,
                                                seed=seed, save_path=save_path)

    print("\nSimulation Results:")
    for key, value in results.items():
        print(f"  {key}: {value}")
    return results


if __name__ == "__main__":
    logging.basicConfig(level=logging.WARNING, format="%(levelname)s %(name)s: %(message)s")
    run_visualization_simulation()
