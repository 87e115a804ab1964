#!/usr/bin/env python3
"""
Seed a local catalog for running the profitability pipeline end to end.

Creates:
  1. One Algorithm row per entry in algorithm_catalog.yaml
  2. A handful of coins (BTC/BCH on sha256, LTC/DOGE on scrypt, KAS on kHeavyHash)
  3. Demo machines with vendor offers in USD, EUR and CNY
  4. An FX snapshot so non-USD offers convert

Usage:
    python scripts/seed_catalog.py          # seed (existing rows are kept)
    python scripts/seed_catalog.py --clear  # wipe catalog + snapshots first

Requires: DATABASE_URL set (or defaults to sqlite:///local.db).
"""
import argparse
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from minerchecker.database import get_session, init_db
from minerchecker.models.catalog import Algorithm, Coin, Machine, VendorOffering
from minerchecker.models.fx_rate import FxRateSnapshot
from minerchecker.models.snapshot import ProfitabilitySnapshot
from minerchecker.profitability.catalog import load_algorithm_catalog


COINS = [
    # id, key, symbol, name, algorithm key
    ('coin-btc', 'btc', 'BTC', 'Bitcoin', 'sha256'),
    ('coin-bch', 'bch', 'BCH', 'Bitcoin Cash', 'sha256'),
    ('coin-ltc', 'ltc', 'LTC', 'Litecoin', 'scrypt'),
    ('coin-doge', 'doge', 'DOGE', 'Dogecoin', 'scrypt'),
    ('coin-kas', 'kas', 'KAS', 'Kaspa', 'kheavyhash'),
]

MACHINES = [
    # id, name, manufacturer, algorithm key, hashrate, unit, power W, coin ids, offers
    ('m-s21', 'Antminer S21', 'Bitmain', 'sha256', '200', 'TH/s', 3500, [],
     [('Vendor A', 4200, 'USD', 80, True), ('Vendor B', 3900, 'EUR', 120, True)]),
    ('m-l9', 'Antminer L9', 'Bitmain', 'scrypt', '16', 'GH/s', 3360, ['coin-ltc', 'coin-doge'],
     [('Vendor C', 98000, 'CNY', None, True)]),
    ('m-ks5', 'IceRiver KS5', 'IceRiver', 'kheavyhash', '21', 'TH/s', 3150, [],
     [('Vendor A', 9800, 'USD', 150, False)]),
]

FX_RATES = {'EUR': 0.92, 'CNY': 7.2, 'GBP': 0.79}


def _algorithm_id(key):
    return f'algo-{key}'


def clear(session):
    for model in (ProfitabilitySnapshot, VendorOffering):
        session.query(model).delete()
    for machine in session.query(Machine).all():
        session.delete(machine)
    session.query(Coin).delete()
    session.query(Algorithm).delete()
    session.query(FxRateSnapshot).delete()
    session.commit()


def seed(session):
    catalog = load_algorithm_catalog()
    for entry in catalog.values():
        if session.get(Algorithm, _algorithm_id(entry.key)) is None:
            session.add(Algorithm(
                id=_algorithm_id(entry.key),
                key=entry.key,
                name=entry.name,
                aggregator_key=entry.aggregator_key,
                fallback_revenue_usd_per_unit_per_day=entry.fallback_revenue_usd_per_unit_per_day,
                fallback_unit=entry.unit if entry.fallback_revenue_usd_per_unit_per_day else None,
            ))
    session.flush()

    for coin_id, key, symbol, name, algo in COINS:
        if session.get(Coin, coin_id) is None:
            session.add(Coin(id=coin_id, key=key, symbol=symbol, name=name, algorithm_id=_algorithm_id(algo)))
    session.flush()

    for mid, name, maker, algo, hashrate, unit, power, coin_ids, offers in MACHINES:
        if session.get(Machine, mid) is not None:
            continue
        machine = Machine(
            id=mid, slug=mid, name=name, manufacturer=maker, algorithm_id=_algorithm_id(algo),
            hashrate=hashrate, hashrate_unit=unit, power_w=power,
        )
        machine.coins = [session.get(Coin, c) for c in coin_ids]
        for vendor, price, currency, shipping, in_stock in offers:
            machine.offerings.append(VendorOffering(
                vendor_name=vendor, price=price, currency=currency,
                shipping_cost=shipping, in_stock=in_stock,
            ))
        session.add(machine)

    session.add(FxRateSnapshot(base_currency='USD', rates=FX_RATES))
    session.commit()
    print(f"Seeded {len(catalog)} algorithms, {len(COINS)} coins, {len(MACHINES)} machines")


def main():
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument('--clear', action='store_true', help='wipe catalog + snapshots first')
    args = parser.parse_args()

    init_db()
    session = get_session()
    try:
        if args.clear:
            clear(session)
            print("Cleared catalog and snapshots")
        seed(session)
    finally:
        session.close()


if __name__ == '__main__':
    main()
