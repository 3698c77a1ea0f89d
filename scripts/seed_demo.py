#!/usr/bin/env python3
"""
Seed the demo organization, default approval rules and three sample expenses.

Safe to run repeatedly: a store that was already seeded is left untouched
unless --reset is given.

Usage:
    DATABASE_URL='postgresql://...' python scripts/seed_demo.py
    DATABASE_URL='postgresql://...' python scripts/seed_demo.py --dry-run
    DATABASE_URL='postgresql://...' python scripts/seed_demo.py --reset
"""

import sys
import argparse

from reimburse.config import AppConfig
from reimburse.core.storage import create_store
from reimburse.core.utils.logging_config import setup_logging
from reimburse.seed import DEMO_USERS, reset_store, seed_demo


def run(dry_run=False, reset=False):
    config = AppConfig.from_env()
    setup_logging(level=config.log_level, json_format=config.log_json)
    try:
        config.validate()
    except ValueError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    if config.storage_backend == 'memory':
        print("WARNING: no DATABASE_URL set, seeding a throwaway in-memory store")

    store = create_store(config)

    if reset:
        if dry_run:
            print(f"Would delete {len(store.keys(''))} key(s)")
        else:
            print(f"Deleted {reset_store(store)} key(s)")

    summary = seed_demo(store, dry_run=dry_run)
    if not summary['users']:
        print("Store already seeded (use --reset to start over)")
        return summary

    for user_id, name, email, roles, manager_id in DEMO_USERS:
        reports_to = f" -> {manager_id}" if manager_id else ""
        print(f"  {user_id:10} {name:16} {email:22} {','.join(roles)}{reports_to}")
    print(f"  {summary['expenses']} sample expenses (pending, approved, rejected)")

    if dry_run:
        print("\n--- DRY RUN: no changes written ---")
    else:
        print("\n--- Seed complete ---")
    return summary


if __name__ == '__main__':
    parser = argparse.ArgumentParser(description='Seed demo users, rules and expenses')
    parser.add_argument('--dry-run', action='store_true', help='Show changes without applying')
    parser.add_argument('--reset', action='store_true', help='Delete all stored data first')
    args = parser.parse_args()
    run(dry_run=args.dry_run, reset=args.reset)
