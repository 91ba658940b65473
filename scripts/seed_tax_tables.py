"""Seed script for the statutory PPh 21 and PTKP tables.

Run with:
    python scripts/seed_tax_tables.py [--create-schema] [--company ID ...]

Creates the global PTKP table, TER bands (categories A, B, C) and the
progressive brackets. Re-running inserts nothing. Each ``--company`` also
gets a default payroll_setting row.
"""

from __future__ import annotations

import argparse
import asyncio
import logging

from hr_payroll.config import configure_logging
from hr_payroll.database import create_schema, dispose_db, unit_of_work
from hr_payroll.services.seed_service import SeedService

logger = logging.getLogger("seed_tax_tables")


async def main(company_ids: list[int], with_schema: bool) -> None:
    try:
        if with_schema:
            await create_schema()
            logger.info("Schema created")

        async with unit_of_work() as session:
            service = SeedService(session)
            result = await service.seed_all()
            if result.total:
                logger.info(
                    "Created %d PTKP rows, %d TER bands, %d tax brackets",
                    result.ptkp,
                    result.ter_bands,
                    result.tax_brackets,
                )
            else:
                logger.info("Tax tables already seeded, skipping")

            for company_id in company_ids:
                setting = await service.ensure_company_settings(company_id)
                logger.info("Company %d: payroll settings #%d", company_id, setting.id)
    finally:
        await dispose_db()


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed PTKP, TER and PPh 21 bracket tables")
    parser.add_argument(
        "--create-schema",
        action="store_true",
        help="create missing tables before seeding",
    )
    parser.add_argument(
        "--company",
        dest="companies",
        type=int,
        action="append",
        default=[],
        metavar="ID",
        help="company id to give default payroll settings (repeatable)",
    )
    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    configure_logging()
    asyncio.run(main(args.companies, args.create_schema))
