"""Create database schema and seed a sample LIHTC property for development."""
from __future__ import annotations

import asyncio
from datetime import date, datetime, timezone
from decimal import Decimal

from compliance.db.session import SessionLocal, init_models
from compliance.models import (
	IncomeVerification,
	Lease,
	Property,
	Resident,
	Unit,
	VerificationStatus,
)

PROPERTIES = [
	{
		"id": "prop-maple-court",
		"name": "Maple Court Apartments",
		"county": "Travis",
		"state": "Texas",
		"compliance_option": "20% at 50% AMI, 55% at 80% AMI",
		"placed_in_service_date": date(2012, 6, 1),
		"units": [
			{"id": "unit-maple-101", "unit_number": "101", "bedroom_count": 1},
			{"id": "unit-maple-102", "unit_number": "102", "bedroom_count": 2},
			{"id": "unit-maple-205", "unit_number": "205", "bedroom_count": 2},
			{"id": "unit-maple-206", "unit_number": "206", "bedroom_count": 3},
		],
	},
]

# Manually created, not yet dated, already verified.
FUTURE_LEASES = [
	{
		"id": "lease-maple-205-future",
		"unit_id": "unit-maple-205",
		"name": "205 - Future Lease",
		"residents": [{"id": "res-maple-205-kim", "name": "Dana Kim", "verified_income": Decimal("42000.00")}],
	},
]


async def seed_properties() -> None:
	async with SessionLocal() as session:
		async with session.begin():
			for property_data in PROPERTIES:
				prop = await session.get(Property, property_data["id"])
				if prop is None:
					prop = Property(id=property_data["id"])
					session.add(prop)
				prop.name = property_data["name"]
				prop.county = property_data["county"]
				prop.state = property_data["state"]
				prop.compliance_option = property_data["compliance_option"]
				prop.placed_in_service_date = property_data["placed_in_service_date"]

				for unit_data in property_data["units"]:
					unit = await session.get(Unit, unit_data["id"])
					if unit is None:
						session.add(Unit(property_id=property_data["id"], **unit_data))
					else:
						unit.unit_number = unit_data["unit_number"]
						unit.bedroom_count = unit_data["bedroom_count"]


async def seed_future_leases() -> None:
	async with SessionLocal() as session:
		async with session.begin():
			for lease_data in FUTURE_LEASES:
				if await session.get(Lease, lease_data["id"]) is not None:
					continue
				now = datetime.now(timezone.utc)
				session.add(Lease(id=lease_data["id"], unit_id=lease_data["unit_id"], name=lease_data["name"]))
				total = Decimal("0.00")
				for resident_data in lease_data["residents"]:
					session.add(
						Resident(
							id=resident_data["id"],
							lease_id=lease_data["id"],
							name=resident_data["name"],
							calculated_annualized_income=resident_data["verified_income"],
							income_finalized=True,
							finalized_at=now,
						)
					)
					total += resident_data["verified_income"]
				session.add(
					IncomeVerification(
						lease_id=lease_data["id"],
						status=VerificationStatus.FINALIZED,
						calculated_verified_income=total,
						finalized_at=now,
					)
				)


async def main() -> None:
	await init_models()
	await seed_properties()
	await seed_future_leases()
	print("Database schema ensured and demo data seeded.")


if __name__ == "__main__":
	asyncio.run(main())
