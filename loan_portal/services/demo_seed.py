"""
Demo data for local development (``flask seed-demo``).

Creates two districts with branches, three products, one user per role and
approver assignments covering each routing dimension. Running it twice is a
no-op: the seed is skipped when any district already exists.
"""

import logging

from loan_portal.models import db
from loan_portal.models.auth import ROLE_ADMIN, ROLE_APPROVER, ROLE_BRANCH_USER
from loan_portal.models.directory import District
from loan_portal.services import assignment_service, directory_service, user_service

logger = logging.getLogger(__name__)

DEMO_DISTRICTS = {
    "Central": ["Main Street", "Market Square"],
    "Coastal": ["Harbour Road"],
}

DEMO_PRODUCTS = [
    {"name": "Home Financing", "product_code": "HF", "description": "Residential property financing"},
    {"name": "Auto Financing", "product_code": "AF", "description": "Vehicle purchase financing"},
    {"name": "SME Working Capital", "product_code": "SME", "description": "Short-term business financing"},
]


def seed_demo() -> dict:
    """Insert the demo directory, users and assignments.

    Returns:
        Counts of created rows per kind, or ``{"skipped": True}``.
    """
    if db.session.query(District.id).first() is not None:
        logger.info("Demo seed skipped: directory already populated")
        return {"skipped": True}

    branches = []
    for district_name, branch_names in DEMO_DISTRICTS.items():
        district = directory_service.create_district({"name": district_name})
        for name in branch_names:
            branches.append(directory_service.create_branch({"district_id": district.id, "name": name}))
    products = [directory_service.create_product(p) for p in DEMO_PRODUCTS]
    districts = directory_service.list_districts()

    admin = user_service.create_user({
        "email": "admin@portal.local", "full_name": "Portal Admin", "role": ROLE_ADMIN,
    })
    teller = user_service.create_user({
        "email": "teller@portal.local", "full_name": "Main Street Teller",
        "role": ROLE_BRANCH_USER, "branch_id": branches[0].id,
    })
    district_approver = user_service.create_user({
        "email": "central.approver@portal.local", "full_name": "Central District Approver",
        "role": ROLE_APPROVER,
    })
    product_approver = user_service.create_user({
        "email": "home.approver@portal.local", "full_name": "Home Financing Approver",
        "role": ROLE_APPROVER,
    })

    created = assignment_service.create_assignments(district_approver.id, district_ids=[districts[0].id])
    created += assignment_service.create_assignments(
        product_approver.id,
        branch_ids=[branches[-1].id],
        product_ids=[products[0].id],
    )

    counts = {
        "districts": len(districts),
        "branches": len(branches),
        "products": len(products),
        "users": len([admin, teller, district_approver, product_approver]),
        "assignments": len(created),
    }
    logger.info("Demo seed complete: %s", counts)
    return counts
