"""Database seeding for deptflow.

Creates departments, approval rules and the policy facts for a demo
installation. Run as ``python -m deptflow.db.seed``.
"""

import argparse
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.orm import Session

from deptflow.core.approval.states import StageCode
from deptflow.core.config import get_settings
from deptflow.core.logger import get_logger, setup_logger
from deptflow.core.policy.loader import PolicyDocument, load_policy_file
from deptflow.core.policy.store import Grant, Membership, PolicyStore
from deptflow.core.rbac.permissions import WILDCARD_DOMAIN
from deptflow.core.rbac.roles import RoleCode, get_default_grants, head_grants
from deptflow.db.models import Department
from deptflow.db.repositories import ApprovalRuleRepository, DepartmentRepository


logger = get_logger("seed")


# (id, code, name)
DEMO_DEPARTMENTS: List[Tuple[int, str, str]] = [
    (15, "D15", "Department 15"),
    (19, "D19", "Department 19"),
    (21, "D21", "Department 21"),
    (30, "AF", "Finance"),
    (40, "CG", "Controlling"),
]

# (department code, stage, min approvers, fallback role)
DEMO_RULES: List[Tuple[str, str, int, Optional[str]]] = [
    ("D15", StageCode.DEPT_HEAD.value, 2, None),
    ("D19", StageCode.DEPT_HEAD.value, 1, RoleCode.AMD.value),
]

DEMO_MEMBERSHIPS: List[Membership] = [
    # Two heads in D15
    Membership("user_hd_a", RoleCode.HD.value, "D15"),
    Membership("user_hd_b", RoleCode.HD.value, "D15"),
    # One head in D21, no head in D19 (fallback to AMD)
    Membership("user_hd_c", RoleCode.HD.value, "D21"),
    Membership("user_hd_af", RoleCode.HD.value, "AF"),
    # Global roles
    Membership("user_amd_1", RoleCode.AMD.value, WILDCARD_DOMAIN),
    Membership("user_af_1", RoleCode.AF.value, WILDCARD_DOMAIN),
    Membership("user_cg_1", RoleCode.CG.value, WILDCARD_DOMAIN),
    Membership("user_admin", RoleCode.ADMIN.value, WILDCARD_DOMAIN),
]


def seed_departments(
    db: Session,
    departments: Iterable[Tuple[int, str, str]] = DEMO_DEPARTMENTS,
) -> Dict[str, Department]:
    """
    Create departments. Idempotent: existing codes are returned as-is.

    Returns:
        Dict mapping department code to Department
    """
    repo = DepartmentRepository(db)
    seeded = {}
    for department_id, code, name in departments:
        existing = repo.find_by_code(code)
        seeded[code] = existing or repo.create(code, name, department_id=department_id)
    return seeded


def seed_rules(
    db: Session,
    departments: Dict[str, Department],
    rules: Iterable[Tuple[str, str, int, Optional[str]]] = DEMO_RULES,
) -> None:
    repo = ApprovalRuleRepository(db)
    for code, stage, min_approvers, fallback_role in rules:
        repo.set(
            departments[code].id,
            stage,
            min_approvers=min_approvers,
            fallback_role=fallback_role,
        )


def demo_policy(department_codes: Iterable[str]) -> PolicyDocument:
    """Default grants plus head grants for each department and demo memberships."""
    grants = [Grant(*g) for g in get_default_grants()]
    for code in department_codes:
        grants.extend(Grant(*g) for g in head_grants(code))
    return PolicyDocument(grants=grants, memberships=list(DEMO_MEMBERSHIPS))


def seed_policy(store: PolicyStore, document: PolicyDocument) -> None:
    """Clear the policy store and reload it from ``document``."""
    store.load_document(document.grants, document.memberships)
    logger.info(
        f"Seeded {len(document.grants)} grants and {len(document.memberships)} memberships"
    )


def seed_demo(db: Session, store: PolicyStore, policy_file: Optional[str] = None) -> Dict[str, Department]:
    """Seed departments, rules and policy; commits the session."""
    departments = seed_departments(db)
    seed_rules(db, departments)
    db.commit()

    document = load_policy_file(policy_file) if policy_file else demo_policy(departments)
    seed_policy(store, document)
    return departments


def main(argv: Optional[List[str]] = None) -> None:
    from deptflow.core.policy.adapter import SqlPolicyAdapter
    from deptflow.db.session import SessionLocal, init_db

    settings = get_settings()
    parser = argparse.ArgumentParser(description="Seed the deptflow database")
    parser.add_argument(
        "--policy-file",
        default=settings.policy_file,
        help="YAML policy document to load instead of the demo policy",
    )
    args = parser.parse_args(argv)

    setup_logger(settings)

    init_db()
    store = PolicyStore(SqlPolicyAdapter(SessionLocal))
    db = SessionLocal()
    try:
        seed_demo(db, store, policy_file=args.policy_file)
    finally:
        db.close()
    logger.info("Seeding complete")


if __name__ == "__main__":
    main()
