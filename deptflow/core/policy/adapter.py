"""SQLAlchemy persistence for policy facts."""

from typing import Callable, Set, Tuple

from sqlalchemy import and_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from deptflow.core.logger import get_logger
from .store import Grant, Membership


logger = get_logger("policy_adapter")


class SqlPolicyAdapter:
    """
    Reads and writes grants and memberships through short-lived sessions.

    Each write commits on its own so that the fact is durable before the
    store exposes it.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def load(self) -> Tuple[Set[Grant], Set[Membership]]:
        from deptflow.db.models import PolicyGrant, RoleMembership

        db = self.session_factory()
        try:
            grants = {
                Grant(g.role, g.domain, g.resource, g.action)
                for g in db.query(PolicyGrant).all()
            }
            memberships = {
                Membership(m.user_id, m.role, m.domain)
                for m in db.query(RoleMembership).all()
            }
        finally:
            db.close()
        return grants, memberships

    def add_grant(self, grant: Grant) -> None:
        from deptflow.db.models import PolicyGrant

        db = self.session_factory()
        try:
            exists = db.query(PolicyGrant).filter(
                and_(
                    PolicyGrant.role == grant.role,
                    PolicyGrant.domain == grant.domain,
                    PolicyGrant.resource == grant.resource,
                    PolicyGrant.action == grant.action,
                )
            ).first()
            if exists:
                return
            db.add(PolicyGrant(
                role=grant.role,
                domain=grant.domain,
                resource=grant.resource,
                action=grant.action,
            ))
            db.commit()
        except IntegrityError:
            # Another writer inserted the same grant first
            db.rollback()
            logger.debug(f"Grant already persisted: {grant}")
        finally:
            db.close()

    def add_membership(self, membership: Membership) -> None:
        from deptflow.db.models import RoleMembership

        db = self.session_factory()
        try:
            exists = db.query(RoleMembership).filter(
                and_(
                    RoleMembership.user_id == membership.user,
                    RoleMembership.role == membership.role,
                    RoleMembership.domain == membership.domain,
                )
            ).first()
            if exists:
                return
            db.add(RoleMembership(
                user_id=membership.user,
                role=membership.role,
                domain=membership.domain,
            ))
            db.commit()
        except IntegrityError:
            db.rollback()
            logger.debug(f"Membership already persisted: {membership}")
        finally:
            db.close()

    def clear(self) -> None:
        from deptflow.db.models import PolicyGrant, RoleMembership

        db = self.session_factory()
        try:
            db.query(PolicyGrant).delete()
            db.query(RoleMembership).delete()
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()
