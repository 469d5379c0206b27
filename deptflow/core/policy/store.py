"""Policy fact store for deptflow.

Holds the two authorization relations and answers enforcement queries:

- grants:      (role, domain, resource, action)
- memberships: (user, role, domain)

The wildcard domain ``*`` matches every concrete domain on both sides: a
role held in ``*`` applies in every department, and a grant made in ``*``
applies to every department the role is held in.

Facts live in memory behind a lock. An optional adapter persists them; when
one is configured, mutations are written through before they become visible
and the in-memory copy is reloaded once it is older than the cache TTL.
"""

import threading
import time
from typing import Callable, Dict, Iterable, NamedTuple, Optional, Protocol, Set, Tuple

from deptflow.core.logger import get_logger
from deptflow.core.rbac.permissions import WILDCARD_DOMAIN, is_wildcard


logger = get_logger("policy_store")


class Grant(NamedTuple):
    """A role may perform ``action`` on ``resource`` within ``domain``."""
    role: str
    domain: str
    resource: str
    action: str


class Membership(NamedTuple):
    """A user holds ``role`` within ``domain``."""
    user: str
    role: str
    domain: str


class PolicyAdapter(Protocol):
    """Persistence backend for policy facts."""

    def load(self) -> Tuple[Set[Grant], Set[Membership]]: ...

    def add_grant(self, grant: Grant) -> None: ...

    def add_membership(self, membership: Membership) -> None: ...

    def clear(self) -> None: ...


def _require(**values: str) -> None:
    """Reject empty identifiers."""
    for name, value in values.items():
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"{name} must be a non-empty string, got {value!r}")


def _domains(domain: str) -> Tuple[str, ...]:
    """Fact domains that match a queried domain."""
    if is_wildcard(domain):
        return (WILDCARD_DOMAIN,)
    return (domain, WILDCARD_DOMAIN)


class PolicyStore:
    """
    In-memory grant and membership relations with optional write-through.

    Thread-safe: queries and mutations serialize on a single re-entrant lock.
    """

    def __init__(
        self,
        adapter: Optional[PolicyAdapter] = None,
        *,
        cache_ttl_seconds: int = 0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the store.

        Args:
            adapter: Optional persistence backend; loaded immediately
            cache_ttl_seconds: Reload from the adapter once the in-memory copy
                is older than this. 0 never reloads implicitly.
            clock: Monotonic time source
        """
        self.adapter = adapter
        self.cache_ttl_seconds = cache_ttl_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._loaded_at = clock()

        self._grants: Set[Grant] = set()
        self._memberships: Set[Membership] = set()
        # role -> grants for that role
        self._grants_by_role: Dict[str, Set[Grant]] = {}
        # user -> memberships for that user
        self._memberships_by_user: Dict[str, Set[Membership]] = {}
        # (role, domain) -> users
        self._holders: Dict[Tuple[str, str], Set[str]] = {}

        if adapter is not None:
            self.load()

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def grant(self, role: str, domain: str, resource: str, action: str) -> bool:
        """
        Add a grant. Re-adding an existing grant is a no-op.

        Returns:
            True if the grant was new
        """
        _require(role=role, domain=domain, resource=resource, action=action)
        fact = Grant(role, domain, resource, action)
        with self._lock:
            if fact in self._grants:
                return False
            if self.adapter is not None:
                self.adapter.add_grant(fact)
            self._index_grant(fact)
        logger.info(f"Granted {action} on {resource} to role {role} in domain {domain}")
        return True

    def assign_role(self, user: str, role: str, domain: str) -> bool:
        """
        Add a role membership. Re-adding an existing membership is a no-op.

        Returns:
            True if the membership was new
        """
        _require(user=user, role=role, domain=domain)
        fact = Membership(user, role, domain)
        with self._lock:
            if fact in self._memberships:
                return False
            if self.adapter is not None:
                self.adapter.add_membership(fact)
            self._index_membership(fact)
        logger.info(f"Assigned role {role} in domain {domain} to user {user}")
        return True

    def clear(self) -> None:
        """Remove every grant and membership, including persisted ones."""
        with self._lock:
            if self.adapter is not None:
                self.adapter.clear()
            self._reset()
            self._loaded_at = self._clock()
        logger.warning("Cleared all policy facts")

    def load(self) -> None:
        """Replace the in-memory relations with the adapter's contents."""
        if self.adapter is None:
            return
        with self._lock:
            grants, memberships = self.adapter.load()
            self._reset()
            for fact in grants:
                self._index_grant(fact)
            for fact in memberships:
                self._index_membership(fact)
            self._loaded_at = self._clock()
        logger.debug(f"Loaded {len(grants)} grants and {len(memberships)} memberships")

    def load_document(
        self,
        grants: Iterable[Tuple[str, str, str, str]],
        memberships: Iterable[Tuple[str, str, str]],
    ) -> None:
        """Clear the store and reload it from the given facts."""
        with self._lock:
            self.clear()
            for grant in grants:
                self.grant(*grant)
            for membership in memberships:
                self.assign_role(*membership)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def enforce(self, user: str, domain: str, resource: str, action: str) -> bool:
        """
        Check whether ``user`` may perform ``action`` on ``resource`` in ``domain``.

        True iff some role the user holds in ``domain`` or ``*`` carries a
        grant for (resource, action) in ``domain`` or ``*``.
        """
        _require(user=user, domain=domain, resource=resource, action=action)
        matching = _domains(domain)
        with self._lock:
            self._refresh_if_stale()
            for membership in self._memberships_by_user.get(user, ()):
                if membership.domain not in matching:
                    continue
                for fact in self._grants_by_role.get(membership.role, ()):
                    if (
                        fact.resource == resource
                        and fact.action == action
                        and fact.domain in matching
                    ):
                        return True
        return False

    def roles_of(self, user: str) -> Set[Tuple[str, str]]:
        """All (role, domain) pairs held by ``user``."""
        _require(user=user)
        with self._lock:
            self._refresh_if_stale()
            return {(m.role, m.domain) for m in self._memberships_by_user.get(user, ())}

    def users_with_role(self, role: str, domain: str) -> Set[str]:
        """Users holding ``role`` in ``domain``, counting wildcard holders."""
        _require(role=role, domain=domain)
        with self._lock:
            self._refresh_if_stale()
            users: Set[str] = set()
            for held_in in _domains(domain):
                users |= self._holders.get((role, held_in), set())
            return users

    @property
    def grants(self) -> Set[Grant]:
        with self._lock:
            return set(self._grants)

    @property
    def memberships(self) -> Set[Membership]:
        with self._lock:
            return set(self._memberships)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _refresh_if_stale(self) -> None:
        if self.adapter is None or self.cache_ttl_seconds <= 0:
            return
        if self._clock() - self._loaded_at >= self.cache_ttl_seconds:
            self.load()

    def _reset(self) -> None:
        self._grants.clear()
        self._memberships.clear()
        self._grants_by_role.clear()
        self._memberships_by_user.clear()
        self._holders.clear()

    def _index_grant(self, fact: Grant) -> None:
        self._grants.add(fact)
        self._grants_by_role.setdefault(fact.role, set()).add(fact)

    def _index_membership(self, fact: Membership) -> None:
        self._memberships.add(fact)
        self._memberships_by_user.setdefault(fact.user, set()).add(fact)
        self._holders.setdefault((fact.role, fact.domain), set()).add(fact.user)
