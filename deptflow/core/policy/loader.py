"""Policy document loading.

A policy document is a YAML file listing grants and role memberships:

    grants:
      - [AF, "*", requests, view]
      - role: HD
        domain: D15
        resource: requests
        action: "approve:DEPT_HEAD"
    memberships:
      - [user_hd_a, HD, D15]
      - user: user_amd_1
        role: AMD
        domain: "*"

Either the list or the mapping form may be used for each entry.
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Sequence, Tuple, Union

import yaml

from .store import Grant, Membership


@dataclass
class PolicyDocument:
    """Parsed contents of a policy file."""

    grants: List[Grant] = field(default_factory=list)
    memberships: List[Membership] = field(default_factory=list)


def _parse_entry(entry: Any, fields: Sequence[str], kind: str) -> Tuple[str, ...]:
    if isinstance(entry, dict):
        missing = [name for name in fields if name not in entry]
        if missing:
            raise ValueError(f"Invalid {kind} {entry!r}: missing {', '.join(missing)}")
        values = tuple(entry[name] for name in fields)
    elif isinstance(entry, (list, tuple)):
        if len(entry) != len(fields):
            raise ValueError(
                f"Invalid {kind} {list(entry)!r}: expected {len(fields)} fields "
                f"({', '.join(fields)})"
            )
        values = tuple(entry)
    else:
        raise ValueError(f"Invalid {kind} entry: {entry!r}")

    for value in values:
        if not isinstance(value, str) or not value.strip():
            raise ValueError(f"Invalid {kind} {entry!r}: fields must be non-empty strings")
    return tuple(value.strip() for value in values)


def parse_policy_document(data: Any) -> PolicyDocument:
    """Build a PolicyDocument from already-parsed YAML data."""
    if data is None:
        return PolicyDocument()
    if not isinstance(data, dict):
        raise ValueError("Policy document must be a mapping with 'grants' and 'memberships'")

    grants = [
        Grant(*_parse_entry(entry, Grant._fields, "grant"))
        for entry in data.get("grants") or []
    ]
    memberships = [
        Membership(*_parse_entry(entry, Membership._fields, "membership"))
        for entry in data.get("memberships") or []
    ]
    return PolicyDocument(grants=grants, memberships=memberships)


def load_policy_file(path: Union[str, Path]) -> PolicyDocument:
    """Load a policy document from a YAML file.

    Raises:
        FileNotFoundError: If the file does not exist
        ValueError: If the document is malformed
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Policy file not found: {path}")

    with open(path, "r") as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in policy file {path}: {e}") from e

    return parse_policy_document(data)
