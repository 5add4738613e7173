"""Owner references: every agent belongs to exactly one team or aide."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any
from uuid import UUID

from steward.errors import OwnershipError


@dataclass(frozen=True)
class TeamOwner:
    id: UUID

    @property
    def columns(self) -> dict[str, UUID | None]:
        return {"team_id": self.id, "aide_id": None}


@dataclass(frozen=True)
class AideOwner:
    id: UUID

    @property
    def columns(self) -> dict[str, UUID | None]:
        return {"team_id": None, "aide_id": self.id}


OwnerRef = TeamOwner | AideOwner


def owner_of(row: Any) -> OwnerRef:
    """Build the owner ref for any row with team_id/aide_id columns.

    Raises OwnershipError when the row references neither or both owners.
    """
    team_id = getattr(row, "team_id", None)
    aide_id = getattr(row, "aide_id", None)
    if team_id is not None and aide_id is None:
        return TeamOwner(team_id)
    if aide_id is not None and team_id is None:
        return AideOwner(aide_id)
    raise OwnershipError(
        f"{type(row).__name__} {getattr(row, 'id', '?')} must have exactly one of team_id/aide_id"
    )
