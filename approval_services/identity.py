"""
approval_services.identity -- Identity and user-directory collaborators.

Responsibility:
    Structural protocols for the two organization lookups the engine
    needs: resolving the caller's ``Actor`` tuple, and expanding a role
    cohort into user ids for notification.  ``StaticDirectory`` satisfies
    both from an in-memory list; production deployments back them with
    their session provider and HR directory.

Architecture position:
    Services layer.  The engine trusts the tuple it is given and performs
    no authentication.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from approval_kernel.domain.records import Actor
from approval_kernel.exceptions import UnknownActorError


@runtime_checkable
class IdentityProvider(Protocol):
    def resolve(self, actor_id: int) -> Actor:
        """Actor for ``actor_id``; raises UnknownActorError if unknown."""
        ...


@runtime_checkable
class UserDirectory(Protocol):
    def users_with_role(self, role: str, department_id: str | None = None) -> frozenset[int]:
        """Ids of users holding ``role`` (in ``department_id`` when given)."""
        ...


class StaticDirectory:
    """In-memory IdentityProvider and UserDirectory.

    Can be replaced with a database- or LDAP-backed implementation.
    """

    def __init__(self, actors: Iterable[Actor] = ()) -> None:
        self._actors: dict[int, Actor] = {a.actor_id: a for a in actors}

    def add(self, actor: Actor) -> Actor:
        self._actors[actor.actor_id] = actor
        return actor

    def resolve(self, actor_id: int) -> Actor:
        try:
            return self._actors[actor_id]
        except KeyError:
            raise UnknownActorError(actor_id) from None

    def users_with_role(self, role: str, department_id: str | None = None) -> frozenset[int]:
        return frozenset(
            a.actor_id
            for a in self._actors.values()
            if role in a.roles
            and (department_id is None or a.department_id == department_id)
        )

    def __len__(self) -> int:
        return len(self._actors)
