"""Mutator backend interface.

A backend performs the four create operations a template run needs against
one Discord deployment. Every call returns a ``MutationResult`` instead of
raising, so a failed operation is just data to the orchestrator.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from guild_templater.types import (
    ChannelSpec,
    MutationResult,
    PermissionOverride,
    RoleSpec,
)


class MutatorBackend(ABC):
    """Creates servers, roles, categories and channels."""

    #: Whether independent channel creations may be issued from worker threads.
    supports_concurrency: bool = False

    name: str = "backend"

    @abstractmethod
    def create_server(self, name: str) -> MutationResult:
        """Create a server and return its reference in ``ref``."""

    @abstractmethod
    def create_role(self, server_ref: str, role: RoleSpec) -> MutationResult:
        """Create ``role`` in the server identified by ``server_ref``."""

    @abstractmethod
    def create_category(
        self,
        server_ref: str,
        name: str,
        permission_overrides: tuple[PermissionOverride, ...] = (),
    ) -> MutationResult:
        """Create a category and return its reference in ``ref``.

        ``permission_overrides`` name roles; backends that cannot apply
        overrides create the category without them.
        """

    @abstractmethod
    def create_channel(
        self,
        server_ref: str,
        channel: ChannelSpec,
        category_ref: Optional[str] = None,
    ) -> MutationResult:
        """Create ``channel``, parented to ``category_ref`` when given.

        The channel's own ``permission_overrides`` travel on ``channel``.

        ``category_ref`` is either a category id returned by
        :meth:`create_category` or, when that creation failed, the category
        name. Backends resolve names on a best-effort basis and fall back to
        creating the channel without a parent.
        """

    def close(self) -> None:
        """Release any resources held by the backend."""
