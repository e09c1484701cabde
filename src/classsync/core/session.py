# src/classsync/core/session.py

from __future__ import annotations

from dataclasses import dataclass

from .ports import Actor


@dataclass(slots=True)
class StaticAuthContext:
    """AuthContext with a fixed actor (console runs, tests). `switch` changes who is acting."""

    actor: Actor

    def current_actor(self) -> Actor:
        return self.actor

    def switch(self, user_id: str, display_name: str | None = None, role: str | None = None) -> Actor:
        self.actor = Actor(
            user_id=user_id,
            display_name=display_name or user_id,
            role=role or self.actor.role,
        )
        return self.actor
