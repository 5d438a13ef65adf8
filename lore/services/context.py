"""Request context passed into every service operation."""

from __future__ import annotations

from dataclasses import dataclass, field

from lore.settings import Settings


@dataclass(frozen=True)
class RequestContext:
    """Which world an operation targets and the settings it runs with.

    Attributes:
        world_id: World namespace for entities, relationships and facts.
        settings: Settings for this invocation.
    """

    world_id: str
    settings: Settings = field(repr=False)

    @classmethod
    def for_world(
        cls, world_id: str | None = None, settings: Settings | None = None
    ) -> RequestContext:
        """Build a context, defaulting to the configured world and loaded settings."""
        settings = settings or Settings.load()
        return cls(world_id=world_id or settings.default_world, settings=settings)
