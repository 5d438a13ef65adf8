#!/usr/bin/env python3
"""Lore - a knowledge base for the facts of fictional worlds.

Entities are linked by typed relationships that can be traversed as a graph;
free text is reduced to facts and checked for contradictions before it is saved.

Usage:
    python main.py --world middle-earth relate Frodo ally Sam --bidirectional
    python main.py --world middle-earth relations Frodo --depth 2
    python main.py --world middle-earth entities --search bag
    python main.py types list
    python main.py watch --source chapter1.md
"""

import argparse
import logging
import sys
import time

from lore.memory.entities import VALID_RELATION_TYPES
from lore.utils.exceptions import ConfigError, LoreError, NotFoundError
from lore.utils.logging_config import LOG_LEVELS, log_context, setup_logging

logger = logging.getLogger(__name__)


def cmd_relate(services, ctx, args: argparse.Namespace) -> None:
    relationship = services.relationships.create(
        ctx, args.source, args.type, args.target, bidirectional=args.bidirectional
    )
    print(f"Created relationship: {relationship.id}")
    arrow = "<->" if relationship.bidirectional else "-->"
    print(f"  {args.source} --{relationship.type.value}{arrow} {args.target}")


def cmd_unrelate(services, ctx, args: argparse.Namespace) -> None:
    services.relationships.delete(ctx, args.id)
    print(f"Deleted relationship: {args.id}")


def cmd_relations(services, ctx, args: argparse.Namespace) -> None:
    from lore.services.relationship_service import validate_depth

    depth = args.depth if args.depth is not None else services.settings.default_traversal_depth
    validate_depth(depth)

    if depth > 1:
        related = services.relationships.related(ctx, args.entity, depth, args.type)
        if not related:
            print(f"No related entities found for: {args.entity}")
            return
        print(f"Entities within {depth} hops of {args.entity}:")
        print("-" * 60)
        for entity in related:
            print(f"  {entity.name}")
        return

    views = services.relationships.list_for_entity(ctx, args.entity)
    if args.type:
        wanted = {rel.id for rel in services.relationships.list_by_type(ctx, args.type)}
        views = [view for view in views if view.relationship.id in wanted]
    if not views:
        print(f"No relationships found for: {args.entity}")
        return
    print(f"Relationships for {args.entity}:")
    print("-" * 60)
    for view in views:
        print(f"  {view.describe()}  ({view.relationship.id})")


def cmd_entities(services, ctx, args: argparse.Namespace) -> None:
    if args.search:
        entities = services.entities.search(ctx, args.search, args.limit)
        total = len(entities)
    else:
        entities = services.entities.list(ctx, args.limit)
        total = services.entities.count(ctx)
    if not entities:
        print("No entities found.")
        return
    print(f"Entities ({total} total):")
    print()
    for entity in entities:
        print(f"  {entity.id[:8] + '...':<12} {entity.name}")


def cmd_types(services, ctx, args: argparse.Namespace) -> None:
    types = services.entity_types
    if args.action == "list":
        registered = types.list()
        if not registered:
            print("No entity types found.")
            return
        for entity_type in registered:
            print(f"  {entity_type.name:<20} {entity_type.description}")
    elif args.action == "add":
        entity_type = types.add(args.name, args.description or "")
        print(f"Added entity type: {entity_type.name}")
    elif args.action == "remove":
        types.remove(args.name)
        print(f"Removed entity type: {args.name.strip().lower()}")
    elif args.action == "describe":
        from lore.memory.default_types import is_default_type

        entity_type = types.describe(args.name)
        if entity_type is None:
            raise NotFoundError("entity type", args.name)
        print(f"Name:        {entity_type.name}")
        print(f"Description: {entity_type.description}")
        print(f"Default:     {is_default_type(entity_type.name)}")
        print(f"Created:     {entity_type.created_at:%Y-%m-%d %H:%M:%S}")


def cmd_history(services, ctx, args: argparse.Namespace) -> None:
    versions = services.facts.history(args.fact_id)
    if not versions:
        print(f"No history for fact: {args.fact_id}")
        return
    for version in versions:
        reason = f" - {version.reason}" if version.reason else ""
        print(
            f"v{version.version} {version.change_type.value:<9} "
            f"{version.created_at:%Y-%m-%d %H:%M:%S}{reason}"
        )


def cmd_audit(services, ctx, args: argparse.Namespace) -> None:
    if args.fact:
        entries = services.db.find_audit_by_fact(args.fact)
    else:
        limit = args.limit if args.limit is not None else services.settings.audit_list_limit
        entries = services.db.find_audit_by_action(args.action, limit)
    if not entries:
        print("No audit entries found.")
        return
    for entry in entries:
        fact = f" {entry.fact_id}" if entry.fact_id else ""
        stamp = f"{entry.created_at:%Y-%m-%d %H:%M:%S}"
        print(f"#{entry.id} {stamp} {entry.action}{fact} {entry.details}")


def cmd_watch(services, ctx, args: argparse.Namespace) -> None:
    from lore.services import StagingSession

    session = StagingSession(
        ctx,
        services.extraction,
        services.facts,
        source=args.source or services.settings.watch_source,
        auto_save=args.auto_save or services.settings.watch_auto_save,
    )
    session.run()


COMMANDS = {
    "relate": cmd_relate,
    "unrelate": cmd_unrelate,
    "relations": cmd_relations,
    "entities": cmd_entities,
    "types": cmd_types,
    "history": cmd_history,
    "audit": cmd_audit,
    "watch": cmd_watch,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Lore - knowledge base for fictional-world facts and relationships"
    )
    parser.add_argument("--world", type=str, help="World to operate on (default: from settings)")
    parser.add_argument(
        "--log-level",
        choices=list(LOG_LEVELS),
        default=None,
        help="Logging level (default: from settings)",
    )
    parser.add_argument(
        "--log-file",
        type=str,
        default="default",
        help="Log file path (default: logs/lore.log, use 'none' to disable)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    relate = sub.add_parser("relate", help="Create a relationship between two entities")
    relate.add_argument("source")
    relate.add_argument("type", help=f"One of: {', '.join(VALID_RELATION_TYPES)}")
    relate.add_argument("target")
    relate.add_argument("--bidirectional", action="store_true", help="Visible from both ends")

    unrelate = sub.add_parser("unrelate", help="Delete a relationship by ID")
    unrelate.add_argument("id")

    relations = sub.add_parser("relations", help="Show relationships of an entity")
    relations.add_argument("entity")
    relations.add_argument("--depth", type=int, default=None, help="Traversal depth (1-5)")
    relations.add_argument("--type", type=str, default=None, help="Filter by relationship type")

    entities = sub.add_parser("entities", help="List entities of the world")
    entities.add_argument("--search", type=str, default=None, help="Filter by name substring")
    entities.add_argument("--limit", type=int, default=100, help="Maximum entities to show")

    types = sub.add_parser("types", help="Manage entity types")
    type_actions = types.add_subparsers(dest="action", required=True)
    type_actions.add_parser("list", help="List registered types")
    add = type_actions.add_parser("add", help="Register a custom type")
    add.add_argument("name")
    add.add_argument("description", nargs="?", default="")
    remove = type_actions.add_parser("remove", help="Remove a custom type")
    remove.add_argument("name")
    describe = type_actions.add_parser("describe", help="Show one type")
    describe.add_argument("name")

    history = sub.add_parser("history", help="Show the version history of a fact")
    history.add_argument("fact_id")

    audit = sub.add_parser("audit", help="Show audit log entries")
    target = audit.add_mutually_exclusive_group(required=True)
    target.add_argument("--fact", type=str, help="Entries for one fact or relationship ID")
    target.add_argument("--action", type=str, help="Entries for one action, e.g. facts.save")
    audit.add_argument("--limit", type=int, default=None, help="Maximum entries for --action")

    watch = sub.add_parser("watch", help="Interactive extraction with consistency checking")
    watch.add_argument("--source", type=str, default=None, help="Source name for facts")
    watch.add_argument("--auto-save", action="store_true", help="Save batches without conflicts")

    return parser


def load_settings():
    """Load settings, reporting a broken settings file as ConfigError."""
    from lore.settings import Settings

    try:
        return Settings.load()
    except ValueError as e:
        raise ConfigError(f"invalid settings: {e}") from e


def main(argv: list[str] | None = None) -> int:
    """Main entry point. Returns the process exit code."""
    t0 = time.perf_counter()
    args = build_parser().parse_args(argv)

    from lore.services import ServiceContainer

    try:
        settings = load_settings()
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    # Configure logging before anything touches the database
    log_file = None if args.log_file.lower() == "none" else args.log_file
    setup_logging(level=args.log_level or settings.log_level, log_file=log_file)

    services = None
    try:
        services = ServiceContainer(settings)
        ctx = services.context(args.world)
        with log_context(prefix=args.command, world_id=ctx.world_id):
            logger.info("Running %s in world %s", args.command, ctx.world_id)
            COMMANDS[args.command](services, ctx, args)
    except (LoreError, ValueError) as e:
        logger.debug("Command %s failed: %s", args.command, e)
        print(f"Error: {e}")
        return 1
    finally:
        if services is not None:
            services.close()

    logger.debug("%s finished in %.2fs", args.command, time.perf_counter() - t0)
    return 0


if __name__ == "__main__":
    sys.exit(main())
