"""CLI command for seeding the default style template catalog.

Usage:
    python -m fortyfive.cli [OPTIONS]

Examples:
    # Seed templates (existing names are skipped)
    python -m fortyfive.cli

    # Also create a demo user with 200 credits
    python -m fortyfive.cli --demo-user-credits 200

    # Verbose logging
    python -m fortyfive.cli -v
"""

import asyncio
import sys
from argparse import ArgumentParser, Namespace
from dataclasses import dataclass, field

import structlog

from fortyfive.core import timezone  # noqa: F401
from fortyfive.core.config import Settings, configure_logging
from fortyfive.core.database import create_tables, dispose, setup_db_session
from fortyfive.models.template import Template
from fortyfive.models.user import User
from fortyfive.uow import UnitOfWorkFactory, create_uow_factory

logger = structlog.get_logger()

DEMO_USER_OPENID = "demo_openid"

DEFAULT_TEMPLATES = [
    {
        "name": "Cyberpunk",
        "description": "Futuristic cityscapes and neon lights.",
        "preview_image_url": "/images/cyberpunk.png",
        "credit_cost": 10,
    },
    {
        "name": "Van Gogh",
        "description": "Classic impressionist style.",
        "preview_image_url": "/images/vangogh.png",
        "credit_cost": 15,
    },
    {
        "name": "Ghibli",
        "description": "Hayao Miyazaki inspired anime style.",
        "preview_image_url": "/images/ghibli.png",
        "credit_cost": 20,
    },
    {
        "name": "3D Render",
        "description": "Pixar-like 3D characters.",
        "preview_image_url": "/images/3d.png",
        "credit_cost": 25,
    },
    {
        "name": "Watercolor",
        "description": "Soft and vibrant watercolor painting.",
        "preview_image_url": "/images/watercolor.png",
        "credit_cost": 10,
    },
]


@dataclass
class SeedResult:
    created: list[str] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)
    demo_user_id: int | None = None


async def seed_templates(
    uow_factory: UnitOfWorkFactory, demo_user_credits: int | None = None
) -> SeedResult:
    """Insert every default template whose name is not taken yet.

    Args:
        uow_factory: UnitOfWork factory
        demo_user_credits: If set, also ensure a demo user exists with this starting balance

    Returns:
        SeedResult listing created and skipped template names
    """
    result = SeedResult()

    async with await uow_factory() as uow:
        for default in DEFAULT_TEMPLATES:
            if await uow.templates.get_by_name(default["name"]) is not None:
                logger.info("seed.template_exists", name=default["name"])
                result.skipped.append(default["name"])
                continue

            await uow.templates.add(Template(**default))
            logger.info(
                "seed.template_created", name=default["name"], credit_cost=default["credit_cost"]
            )
            result.created.append(default["name"])

        if demo_user_credits is not None:
            user = await uow.users.get_by_openid(DEMO_USER_OPENID)
            if user is None:
                user = await uow.users.add(
                    User(
                        wechat_openid=DEMO_USER_OPENID,
                        nickname="Demo User",
                        credits=demo_user_credits,
                    )
                )
                logger.info("seed.demo_user_created", user_id=user.id, credits=demo_user_credits)
            result.demo_user_id = user.id

    return result


def parse_args(argv: list[str] | None = None) -> Namespace:
    """Parse command-line arguments."""
    parser = ArgumentParser(
        description="Seed the default style template catalog",
        epilog="Templates are matched by name; existing ones are left untouched",
    )

    parser.add_argument(
        "--demo-user-credits",
        type=int,
        help="Create a demo user with this many starting credits (skipped if it exists)",
    )

    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Enable verbose logging (DEBUG level)",
    )

    return parser.parse_args(argv)


async def async_main(argv: list[str] | None = None) -> int:
    """Main CLI entry point (async).

    Returns:
        Exit code: 0 (success), 1 (error)
    """
    args = parse_args(argv)

    settings = Settings()  # type: ignore[call-arg]
    if args.verbose:
        settings.log_level = "DEBUG"
    configure_logging(settings)

    if args.demo_user_credits is not None and args.demo_user_credits < 0:
        print("Error: --demo-user-credits must not be negative", file=sys.stderr)
        return 1

    logger.info("cli.started", demo_user_credits=args.demo_user_credits)

    session_factory = setup_db_session(settings.database_url, settings.db_pool_size)
    try:
        await create_tables(session_factory)
        result = await seed_templates(
            create_uow_factory(session_factory), demo_user_credits=args.demo_user_credits
        )

        print("\n" + "=" * 60)
        print("Template Seed Summary")
        print("=" * 60)
        print(f"Templates created: {len(result.created)}")
        for name in result.created:
            print(f"  + {name}")
        print(f"Templates skipped (already present): {len(result.skipped)}")
        if result.demo_user_id is not None:
            print(f"Demo user id: {result.demo_user_id}")
        print("=" * 60 + "\n")

        logger.info("cli.success", created=len(result.created), skipped=len(result.skipped))
        return 0

    except KeyboardInterrupt:
        logger.info("cli.interrupted")
        print("\nSeeding interrupted by user", file=sys.stderr)
        return 130

    except Exception as e:
        logger.error(
            "cli.unexpected_error",
            error=str(e),
            error_type=type(e).__name__,
        )
        print(f"\nUnexpected error: {e}", file=sys.stderr)
        return 1

    finally:
        await dispose(session_factory)


def main() -> None:
    """Synchronous entry point for CLI."""
    sys.exit(asyncio.run(async_main()))


if __name__ == "__main__":
    main()
