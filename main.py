#!/usr/bin/env python3
"""
AI Tools Platform -- management commands.

Usage:
  python main.py create-user "Ivan Ivanov" ivan.ivanov@company.com --role owner
  python main.py list-users
  python main.py revoke-tokens ivan.ivanov@company.com
  python main.py seed-demo

Passwords are read from --password or prompted for (never echoed).

Environment variables:
  DATABASE_URL  SQLAlchemy URL of the database (default: sqlite file next to this script)
  SECRET_KEY    Required unless DEBUG=true; keys token and session hashes
"""

import argparse
import getpass
import sys
from typing import Optional

from sqlalchemy.exc import IntegrityError

from auth.models import User
from auth.roles import Role
from auth.store import UserStore
from auth.tokens import TokenIssuer, hash_password
from catalog.models import Tool
from catalog.store import CatalogStore

DEMO_PASSWORD = "password"

DEMO_USERS = [
    ("Ivan Ivanov", "ivan.ivanov@company.com", Role.owner),
    ("Elena Petrova", "elena.petrova@company.com", Role.frontend),
    ("Peter Georgiev", "peter.georgiev@company.com", Role.backend),
    ("Maria Dimitrova", "maria.dimitrova@company.com", Role.pm),
    ("Stefan Nikolov", "stefan.nikolov@company.com", Role.qa),
    ("Anna Petrova", "anna.petrova@company.com", Role.designer),
]

DEMO_CATEGORIES = [
    "AI Assistant",
    "Frontend Development",
    "Backend Development",
    "Database",
    "DevOps",
    "Testing",
    "Design",
    "Project Management",
    "Version Control",
    "Security",
]

DEMO_ROLES = [
    "Frontend Developer",
    "Backend Developer",
    "Full Stack Developer",
    "DevOps Engineer",
    "QA Engineer",
    "Designer",
    "Project Manager",
]

# (tool, categories, roles, tags)
DEMO_TOOLS = [
    (
        dict(
            name="Claude.AI",
            link="https://claude.ai",
            description="AI assistant for writing, analysis and coding help.",
            usage="Ask questions, paste code for review, draft documentation.",
            difficulty_level="Beginner",
            rating=5.0,
        ),
        ["AI Assistant"],
        ["Full Stack Developer", "Project Manager"],
        ["ai", "assistant", "writing"],
    ),
    (
        dict(
            name="ChatGPT",
            link="https://chat.openai.com",
            description="Conversational AI for brainstorming and problem solving.",
            usage="Chat in the browser or call the API from scripts.",
            difficulty_level="Beginner",
            rating=4.8,
        ),
        ["AI Assistant"],
        ["Full Stack Developer"],
        ["ai", "chat"],
    ),
    (
        dict(
            name="GitHub Copilot",
            link="https://github.com/features/copilot",
            description="AI pair programmer inside the editor.",
            usage="Install the IDE extension and accept inline suggestions.",
            difficulty_level="Beginner",
            rating=4.7,
        ),
        ["AI Assistant", "Frontend Development", "Backend Development"],
        ["Frontend Developer", "Backend Developer", "Full Stack Developer"],
        ["ai", "autocomplete", "ide"],
    ),
    (
        dict(
            name="Docker",
            link="https://www.docker.com",
            description="Container platform for building and shipping applications.",
            usage="Write a Dockerfile, build an image, run it anywhere.",
            difficulty_level="Intermediate",
            rating=4.6,
        ),
        ["DevOps"],
        ["DevOps Engineer", "Backend Developer"],
        ["containers", "deployment"],
    ),
]


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------


def create_user(store: UserStore, name: str, email: str, password: str, role: str) -> Optional[int]:
    """Create a user. Returns the new id, or None if the email is taken."""
    try:
        return store.create_user(User(name=name, email=email, role=role, hashed_password=hash_password(password)))
    except IntegrityError:
        return None


def seed_demo(store: UserStore, catalog: CatalogStore) -> dict[str, int]:
    """Create the demo users, catalog taxonomy and a handful of tools.

    Idempotent: existing users, categories and roles are left alone, and
    tools are only added when the catalog has none.
    """
    counts = {"users": 0, "categories": 0, "roles": 0, "tools": 0}
    for name, email, role in DEMO_USERS:
        if store.get_by_email(email) is None:
            create_user(store, name, email, DEMO_PASSWORD, role.value)
            counts["users"] += 1

    existing = {c.name for c in catalog.list_categories()}
    for name in DEMO_CATEGORIES:
        if name not in existing:
            catalog.create_category(name)
            counts["categories"] += 1

    existing = {r.name for r in catalog.list_roles()}
    for name in DEMO_ROLES:
        if name not in existing:
            catalog.create_role(name)
            counts["roles"] += 1

    if catalog.list_tools().total == 0:
        owner = store.get_by_email(DEMO_USERS[0][1])
        category_ids = {c.name: c.id for c in catalog.list_categories()}
        role_ids = {r.name: r.id for r in catalog.list_roles()}
        for fields, categories, roles, tags in DEMO_TOOLS:
            catalog.create_tool(
                Tool(created_by=owner.id, **fields),
                category_ids=[category_ids[c] for c in categories],
                role_ids=[role_ids[r] for r in roles],
                tag_names=tags,
            )
            counts["tools"] += 1
    return counts


def _read_password(args: argparse.Namespace) -> str:
    if args.password:
        return args.password
    password = getpass.getpass("Password: ")
    if password != getpass.getpass("Confirm password: "):
        print("  [!] Passwords do not match.")
        sys.exit(1)
    return password


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        prog="aitools",
        description="Management commands for the AI Tools Platform.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py create-user "Ivan Ivanov" ivan.ivanov@company.com --role owner
  python main.py list-users
  python main.py revoke-tokens ivan.ivanov@company.com
  python main.py seed-demo
        """,
    )
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")

    p_create = sub.add_parser("create-user", help="Create a user account")
    p_create.add_argument("name", help="Display name")
    p_create.add_argument("email", help="Login email (stored lower-cased)")
    p_create.add_argument(
        "--role",
        choices=[r.value for r in Role],
        default=Role.user.value,
        help="Platform role (default: user)",
    )
    p_create.add_argument("--password", help="Password (prompted for when omitted)")

    sub.add_parser("list-users", help="List all user accounts")

    p_revoke = sub.add_parser("revoke-tokens", help="Revoke every API token of a user")
    p_revoke.add_argument("email", help="Email of the user")

    sub.add_parser("seed-demo", help="Create demo users, categories, roles and tools")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return 0

    store = UserStore()
    try:
        if args.command == "create-user":
            user_id = create_user(store, args.name, args.email, _read_password(args), args.role)
            if user_id is None:
                print(f"  [!] A user with email '{args.email}' already exists.")
                return 1
            print(f"  Created user #{user_id} ({args.role}).")

        elif args.command == "list-users":
            users = store.list_users()
            if not users:
                print("  No users yet. Run 'create-user' or 'seed-demo'.")
            for u in users:
                status = "active" if u.is_active else "disabled"
                print(f"  #{u.id:<4} {u.email:<40} {u.role:<10} {status}")

        elif args.command == "revoke-tokens":
            user = store.get_by_email(args.email)
            if user is None:
                print(f"  [!] No user with email '{args.email}'.")
                return 1
            count = TokenIssuer(store).revoke_all(user.id)
            print(f"  Revoked {count} token(s) for {user.email}.")

        elif args.command == "seed-demo":
            catalog = CatalogStore()
            try:
                counts = seed_demo(store, catalog)
            finally:
                catalog.close()
            print(
                "  Seeded {users} user(s), {categories} categor(ies), {roles} role(s), {tools} tool(s).".format(**counts)
            )
            print(f"  Demo accounts use the password '{DEMO_PASSWORD}'.")
    finally:
        store.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
