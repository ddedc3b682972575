"""
SecretGuard CLI — operator commands.

Usage:
    secretguard init                 # Create master key + deny-all policy file
    secretguard migrate              # Create vault and audit tables
    secretguard policy check         # Validate the policy file
    secretguard policy hash-token    # Digest a caller token for the policy file
    secretguard vault set KEY        # Store a secret (value read without echo)
    secretguard vault delete KEY
    secretguard vault list
    secretguard audit                # Show recent access records
    secretguard audit --stats        # Totals by outcome
    secretguard reset-auth KEY       # Revoke the cached grant for KEY
    secretguard version
"""

from __future__ import annotations

import argparse
import getpass
import logging
import os
import sys
from pathlib import Path

SAMPLE_POLICY = """\
# SecretGuard caller policy. An empty list denies every caller.
#
# callers:
#   - name: signer-bot
#     token_sha256: <output of 'secretguard policy hash-token'>
#     identifiers: ["wallet*"]
#
# fingerprints:
#   wallet1: <sha256 hex of the payload>
callers: []
"""


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="secretguard",
        description="SecretGuard — scoped, audited access to short-lived secrets.",
    )
    parser.add_argument("--version", action="store_true", help="Show version and exit")
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")

    subparsers = parser.add_subparsers(dest="command")

    # init
    init_parser = subparsers.add_parser("init", help="Create master key and policy file")
    init_parser.add_argument("--workspace", type=str, help="Workspace dir (default: ~/.secretguard)")

    # migrate
    migrate_parser = subparsers.add_parser("migrate", help="Create database tables")
    migrate_parser.add_argument(
        "--dry-run", action="store_true", help="Print SQL without executing"
    )

    # policy
    policy_parser = subparsers.add_parser("policy", help="Inspect the caller policy")
    policy_sub = policy_parser.add_subparsers(dest="policy_command")
    check = policy_sub.add_parser("check", help="Validate the policy file")
    check.add_argument("--file", type=str, help="Policy file (default: from config)")
    policy_sub.add_parser("hash-token", help="Print the SHA-256 digest of a caller token")

    # vault
    vault_parser = subparsers.add_parser("vault", help="Manage stored secrets")
    vault_sub = vault_parser.add_subparsers(dest="vault_command")
    v_set = vault_sub.add_parser("set", help="Store a secret (prompts for the value)")
    v_set.add_argument("identifier")
    v_set.add_argument("--stdin", action="store_true", help="Read the value from stdin")
    v_del = vault_sub.add_parser("delete", help="Delete a secret")
    v_del.add_argument("identifier")
    vault_sub.add_parser("list", help="List stored identifiers (never values)")

    # audit
    audit_parser = subparsers.add_parser("audit", help="Show recent access records")
    audit_parser.add_argument("--limit", type=int, default=20)
    audit_parser.add_argument("--identifier", type=str)
    audit_parser.add_argument("--caller", type=str)
    audit_parser.add_argument("--outcome", type=str)
    audit_parser.add_argument("--event-type", type=str, help="e.g. secret.acquire, auth.reset")
    audit_parser.add_argument("--since", type=str, help="ISO timestamp; naive means UTC")
    audit_parser.add_argument("--stats", action="store_true", help="Show totals, not records")

    # reset-auth
    reset_parser = subparsers.add_parser("reset-auth", help="Revoke a cached authorization grant")
    reset_parser.add_argument("identifier")

    # version
    subparsers.add_parser("version", help="Show version")

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.version or args.command == "version":
        from secretguard import __version__

        print(f"secretguard {__version__}")
        return 0

    if args.command == "init":
        return _cmd_init(args)
    elif args.command == "migrate":
        return _cmd_migrate(args)
    elif args.command == "policy":
        return _cmd_policy(args, policy_parser)
    elif args.command == "vault":
        return _cmd_vault(args, vault_parser)
    elif args.command == "audit":
        return _cmd_audit(args)
    elif args.command == "reset-auth":
        return _cmd_reset_auth(args)
    else:
        parser.print_help()
        return 0


def _operator() -> str:
    return f"cli:{os.environ.get('USER', 'unknown')}"


def _cmd_init(args: argparse.Namespace) -> int:
    from secretguard.config import get_config
    from secretguard.vault.crypto import init_master_key

    cfg = get_config()
    workspace = Path(args.workspace) if args.workspace else cfg.workspace
    key_path = init_master_key(workspace)
    print(f"Master key: {key_path}")

    policy_file = workspace / "policy.yaml" if args.workspace else cfg.policy_file
    if policy_file.exists():
        print(f"Policy file exists, left untouched: {policy_file}")
    else:
        policy_file.parent.mkdir(parents=True, exist_ok=True)
        policy_file.write_text(SAMPLE_POLICY)
        print(f"Policy file (deny-all): {policy_file}")
    return 0


def _find_migration_sql() -> str | None:
    bundled = Path(__file__).parent / "migrations" / "001_init.sql"
    if bundled.exists():
        return bundled.read_text()
    return None


def _cmd_migrate(args: argparse.Namespace) -> int:
    sql = _find_migration_sql()
    if sql is None:
        print("Error: Migration SQL not found.")
        print("Expected at: secretguard/migrations/001_init.sql")
        return 1

    if args.dry_run:
        print("-- Dry run: the following SQL would be executed --")
        print(sql)
        return 0

    try:
        from secretguard.db.connection import get_connection

        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(sql)
        print("Migration completed successfully.")
        return 0
    except Exception as e:
        print(f"Error: Migration failed: {e}")
        print("Check SECRETGUARD_DB_* environment variables and ensure PostgreSQL is running.")
        return 1


def _cmd_policy(args: argparse.Namespace, policy_parser: argparse.ArgumentParser) -> int:
    if args.policy_command == "hash-token":
        from secretguard.policy import hash_token

        token = getpass.getpass("Caller token: ")
        if not token:
            print("Error: empty token")
            return 1
        print(hash_token(token))
        return 0

    if args.policy_command == "check":
        from secretguard.config import get_config
        from secretguard.errors import PolicyError
        from secretguard.policy import load_policy_document

        path = Path(args.file) if args.file else get_config().policy_file
        if not path.exists():
            print(f"Policy file not found: {path} (every caller would be denied)")
            return 1
        try:
            doc = load_policy_document(path)
        except PolicyError as e:
            print(f"Error: {e}")
            return 1
        print(f"Policy OK: {path}")
        if not doc.callers:
            print("  No callers — every acquisition will be denied.")
        for c in doc.callers:
            token = "token required" if c.token_sha256 else "no token"
            print(f"  {c.name:<24} {token:<15} {', '.join(c.identifiers)}")
        if doc.fingerprints:
            print(f"  {len(doc.fingerprints)} pinned fingerprint(s)")
        return 0

    policy_parser.print_help()
    return 0


def _cmd_vault(args: argparse.Namespace, vault_parser: argparse.ArgumentParser) -> int:
    from secretguard import vault
    from secretguard.config import get_config

    service_id = get_config().guard.service_id
    try:
        if args.vault_command == "set":
            value = sys.stdin.readline().rstrip("\n") if args.stdin else getpass.getpass("Value: ")
            if not value:
                print("Error: empty value")
                return 1
            vault.set(service_id, args.identifier, value)
            print(f"Stored {service_id}/{args.identifier}")
            return 0
        if args.vault_command == "delete":
            if vault.delete(service_id, args.identifier):
                print(f"Deleted {service_id}/{args.identifier}")
                return 0
            print(f"Not found: {service_id}/{args.identifier}")
            return 1
        if args.vault_command == "list":
            for entry in vault.list(service_id):
                updated = entry.updated_at.isoformat() if entry.updated_at else "-"
                print(f"{entry.identifier:<32} {updated}")
            return 0
    except Exception as e:
        print(f"Error: vault operation failed: {e}")
        return 1

    vault_parser.print_help()
    return 0


def _cmd_audit(args: argparse.Namespace) -> int:
    from secretguard.audit.sinks import JsonlAuditSink, PostgresAuditSink
    from secretguard.config import get_config

    cfg = get_config()
    if cfg.audit_backend == "jsonl":
        sink: JsonlAuditSink | PostgresAuditSink = JsonlAuditSink(cfg.audit_path)
    elif cfg.audit_backend == "postgres":
        sink = PostgresAuditSink()
    else:
        print(f"Audit backend '{cfg.audit_backend}' cannot be queried")
        return 1

    if args.stats:
        summary = sink.stats()
        if "error" in summary:
            print(f"Error: audit stats unavailable: {summary['error']}")
            return 1
        print(f"Total events:  {summary['total_events']}")
        print(f"Denied/failed: {summary['denied_events']}")
        print(f"Earliest:      {summary['earliest'] or '-'}")
        print(f"Latest:        {summary['latest'] or '-'}")
        for outcome, count in summary["by_outcome"].items():
            print(f"  {outcome:<10} {count}")
        return 0

    try:
        records = sink.read(
            args.limit,
            identifier=args.identifier,
            caller=args.caller,
            outcome=args.outcome,
            event_type=args.event_type,
            since=args.since,
        )
    except ValueError as e:
        print(f"Error: invalid --since value: {e}")
        return 1
    if not records:
        print("No audit records.")
        return 0
    for r in records:
        reason = f" ({r.reason})" if r.reason else ""
        print(
            f"{r.timestamp.isoformat()}  {r.event_type:<15} {r.outcome:<9} "
            f"{r.identifier:<20} {r.caller}{reason}"
        )
    return 0


def _cmd_reset_auth(args: argparse.Namespace) -> int:
    from secretguard.errors import SecretGuardError
    from secretguard.factory import create_guard

    try:
        guard = create_guard()
    except SecretGuardError as e:
        print(f"Error: {e}")
        return 1
    with guard:
        try:
            removed = guard.reset_authorization(args.identifier, caller=_operator())
        except SecretGuardError as e:
            print(f"Error: {e}")
            return 1
    print(f"Reset {args.identifier}: {'grant revoked' if removed else 'no grant cached'}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
