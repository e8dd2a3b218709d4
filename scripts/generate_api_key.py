#!/usr/bin/env python3
"""
generate_api_key.py - Generate a citewatch API key for one user.

The raw key is shown once; only its SHA-256 hash is stored. The printed SQL
inserts the key into the ``api_keys`` table.

Usage:
    python scripts/generate_api_key.py --user-id 1b4e28ba-2fa1-11d2-883f-0016d3cca427
"""

import argparse
import hashlib
import re
import secrets
import string
import sys
import uuid
from datetime import datetime, timezone


# ANSI color codes
class C:
    RED = "\033[91m"
    CYAN = "\033[96m"
    YELLOW = "\033[93m"
    BOLD = "\033[1m"
    DIM = "\033[2m"
    RESET = "\033[0m"


CHARSET = string.ascii_letters + string.digits
KEY_PREFIX = "cw_sk_"
UUID_RE = re.compile(r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


def generate_api_key() -> str:
    """Generate an API key: cw_sk_ + 40 random alphanumeric characters."""
    random_part = "".join(secrets.choice(CHARSET) for _ in range(40))
    return f"{KEY_PREFIX}{random_part}"


def hash_key(raw_key: str) -> str:
    return hashlib.sha256(raw_key.encode()).hexdigest()


def insert_statement(user_id: str, raw_key: str) -> str:
    created_at = datetime.now(timezone.utc).isoformat()
    return (
        "INSERT INTO api_keys (id, user_id, key_hash, prefix, is_active, created_at) "
        f"VALUES ('{uuid.uuid4()}', '{user_id}', '{hash_key(raw_key)}', "
        f"'{raw_key[:11]}', 1, '{created_at}');"
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Generate a citewatch API key")
    parser.add_argument("--user-id", required=True, help="UUID of the key's owner")
    args = parser.parse_args()

    if not UUID_RE.match(args.user_id):
        print(f"{C.RED}--user-id must be a UUID{C.RESET}", file=sys.stderr)
        sys.exit(1)

    api_key = generate_api_key()

    print(f"\n{C.BOLD}citewatch API Key Generator{C.RESET}")
    print(f"{C.DIM}{'=' * 60}{C.RESET}\n")

    print(f"  {C.BOLD}User:{C.RESET}      {args.user_id}")
    print(f"  {C.BOLD}API Key:{C.RESET}   {C.CYAN}{api_key}{C.RESET}")
    print(f"  {C.BOLD}Hash:{C.RESET}      {hash_key(api_key)}")

    print(f"\n{C.DIM}{'=' * 60}{C.RESET}\n")

    print(f"  {C.BOLD}SQL:{C.RESET}")
    print(f"  {C.DIM}{insert_statement(args.user_id, api_key)}{C.RESET}\n")

    print(f"  {C.YELLOW}Keep your API key secret!{C.RESET}")
    print(f"  {C.DIM}Send it as: Authorization: Bearer {api_key[:11]}...{C.RESET}\n")


if __name__ == "__main__":
    main()
