"""
Issue a bearer token for the operator endpoints (/jobs, /subscriptions).

Usage:
  python scripts/issue_operator_token.py ops@example.com [ttl_minutes]
"""
from __future__ import annotations

import sys

from app.core.security import TOKEN_TTL_MINUTES, create_access_token


def main() -> None:
    if len(sys.argv) < 2:
        raise SystemExit(__doc__)
    ttl = int(sys.argv[2]) if len(sys.argv) > 2 else TOKEN_TTL_MINUTES
    print(create_access_token(sys.argv[1], ttl_minutes=ttl))


if __name__ == "__main__":
    main()
