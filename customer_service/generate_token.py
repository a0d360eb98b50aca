#!/usr/bin/env python3
"""
Mint a bearer token for calling the API by hand.

Uses the same JWT_SECRET_KEY / JWT_ISSUER / JWT_EXPIRATION_MS settings as
the service, so the token is accepted by a node configured the same way.

    generate-token --user-id 2 --email bob@example.com --role ADMIN
"""
import argparse
import sys

from customer_service.auth.jwt import JWTSettings, TokenCodec
from customer_service.auth.models import Role


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a JWT for the customer service")
    parser.add_argument("--user-id", required=True, help="Customer ID to put in the token")
    parser.add_argument("--email", required=True, help="Customer email to put in the token")
    parser.add_argument(
        "--role",
        default=Role.CUSTOMER.value,
        type=str.upper,
        choices=[r.value for r in Role],
        help="Role claim (default: CUSTOMER)",
    )
    parser.add_argument("--base-url", default="http://localhost:8081", help="Used in the printed curl example")
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    try:
        codec = TokenCodec(JWTSettings.from_env())
    except ValueError as e:
        print(f"Error: invalid JWT configuration: {e}", file=sys.stderr)
        return 1

    token = codec.issue(args.user_id, args.email, Role(args.role))

    print(f"User ID: {args.user_id}")
    print(f"Email: {args.email}")
    print(f"Role: {args.role}")
    print()
    print("Token:")
    print(token)
    print()
    print("Use in curl:")
    print(f"curl --request GET '{args.base_url}/customers/{args.user_id}' \\")
    print(f"  --header 'Authorization: Bearer {token}'")
    return 0


if __name__ == "__main__":
    sys.exit(main())
