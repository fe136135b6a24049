#!/usr/bin/env python3
"""
Connect a tutor's Google account from the command line.

Runs the same OAuth flow as the web callback, for support staff and local
development: prints the consent URL, then takes the URL Google redirected
to and stores the tutor's credential.

Usage:
    python scripts/connect_tutor.py --tutor-id=UUID [--create]

Requirements:
    - GOOGLE_CLIENT_ID, GOOGLE_CLIENT_SECRET and GOOGLE_REDIRECT_URI must
      be set in the environment or .env
"""
import argparse
import os
import sys
from urllib.parse import parse_qs, urlparse
from uuid import UUID

# Add parent directory to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlmodel import Session

from tutormeet.calendar.provider import get_provider
from tutormeet.core.database import create_db_and_tables, engine
from tutormeet.core.errors import MeetingError
from tutormeet.models import Tutor
from tutormeet.oauth.session import build_authorization_url, complete_authorization, get_status


def main():
    parser = argparse.ArgumentParser(description="Connect a tutor's Google account")
    parser.add_argument("--tutor-id", required=True, type=UUID, help="Tutor UUID")
    parser.add_argument(
        "--create", action="store_true", help="Create the tutor record if it does not exist"
    )
    args = parser.parse_args()

    create_db_and_tables()
    provider = get_provider()

    with Session(engine) as session:
        if session.get(Tutor, args.tutor_id) is None:
            if not args.create:
                print(f"Error: tutor {args.tutor_id} not found (use --create to add it).")
                sys.exit(1)
            session.add(Tutor(id=args.tutor_id))
            session.commit()

        try:
            auth = build_authorization_url(provider, args.tutor_id)
        except MeetingError as e:
            print(f"Error: {e.message}")
            sys.exit(1)

        print("=" * 60)
        print("Google Meet OAuth Setup")
        print("=" * 60)
        print()
        print("Open this URL in a browser signed in as the tutor:")
        print()
        print(auth["url"])
        print()

        redirect_response = input("Paste the full redirect URL here: ").strip()
        query = parse_qs(urlparse(redirect_response).query)

        try:
            complete_authorization(
                session,
                provider,
                query.get("code", [None])[0],
                query.get("state", [None])[0],
            )
            status = get_status(session, provider, args.tutor_id)
        except MeetingError as e:
            print(f"Error: {e.code}: {e.message}")
            sys.exit(1)

        print()
        print("=" * 60)
        print(f"SUCCESS! Tutor {args.tutor_id} is {status['status']}.")
        print(f"Scopes: {', '.join(status['scopes']) or '(none)'}")
        print("=" * 60)


if __name__ == "__main__":
    main()
