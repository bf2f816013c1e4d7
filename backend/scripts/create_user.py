"""CLI script to create an account on the local backend.
Usage: python scripts/create_user.py --email EMAIL --password PASSWORD
"""
import sys
import argparse
import pathlib
# Ensure `backend/` is on sys.path so `studyassist` imports work when running this script directly
ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))
from sqlmodel import Session
from studyassist.backends import AuthError
from studyassist.database import engine, create_db_and_tables
from studyassist import services


def main(email: str, password: str) -> int:
    """Create the user and print its id; returns a process exit code."""
    create_db_and_tables()
    with Session(engine) as session:
        try:
            user = services.AuthService(session).register(email, password)
        except AuthError as e:
            print(f'Could not create {email}: {e.message}')
            return 1
    print(f'Created user {user.email} (id {user.id})')
    return 0


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--email', required=True, help='Login email for the new account')
    parser.add_argument('--password', required=True, help='Password (at least 6 characters)')
    args = parser.parse_args()
    sys.exit(main(args.email, args.password))
