"""CLI tool to list or delete enrolled users."""

import argparse
import sys
from pathlib import Path

# Add parent directory to path to import face_attendance modules
sys.path.insert(0, str(Path(__file__).parent.parent))

from face_attendance.db import FaceDatabase


def main():
    parser = argparse.ArgumentParser(description="Manage enrolled users")
    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser("list", help="List enrolled users")
    delete_parser = subparsers.add_parser("delete", help="Delete an enrolled user")
    delete_parser.add_argument("username")
    args = parser.parse_args()

    database = FaceDatabase()

    if args.command == "list":
        if len(database) == 0:
            print("No users enrolled.")
            return
        for username in sorted(database.names()):
            print(f"{username}: {len(database.get(username))} descriptor(s)")
        return

    if database.delete(args.username):
        print(f"Deleted '{args.username}'")
    else:
        print(f"Error: No user named '{args.username}'")
        sys.exit(1)


if __name__ == "__main__":
    main()
