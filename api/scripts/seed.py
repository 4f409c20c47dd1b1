import argparse
import sys
from pathlib import Path

sys.path.append(str(Path(__file__).resolve().parents[1]))

from matchtime.database import SessionLocal
from matchtime.main import run_migrations, wait_for_db
from matchtime.services.seeding import MAX_FAKE_USERS_PER_RUN, backfill_profile_photos, cleanup_fake_users, generate_fake_users


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed fake MatchTime profiles")
    parser.add_argument("--count", type=int, default=20)
    parser.add_argument("--female-ratio", type=float, default=0.7)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--cleanup", action="store_true", help="delete existing fake users first")
    parser.add_argument("--backfill-photos", action="store_true")
    args = parser.parse_args()

    wait_for_db()
    run_migrations()

    summary: dict[str, object] = {}
    with SessionLocal() as db:
        if args.cleanup:
            summary["deleted"] = cleanup_fake_users(db)
        remaining = max(0, args.count)
        created = 0
        # generate_fake_users caps each run
        while remaining > 0:
            batch = min(remaining, MAX_FAKE_USERS_PER_RUN)
            out = generate_fake_users(db, count=batch, female_ratio=args.female_ratio, seed=args.seed)
            created += out["created"]
            remaining -= batch
        summary["created"] = created
        if args.backfill_photos:
            summary["photos_added"] = backfill_profile_photos(db)["added"]

    print("Seed completed")
    for k, v in summary.items():
        print(f"- {k}: {v}")


if __name__ == "__main__":
    main()
