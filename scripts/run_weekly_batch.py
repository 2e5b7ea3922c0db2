"""Run the weekly candidate batch for every matchable user.

Intended for the external scheduler (cron / Cloud Scheduler job).  Each user
runs in its own session and transaction, so one user's failure never rolls
back another's slate.

Usage: python -m scripts.run_weekly_batch [--week 2026-10-18] [--expire]
"""
import argparse
import asyncio
import sys
import uuid
from datetime import date, datetime, timezone

sys.path.insert(0, ".")

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from moai.database import async_session_factory, engine
from moai.exceptions import MissingPrerequisite
from moai.models import Profile
from moai.services import query_service
from moai.services.batch_service import BatchService, week_anchor


async def run_for_users(
    service: BatchService,
    user_ids: list[uuid.UUID],
    batch_week: date,
    session_factory=async_session_factory,
) -> dict[str, int]:
    """Generate each user's slate in its own transaction and tally outcomes."""
    totals = {"created": 0, "skipped": 0, "failed": 0, "not_ready": 0, "errored": 0}
    for user_id in user_ids:
        async with session_factory() as session:
            try:
                outcome = await service.generate_weekly_matches(user_id, batch_week, session)
                await session.commit()
            except MissingPrerequisite:
                await session.rollback()
                totals["not_ready"] += 1
                continue
            except SQLAlchemyError as exc:
                await session.rollback()
                totals["errored"] += 1
                print(f"  ERROR user {user_id}: {exc}", file=sys.stderr)
                continue
        totals["created"] += len(outcome.created)
        totals["skipped"] += len(outcome.skipped)
        totals["failed"] += len(outcome.failed)
    return totals


async def run(batch_week: date, expire_first: bool) -> None:
    service = BatchService()

    if expire_first:
        async with async_session_factory() as session:
            expired = await query_service.expire_stale_candidates(session)
            await session.commit()
        print(f"  Expired {expired} stale candidates.")

    async with async_session_factory() as session:
        result = await session.execute(
            select(Profile.id).where(
                Profile.is_active.is_(True),
                Profile.is_paused.is_(False),
            )
        )
        user_ids = list(result.scalars().all())

    totals = await run_for_users(service, user_ids, batch_week)

    await engine.dispose()
    print(
        f"Batch {batch_week.isoformat()}: {len(user_ids)} users, "
        f"{totals['created']} created, {totals['skipped']} skipped, "
        f"{totals['failed']} failed, {totals['not_ready']} not ready, "
        f"{totals['errored']} errored."
    )


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--week",
        type=date.fromisoformat,
        default=None,
        help="Batch week key (defaults to this week's Sunday)",
    )
    parser.add_argument(
        "--expire",
        action="store_true",
        help="Persist 'expired' on stale pending candidates before the run",
    )
    args = parser.parse_args()

    batch_week = args.week or week_anchor(datetime.now(timezone.utc))
    asyncio.run(run(batch_week, args.expire))


if __name__ == "__main__":
    main()
