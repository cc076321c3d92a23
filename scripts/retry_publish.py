"""Operator script: re-run publishing for a post that failed on every platform.

Prints each publication before and after the attempt. Posts that are not
in a publishable state are left untouched.

Usage:
    python -m scripts.retry_publish 42
    python -m scripts.retry_publish 42 --dry-run
"""

import asyncio
import sys

from sqlalchemy import select

from creatorpulse.core.exceptions import ValidationError
from creatorpulse.db.session import async_session_factory, engine
from creatorpulse.models.post import Post
from creatorpulse.services.post_state_machine import PUBLISHABLE_STATUSES
from creatorpulse.services.publishing import publish_post


async def retry_publish(post_id: int, dry_run: bool = False) -> None:
    async with async_session_factory() as db:
        result = await db.execute(select(Post).where(Post.id == post_id, Post.deleted_at.is_(None)))
        post = result.scalar_one_or_none()

        if not post:
            print(f"No live post with id={post_id}")
            return

        print(f"Post #{post.id} (user {post.user_id}): status={post.status}")
        for pub in post.publications:
            print(f"  {pub.platform:<9} {pub.status:<10} {pub.error_message or ''}")
        print()

        if post.status not in PUBLISHABLE_STATUSES:
            print(f"Status {post.status} cannot be published again.")
            return

        if dry_run:
            print("Dry run: nothing sent.")
            return

        try:
            outcome = await publish_post(db, post.user_id, post.id)
        except ValidationError as exc:
            print(f"Rejected: {exc}")
            return

        print(f"Result: {outcome.status}")
        for r in outcome.results:
            detail = r.platform_url if r.success else r.error
            print(f"  {r.platform:<9} {'ok' if r.success else 'FAILED':<10} {detail or ''}")

    await engine.dispose()


if __name__ == "__main__":
    if len(sys.argv) < 2:
        print("Usage: python -m scripts.retry_publish <post_id> [--dry-run]")
        sys.exit(1)
    asyncio.run(retry_publish(int(sys.argv[1]), dry_run="--dry-run" in sys.argv))
