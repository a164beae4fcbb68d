"""
Scheduled polling for chat subscriptions.
Every few seconds, each open subscription fetches the newest messages of its chat and
receives the ones it has not seen. Idle sessions are expired on the same tick.
"""
import logging
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from psicochat.config import get_settings
from psicochat.dependencies import registry
from psicochat.ws import manager

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


async def poll_subscriptions():
    """Expire idle sessions, then push new messages to every subscribed socket."""
    registry.prune()
    if not manager.subscriptions():
        return
    pushed = await manager.poll_all()
    if pushed:
        logger.info(f"Pushed {pushed} new messages to subscribers")


def start_scheduler():
    """Start the scheduler with the subscription polling job."""
    interval = get_settings().poll_interval_seconds
    scheduler.add_job(
        poll_subscriptions,
        IntervalTrigger(seconds=interval),
        id='chat_subscription_poll',
        name='Poll subscribed chats for new messages',
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.start()
    logger.info(f"Scheduler started - subscribed chats polled every {interval}s")


def stop_scheduler():
    """Stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
