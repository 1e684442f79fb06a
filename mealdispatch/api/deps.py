"""FastAPI dependency injection -- database sessions and campaign services."""
from __future__ import annotations

from collections.abc import Callable, Generator
from functools import partial

from fastapi import Depends
from sqlalchemy.orm import Session, sessionmaker

from mealdispatch.campaign.checkpoint import CheckpointStore
from mealdispatch.campaign.dispatcher import RateLimitedDispatcher
from mealdispatch.campaign.lease import LeaseManager
from mealdispatch.campaign.recipients import SqlRecipientSource
from mealdispatch.campaign.runner import CampaignRunner, RunnerConfig
from mealdispatch.core.security import UnsubscribeTokenService, build_unsubscribe_service
from mealdispatch.core.settings import get_settings
from mealdispatch.db.session import get_session_factory
from mealdispatch.notification.email_sender import build_smtp_channel
from mealdispatch.notification.renderer import MealPlanRenderer


def get_sessionmaker() -> sessionmaker:
    return get_session_factory()


def get_db(factory: sessionmaker = Depends(get_sessionmaker)) -> Generator[Session, None, None]:
    """Yield a SQLAlchemy session; commit on success, rollback on error."""
    db = factory()
    try:
        yield db
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


def get_unsubscribe_service() -> UnsubscribeTokenService:
    return build_unsubscribe_service()


def get_checkpoint_store(factory: sessionmaker = Depends(get_sessionmaker)) -> CheckpointStore:
    return CheckpointStore(factory)


def build_campaign_runner(factory: sessionmaker) -> CampaignRunner:
    """Wire a ``CampaignRunner`` against *factory* and the configured SMTP relay.

    Raises ``ValueError`` when a required setting (such as ``UNSUBSCRIBE_KEY``)
    is missing.
    """
    settings = get_settings()
    return CampaignRunner(
        lease_manager=LeaseManager(factory),
        checkpoint_store=CheckpointStore(factory),
        recipient_source=SqlRecipientSource(factory),
        dispatcher=RateLimitedDispatcher(build_smtp_channel()),
        renderer=MealPlanRenderer(build_unsubscribe_service(), app_base_url=settings.app_base_url),
        config=RunnerConfig.from_settings(settings),
    )


def get_campaign_runner_factory(
    factory: sessionmaker = Depends(get_sessionmaker),
) -> Callable[[], CampaignRunner]:
    """Return a zero-argument builder so the trigger can report wiring errors itself."""
    return partial(build_campaign_runner, factory)
