from __future__ import annotations

from typing import Generic, TypeVar

from sqlalchemy import delete, select, update
from sqlalchemy.orm import Session

from mealdispatch.db import models

ModelT = TypeVar("ModelT")


class BaseRepository(Generic[ModelT]):
    model: type[ModelT]

    def __init__(self, db: Session):
        self.db = db

    def create(self, **kwargs) -> ModelT:
        entity = self.model(**kwargs)
        self.db.add(entity)
        self.db.flush()
        return entity

    def get(self, entity_id) -> ModelT | None:
        return self.db.get(self.model, entity_id)

    def list(self, limit: int = 100, offset: int = 0) -> list[ModelT]:
        stmt = select(self.model).offset(offset).limit(limit)
        return self.db.execute(stmt).scalars().all()

    def update(self, entity: ModelT, **kwargs) -> ModelT:
        for key, value in kwargs.items():
            setattr(entity, key, value)
        self.db.flush()
        return entity

    def delete(self, entity: ModelT) -> None:
        self.db.delete(entity)
        self.db.flush()


class CampaignLeaseRepository(BaseRepository[models.CampaignLease]):
    model = models.CampaignLease

    def get_for_update(self, campaign_key: str) -> models.CampaignLease | None:
        stmt = (
            select(models.CampaignLease)
            .where(models.CampaignLease.campaign_key == campaign_key)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()

    def replace_if_unchanged(
        self,
        campaign_key: str,
        *,
        expected_holder: str,
        expected_acquired_at_ms: int,
        held_by: str,
        acquired_at_ms: int,
        ttl_ms: int,
    ) -> bool:
        """Overwrite the lease only if it still matches what the caller observed."""
        stmt = (
            update(models.CampaignLease)
            .where(
                models.CampaignLease.campaign_key == campaign_key,
                models.CampaignLease.held_by == expected_holder,
                models.CampaignLease.acquired_at_ms == expected_acquired_at_ms,
            )
            .values(held_by=held_by, acquired_at_ms=acquired_at_ms, ttl_ms=ttl_ms)
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount == 1

    def delete_held_by(self, campaign_key: str, held_by: str) -> int:
        stmt = (
            delete(models.CampaignLease)
            .where(
                models.CampaignLease.campaign_key == campaign_key,
                models.CampaignLease.held_by == held_by,
            )
            .execution_options(synchronize_session=False)
        )
        return self.db.execute(stmt).rowcount


class CampaignCheckpointRepository(BaseRepository[models.CampaignCheckpoint]):
    model = models.CampaignCheckpoint

    def get_for_update(self, campaign_key: str) -> models.CampaignCheckpoint | None:
        stmt = (
            select(models.CampaignCheckpoint)
            .where(models.CampaignCheckpoint.campaign_key == campaign_key)
            .with_for_update()
        )
        return self.db.execute(stmt).scalar_one_or_none()


class RecipientRepository(BaseRepository[models.Recipient]):
    model = models.Recipient

    def set_weekly_meal_plans_enabled(self, recipient: models.Recipient, enabled: bool) -> models.Recipient:
        return self.update(recipient, weekly_meal_plans_enabled=enabled)


class MealPlanRepository(BaseRepository[models.MealPlan]):
    model = models.MealPlan
