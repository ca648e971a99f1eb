"""GroupService - groups own challenges; the creator is the owner"""

import logging
from datetime import datetime
from typing import Callable

from habitflow.exceptions import ConflictError, RecordNotFoundError, ValidationError
from habitflow.models import Group, GroupRole
from habitflow.models.habit import utcnow

logger = logging.getLogger(__name__)


class GroupService:
    """Service for group membership"""

    def __init__(self, store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    async def create_group(self, user_id: str, name: str) -> Group:
        name = (name or "").strip()
        if not name or len(name) > 100:
            raise ValidationError("Name must be 1-100 characters", field="name", value=name, user_id=user_id)

        group = await self.store.create_group(Group(name=name, owner_id=user_id, created_at=self.clock()))
        await self.store.add_group_member(group.id, user_id, GroupRole.OWNER)
        logger.info(f"User {user_id} created group {group.id}")
        return group

    async def get_group(self, group_id: str) -> Group:
        group = await self.store.get_group(group_id)
        if group is None:
            raise RecordNotFoundError(
                f"Group {group_id} not found",
                record_type="Group",
                record_id=group_id
            )
        return group

    async def join_group(self, group_id: str, user_id: str) -> Group:
        group = await self.get_group(group_id)
        if not await self.store.add_group_member(group_id, user_id, GroupRole.MEMBER):
            raise ConflictError("Already a member of this group", user_id=user_id)
        logger.info(f"User {user_id} joined group {group_id}")
        return group

    async def list_user_groups(self, user_id: str) -> list[Group]:
        groups = []
        for group_id in await self.store.list_user_group_ids(user_id):
            group = await self.store.get_group(group_id)
            if group is not None:
                groups.append(group)
        return groups
