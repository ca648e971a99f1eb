"""
Challenge Progress Tracker

Groups run time-boxed challenges: "complete N qualifying habits between
start_date and end_date". A completion qualifies for a challenge when the
user has joined it, the completion date falls inside the challenge window,
and the habit's category matches the challenge's target_habit_type (a
challenge without a target accepts any habit).

Progress only moves forward and is capped at goal_count. The tracker marks a
participant's reward as due exactly once; the reward engine pays it through
the ledger.
"""

import logging
import re
from datetime import date, datetime
from typing import Callable, Optional

from habitflow.exceptions import (
    AuthorizationError,
    ConflictError,
    RecordNotFoundError,
    ValidationError,
)
from habitflow.models import (
    Challenge,
    ChallengeDetails,
    ChallengeParticipant,
    Completion,
    GroupRole,
    Habit,
    UserChallenge,
    UserChallenges,
)
from habitflow.models.habit import utcnow

logger = logging.getLogger(__name__)

_SLUG_STRIP = re.compile(r"[^a-z0-9]+")


def slugify(title: str) -> str:
    """'30 Days of Yoga!' -> '30-days-of-yoga'"""
    return _SLUG_STRIP.sub("-", title.lower()).strip("-")


def _matches_target(challenge: Challenge, habit: Habit) -> bool:
    if not challenge.target_habit_type:
        return True
    if not habit.category:
        return False
    return challenge.target_habit_type.casefold() == habit.category.casefold()


class ChallengeTracker:
    """Challenge creation, membership and progress"""

    def __init__(self, store, clock: Callable[[], datetime] = utcnow):
        self.store = store
        self.clock = clock

    def _today(self) -> date:
        return self.clock().date()

    async def _get_challenge(self, challenge_id: str) -> Challenge:
        challenge = await self.store.get_challenge(challenge_id)
        if challenge is None:
            raise RecordNotFoundError(
                f"Challenge {challenge_id} not found",
                record_type="Challenge",
                record_id=challenge_id
            )
        return challenge

    async def create_challenge(
        self,
        user_id: str,
        group_id: str,
        title: str,
        start_date: date,
        end_date: date,
        goal_count: int,
        description: Optional[str] = None,
        target_habit_type: Optional[str] = None,
        xp_reward: int = 0,
        coin_reward: int = 0
    ) -> Challenge:
        """
        Create a challenge in a group the user owns

        The challenge id is the slug of its title.

        Raises:
            RecordNotFoundError: Unknown group
            AuthorizationError: User is not the group owner
            ValidationError: Bad title, dates or goal
            ConflictError: A challenge with the same slug exists
        """
        group = await self.store.get_group(group_id)
        if group is None:
            raise RecordNotFoundError(
                f"Group {group_id} not found",
                record_type="Group",
                record_id=group_id,
                user_id=user_id
            )

        role = await self.store.get_group_role(group_id, user_id)
        if role != GroupRole.OWNER:
            raise AuthorizationError(
                "Only group owners can create challenges",
                resource=f"group {group_id}",
                user_id=user_id
            )

        slug = slugify(title)
        if not slug:
            raise ValidationError("Title must contain letters or digits", field="title", value=title)
        if end_date <= start_date:
            raise ValidationError("End date must be after start date", field="end_date", value=str(end_date))
        if goal_count < 1:
            raise ValidationError("Goal must be at least 1", field="goal_count", value=goal_count)
        if xp_reward < 0 or coin_reward < 0:
            raise ValidationError("Rewards cannot be negative", field="xp_reward", value=xp_reward)

        challenge, created = await self.store.create_challenge_if_absent(
            Challenge(
                id=slug,
                group_id=group_id,
                title=title,
                description=description,
                start_date=start_date,
                end_date=end_date,
                target_habit_type=target_habit_type or None,
                goal_count=goal_count,
                xp_reward=xp_reward,
                coin_reward=coin_reward,
                created_by=user_id,
                created_at=self.clock(),
            )
        )
        if not created:
            raise ConflictError(f"A challenge named '{slug}' already exists", user_id=user_id)

        logger.info(f"User {user_id} created challenge {slug} in group {group_id}")
        return challenge

    async def create_challenge_if_absent(self, challenge: Challenge) -> tuple[Challenge, bool]:
        """Seed a challenge; returns the stored one and whether it was created"""
        return await self.store.create_challenge_if_absent(challenge)

    async def join_challenge(self, challenge_id: str, user_id: str) -> ChallengeParticipant:
        """
        Join a challenge of one of the user's groups

        Raises:
            RecordNotFoundError: Unknown challenge
            AuthorizationError: User is not in the challenge's group
            ValidationError: Challenge has ended
            ConflictError: Already participating
        """
        challenge = await self._get_challenge(challenge_id)
        await self._require_member(challenge, user_id, "join")

        if self._today() > challenge.end_date:
            raise ValidationError(
                "Challenge has already ended",
                field="challenge_id",
                value=challenge_id,
                user_id=user_id
            )

        participant = ChallengeParticipant(
            challenge_id=challenge_id,
            user_id=user_id,
            joined_at=self.clock(),
        )
        if not await self.store.insert_participant(participant):
            raise ConflictError("Already participating in this challenge", user_id=user_id)

        logger.info(f"User {user_id} joined challenge {challenge_id}")
        return participant

    async def _require_member(self, challenge: Challenge, user_id: str, action: str) -> None:
        if await self.store.get_group_role(challenge.group_id, user_id) is None:
            raise AuthorizationError(
                f"You must be a member of the group to {action} this challenge",
                resource=f"challenge {challenge.id}",
                user_id=user_id
            )

    async def get_challenge_details(self, challenge_id: str, user_id: str) -> ChallengeDetails:
        """
        Challenge with its participants, visible to members of its group

        Raises:
            RecordNotFoundError: Unknown challenge
            AuthorizationError: User is not in the challenge's group
        """
        challenge = await self._get_challenge(challenge_id)
        await self._require_member(challenge, user_id, "view")
        participants = await self.store.list_participants(challenge_id)
        return ChallengeDetails(challenge=challenge, participants=participants)

    async def list_user_challenges(self, user_id: str) -> UserChallenges:
        """Joined challenges, plus running ones in the user's groups not yet joined"""
        active = []
        joined = set()
        for participant in await self.store.list_user_participations(user_id):
            challenge = await self.store.get_challenge(participant.challenge_id)
            if challenge is None:
                continue
            joined.add(challenge.id)
            active.append(UserChallenge(challenge=challenge, participant=participant))

        today = self._today()
        group_ids = await self.store.list_user_group_ids(user_id)
        available = [
            c for c in await self.store.list_group_challenges(group_ids)
            if c.id not in joined and c.end_date >= today
        ]
        return UserChallenges(active=active, available=available)

    async def record_progress(
        self,
        user_id: str,
        habit: Habit,
        completion: Completion
    ) -> list[Challenge]:
        """
        Count a completion toward every qualifying challenge

        Must run inside store.transaction(user_id).

        Returns:
            Challenges whose goal was reached by this completion and whose
            reward has not been paid yet
        """
        due = []
        for participant in await self.store.list_user_participations(user_id):
            challenge = await self.store.get_challenge(participant.challenge_id)
            if challenge is None:
                continue
            if participant.progress_count >= challenge.goal_count:
                continue
            if not challenge.is_running_on(completion.completed_date):
                continue
            if not _matches_target(challenge, habit):
                continue

            participant.progress_count = min(participant.progress_count + 1, challenge.goal_count)
            if participant.progress_count >= challenge.goal_count and not participant.is_completed:
                participant.is_completed = True
                participant.completed_at = self.clock()
                logger.info(f"User {user_id} completed challenge {challenge.id}")

            if participant.is_completed and not participant.reward_granted:
                participant.reward_granted = True
                due.append(challenge)

            await self.store.save_participant(participant)

        return due
