"""
PostgreSQL Store

Same interface as MemoryStore, backed by the psycopg connection pool.

transaction(user_id) opens a database transaction on one pooled connection
and takes a transaction-scoped advisory lock keyed by the user id, so reward
writes for one user are serialized across processes. Every store call made
inside the block reuses that connection (tracked in a ContextVar); calls made
outside it take their own connection and commit on exit.

Inserts that may collide use ON CONFLICT DO NOTHING so a duplicate never
aborts the surrounding transaction.
"""

import logging
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import date, datetime
from typing import AsyncIterator, Iterable, Optional

import psycopg
from psycopg.types.json import Jsonb

from habitflow.db.connection import Database
from habitflow.exceptions import DuplicateCompletionError, wrap_external_exception
from habitflow.models import (
    ActivePowerup,
    AchievementUnlock,
    Challenge,
    ChallengeParticipant,
    Completion,
    GamificationProfile,
    Group,
    GroupRole,
    Habit,
    Powerup,
    RewardEvent,
    RewardSource,
)

logger = logging.getLogger(__name__)

_tx_connection: ContextVar[Optional[psycopg.AsyncConnection]] = ContextVar(
    "habitflow_tx_connection", default=None
)


class PostgresStore:
    """Store backed by PostgreSQL"""

    def __init__(self, database: Database):
        self.db = database

    async def close(self) -> None:
        await self.db.close_pool()

    async def ping(self) -> bool:
        return await self.db.ping()

    # ==========================================
    # Transactions
    # ==========================================

    @asynccontextmanager
    async def transaction(self, user_id: str) -> AsyncIterator[None]:
        """Serialize reward writes for one user"""
        async with self.db.connection() as conn:
            async with conn.transaction():
                await conn.execute("SELECT pg_advisory_xact_lock(hashtext(%s))", (user_id,))
                token = _tx_connection.set(conn)
                try:
                    yield
                finally:
                    _tx_connection.reset(token)

    @asynccontextmanager
    async def _connection(self, operation: str) -> AsyncIterator[psycopg.AsyncConnection]:
        conn = _tx_connection.get()
        if conn is not None:
            yield conn
            return

        try:
            async with self.db.connection() as conn:
                yield conn
                await conn.commit()
        except psycopg.Error as e:
            raise wrap_external_exception(e, operation=operation)

    async def _fetchone(self, operation: str, query: str, params: tuple = ()) -> Optional[dict]:
        async with self._connection(operation) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchone()

    async def _fetchall(self, operation: str, query: str, params: tuple = ()) -> list[dict]:
        async with self._connection(operation) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return await cur.fetchall()

    async def _execute(self, operation: str, query: str, params: tuple = ()) -> int:
        async with self._connection(operation) as conn:
            async with conn.cursor() as cur:
                await cur.execute(query, params)
                return cur.rowcount

    # ==========================================
    # Habits
    # ==========================================

    async def create_habit(self, habit: Habit) -> Habit:
        await self._execute(
            "create_habit",
            """
            INSERT INTO habits
            (id, user_id, title, description, category, frequency, timezone, is_active, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                habit.id,
                habit.user_id,
                habit.title,
                habit.description,
                habit.category,
                habit.frequency.value,
                habit.timezone,
                habit.is_active,
                habit.created_at
            )
        )
        logger.info(f"Created habit {habit.id} for user {habit.user_id}")
        return habit

    async def get_habit(self, habit_id: str) -> Optional[Habit]:
        row = await self._fetchone("get_habit", "SELECT * FROM habits WHERE id = %s", (habit_id,))
        return Habit(**row) if row else None

    async def list_habits(self, user_id: str, include_inactive: bool = False) -> list[Habit]:
        query = "SELECT * FROM habits WHERE user_id = %s"
        if not include_inactive:
            query += " AND is_active = true"
        query += " ORDER BY created_at"
        rows = await self._fetchall("list_habits", query, (user_id,))
        return [Habit(**row) for row in rows]

    async def update_habit(self, habit: Habit) -> Habit:
        await self._execute(
            "update_habit",
            """
            UPDATE habits
            SET title = %s, description = %s, category = %s, frequency = %s,
                timezone = %s, is_active = %s
            WHERE id = %s
            """,
            (
                habit.title,
                habit.description,
                habit.category,
                habit.frequency.value,
                habit.timezone,
                habit.is_active,
                habit.id
            )
        )
        return habit

    # ==========================================
    # Completions
    # ==========================================

    async def insert_completion(self, completion: Completion) -> Completion:
        row = await self._fetchone(
            "insert_completion",
            """
            INSERT INTO completions (id, habit_id, user_id, completed_date, created_at)
            VALUES (%s, %s, %s, %s, %s)
            ON CONFLICT (habit_id, user_id, completed_date) DO NOTHING
            RETURNING id
            """,
            (
                completion.id,
                completion.habit_id,
                completion.user_id,
                completion.completed_date,
                completion.created_at
            )
        )
        if row is None:
            raise DuplicateCompletionError(
                habit_id=completion.habit_id,
                completed_date=completion.completed_date,
                user_id=completion.user_id,
                operation="insert_completion"
            )
        return completion

    async def get_completion(self, habit_id: str, user_id: str, completed_date: date) -> Optional[Completion]:
        row = await self._fetchone(
            "get_completion",
            "SELECT * FROM completions WHERE habit_id = %s AND user_id = %s AND completed_date = %s",
            (habit_id, user_id, completed_date)
        )
        return Completion(**row) if row else None

    async def delete_completion(self, completion_id: str) -> bool:
        deleted = await self._execute(
            "delete_completion",
            "DELETE FROM completions WHERE id = %s",
            (completion_id,)
        )
        return deleted > 0

    async def list_completions(self, habit_id: str, user_id: str) -> list[Completion]:
        rows = await self._fetchall(
            "list_completions",
            """
            SELECT * FROM completions
            WHERE habit_id = %s AND user_id = %s
            ORDER BY completed_date DESC
            """,
            (habit_id, user_id)
        )
        return [Completion(**row) for row in rows]

    async def count_completions(self, user_id: str) -> int:
        row = await self._fetchone(
            "count_completions",
            "SELECT COUNT(*) AS total FROM completions WHERE user_id = %s",
            (user_id,)
        )
        return row["total"] if row else 0

    async def count_completions_by_category(self, user_id: str) -> dict[str, int]:
        rows = await self._fetchall(
            "count_completions_by_category",
            """
            SELECT h.category, COUNT(*) AS total
            FROM completions c
            JOIN habits h ON h.id = c.habit_id
            WHERE c.user_id = %s AND h.category IS NOT NULL
            GROUP BY h.category
            """,
            (user_id,)
        )
        return {row["category"]: row["total"] for row in rows}

    # ==========================================
    # Streak records & freezes
    # ==========================================

    async def get_best_streak(self, user_id: str, habit_id: str) -> int:
        row = await self._fetchone(
            "get_best_streak",
            "SELECT best_streak FROM streak_records WHERE user_id = %s AND habit_id = %s",
            (user_id, habit_id)
        )
        return row["best_streak"] if row else 0

    async def save_best_streak(self, user_id: str, habit_id: str, best: int) -> int:
        row = await self._fetchone(
            "save_best_streak",
            """
            INSERT INTO streak_records (user_id, habit_id, best_streak)
            VALUES (%s, %s, %s)
            ON CONFLICT (user_id, habit_id)
            DO UPDATE SET best_streak = GREATEST(streak_records.best_streak, EXCLUDED.best_streak)
            RETURNING best_streak
            """,
            (user_id, habit_id, best)
        )
        return row["best_streak"]

    async def insert_streak_freeze(self, user_id: str, habit_id: str, frozen_date: date) -> bool:
        inserted = await self._execute(
            "insert_streak_freeze",
            """
            INSERT INTO streak_freezes (user_id, habit_id, frozen_date)
            VALUES (%s, %s, %s)
            ON CONFLICT DO NOTHING
            """,
            (user_id, habit_id, frozen_date)
        )
        return inserted > 0

    async def list_streak_freezes(self, user_id: str, habit_id: str) -> list[date]:
        rows = await self._fetchall(
            "list_streak_freezes",
            """
            SELECT frozen_date FROM streak_freezes
            WHERE user_id = %s AND habit_id = %s
            ORDER BY frozen_date
            """,
            (user_id, habit_id)
        )
        return [row["frozen_date"] for row in rows]

    # ==========================================
    # Profiles
    # ==========================================

    async def get_profile(self, user_id: str) -> GamificationProfile:
        created = await self._execute(
            "get_profile",
            "INSERT INTO gamification_profiles (user_id) VALUES (%s) ON CONFLICT (user_id) DO NOTHING",
            (user_id,)
        )
        if created:
            logger.info(f"Created new gamification profile for user {user_id}")
        row = await self._fetchone(
            "get_profile",
            "SELECT * FROM gamification_profiles WHERE user_id = %s",
            (user_id,)
        )
        return GamificationProfile(**row)

    async def save_profile(self, profile: GamificationProfile) -> None:
        await self._execute(
            "save_profile",
            """
            INSERT INTO gamification_profiles (user_id, xp, level, coins, longest_streak, updated_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id) DO UPDATE SET
                xp = EXCLUDED.xp,
                level = EXCLUDED.level,
                coins = EXCLUDED.coins,
                longest_streak = EXCLUDED.longest_streak,
                updated_at = EXCLUDED.updated_at
            """,
            (
                profile.user_id,
                profile.xp,
                profile.level,
                profile.coins,
                profile.longest_streak,
                profile.updated_at
            )
        )

    async def list_top_profiles(self, limit: int = 10) -> list[GamificationProfile]:
        rows = await self._fetchall(
            "list_top_profiles",
            "SELECT * FROM gamification_profiles ORDER BY xp DESC, user_id LIMIT %s",
            (limit,)
        )
        return [GamificationProfile(**row) for row in rows]

    # ==========================================
    # Reward ledger
    # ==========================================

    async def insert_reward_event(self, event: RewardEvent) -> bool:
        inserted = await self._execute(
            "insert_reward_event",
            """
            INSERT INTO reward_events (id, user_id, source_type, source_id, xp, coins, reason, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (user_id, source_type, source_id) DO NOTHING
            """,
            (
                event.id,
                event.user_id,
                event.source_type.value,
                event.source_id,
                event.xp,
                event.coins,
                event.reason,
                event.created_at
            )
        )
        return inserted > 0

    async def get_reward_event(self, user_id: str, source_type: RewardSource, source_id: str) -> Optional[RewardEvent]:
        row = await self._fetchone(
            "get_reward_event",
            "SELECT * FROM reward_events WHERE user_id = %s AND source_type = %s AND source_id = %s",
            (user_id, source_type.value, source_id)
        )
        return RewardEvent(**row) if row else None

    async def list_reward_events(self, user_id: str, limit: int = 50) -> list[RewardEvent]:
        rows = await self._fetchall(
            "list_reward_events",
            "SELECT * FROM reward_events WHERE user_id = %s ORDER BY created_at DESC LIMIT %s",
            (user_id, limit)
        )
        return [RewardEvent(**row) for row in rows]

    # ==========================================
    # Achievements
    # ==========================================

    async def insert_achievement_unlock(self, unlock: AchievementUnlock) -> bool:
        inserted = await self._execute(
            "insert_achievement_unlock",
            """
            INSERT INTO achievement_unlocks (user_id, achievement_key, unlocked_at)
            VALUES (%s, %s, %s)
            ON CONFLICT (user_id, achievement_key) DO NOTHING
            """,
            (unlock.user_id, unlock.achievement_key, unlock.unlocked_at)
        )
        return inserted > 0

    async def list_achievement_unlocks(self, user_id: str) -> list[AchievementUnlock]:
        rows = await self._fetchall(
            "list_achievement_unlocks",
            "SELECT * FROM achievement_unlocks WHERE user_id = %s ORDER BY unlocked_at DESC",
            (user_id,)
        )
        return [AchievementUnlock(**row) for row in rows]

    # ==========================================
    # Powerups
    # ==========================================

    async def create_powerup_if_absent(self, powerup: Powerup) -> bool:
        inserted = await self._execute(
            "create_powerup_if_absent",
            """
            INSERT INTO powerups (key, name, description, icon, cost_coins, effect)
            VALUES (%s, %s, %s, %s, %s, %s)
            ON CONFLICT (key) DO NOTHING
            """,
            (
                powerup.key,
                powerup.name,
                powerup.description,
                powerup.icon,
                powerup.cost_coins,
                Jsonb(powerup.effect.model_dump(mode="json"))
            )
        )
        return inserted > 0

    async def get_powerup(self, key: str) -> Optional[Powerup]:
        row = await self._fetchone("get_powerup", "SELECT * FROM powerups WHERE key = %s", (key,))
        return Powerup(**row) if row else None

    async def list_powerups(self) -> list[Powerup]:
        rows = await self._fetchall("list_powerups", "SELECT * FROM powerups ORDER BY cost_coins")
        return [Powerup(**row) for row in rows]

    async def get_inventory(self, user_id: str) -> dict[str, int]:
        rows = await self._fetchall(
            "get_inventory",
            "SELECT powerup_key, quantity FROM user_powerups WHERE user_id = %s AND quantity > 0",
            (user_id,)
        )
        return {row["powerup_key"]: row["quantity"] for row in rows}

    async def adjust_inventory(self, user_id: str, key: str, delta: int) -> int:
        row = await self._fetchone(
            "adjust_inventory",
            "SELECT quantity FROM user_powerups WHERE user_id = %s AND powerup_key = %s",
            (user_id, key)
        )
        quantity = (row["quantity"] if row else 0) + delta
        if quantity < 0:
            raise ValueError(f"Inventory for {key} would become negative")
        await self._execute(
            "adjust_inventory",
            """
            INSERT INTO user_powerups (user_id, powerup_key, quantity)
            VALUES (%s, %s, %s)
            ON CONFLICT (user_id, powerup_key) DO UPDATE SET quantity = EXCLUDED.quantity
            """,
            (user_id, key, quantity)
        )
        return quantity

    async def insert_active_powerup(self, active: ActivePowerup) -> None:
        await self._execute(
            "insert_active_powerup",
            """
            INSERT INTO active_powerups (id, user_id, powerup_key, multiplier, activated_at, expires_at)
            VALUES (%s, %s, %s, %s, %s, %s)
            """,
            (
                active.id,
                active.user_id,
                active.powerup_key,
                active.multiplier,
                active.activated_at,
                active.expires_at
            )
        )

    async def list_active_powerups(self, user_id: str, at: datetime) -> list[ActivePowerup]:
        rows = await self._fetchall(
            "list_active_powerups",
            """
            SELECT * FROM active_powerups
            WHERE user_id = %s AND activated_at <= %s AND expires_at > %s
            """,
            (user_id, at, at)
        )
        return [ActivePowerup(**row) for row in rows]

    # ==========================================
    # Groups
    # ==========================================

    async def create_group(self, group: Group) -> Group:
        await self._execute(
            "create_group",
            "INSERT INTO groups (id, name, owner_id, created_at) VALUES (%s, %s, %s, %s)",
            (group.id, group.name, group.owner_id, group.created_at)
        )
        return group

    async def get_group(self, group_id: str) -> Optional[Group]:
        row = await self._fetchone("get_group", "SELECT * FROM groups WHERE id = %s", (group_id,))
        return Group(**row) if row else None

    async def add_group_member(self, group_id: str, user_id: str, role: GroupRole) -> bool:
        inserted = await self._execute(
            "add_group_member",
            """
            INSERT INTO group_members (group_id, user_id, role)
            VALUES (%s, %s, %s)
            ON CONFLICT (group_id, user_id) DO NOTHING
            """,
            (group_id, user_id, role.value)
        )
        return inserted > 0

    async def get_group_role(self, group_id: str, user_id: str) -> Optional[GroupRole]:
        row = await self._fetchone(
            "get_group_role",
            "SELECT role FROM group_members WHERE group_id = %s AND user_id = %s",
            (group_id, user_id)
        )
        return GroupRole(row["role"]) if row else None

    async def list_user_group_ids(self, user_id: str) -> list[str]:
        rows = await self._fetchall(
            "list_user_group_ids",
            "SELECT group_id FROM group_members WHERE user_id = %s ORDER BY group_id",
            (user_id,)
        )
        return [row["group_id"] for row in rows]

    # ==========================================
    # Challenges
    # ==========================================

    async def create_challenge_if_absent(self, challenge: Challenge) -> tuple[Challenge, bool]:
        inserted = await self._execute(
            "create_challenge_if_absent",
            """
            INSERT INTO challenges
            (id, group_id, title, description, start_date, end_date, target_habit_type,
             goal_count, xp_reward, coin_reward, created_by, created_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (id) DO NOTHING
            """,
            (
                challenge.id,
                challenge.group_id,
                challenge.title,
                challenge.description,
                challenge.start_date,
                challenge.end_date,
                challenge.target_habit_type,
                challenge.goal_count,
                challenge.xp_reward,
                challenge.coin_reward,
                challenge.created_by,
                challenge.created_at
            )
        )
        if inserted:
            return challenge, True
        return await self.get_challenge(challenge.id), False

    async def get_challenge(self, challenge_id: str) -> Optional[Challenge]:
        row = await self._fetchone("get_challenge", "SELECT * FROM challenges WHERE id = %s", (challenge_id,))
        return Challenge(**row) if row else None

    async def list_group_challenges(self, group_ids: Iterable[str]) -> list[Challenge]:
        rows = await self._fetchall(
            "list_group_challenges",
            "SELECT * FROM challenges WHERE group_id = ANY(%s) ORDER BY start_date, id",
            (list(group_ids),)
        )
        return [Challenge(**row) for row in rows]

    async def insert_participant(self, participant: ChallengeParticipant) -> bool:
        inserted = await self._execute(
            "insert_participant",
            """
            INSERT INTO challenge_participants
            (challenge_id, user_id, progress_count, is_completed, reward_granted, joined_at, completed_at)
            VALUES (%s, %s, %s, %s, %s, %s, %s)
            ON CONFLICT (challenge_id, user_id) DO NOTHING
            """,
            (
                participant.challenge_id,
                participant.user_id,
                participant.progress_count,
                participant.is_completed,
                participant.reward_granted,
                participant.joined_at,
                participant.completed_at
            )
        )
        return inserted > 0

    async def get_participant(self, challenge_id: str, user_id: str) -> Optional[ChallengeParticipant]:
        row = await self._fetchone(
            "get_participant",
            "SELECT * FROM challenge_participants WHERE challenge_id = %s AND user_id = %s",
            (challenge_id, user_id)
        )
        return ChallengeParticipant(**row) if row else None

    async def save_participant(self, participant: ChallengeParticipant) -> None:
        await self._execute(
            "save_participant",
            """
            UPDATE challenge_participants
            SET progress_count = %s, is_completed = %s, reward_granted = %s, completed_at = %s
            WHERE challenge_id = %s AND user_id = %s
            """,
            (
                participant.progress_count,
                participant.is_completed,
                participant.reward_granted,
                participant.completed_at,
                participant.challenge_id,
                participant.user_id
            )
        )

    async def list_participants(self, challenge_id: str) -> list[ChallengeParticipant]:
        rows = await self._fetchall(
            "list_participants",
            """
            SELECT * FROM challenge_participants
            WHERE challenge_id = %s
            ORDER BY progress_count DESC, joined_at
            """,
            (challenge_id,)
        )
        return [ChallengeParticipant(**row) for row in rows]

    async def list_user_participations(self, user_id: str) -> list[ChallengeParticipant]:
        rows = await self._fetchall(
            "list_user_participations",
            "SELECT * FROM challenge_participants WHERE user_id = %s ORDER BY joined_at",
            (user_id,)
        )
        return [ChallengeParticipant(**row) for row in rows]
