"""
Service Container - Dependency Injection Container

Simple DI container for managing service instances and their dependencies.
Uses lazy loading to only instantiate services when first accessed.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Optional
import logging

from habitflow.models.habit import utcnow

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Simple dependency injection container for services.

    Services are lazy-loaded on first access via properties.
    The store, reward configuration and clock are injected.
    """

    # Infrastructure dependencies (injected)
    store: object  # PostgresStore or MemoryStore
    config: Optional[object] = None  # RewardConfig, defaults when None
    clock: Callable[[], datetime] = utcnow

    # Services (lazy-loaded via properties)
    _rewards: Optional[object] = field(default=None, init=False, repr=False)
    _challenges: Optional[object] = field(default=None, init=False, repr=False)
    _powerups: Optional[object] = field(default=None, init=False, repr=False)
    _stats: Optional[object] = field(default=None, init=False, repr=False)
    _habit_service: Optional[object] = field(default=None, init=False, repr=False)
    _completion_service: Optional[object] = field(default=None, init=False, repr=False)
    _group_service: Optional[object] = field(default=None, init=False, repr=False)

    @property
    def challenges(self):
        """Get ChallengeTracker instance (lazy-loaded)"""
        if self._challenges is None:
            from habitflow.gamification.challenges import ChallengeTracker
            self._challenges = ChallengeTracker(self.store, self.clock)
            logger.debug("ChallengeTracker instantiated")
        return self._challenges

    @property
    def rewards(self):
        """Get RewardEngine instance (lazy-loaded)"""
        if self._rewards is None:
            from habitflow.gamification.rewards import RewardEngine
            self._rewards = RewardEngine(
                self.store,
                self.config,
                self.clock,
                challenges=self.challenges
            )
            logger.debug("RewardEngine instantiated")
        return self._rewards

    @property
    def powerups(self):
        """Get PowerupShop instance (lazy-loaded)"""
        if self._powerups is None:
            from habitflow.gamification.powerups import PowerupShop
            self._powerups = PowerupShop(self.store, self.rewards)
            logger.debug("PowerupShop instantiated")
        return self._powerups

    @property
    def stats(self):
        """Get StatsProjector instance (lazy-loaded)"""
        if self._stats is None:
            from habitflow.gamification.stats import StatsProjector
            self._stats = StatsProjector(self.store, self.rewards.config)
            logger.debug("StatsProjector instantiated")
        return self._stats

    @property
    def habit_service(self):
        """Get HabitService instance (lazy-loaded)"""
        if self._habit_service is None:
            from habitflow.services.habit_service import HabitService
            self._habit_service = HabitService(self.store)
        return self._habit_service

    @property
    def completion_service(self):
        """Get CompletionService instance (lazy-loaded)"""
        if self._completion_service is None:
            from habitflow.services.completion_service import CompletionService
            self._completion_service = CompletionService(self.store, self.rewards, self.clock)
        return self._completion_service

    @property
    def group_service(self):
        """Get GroupService instance (lazy-loaded)"""
        if self._group_service is None:
            from habitflow.services.group_service import GroupService
            self._group_service = GroupService(self.store, self.clock)
        return self._group_service
