"""API routes for HabitFlow"""
import logging
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, Query, Request, status

from habitflow import __version__
from habitflow.api.auth import get_current_user_id, verify_api_key
from habitflow.api.middleware import limiter
from habitflow.api.models import (
    ChallengeCreateRequest,
    CompletionListResponse,
    CompletionRequest,
    GroupCreateRequest,
    HabitCreateRequest,
    HabitUpdateRequest,
    HealthCheckResponse,
    PowerupInventoryResponse,
    PowerupPurchaseResponse,
    PowerupRequest,
    StreakFreezeRequest,
    StreakResponse,
)
from habitflow.config import RATE_LIMIT
from habitflow.models import (
    ActivePowerup,
    Challenge,
    ChallengeDetails,
    ChallengeParticipant,
    CompletionOutcome,
    GamificationStats,
    Group,
    Habit,
    UserChallenges,
)
from habitflow.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(verify_api_key)])
health_router = APIRouter()


def get_services(request: Request) -> ServiceContainer:
    """Service container created at startup"""
    return request.app.state.container


# ==========================================
# Habits
# ==========================================

@router.post("/api/habits", response_model=Habit, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT)
async def create_habit(
    request: Request,
    body: HabitCreateRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Create a habit"""
    return await services.habit_service.create_habit(
        user_id,
        title=body.title,
        description=body.description,
        category=body.category,
        frequency=body.frequency,
        timezone=body.timezone,
    )


@router.get("/api/habits")
@limiter.limit(RATE_LIMIT)
async def list_habits(
    request: Request,
    include_inactive: bool = False,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """List the caller's habits"""
    habits = await services.habit_service.list_habits(user_id, include_inactive)
    return {"habits": habits}


@router.get("/api/habits/{habit_id}", response_model=Habit)
@limiter.limit(RATE_LIMIT)
async def get_habit(
    request: Request,
    habit_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return await services.habit_service.get_habit(habit_id, user_id)


@router.patch("/api/habits/{habit_id}", response_model=Habit)
@limiter.limit(RATE_LIMIT)
async def update_habit(
    request: Request,
    habit_id: str,
    body: HabitUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Update the fields present in the body"""
    return await services.habit_service.update_habit(
        habit_id, user_id, body.model_dump(exclude_unset=True)
    )


@router.delete("/api/habits/{habit_id}", response_model=Habit)
@limiter.limit(RATE_LIMIT)
async def delete_habit(
    request: Request,
    habit_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Archive a habit (soft delete)"""
    return await services.habit_service.deactivate_habit(habit_id, user_id)


# ==========================================
# Completions & streaks
# ==========================================

@router.post("/api/completions", response_model=CompletionOutcome, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT)
async def log_completion(
    request: Request,
    body: CompletionRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Log a habit as done for a day and return the rewards it earned"""
    return await services.completion_service.record_completion(
        body.habit_id, user_id, body.completed_date
    )


@router.delete("/api/completions")
@limiter.limit(RATE_LIMIT)
async def unlog_completion(
    request: Request,
    body: CompletionRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Remove a completion and reverse its XP and coins"""
    await services.completion_service.remove_completion(
        body.habit_id, user_id, body.completed_date
    )
    return {}


@router.get("/api/completions/{habit_id}", response_model=CompletionListResponse)
@limiter.limit(RATE_LIMIT)
async def list_completions(
    request: Request,
    habit_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    completions = await services.completion_service.list_completions(habit_id, user_id)
    return CompletionListResponse(completions=completions)


@router.get("/api/streak/{habit_id}", response_model=StreakResponse)
@limiter.limit(RATE_LIMIT)
async def get_streak(
    request: Request,
    habit_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    state = await services.completion_service.get_streak(habit_id, user_id)
    return StreakResponse(
        habit_id=habit_id,
        streak=state.current,
        longest_streak=state.longest,
        last_completed_date=state.last_completed_date,
    )


@router.post("/api/streak/{habit_id}/freeze", response_model=StreakResponse)
@limiter.limit(RATE_LIMIT)
async def freeze_streak_day(
    request: Request,
    habit_id: str,
    body: StreakFreezeRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Spend a streak freeze on a missed day"""
    state = await services.powerups.use_streak_freeze(user_id, habit_id, body.frozen_date)
    return StreakResponse(
        habit_id=habit_id,
        streak=state.current,
        longest_streak=state.longest,
        last_completed_date=state.last_completed_date,
    )


# ==========================================
# Gamification
# ==========================================

@router.get("/api/gamification/stats", response_model=GamificationStats)
@limiter.limit(RATE_LIMIT)
async def get_stats(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return await services.stats.get_stats(user_id)


@router.get("/api/gamification/profile/{profile_user_id}")
@limiter.limit(RATE_LIMIT)
async def get_profile(
    request: Request,
    profile_user_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Full stats for the caller, level and XP only for anyone else"""
    if profile_user_id == user_id:
        return await services.stats.get_stats(user_id)
    return await services.stats.get_public_profile(profile_user_id)


@router.get("/api/gamification/achievements")
@limiter.limit(RATE_LIMIT)
async def list_achievements(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """All achievements with the caller's unlock state"""
    return {"achievements": await services.stats.list_achievements(user_id)}


@router.get("/api/gamification/achievements/unlocked")
@limiter.limit(RATE_LIMIT)
async def list_unlocked_achievements(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return {"achievements": await services.stats.list_unlocked(user_id)}


@router.get("/api/gamification/leaderboard")
@limiter.limit(RATE_LIMIT)
async def get_leaderboard(
    request: Request,
    limit: int = Query(default=10, ge=1, le=100),
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return {"leaderboard": await services.stats.get_leaderboard(limit)}


@router.get("/api/gamification/history")
@limiter.limit(RATE_LIMIT)
async def get_reward_history(
    request: Request,
    limit: int = Query(default=50, ge=1, le=500),
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Reward ledger entries, newest first"""
    return {"events": await services.stats.get_reward_history(user_id, limit)}


@router.get("/api/gamification/powerups")
@limiter.limit(RATE_LIMIT)
async def list_powerups(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return {"powerups": await services.powerups.list_catalog()}


@router.get("/api/gamification/powerups/my", response_model=PowerupInventoryResponse)
@limiter.limit(RATE_LIMIT)
async def list_my_powerups(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return PowerupInventoryResponse(
        inventory=await services.powerups.list_inventory(user_id),
        active=await services.powerups.list_active(user_id),
    )


@router.post("/api/gamification/powerups/purchase", response_model=PowerupPurchaseResponse)
@limiter.limit(RATE_LIMIT)
async def purchase_powerup(
    request: Request,
    body: PowerupRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Buy a powerup with coins"""
    result = await services.powerups.purchase_powerup(user_id, body.powerup_key)
    return PowerupPurchaseResponse(**result)


@router.post("/api/gamification/powerups/activate", response_model=ActivePowerup)
@limiter.limit(RATE_LIMIT)
async def activate_powerup(
    request: Request,
    body: PowerupRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return await services.powerups.activate_powerup(user_id, body.powerup_key)


# ==========================================
# Groups & challenges
# ==========================================

@router.post("/api/groups", response_model=Group, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT)
async def create_group(
    request: Request,
    body: GroupCreateRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return await services.group_service.create_group(user_id, body.name)


@router.get("/api/groups")
@limiter.limit(RATE_LIMIT)
async def list_groups(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return {"groups": await services.group_service.list_user_groups(user_id)}


@router.post("/api/groups/{group_id}/join", response_model=Group)
@limiter.limit(RATE_LIMIT)
async def join_group(
    request: Request,
    group_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return await services.group_service.join_group(group_id, user_id)


@router.post("/api/challenges", response_model=Challenge, status_code=status.HTTP_201_CREATED)
@limiter.limit(RATE_LIMIT)
async def create_challenge(
    request: Request,
    body: ChallengeCreateRequest,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Create a challenge (group owners only)"""
    return await services.challenges.create_challenge(
        user_id,
        group_id=body.group_id,
        title=body.title,
        start_date=body.start_date,
        end_date=body.end_date,
        goal_count=body.goal_count,
        description=body.description,
        target_habit_type=body.target_habit_type,
        xp_reward=body.xp_reward,
        coin_reward=body.coin_reward,
    )


@router.get("/api/challenges", response_model=UserChallenges)
@limiter.limit(RATE_LIMIT)
async def list_challenges(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    """Joined challenges and open ones in the caller's groups"""
    return await services.challenges.list_user_challenges(user_id)


@router.get("/api/challenges/{challenge_id}", response_model=ChallengeDetails)
@limiter.limit(RATE_LIMIT)
async def get_challenge(
    request: Request,
    challenge_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return await services.challenges.get_challenge_details(challenge_id, user_id)


@router.post(
    "/api/challenges/{challenge_id}/join",
    response_model=ChallengeParticipant,
    status_code=status.HTTP_201_CREATED
)
@limiter.limit(RATE_LIMIT)
async def join_challenge(
    request: Request,
    challenge_id: str,
    user_id: str = Depends(get_current_user_id),
    services: ServiceContainer = Depends(get_services)
):
    return await services.challenges.join_challenge(challenge_id, user_id)


# ==========================================
# Health
# ==========================================

@health_router.get("/api/health", response_model=HealthCheckResponse)
async def health_check(services: ServiceContainer = Depends(get_services)):
    """Health check endpoint (no auth required)"""
    store_ok = await services.store.ping()
    return HealthCheckResponse(
        status="healthy" if store_ok else "degraded",
        timestamp=datetime.now(timezone.utc),
        store="connected" if store_ok else "unavailable",
        version=__version__,
    )
