# =====================================================
# api.py — JSON game API consumed by the web app
# =====================================================
from fastapi import APIRouter, Body, Query, Request

from services.engine import GameService
from services.leaderboard import DEFAULT_LIMIT

router = APIRouter(prefix="/api", tags=["game"])


def get_game(request: Request) -> GameService:
    return request.app.state.game


# -------------------------------------------------
# Player
# -------------------------------------------------
@router.get("/players/{player_id}")
async def player_summary(
    player_id: int,
    request: Request,
    username: str = Query(None),
    first_name: str = Query(None),
):
    player = await get_game(request).get_player_summary(
        player_id, username=username, first_name=first_name
    )
    return {"ok": True, "player": player}


@router.post("/players/{player_id}/tap")
async def tap(player_id: int, request: Request):
    result = await get_game(request).submit_tap(player_id)
    return {"ok": True, **result}


@router.post("/players/{player_id}/upgrades/{kind}")
async def buy_upgrade(player_id: int, kind: str, request: Request):
    result = await get_game(request).buy_upgrade(player_id, kind)
    return {"ok": True, **result}


@router.post("/players/{player_id}/daily-bonus")
async def daily_bonus(player_id: int, request: Request):
    result = await get_game(request).claim_daily_bonus(player_id)
    return {"ok": True, **result}


# -------------------------------------------------
# Tasks
# -------------------------------------------------
@router.get("/players/{player_id}/tasks")
async def list_tasks(player_id: int, request: Request):
    tasks = await get_game(request).list_tasks(player_id)
    return {"ok": True, "tasks": tasks}


@router.post("/players/{player_id}/tasks/{task_id}")
async def complete_task(player_id: int, task_id: str, request: Request):
    result = await get_game(request).complete_task(player_id, task_id)
    return {"ok": True, **result}


# -------------------------------------------------
# Referrals
# -------------------------------------------------
@router.post("/players/{player_id}/referral")
async def redeem_referral(player_id: int, request: Request, code: str = Body(..., embed=True)):
    result = await get_game(request).redeem_referral(code, player_id)
    return {"ok": True, **result}


@router.get("/players/{player_id}/referrals")
async def referral_stats(player_id: int, request: Request):
    stats = await get_game(request).get_referral_stats(player_id)
    return {"ok": True, **stats}


# -------------------------------------------------
# Leaderboard
# -------------------------------------------------
@router.get("/players/{player_id}/rank")
async def player_rank(player_id: int, request: Request):
    rank = await get_game(request).get_player_rank(player_id)
    return {"ok": True, **rank}


@router.get("/leaderboard")
async def leaderboard(
    request: Request,
    limit: int = Query(DEFAULT_LIMIT),
    offset: int = Query(0, ge=0),
):
    rows = await get_game(request).get_leaderboard(limit, offset)
    return {"ok": True, "leaderboard": rows}
