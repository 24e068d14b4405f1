from typing import List

from fastapi import APIRouter, Depends, Request

from .coordinator import MatchCoordinator
from .schemas import (
    AttemptResponse,
    CandidateResponse,
    MatchOutcomeResponse,
    RespondRequest,
    VolunteerStatsResponse,
)

router = APIRouter()


def get_coordinator(request: Request) -> MatchCoordinator:
    return request.app.state.coordinator


@router.post("/matching/{request_id}/start", response_model=MatchOutcomeResponse)
async def start_matching(request_id: str, coordinator: MatchCoordinator = Depends(get_coordinator)):
    outcome = await coordinator.start_matching(request_id)
    return MatchOutcomeResponse.from_outcome(outcome)


@router.post("/attempts/{attempt_id}/respond", response_model=MatchOutcomeResponse)
async def respond(
    attempt_id: str,
    data: RespondRequest,
    coordinator: MatchCoordinator = Depends(get_coordinator),
):
    outcome = await coordinator.respond(attempt_id, data.decision)
    return MatchOutcomeResponse.from_outcome(outcome)


@router.post("/matching/{request_id}/cancel", response_model=MatchOutcomeResponse)
async def cancel_matching(request_id: str, coordinator: MatchCoordinator = Depends(get_coordinator)):
    outcome = await coordinator.cancel_matching(request_id)
    return MatchOutcomeResponse.from_outcome(outcome)


@router.post("/matching/{request_id}/reassign", response_model=MatchOutcomeResponse)
async def reassign(request_id: str, coordinator: MatchCoordinator = Depends(get_coordinator)):
    outcome = await coordinator.reassign(request_id)
    return MatchOutcomeResponse.from_outcome(outcome)


@router.get("/matching/{request_id}/attempts", response_model=List[AttemptResponse])
async def attempt_history(request_id: str, coordinator: MatchCoordinator = Depends(get_coordinator)):
    attempts = await coordinator.history(request_id)
    return [AttemptResponse.from_attempt(a) for a in attempts]


@router.get("/matching/{request_id}/candidates", response_model=List[CandidateResponse])
async def candidates(request_id: str, coordinator: MatchCoordinator = Depends(get_coordinator)):
    ranked = await coordinator.candidates(request_id)
    return [CandidateResponse.from_candidate(c) for c in ranked]


@router.get("/volunteers/{volunteer_id}/stats", response_model=VolunteerStatsResponse)
async def stats(volunteer_id: str, coordinator: MatchCoordinator = Depends(get_coordinator)):
    return await coordinator.stats_for(volunteer_id)
