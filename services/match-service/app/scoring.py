"""
Deterministic match score for a (request, volunteer, distance) triple.

    base 50
    + 20 if distance < 10 km, + 10 if distance < 25 km, else 0
    + 5 per language shared with the request
    + reliability * 4 (reliability clamped to [0, 5])
    clamped to [0, 100]

Urgency does not change the score; it shortens the proposal window and
widens the search radius instead.
"""

from .domain import CandidateScore, ScribeRequest, Volunteer

BASE_SCORE = 50.0
NEAR_KM = 10.0
NEAR_POINTS = 20.0
MID_KM = 25.0
MID_POINTS = 10.0
POINTS_PER_LANGUAGE = 5.0
RELIABILITY_WEIGHT = 4.0
MAX_RELIABILITY = 5.0
MAX_SCORE = 100.0


def norm(s: str) -> str:
    return (s or "").strip().lower()


def distance_points(distance_km: float) -> float:
    if distance_km < NEAR_KM:
        return NEAR_POINTS
    if distance_km < MID_KM:
        return MID_POINTS
    return 0.0


def shared_languages(required, spoken) -> int:
    wanted = {norm(x) for x in (required or ()) if x}
    known = {norm(x) for x in (spoken or ()) if x}
    return len(wanted & known)


def reliability_points(reliability: float) -> float:
    r = min(max(float(reliability or 0.0), 0.0), MAX_RELIABILITY)
    return r * RELIABILITY_WEIGHT


def score_candidate(request: ScribeRequest, volunteer: Volunteer, distance_km: float) -> CandidateScore:
    matches = shared_languages(request.required_languages, volunteer.languages)

    dist = distance_points(distance_km)
    lang = matches * POINTS_PER_LANGUAGE
    rel = reliability_points(volunteer.reliability)
    urgency_adjustment = 0.0

    total = BASE_SCORE + dist + lang + rel + urgency_adjustment
    total = round(min(max(total, 0.0), MAX_SCORE), 2)

    return CandidateScore(
        request_id=request.id,
        volunteer_id=volunteer.id,
        distance_km=distance_km,
        language_match_count=matches,
        distance_component=dist,
        language_component=lang,
        reliability_component=rel,
        urgency_adjustment=urgency_adjustment,
        total=total,
        volunteer=volunteer,
    )


def score(request: ScribeRequest, volunteer: Volunteer, distance_km: float) -> float:
    return score_candidate(request, volunteer, distance_km).total
