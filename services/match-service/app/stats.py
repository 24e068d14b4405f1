from typing import List, Optional

from .domain import AttemptState, MatchAttempt


def volunteer_stats(volunteer_id: str, attempts: List[MatchAttempt]) -> dict:
    """
    Summary of how a volunteer has answered proposals.

    acceptance_rate counts only explicit answers (accepted / declined);
    expired and superseded proposals are reported but do not count against it.
    """
    counts = {state.value: 0 for state in AttemptState}
    response_minutes = []

    for a in attempts:
        counts[a.state.value] += 1
        if a.state in (AttemptState.ACCEPTED, AttemptState.DECLINED) and a.responded_at:
            response_minutes.append((a.responded_at - a.proposed_at).total_seconds() / 60)

    answered = counts["accepted"] + counts["declined"]
    acceptance_rate: Optional[float] = None
    if answered:
        acceptance_rate = round(counts["accepted"] / answered, 2)

    avg_response: Optional[float] = None
    if response_minutes:
        avg_response = round(sum(response_minutes) / len(response_minutes), 2)

    return {
        "volunteer_id": volunteer_id,
        "total_proposals": len(attempts),
        "accepted": counts["accepted"],
        "declined": counts["declined"],
        "expired": counts["expired"],
        "superseded": counts["superseded"],
        "pending": counts["proposed"],
        "acceptance_rate": acceptance_rate,
        "avg_response_minutes": avg_response,
    }
