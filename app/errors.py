"""
app/errors.py — Exception taxonomy for the scoring and assignment engine.

The HTTP layer maps these onto status codes (see api/main.py); services
and scripts catch them where a failure is allowed to be partial.
"""


class LeadRoutingError(Exception):
    """Base class for every error raised by the scoring/assignment core."""


# ── Lookups ──────────────────────────────────────────────────────────────────

class NotFoundError(LeadRoutingError):
    """A referenced lead, counselor, team or rule does not exist."""


class LeadNotFound(NotFoundError):
    def __init__(self, lead_id):
        super().__init__(f"Lead {lead_id} not found.")
        self.lead_id = lead_id


class CounselorNotFound(NotFoundError):
    def __init__(self, counselor_id):
        super().__init__(f"Counselor {counselor_id} not found.")
        self.counselor_id = counselor_id


class TeamNotFound(NotFoundError):
    def __init__(self, team_id):
        super().__init__(f"Team {team_id} not found.")
        self.team_id = team_id


# ── Assignment outcomes ──────────────────────────────────────────────────────

class NoMatchingRule(LeadRoutingError):
    def __init__(self, lead_id, org_id):
        super().__init__(f"No matching assignment rule for lead {lead_id} in org {org_id}.")
        self.lead_id = lead_id
        self.org_id = org_id


class NoAvailableCounselors(LeadRoutingError):
    def __init__(self, team_id):
        super().__init__(f"No available counselors in team {team_id}.")
        self.team_id = team_id


# ── Storage ──────────────────────────────────────────────────────────────────

class PersistenceFailure(LeadRoutingError):
    """Wraps a storage-layer error; the original is chained as __cause__."""

    public_message = "The database could not complete the request."


def client_message(exc: LeadRoutingError) -> str:
    """Text safe to hand back to API clients; storage details stay in the logs."""
    if isinstance(exc, PersistenceFailure):
        return exc.public_message
    return str(exc)
