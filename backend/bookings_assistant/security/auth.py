import os
from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader
from ..db.database import DEFAULT_USER_ID

api_key_header = APIKeyHeader(name="X-API-Key", auto_error=False)


def get_api_key(api_key: str = Security(api_key_header)):
    """Check X-API-Key against BOOKINGS_API_KEY when that is set.
    No configured key (or ALLOW_UNAUTH_LOCAL=1) means open access."""
    expected = os.getenv("BOOKINGS_API_KEY")
    if os.getenv('ALLOW_UNAUTH_LOCAL') == '1' or not expected:
        return None
    if not api_key or api_key != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")
    return api_key


def get_current_user_id() -> int:
    # single-user deployment; every manual action belongs to the seeded user
    return DEFAULT_USER_ID
