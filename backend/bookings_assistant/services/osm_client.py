"""Client for the Online Scout Manager (OSM) campsite booking API.

Environment:
  OSM_BASE_URL      API root (default https://www.onlinescoutmanager.co.uk)
  OSM_CAMPSITE_ID   campsite whose bookings are synced (required)
  OSM_SECTION_ID    section owning the booking comments (required)
  OSM_ACCESS_TOKEN  bearer token used by the default token provider

Token acquisition and refresh live outside this module; the client only asks
its token provider for a token before each call.
"""
from __future__ import annotations
import asyncio
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Tuple

import httpx

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = 'https://www.onlinescoutmanager.co.uk'
COMMENT_PREVIEW_LIMIT = 200

# our status -> OSM "mode" query value
STATUS_TO_MODE = {
    'provisional': 'provisional',
    'confirmed': 'current',
    'future': 'future',
    'past': 'past',
    'cancelled': 'cancelled',
}


class OsmAuthenticationRequired(Exception):
    """No usable OSM token; the user has to (re)authenticate."""


class OsmGatewayError(Exception):
    """An OSM request failed for a reason other than authentication."""


@dataclass
class BookingRecord:
    osm_booking_id: str
    customer_name: str
    start_date: Optional[datetime]
    end_date: Optional[datetime]
    status: str


@dataclass
class CommentRecord:
    osm_comment_id: str
    osm_booking_id: str
    author_name: str
    text_preview: str
    created_date: Optional[datetime] = None


TokenProvider = Callable[[], Awaitable[str]]


async def env_token_provider() -> str:
    token = os.getenv('OSM_ACCESS_TOKEN')
    if not token:
        raise OsmAuthenticationRequired("OSM authentication required")
    return token


def map_status_to_mode(status: str) -> str:
    return STATUS_TO_MODE.get((status or '').lower(), 'current')


def _parse_date(raw) -> Optional[datetime]:
    if not raw or not isinstance(raw, str):
        return None
    try:
        parsed = datetime.fromisoformat(raw.strip().replace('Z', '+00:00'))
    except ValueError:
        return None
    # stored as naive UTC
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def _capitalize(text: str) -> str:
    return text[:1].upper() + text[1:].lower() if text else text


def map_booking(raw: dict) -> BookingRecord:
    return BookingRecord(
        osm_booking_id=str(raw.get('id')),
        customer_name=raw.get('group_name') or '',
        start_date=_parse_date(raw.get('start_date')),
        end_date=_parse_date(raw.get('end_date')),
        status=_capitalize(raw.get('status') or 'Unknown'),
    )


def truncate_preview(text: str, limit: int = COMMENT_PREVIEW_LIMIT) -> str:
    if len(text) <= limit:
        return text
    return text[:limit - 3] + '...'


def map_comment(raw: dict, osm_booking_id: str) -> CommentRecord:
    user = raw.get('user') or {}
    author = f"{user.get('first_name') or ''} {user.get('last_name') or ''}".strip()
    return CommentRecord(
        osm_comment_id=str(raw.get('id')),
        osm_booking_id=osm_booking_id,
        author_name=author,
        text_preview=truncate_preview(raw.get('comment') or ''),
        created_date=_parse_date(raw.get('created_at')),
    )


class OsmClient:
    def __init__(
        self,
        base_url: str,
        campsite_id: str,
        section_id: str,
        token_provider: TokenProvider = env_token_provider,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        if not campsite_id:
            raise ValueError("OSM campsite id not configured")
        if not section_id:
            raise ValueError("OSM section id not configured")
        self.campsite_id = campsite_id
        self.section_id = section_id
        self._token_provider = token_provider
        self._http = http_client or httpx.AsyncClient(base_url=base_url)

    async def aclose(self):
        await self._http.aclose()

    async def _get(self, url: str, token: str) -> httpx.Response:
        resp = await self._http.get(url, headers={'Authorization': f'Bearer {token}'})
        self._log_rate_limits(resp)
        if resp.status_code == 401:
            log.warning("osm_unauthorized", extra={"url": url})
            raise OsmAuthenticationRequired("OSM authentication required")
        return resp

    async def fetch_bookings(self, status: str) -> List[BookingRecord]:
        """Bookings for one status. Failures other than authentication return []."""
        token = await self._token_provider()
        mode = map_status_to_mode(status)
        url = f"/v3/campsites/{self.campsite_id}/bookings?mode={mode}"
        try:
            resp = await self._get(url, token)
            if resp.is_error:
                log.error("osm_bookings_http_error", extra={"mode": mode, "status": resp.status_code})
                return []
            payload = resp.json()
            if not isinstance(payload, dict) or not payload.get('status'):
                error = payload.get('error') if isinstance(payload, dict) else None
                log.error("osm_bookings_api_error", extra={"mode": mode, "error": error or 'Unknown error'})
                return []
            bookings = [map_booking(b) for b in payload.get('data') or []]
        except OsmAuthenticationRequired:
            raise
        except (httpx.HTTPError, ValueError, AttributeError) as e:
            log.error("osm_bookings_fetch_failed", exc_info=e, extra={"mode": mode})
            return []
        log.info("osm_bookings_fetched", extra={"mode": mode, "count": len(bookings)})
        return bookings

    async def fetch_booking_detail(self, osm_booking_id: str) -> Tuple[str, List[CommentRecord]]:
        """Raw detail JSON plus comments for a booking.

        Raises OsmGatewayError when the detail request fails; a failed comments
        request only yields an empty comment list.
        """
        token = await self._token_provider()
        details_url = f"/v3/campsites/{self.campsite_id}/items?booking_id={osm_booking_id}&mode=booking&audience=venue"
        try:
            details_resp, comments = await asyncio.gather(
                self._get(details_url, token),
                self._comments(osm_booking_id, token),
            )
        except httpx.HTTPError as e:
            raise OsmGatewayError(f"OSM detail request failed for booking {osm_booking_id}") from e

        if details_resp.is_error:
            raise OsmGatewayError(f"OSM detail request for booking {osm_booking_id} returned {details_resp.status_code}")

        log.info("osm_booking_detail_fetched", extra={"osm_booking_id": osm_booking_id, "comments": len(comments)})
        return details_resp.text, comments

    async def fetch_comments(self, osm_booking_id: str) -> List[CommentRecord]:
        """Comments for a booking; an error response yields an empty list."""
        token = await self._token_provider()
        try:
            return await self._comments(osm_booking_id, token)
        except httpx.HTTPError as e:
            raise OsmGatewayError(f"OSM comments request failed for booking {osm_booking_id}") from e

    async def _comments(self, osm_booking_id: str, token: str) -> List[CommentRecord]:
        url = f"/v3/comments/campsite_booking/{osm_booking_id}/list?section_id={self.section_id}"
        resp = await self._get(url, token)
        if resp.is_error:
            log.error("osm_comments_http_error", extra={"osm_booking_id": osm_booking_id, "status": resp.status_code})
            return []
        try:
            payload = resp.json()
        except json.JSONDecodeError:
            payload = None
        if isinstance(payload, dict) and payload.get('status'):
            return [map_comment(c, osm_booking_id) for c in payload.get('data') or []]
        error = payload.get('error') if isinstance(payload, dict) else None
        log.error("osm_comments_api_error", extra={"osm_booking_id": osm_booking_id, "error": error or 'Unknown error'})
        return []

    def _log_rate_limits(self, resp: httpx.Response):
        limit = resp.headers.get('X-RateLimit-Limit')
        remaining = resp.headers.get('X-RateLimit-Remaining')
        reset = resp.headers.get('X-RateLimit-Reset')
        if limit or remaining or reset:
            log.debug("osm_rate_limit", extra={"limit": limit, "remaining": remaining, "reset": reset})
        if remaining is not None and remaining.isdigit() and int(remaining) < 10:
            log.warning("osm_rate_limit_low", extra={"remaining": int(remaining)})
        if resp.status_code == 429:
            log.error("osm_rate_limit_exceeded", extra={"retry_after": resp.headers.get('Retry-After')})


_client: OsmClient | None = None


def get_osm_client() -> Optional[OsmClient]:
    """Process-wide client, or None while OSM_CAMPSITE_ID / OSM_SECTION_ID are unset."""
    global _client
    if _client is None:
        try:
            _client = OsmClient(
                base_url=os.getenv('OSM_BASE_URL', DEFAULT_BASE_URL),
                campsite_id=os.getenv('OSM_CAMPSITE_ID', ''),
                section_id=os.getenv('OSM_SECTION_ID', ''),
            )
        except ValueError as e:
            log.warning("osm_not_configured", extra={"reason": str(e)})
            return None
    return _client


async def close_osm_client():
    global _client
    if _client is not None:
        await _client.aclose()
        _client = None
