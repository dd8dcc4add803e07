"""BigBlueButton meeting directory client.

Only ``getMeetingInfo`` is needed: the worker joins the meeting as an attendee,
so every start request fetches a fresh attendee password. Nothing is cached.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass, field
from typing import Mapping, Protocol
from urllib.parse import urlencode
from xml.etree import ElementTree

import httpx

from ..core.errors import DirectoryResponseError, DirectoryUnavailableError

logger = logging.getLogger(__name__)

RETURN_CODE_SUCCESS = "SUCCESS"


@dataclass(slots=True, frozen=True)
class MeetingCredential:
    attendee_password: str = field(repr=False)


class MeetingDirectory(Protocol):
    async def get_meeting_info(self, meeting_id: str) -> MeetingCredential:
        ...


def build_api_url(
    base_url: str,
    secret: str,
    call: str,
    params: Mapping[str, str],
    *,
    algorithm: str = "sha1",
) -> str:
    """Return a signed BBB API URL.

    The checksum is ``hash(call + query + secret)`` over the exact query string
    that is sent, so the parameters are encoded once and reused.
    """

    query = urlencode(params)
    checksum = hashlib.new(algorithm, f"{call}{query}{secret}".encode("utf-8")).hexdigest()

    root = base_url.rstrip("/")
    if not root.endswith("/api"):
        root = f"{root}/api"

    if query:
        return f"{root}/{call}?{query}&checksum={checksum}"
    return f"{root}/{call}?checksum={checksum}"


def parse_meeting_info(payload: str | bytes) -> MeetingCredential:
    """Extract the attendee password from a ``getMeetingInfo`` XML document."""

    try:
        root = ElementTree.fromstring(payload)
    except ElementTree.ParseError as exc:
        raise DirectoryResponseError("Meeting directory returned an unreadable response") from exc

    return_code = (root.findtext("returncode") or "").strip()
    if return_code != RETURN_CODE_SUCCESS:
        message_key = (root.findtext("messageKey") or "").strip()
        detail = f" ({message_key})" if message_key else ""
        raise DirectoryResponseError(f"Meeting directory rejected the lookup{detail}")

    attendee_password = root.findtext("attendeePW")
    if not attendee_password:
        raise DirectoryResponseError("Meeting directory response has no attendee password")

    return MeetingCredential(attendee_password=attendee_password)


class MeetingDirectoryClient:
    """Query a BBB server for per-meeting metadata."""

    def __init__(
        self,
        base_url: str,
        secret: str,
        *,
        algorithm: str = "sha1",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url
        self._secret = secret
        self._algorithm = algorithm
        self._timeout = timeout
        self._transport = transport

    async def get_meeting_info(self, meeting_id: str) -> MeetingCredential:
        """Return the attendee credential for ``meeting_id``."""

        if not self.base_url:
            raise DirectoryUnavailableError("Meeting directory URL is not configured")

        url = build_api_url(
            self.base_url,
            self._secret,
            "getMeetingInfo",
            {"meetingID": meeting_id},
            algorithm=self._algorithm,
        )

        try:
            async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                response = await client.get(url)
                response.raise_for_status()
        except httpx.TimeoutException as exc:
            logger.warning("Meeting directory timed out for meeting %s", meeting_id)
            raise DirectoryUnavailableError("Meeting directory timed out") from exc
        except httpx.HTTPStatusError as exc:
            logger.warning(
                "Meeting directory answered %s for meeting %s", exc.response.status_code, meeting_id
            )
            raise DirectoryUnavailableError(
                f"Meeting directory answered with status {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Meeting directory unreachable for meeting %s: %s", meeting_id, type(exc).__name__)
            raise DirectoryUnavailableError("Meeting directory is unreachable") from exc

        return parse_meeting_info(response.content)
