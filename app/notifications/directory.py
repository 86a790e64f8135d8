import logging
from typing import Any, Dict, Optional, Protocol

import httpx

from app.domain.errors import DirectoryError
from app.domain.models import Participant, Program

logger = logging.getLogger(__name__)

class ParticipantDirectory(Protocol):
    async def get_participant(self, program_id: str, participant_uuid: str) -> Optional[Participant]:
        ...

    async def get_program(self, program_id: str) -> Optional[Program]:
        ...

class InMemoryDirectory(ParticipantDirectory):
    def __init__(self) -> None:
        self._participants: Dict[tuple[str, str], Participant] = {}
        self._programs: Dict[str, Program] = {}

    def add_participant(self, participant: Participant) -> None:
        self._participants[(participant.program_id, participant.participant_uuid)] = participant

    def add_program(self, program: Program) -> None:
        self._programs[program.id] = program

    async def get_participant(self, program_id: str, participant_uuid: str) -> Optional[Participant]:
        return self._participants.get((program_id, participant_uuid))

    async def get_program(self, program_id: str) -> Optional[Program]:
        return self._programs.get(program_id)

class HttpParticipantDirectory(ParticipantDirectory):
    """
    Reads participants and programs from the admin API.

    GET /programs/{program_id}
    GET /programs/{program_id}/participants/{participant_uuid}

    404 means "not found" (None); any other failure raises DirectoryError.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self.client = client or httpx.AsyncClient(base_url=self.base_url, timeout=timeout, headers=headers)

    async def _get(self, path: str) -> Optional[Dict[str, Any]]:
        try:
            resp = await self.client.get(path)
            if resp.status_code == 404:
                return None
            resp.raise_for_status()
            return resp.json()
        except httpx.HTTPStatusError as e:
            logger.warning("Directory request %s rejected: status=%s", path, e.response.status_code)
            raise DirectoryError(f"GET {path} failed with status {e.response.status_code}") from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("Directory request %s failed: %s", path, e)
            raise DirectoryError(f"GET {path} failed: {e}") from e

    async def get_participant(self, program_id: str, participant_uuid: str) -> Optional[Participant]:
        data = await self._get(f"/programs/{program_id}/participants/{participant_uuid}")
        if data is None:
            return None
        return Participant(
            participant_uuid=str(data.get("uuid") or participant_uuid),
            program_id=str(data.get("program_id") or program_id),
            email=data.get("email"),
            points=int(data.get("points") or 0),
            unused_points=int(data.get("unused_points") or 0),
            status=data.get("status"),
            tier=data.get("tier"),
            fname=data.get("fname"),
            lname=data.get("lname"),
            tag_list=list(data.get("tag_list") or []),
            profile=dict(data.get("profile_attributes") or data.get("profile") or {}),
        )

    async def get_program(self, program_id: str) -> Optional[Program]:
        data = await self._get(f"/programs/{program_id}")
        if data is None:
            return None
        return Program(
            id=str(data.get("id") or program_id),
            name=data.get("name") or "",
            settings=dict(data.get("settings") or {}),
        )

    async def close(self):
        await self.client.aclose()
