import httpx
import pytest

from app.domain.errors import DirectoryError
from app.notifications.directory import HttpParticipantDirectory

def handler(request: httpx.Request) -> httpx.Response:
    assert request.headers["Authorization"] == "Bearer secret"
    path = request.url.path
    if path == "/programs/prog-1":
        return httpx.Response(200, json={"id": "prog-1", "name": "Coffee Club", "settings": {"points_display": "points"}})
    if path == "/programs/prog-1/participants/p-1":
        return httpx.Response(
            200,
            json={
                "uuid": "p-1",
                "program_id": "prog-1",
                "email": "ada@example.com",
                "points": "250",
                "unused_points": 40,
                "status": "active",
                "fname": "Ada",
                "profile_attributes": {"city": "London"},
            },
        )
    if path == "/programs/broken":
        return httpx.Response(500, json={"error": "boom"})
    return httpx.Response(404, json={"error": "not found"})

def make_directory():
    client = httpx.AsyncClient(
        base_url="https://admin.example.com",
        transport=httpx.MockTransport(handler),
        headers={"Authorization": "Bearer secret"},
    )
    return HttpParticipantDirectory("https://admin.example.com", client=client)

@pytest.mark.asyncio
async def test_fetches_participant():
    directory = make_directory()

    participant = await directory.get_participant("prog-1", "p-1")

    assert participant.points == 250
    assert participant.unused_points == 40
    assert participant.profile == {"city": "London"}
    await directory.close()

@pytest.mark.asyncio
async def test_fetches_program():
    directory = make_directory()

    program = await directory.get_program("prog-1")

    assert program.name == "Coffee Club"
    assert program.settings["points_display"] == "points"
    await directory.close()

@pytest.mark.asyncio
async def test_not_found_returns_none():
    directory = make_directory()
    assert await directory.get_participant("prog-1", "ghost") is None
    await directory.close()

@pytest.mark.asyncio
async def test_server_error_raises_directory_error():
    directory = make_directory()
    with pytest.raises(DirectoryError):
        await directory.get_program("broken")
    await directory.close()
