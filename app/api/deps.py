from typing import Annotated

from fastapi import Depends, Request

from app.notifications.buffer import EventBufferManager
from app.services.bootstrap import Services
from app.services.job_queue import JobQueue

def get_services(request: Request) -> Services:
    return request.app.state.services

def get_queue(request: Request) -> JobQueue:
    return get_services(request).queue

def get_notifications(request: Request) -> EventBufferManager:
    return get_services(request).notifications

Queue = Annotated[JobQueue, Depends(get_queue)]
Notifications = Annotated[EventBufferManager, Depends(get_notifications)]
AppServices = Annotated[Services, Depends(get_services)]
