"""
FastAPI dependencies resolving the services built at start-up.
"""
from fastapi import Request

from app.core.jobs import PipelineQueue
from app.core.services import Services
from app.sandbox.manager import SandboxJobManager


def get_services(request: Request) -> Services:
    return request.app.state.services


def get_queue(request: Request) -> PipelineQueue:
    return get_services(request).queue


def get_sandbox(request: Request) -> SandboxJobManager:
    return get_services(request).sandbox
