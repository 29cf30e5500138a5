"""
FastAPI dependencies resolving the process-wide batch components
"""

from fastapi import Depends, Request
from core.gate import ResourceGate
from ingestion.loaders.batch_repository import BatchRepository
from ingestion.loaders.key_value_store import KeyValueStore
from ingestion.runner import BatchRunner
from ingestion.scheduler import BatchScheduler


def get_scheduler(request: Request) -> BatchScheduler:
    return request.app.state.scheduler


def get_store(scheduler: BatchScheduler = Depends(get_scheduler)) -> KeyValueStore:
    return scheduler.store


def get_repository(scheduler: BatchScheduler = Depends(get_scheduler)) -> BatchRepository:
    return scheduler.repository


def get_gate(scheduler: BatchScheduler = Depends(get_scheduler)) -> ResourceGate:
    return scheduler.gate


def get_runner(scheduler: BatchScheduler = Depends(get_scheduler)) -> BatchRunner:
    return scheduler.runner
