"""FastAPI dependencies for API routes."""

from fastapi import Request

from chaosplane.services.experiment import ExperimentService
from chaosplane.services.preparation import PreparationService
from chaosplane.services.registry import ServiceRegistry


def get_services(request: Request) -> ServiceRegistry:
    return request.app.state.services


def get_experiment_service(request: Request) -> ExperimentService:
    return get_services(request).experiments


def get_preparation_service(request: Request) -> PreparationService:
    return get_services(request).preparations
