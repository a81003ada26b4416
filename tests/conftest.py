import re
from pathlib import Path

import pytest

from api_contract.harness.transport import HttpRequest, HttpResponse
from api_contract.loader.module import load_module
from api_contract.spec.registry import SpecRegistry

FIXTURES = Path(__file__).parent / "fixtures"

LAP_FIELDS = ("driver_id", "circuit_id", "time_ms", "lap_number")


class LapTimesApp:
    """In-memory stand-in for the application under test."""

    def __init__(self):
        self.calls: list[HttpRequest] = []
        self.records = {
            1: {"id": 1, "driver_id": 1, "circuit_id": 1, "time_ms": 81234, "lap_number": 3,
                "recorded_at": "2024-05-01T12:00:00Z"},
        }

    def __call__(self, request: HttpRequest) -> HttpResponse:
        self.calls.append(request)
        if request.path == "/api/v1/lap_times":
            if request.method == "get":
                return HttpResponse(status=200, body=list(self.records.values()))
            body = request.body or {}
            missing = [name for name in LAP_FIELDS if name not in body]
            if missing:
                return HttpResponse(status=422, body={"errors": [f"{name} is required" for name in missing]})
            record = {"id": len(self.records) + 1, **body}
            return HttpResponse(status=201, body=record)

        match = re.fullmatch(r"/api/v1/lap_times/(\d+)", request.path)
        if match:
            record = self.records.get(int(match.group(1)))
            if record is None:
                return HttpResponse(status=404, body={"errors": ["not found"]})
            if request.method == "delete":
                return HttpResponse(status=204)
            return HttpResponse(status=200, body=record)
        return HttpResponse(status=404)


@pytest.fixture
def lap_app():
    return LapTimesApp()


@pytest.fixture
def open_registry():
    """Lap times declarations, not yet frozen."""
    return load_module(str(FIXTURES / "lap_times_spec.py"), SpecRegistry())


@pytest.fixture
def registry(open_registry):
    return open_registry.freeze()
