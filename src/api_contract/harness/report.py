"""Aggregation of scenario results into one contract report."""

import threading
from typing import Any

from api_contract.harness.scenario import ScenarioResult
from api_contract.spec.base import METHOD_ORDER, HttpMethod, Operation, Scenario

ExampleKey = tuple[str, HttpMethod, int]


class ContractReport:
    """Thread-safe accumulator of scenario results."""

    def __init__(self):
        self._lock = threading.Lock()
        self._results: list[ScenarioResult] = []
        self._skipped: list[str] = []

    def add(self, result: ScenarioResult) -> None:
        with self._lock:
            self._results.append(result)

    def skip(self, operation: Operation, scenario: Scenario) -> None:
        with self._lock:
            self._skipped.append(f"{operation.display_name} [{scenario.name}]")

    @property
    def results(self) -> list[ScenarioResult]:
        """Results in document order: path, canonical method, scenario name."""
        with self._lock:
            results = list(self._results)
        return sorted(results, key=lambda r: (r.path, METHOD_ORDER[r.method], r.scenario))

    @property
    def skipped(self) -> list[str]:
        with self._lock:
            return sorted(self._skipped)

    @property
    def failures(self) -> list[ScenarioResult]:
        return [r for r in self.results if not r.passed]

    @property
    def passed(self) -> bool:
        return not self.failures

    def examples(self) -> dict[ExampleKey, dict[str, Any]]:
        """Response bodies of passing scenarios, keyed by (path, method, status)."""
        collected: dict[ExampleKey, dict[str, Any]] = {}
        for result in self.results:
            if result.passed and result.response_body is not None:
                key = (result.path, result.method, result.status)
                collected.setdefault(key, {})[result.scenario] = result.response_body
        return collected

    def summary(self) -> dict[str, int]:
        results = self.results
        passed = sum(1 for r in results if r.passed)
        return {
            "total": len(results) + len(self.skipped),
            "passed": passed,
            "failed": len(results) - passed,
            "skipped": len(self.skipped),
        }

    def to_dict(self) -> dict:
        return {
            "summary": self.summary(),
            "scenarios": [
                {
                    "operation": f"{r.method.value.upper()} {r.path}",
                    "scenario": r.scenario,
                    "state": r.state.value,
                    "status": r.status,
                    "error": r.error,
                    "violations": [v.model_dump(mode="json") for v in r.violations],
                }
                for r in self.results
            ],
            "skipped": self.skipped,
        }
