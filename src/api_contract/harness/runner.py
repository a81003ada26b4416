"""Parallel execution of every selected scenario of a frozen registry."""

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Iterable, Mapping

from api_contract.harness.report import ContractReport
from api_contract.harness.scenario import ScenarioExecution, ScenarioResult
from api_contract.harness.transport import Transport
from api_contract.spec.base import Operation, Scenario, SchemaNode
from api_contract.spec.errors import RegistryNotFrozenError
from api_contract.spec.registry import SpecRegistry

logger = logging.getLogger(__name__)

DEFAULT_WORKERS = 4


class ContractRunner:
    """Runs scenarios on a thread pool and gathers their verdicts.

    Failures never cancel sibling scenarios unless ``fail_fast`` is set; then
    scenarios that have not started yet are cancelled and reported as
    skipped, while running ones still finish.
    """

    def __init__(self, registry: SpecRegistry, transport: Transport, workers: int = DEFAULT_WORKERS, fail_fast: bool = False):
        self.registry = registry
        self.transport = transport
        self.workers = max(1, workers)
        self.fail_fast = fail_fast

    def run(self, tags: Iterable[str] = (), environment: str | None = None) -> ContractReport:
        if not self.registry.frozen:
            raise RegistryNotFrozenError("run scenarios")

        selected = self.registry.scenarios(tags, environment)
        logger.info("Running %d scenarios on %d workers", len(selected), self.workers)
        report = ContractReport()
        if not selected:
            return report

        components = self.registry.components
        stopping = False
        with ThreadPoolExecutor(max_workers=self.workers) as pool:
            futures = {
                pool.submit(self._run_one, operation, scenario, components): (operation, scenario)
                for operation, scenario in selected
            }
            for future in as_completed(futures):
                if future.cancelled():
                    continue
                result = future.result()
                report.add(result)
                if not result.passed and self.fail_fast and not stopping:
                    stopping = True
                    logger.info("Fail-fast: %s failed, cancelling pending scenarios", result.label)
                    for other, (operation, scenario) in futures.items():
                        if other.cancel():
                            report.skip(operation, scenario)
        return report

    def _run_one(self, operation: Operation, scenario: Scenario, components: Mapping[str, SchemaNode]) -> ScenarioResult:
        result = ScenarioExecution(operation, scenario, components).run(self.transport)
        logger.debug("%s -> %s", result.label, result.state.value)
        return result
