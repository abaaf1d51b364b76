"""Mixed read/write benchmark workload.

Each simulated client draws a random number per transaction. Below the
write ratio (or before it has created anything) it submits a freshly
synthesized diagnosis form; otherwise it reads back one of the forms it
created earlier. Requests are built with the same TransactionRouter the
HTTP layer uses, so benchmark traffic has the production transaction shape.

Architecture:
    - The simulator only builds requests; delivery goes through a
      ``TransactionSink``, so a round can target the live ledger or a fake
    - Each simulator owns its list of created form ids; nothing is shared
      between simulators
"""

import asyncio
import logging
import math
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from diagnosis_gateway.domain.diagnosis_form import DiagnosisForm, utc_timestamp
from diagnosis_gateway.domain.ports import TransactionRequest, TransactionSink
from diagnosis_gateway.domain.transaction_router import Operation, TransactionRouter
from diagnosis_gateway.infrastructure.connection_manager import ConnectionManager
from diagnosis_gateway.infrastructure.id_generator import IdGenerator

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RoundConfig:
    """Benchmark round arguments.

    Attributes:
        write_ratio: Probability that a transaction is a write (0..1)
        channel: Channel the requests target
        contract_id: Contract the requests target
    """
    write_ratio: float = 0.6
    channel: str = "medimidi-channel"
    contract_id: str = "medical-diagnosis"

    def __post_init__(self):
        if not 0.0 <= self.write_ratio <= 1.0:
            raise ValueError(f"write_ratio must be between 0 and 1, got {self.write_ratio}")


class LedgerTransactionSink:
    """Delivers benchmark requests through a real ledger session each.

    Parameters:
        manager: Connection manager used to open one session per request
        router: Router used to dispatch the prebuilt request
    """

    def __init__(self, manager: ConnectionManager, router: TransactionRouter):
        self.manager = manager
        self.router = router

    async def send_requests(self, request: TransactionRequest) -> bytes:
        async with self.manager.session(
            channel_name=request.channel, contract_id=request.contract_id
        ) as handle:
            return await self.router.dispatch(handle, request)


class WorkloadSimulator:
    """One simulated benchmark client.

    Parameters:
        sink: Destination for built requests
        router: Router that builds the requests
        id_generator: Source of randomness and form ids (seed it for
            reproducible rounds)
        config: Round arguments
    """

    def __init__(
        self,
        sink: TransactionSink,
        router: TransactionRouter,
        id_generator: IdGenerator,
        config: Optional[RoundConfig] = None,
    ):
        self.sink = sink
        self.router = router
        self.ids = id_generator
        self.config = config or RoundConfig()
        self.form_ids: list[str] = []

    def synthesize_form(self, form_id: str) -> dict[str, Any]:
        """Build a complete, valid diagnosis record for ``form_id``."""
        form = DiagnosisForm.model_validate({
            "formId": form_id,
            "doctorId": "DR001",
            "doctorName": "Dr. Benchmark",
            "patientId": f"PAT{self.ids.randrange(1000)}",
            "patientName": "Benchmark Patient",
            "timestamp": utc_timestamp(),
            "diagnosis": {
                "primary": "Hypertension",
                "secondary": ["Diabetes Type 2"],
                "icdCodes": ["I10", "E11.9"],
            },
            "symptoms": ["High blood pressure", "Fatigue"],
            "treatment": {
                "medications": [{
                    "name": "Lisinopril",
                    "dosage": "10mg",
                    "frequency": "Once daily",
                    "duration": "30 days",
                }],
                "recommendations": ["Diet", "Exercise"],
            },
            "followUp": {
                "urgentContact": False,
                "instructions": "Monitor blood pressure daily",
            },
        })
        return form.for_ledger(form_id)

    def _build(self, operation: Operation, *args: Any) -> TransactionRequest:
        return self.router.build(
            operation, *args, channel=self.config.channel, contract_id=self.config.contract_id
        )

    async def run(self) -> TransactionRequest:
        """Perform one unit of load.

        Returns:
            The request that was sent

        Raises:
            Whatever the sink raises; a failed write does not record its id
        """
        do_write = self.ids.random() < self.config.write_ratio
        if do_write or not self.form_ids:
            form_id = self.ids.form_id()
            request = self._build(Operation.CREATE_FORM, self.synthesize_form(form_id))
            await self.sink.send_requests(request)
            self.form_ids.append(form_id)
        else:
            pick = self.form_ids[self.ids.randrange(len(self.form_ids))]
            request = self._build(Operation.READ_FORM, pick)
            await self.sink.send_requests(request)
        return request


@dataclass
class RoundReport:
    """Outcome of a benchmark round.

    Attributes:
        transactions: Transactions attempted
        writes: Successful submits
        reads: Successful evaluates
        failures: Transactions whose delivery raised
        duration_seconds: Wall time for the round
        latencies_ms: Per-transaction latency, including failures
    """
    transactions: int = 0
    writes: int = 0
    reads: int = 0
    failures: int = 0
    duration_seconds: float = 0.0
    latencies_ms: list[float] = field(default_factory=list)

    @property
    def throughput(self) -> float:
        return self.transactions / self.duration_seconds if self.duration_seconds else 0.0

    @property
    def mean_latency_ms(self) -> float:
        return sum(self.latencies_ms) / len(self.latencies_ms) if self.latencies_ms else 0.0

    @property
    def p95_latency_ms(self) -> float:
        if not self.latencies_ms:
            return 0.0
        ordered = sorted(self.latencies_ms)
        return ordered[max(0, math.ceil(0.95 * len(ordered)) - 1)]


async def _drive(simulator: WorkloadSimulator, count: int, report: RoundReport) -> None:
    for _ in range(count):
        start = time.perf_counter()
        try:
            request = await simulator.run()
        except Exception as e:
            report.failures += 1
            logger.warning(f"Benchmark transaction failed: {str(e)}")
        else:
            if request.read_only:
                report.reads += 1
            else:
                report.writes += 1
        finally:
            report.transactions += 1
            report.latencies_ms.append((time.perf_counter() - start) * 1000)


async def run_round(simulators: Sequence[WorkloadSimulator], transactions: int) -> RoundReport:
    """Run ``transactions`` units of load spread across ``simulators``.

    Simulators run concurrently; each performs its share sequentially.

    Parameters:
        simulators: Simulated clients
        transactions: Total transactions in the round

    Returns:
        RoundReport with counts and latency statistics
    """
    if not simulators:
        raise ValueError("run_round needs at least one simulator")

    report = RoundReport()
    share, remainder = divmod(transactions, len(simulators))
    started = time.perf_counter()
    await asyncio.gather(*(
        _drive(simulator, share + (1 if index < remainder else 0), report)
        for index, simulator in enumerate(simulators)
    ))
    report.duration_seconds = time.perf_counter() - started
    logger.info(
        f"Round complete: {report.transactions} transactions, {report.failures} failures, "
        f"mean {report.mean_latency_ms:.1f}ms, p95 {report.p95_latency_ms:.1f}ms"
    )
    return report
