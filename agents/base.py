"""
Base Agent class and Orchestrator
ASO Insight Dashboard

Agents take one app (or a batch of apps) and hand their output to the next
step; every step is wrapped in an AgentResult envelope.
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, List, Optional, Dict
from dataclasses import dataclass, field
from datetime import datetime
import logging
import traceback
import time

logger = logging.getLogger(__name__)


@dataclass
class AgentResult:
    """Standardized result envelope returned by every agent."""
    agent_name: str
    success: bool
    data: Any = None
    error: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def duration_seconds(self) -> Optional[float]:
        if self.started_at and self.finished_at:
            return (self.finished_at - self.started_at).total_seconds()
        return None

    @property
    def item_count(self) -> int:
        """Apps (or audits / analyses) produced by this step."""
        if self.data is None:
            return 0
        if isinstance(self.data, (list, tuple)):
            return len(self.data)
        return 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "agent": self.agent_name,
            "success": self.success,
            "error": self.error,
            "items": self.item_count,
            "duration_seconds": self.duration_seconds,
            "metadata": self.metadata,
        }

    def __repr__(self):
        status = "✅" if self.success else "❌"
        dur = f" ({self.duration_seconds:.1f}s)" if self.duration_seconds else ""
        items = f" [{self.item_count}]" if self.success else f": {self.error}"
        return f"{status} {self.agent_name}{dur}{items}"


class Agent(ABC):
    """
    Abstract base class for all pipeline agents.
    Subclasses implement `run(data)`; callers use `execute(data)`.
    """

    def __init__(self, name: str):
        self.name = name
        self.logger = logging.getLogger(f"agent.{name}")

    @abstractmethod
    def run(self, data: Any) -> Any:
        raise NotImplementedError

    def execute(self, data: Any) -> AgentResult:
        """
        Wraps `run()` with timing, structured logging, and error handling.
        A failure never raises; it comes back as success=False with the
        exception type in metadata["error_type"].
        """
        started_at = datetime.utcnow()
        self.logger.info(f"[{self.name}] Starting...")
        try:
            output = self.run(data)
        except Exception as e:
            self.logger.error(f"[{self.name}] Failed: {e}\n{traceback.format_exc()}")
            return AgentResult(
                agent_name=self.name,
                success=False,
                error=str(e),
                metadata={"error_type": type(e).__name__},
                started_at=started_at,
                finished_at=datetime.utcnow(),
            )

        result = AgentResult(
            agent_name=self.name,
            success=True,
            data=output,
            started_at=started_at,
            finished_at=datetime.utcnow(),
        )
        self.logger.info(
            f"[{self.name}] Completed in {result.duration_seconds:.2f}s ({result.item_count} item(s))"
        )
        return result

    def __repr__(self):
        return f"<Agent: {self.name}>"


class FunctionAgent(Agent):
    """Adapts a plain callable into a pipeline step."""

    def __init__(self, name: str, func: Callable[[Any], Any]):
        super().__init__(name)
        self.func = func

    def run(self, data: Any) -> Any:
        return self.func(data)


class Orchestrator:
    """
    Sequential multi-agent pipeline orchestrator.
    Each agent's output becomes the next agent's input.

    Usage:
        pipeline = Orchestrator([AppMetadataAgent(), MetadataAuditAgent()], name="audit")
        result = pipeline.execute({"app_id": "570060128", "mode": "mock"})
    """

    def __init__(self, agents: List[Agent], name: str = "pipeline", stop_on_failure: bool = True):
        self.agents = agents
        self.name = name
        self.stop_on_failure = stop_on_failure
        self.logger = logging.getLogger(f"orchestrator.{name}")
        self.run_history: List[AgentResult] = []
        self.elapsed_seconds: Optional[float] = None

    @property
    def failed(self) -> List[AgentResult]:
        return [r for r in self.run_history if not r.success]

    def execute(self, input_data: Any) -> AgentResult:
        """Execute the full pipeline and return the final AgentResult."""
        self.run_history.clear()
        data = input_data
        total_start = time.time()

        self.logger.info(f"🚀 {self.name}: {len(self.agents)} agents in pipeline")

        for i, agent in enumerate(self.agents, 1):
            self.logger.info(f"  [{i}/{len(self.agents)}] {agent.name}")
            result = agent.execute(data)
            self.run_history.append(result)

            if not result.success:
                self.logger.error(f"  ❌ '{agent.name}' failed: {result.error}")
                if self.stop_on_failure:
                    self.elapsed_seconds = time.time() - total_start
                    return result
            else:
                data = result.data

        self.elapsed_seconds = time.time() - total_start
        successes = len(self.run_history) - len(self.failed)
        self.logger.info(
            f"✅ {self.name} complete: {successes}/{len(self.agents)} succeeded in {self.elapsed_seconds:.2f}s"
        )

        for result in reversed(self.run_history):
            if result.success:
                return result
        return self.run_history[-1]

    def report(self) -> Dict[str, Any]:
        """Structured run report (one entry per executed step)."""
        return {
            "pipeline": self.name,
            "steps": [r.to_dict() for r in self.run_history],
            "succeeded": len(self.run_history) - len(self.failed),
            "failed": [r.agent_name for r in self.failed],
            "elapsed_seconds": self.elapsed_seconds,
        }

    def summary(self) -> str:
        lines = [f"Pipeline '{self.name}':"]
        for r in self.run_history:
            lines.append(f"  {r}")
        return "\n".join(lines)
