"""
Detection Orchestrator
======================

Two-tier vehicle detection as an explicit LangGraph state machine.
LangGraph is used for CONTROL FLOW only.

Graph Structure:
    START → run_primary ─┬─(ok)──────────────→ finalize → END
                         └─(failed)→ run_fallback → finalize → END

Outcomes (tagged, never raised from detect()):
    - Ok(source=primary)
    - Ok(source=fallback)
    - Err(DetectionFailed(primary_error, fallback_error))

Design Rules:
    - Each detector is invoked at most once per call; no retries, no loops
    - Every detector call is bounded by its own time budget; exceeding it
      counts as a detector failure
    - Each primary call gets a fresh daemon thread; the fallback has its
      own worker pool that primary calls never touch
    - Both tiers normalize into the same DetectionResult field set
"""

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Any, Dict, Optional, TypedDict

from langgraph.graph import END, StateGraph

from parkcam.detection.detector import (
    DetectorError,
    DetectorTimeout,
    InternalError,
    NativeDetection,
    VehicleDetector,
)
from parkcam.imaging.codec import EncodedStill
from parkcam.models.result import DetectionResult, DetectionSource


logger = logging.getLogger(__name__)


class DetectionFailed(Exception):
    """
    Both detectors failed.

    Attributes:
        primary_error: Why the primary detector failed
        fallback_error: Why the fallback detector failed
    """

    def __init__(self, primary_error: DetectorError, fallback_error: DetectorError) -> None:
        self.primary_error = primary_error
        self.fallback_error = fallback_error
        super().__init__(
            f"Vehicle detection failed: primary ({_describe(primary_error)}); "
            f"fallback ({_describe(fallback_error)})"
        )

    @property
    def causes(self) -> Dict[str, str]:
        return {
            "primary": _describe(self.primary_error),
            "fallback": _describe(self.fallback_error),
        }


@dataclass(frozen=True)
class DetectionOutcome:
    """
    Tagged result of one orchestrator run.

    Exactly one of `result` and `error` is set.
    """

    result: Optional[DetectionResult] = None
    error: Optional[DetectionFailed] = None

    def __post_init__(self) -> None:
        if (self.result is None) == (self.error is None):
            raise ValueError("DetectionOutcome needs exactly one of result or error")

    @property
    def ok(self) -> bool:
        return self.result is not None

    @property
    def source(self) -> Optional[DetectionSource]:
        return self.result.source if self.result is not None else None

    def unwrap(self) -> DetectionResult:
        """Return the result or raise the DetectionFailed error."""
        if self.error is not None:
            raise self.error
        return self.result


class DetectionGraphState(TypedDict):
    """
    State passed through the detection graph.

    Attributes:
        still: Encoded still under classification
        result: Normalized result once a tier succeeds
        primary_error: Primary failure, if any
        fallback_error: Fallback failure, if any
        outcome: Final tagged outcome
    """
    still: EncodedStill
    result: Optional[DetectionResult]
    primary_error: Optional[DetectorError]
    fallback_error: Optional[DetectorError]
    outcome: Optional[DetectionOutcome]


class DetectionOrchestrator:
    """
    Primary detector with a single deterministic fallback hop.

    Attributes:
        primary: Higher-accuracy detector (learned model)
        fallback: Always-available lower-accuracy detector
        primary_timeout: Time budget for the primary call (seconds)
        fallback_timeout: Time budget for the fallback call (seconds)

    Example:
        orchestrator = DetectionOrchestrator(MLModelDetector(url), HeuristicDetector())
        outcome = orchestrator.detect(still)
        if outcome.ok:
            print(outcome.result.vehicle_type, outcome.source)
    """

    def __init__(
        self,
        primary: VehicleDetector,
        fallback: VehicleDetector,
        primary_timeout: float = 20.0,
        fallback_timeout: float = 10.0,
        fallback_workers: int = 2,
    ) -> None:
        self.primary = primary
        self.fallback = fallback
        self.primary_timeout = primary_timeout
        self.fallback_timeout = fallback_timeout

        self._fallback_executor = ThreadPoolExecutor(
            max_workers=fallback_workers,
            thread_name_prefix="fallback-detector",
        )
        self._graph = self._build_graph()

        self._request_count: int = 0
        self._primary_success_count: int = 0
        self._fallback_success_count: int = 0
        self._failure_count: int = 0
        self._abandoned_calls: int = 0

        logger.info(
            f"DetectionOrchestrator initialized: "
            f"primary={_name(primary)} ({primary_timeout}s), "
            f"fallback={_name(fallback)} ({fallback_timeout}s)"
        )

    def _build_graph(self) -> StateGraph:
        """Build the LangGraph workflow."""
        workflow = StateGraph(DetectionGraphState)

        workflow.add_node("run_primary", self._run_primary_node)
        workflow.add_node("run_fallback", self._run_fallback_node)
        workflow.add_node("finalize", self._finalize_node)

        workflow.set_entry_point("run_primary")
        workflow.add_conditional_edges(
            "run_primary",
            self._route_after_primary,
            {"fallback": "run_fallback", "finalize": "finalize"},
        )
        workflow.add_edge("run_fallback", "finalize")
        workflow.add_edge("finalize", END)

        return workflow.compile()

    # -------------------------------------------------------------------------
    # Graph nodes
    # -------------------------------------------------------------------------

    def _run_primary_node(self, state: DetectionGraphState) -> Dict[str, Any]:
        still = state["still"]
        try:
            future = _submit_on_thread(self.primary, still)
            native = self._await(self.primary, future, self.primary_timeout)
        except DetectorError as e:
            logger.warning(
                f"Primary detector {_name(self.primary)} failed, "
                f"falling back to {_name(self.fallback)}: {_describe(e)}"
            )
            return {"primary_error": e}

        return {"result": _normalize(native, DetectionSource.PRIMARY)}

    def _route_after_primary(self, state: DetectionGraphState) -> str:
        return "fallback" if state.get("result") is None else "finalize"

    def _run_fallback_node(self, state: DetectionGraphState) -> Dict[str, Any]:
        still = state["still"]
        try:
            future = self._fallback_executor.submit(self.fallback.run, still)
            native = self._await(self.fallback, future, self.fallback_timeout)
        except DetectorError as e:
            logger.error(f"Fallback detector {_name(self.fallback)} failed: {_describe(e)}")
            return {"fallback_error": e}

        return {"result": _normalize(native, DetectionSource.FALLBACK)}

    def _finalize_node(self, state: DetectionGraphState) -> Dict[str, Any]:
        result = state.get("result")
        if result is not None:
            return {"outcome": DetectionOutcome(result=result)}

        error = DetectionFailed(state["primary_error"], state["fallback_error"])
        return {"outcome": DetectionOutcome(error=error)}

    # -------------------------------------------------------------------------
    # Public API
    # -------------------------------------------------------------------------

    def detect(self, still: EncodedStill) -> DetectionOutcome:
        """
        Classify a still with primary → fallback semantics.

        Never raises for detector failures; they are reported in the
        returned outcome.

        Args:
            still: Encoded still to classify

        Returns:
            DetectionOutcome holding exactly one result or one error
        """
        self._request_count += 1

        final_state = self._graph.invoke({
            "still": still,
            "result": None,
            "primary_error": None,
            "fallback_error": None,
            "outcome": None,
        })
        outcome: DetectionOutcome = final_state["outcome"]

        if outcome.ok:
            if outcome.source is DetectionSource.PRIMARY:
                self._primary_success_count += 1
            else:
                self._fallback_success_count += 1
            logger.info(
                f"Detection: type={outcome.result.vehicle_type}, "
                f"conf={outcome.result.confidence:.2f}, source={outcome.source.value}"
            )
        else:
            self._failure_count += 1
            logger.error(str(outcome.error))

        return outcome

    def detect_or_raise(self, still: EncodedStill) -> DetectionResult:
        """
        Classify a still, raising when both tiers fail.

        Raises:
            DetectionFailed: Both detectors failed
        """
        return self.detect(still).unwrap()

    def _await(
        self,
        detector: VehicleDetector,
        future: "Future[NativeDetection]",
        timeout: float,
    ) -> NativeDetection:
        """Wait for one detector call within its budget, as a DetectorError on failure."""
        try:
            native = future.result(timeout=timeout)
        except FutureTimeout:
            # A running call cannot be stopped; its thread is left to finish
            future.cancel()
            self._abandoned_calls += 1
            raise DetectorTimeout(
                f"{_name(detector)} exceeded {timeout:.1f}s budget"
            )
        except DetectorError:
            raise
        except Exception as e:
            raise InternalError(f"{_name(detector)} raised {type(e).__name__}: {e}") from e

        if not isinstance(native, NativeDetection):
            raise InternalError(
                f"{_name(detector)} returned {type(native).__name__}, expected NativeDetection"
            )
        return native

    def get_metrics(self) -> Dict[str, Any]:
        """Get orchestrator metrics for observability."""
        return {
            "primary_backend": _name(self.primary),
            "fallback_backend": _name(self.fallback),
            "requests": self._request_count,
            "primary_successes": self._primary_success_count,
            "fallback_successes": self._fallback_success_count,
            "failures": self._failure_count,
            "abandoned_calls": self._abandoned_calls,
        }

    def shutdown(self) -> None:
        """Stop the fallback worker pool without waiting on stuck calls."""
        self._fallback_executor.shutdown(wait=False)


def _submit_on_thread(detector: VehicleDetector, still: EncodedStill) -> "Future[NativeDetection]":
    """Run detector.run(still) on a fresh daemon thread, returning its Future."""
    future: "Future[NativeDetection]" = Future()

    def _target() -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            future.set_result(detector.run(still))
        except BaseException as e:
            future.set_exception(e)

    threading.Thread(
        target=_target,
        name=f"primary-detector-{_name(detector)}",
        daemon=True,
    ).start()
    return future


def _normalize(native: NativeDetection, source: DetectionSource) -> DetectionResult:
    return DetectionResult(
        success=True,
        vehicle_type=native.vehicle_type,
        confidence=native.confidence,
        vehicle_class=native.vehicle_class,
        metadata=dict(native.metadata),
        source=source,
    )


def _name(detector: VehicleDetector) -> str:
    return getattr(detector, "name", type(detector).__name__)


def _describe(error: BaseException) -> str:
    return f"{type(error).__name__}: {error}"
