"""
Request-scoped tracing for report and appraisal requests.

A thread-local ReportTrace collects:
  - one StageRecord per pipeline stage (parse, score, compose, render_pdf, ...)
  - one ProviderCallRecord per outbound call (the appraisal model)

app.py opens a trace per request and logs its summary on the way out;
timed_stage() and AppraisalClient write into whatever trace is current.
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class ProviderCallRecord:
    service: str          # "openai"
    endpoint: str         # "responses"
    elapsed_ms: int
    status_code: int
    stage: str = ""


@dataclass
class StageRecord:
    name: str
    elapsed_ms: int = 0
    calls_made: int = 0
    error_class: str = ""
    error_message: str = ""

    @property
    def ok(self) -> bool:
        return not self.error_class


@dataclass
class ReportTrace:
    trace_id: str
    started: float = field(default_factory=time.time)
    stages: List[StageRecord] = field(default_factory=list)
    calls: List[ProviderCallRecord] = field(default_factory=list)
    model_version: str = ""
    _current_stage: str = ""

    def begin(self, name: str):
        self._current_stage = name

    def finish(
        self,
        name: str,
        start_ts: float,
        end_ts: float,
        error_class: str = "",
        error_message: str = "",
    ) -> StageRecord:
        rec = StageRecord(
            name=name,
            elapsed_ms=int((end_ts - start_ts) * 1000),
            calls_made=sum(1 for c in self.calls if c.stage == name),
            error_class=error_class,
            error_message=error_message,
        )
        self.stages.append(rec)
        self._current_stage = ""
        logger.info(
            "  [stage] trace=%s %s %s %dms calls=%d%s",
            self.trace_id,
            name,
            "OK" if rec.ok else "ERR",
            rec.elapsed_ms,
            rec.calls_made,
            f" err={error_class}: {error_message}" if error_class else "",
        )
        return rec

    def record_call(self, service: str, endpoint: str, elapsed_ms: int, status_code: int):
        self.calls.append(ProviderCallRecord(
            service=service,
            endpoint=endpoint,
            elapsed_ms=elapsed_ms,
            status_code=status_code,
            stage=self._current_stage,
        ))
        logger.info(
            "  [call] trace=%s stage=%s svc=%s ep=%s ms=%d http=%d",
            self.trace_id, self._current_stage or "-", service, endpoint, elapsed_ms, status_code,
        )

    def outcome(self) -> str:
        if not self.stages:
            return "empty"
        if any(not s.ok for s in self.stages):
            return "error"
        return "success"

    def summary_dict(self) -> Dict[str, Any]:
        result = {
            "trace_id": self.trace_id,
            "total_elapsed_ms": int((time.time() - self.started) * 1000),
            "total_calls": len(self.calls),
            "stages": [
                {
                    "stage": s.name,
                    "elapsed_ms": s.elapsed_ms,
                    "calls": s.calls_made,
                    "error": f"{s.error_class}: {s.error_message}" if s.error_class else None,
                }
                for s in self.stages
            ],
            "outcome": self.outcome(),
        }
        if self.model_version:
            result["model_version"] = self.model_version
        return result

    def log_summary(self):
        s = self.summary_dict()
        logger.info(
            "[trace-summary] trace=%s total_ms=%d calls=%d stages=%d outcome=%s",
            s["trace_id"], s["total_elapsed_ms"], s["total_calls"], len(s["stages"]), s["outcome"],
        )


_trace_local = threading.local()


def get_trace() -> Optional[ReportTrace]:
    return getattr(_trace_local, "ctx", None)


def set_trace(ctx: Optional[ReportTrace]):
    _trace_local.ctx = ctx


def clear_trace():
    _trace_local.ctx = None


def timed_stage(name: str, fn: Callable[..., T], *args, **kwargs) -> T:
    """Run *fn* as a named stage.  Logs duration and re-raises on failure."""
    trace = get_trace()
    if trace:
        trace.begin(name)
    t0 = time.time()
    try:
        result = fn(*args, **kwargs)
    except Exception as exc:
        t1 = time.time()
        if trace:
            trace.finish(name, t0, t1, error_class=type(exc).__name__, error_message=str(exc)[:200])
        else:
            logger.warning("  [stage] %s FAILED (%.1fs)", name, t1 - t0)
        raise
    t1 = time.time()
    if trace:
        trace.finish(name, t0, t1)
    else:
        logger.debug("  [stage] %s OK (%.1fs)", name, t1 - t0)
    return result
