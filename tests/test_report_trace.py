"""Unit tests for report_trace.py: request-scoped stage timing."""

import threading
import time

import pytest

from report_trace import ReportTrace, clear_trace, get_trace, set_trace, timed_stage


@pytest.fixture(autouse=True)
def _no_trace():
    clear_trace()
    yield
    clear_trace()


class TestReportTrace:
    def test_defaults(self):
        trace = ReportTrace(trace_id="t-1")
        assert trace.stages == []
        assert trace.calls == []
        assert trace.outcome() == "empty"

    def test_finish_records_elapsed(self):
        trace = ReportTrace(trace_id="t-1")
        t0 = time.time()
        rec = trace.finish("parse", t0, t0 + 0.25)
        assert rec.elapsed_ms == 250
        assert rec.ok is True
        assert trace.outcome() == "success"

    def test_calls_attributed_to_current_stage(self):
        trace = ReportTrace(trace_id="t-1")
        trace.begin("appraisal")
        trace.record_call("openai", "responses", 1200, 200)
        t0 = time.time()
        rec = trace.finish("appraisal", t0, t0)
        assert trace.calls[0].stage == "appraisal"
        assert rec.calls_made == 1

    def test_error_outcome(self):
        trace = ReportTrace(trace_id="t-1")
        t0 = time.time()
        trace.finish("parse", t0, t0, error_class="MissingCategoryData", error_message="x")
        assert trace.outcome() == "error"
        assert trace.summary_dict()["stages"][0]["error"] == "MissingCategoryData: x"

    def test_summary_includes_model_version(self):
        trace = ReportTrace(trace_id="t-1", model_version="1.0.0")
        summary = trace.summary_dict()
        assert summary["model_version"] == "1.0.0"
        assert summary["trace_id"] == "t-1"


class TestThreadLocal:
    def test_set_get_clear(self):
        trace = ReportTrace(trace_id="t-1")
        set_trace(trace)
        assert get_trace() is trace
        clear_trace()
        assert get_trace() is None

    def test_isolated_between_threads(self):
        set_trace(ReportTrace(trace_id="main"))
        seen = []
        worker = threading.Thread(target=lambda: seen.append(get_trace()))
        worker.start()
        worker.join()
        assert seen == [None]


class TestTimedStage:
    def test_returns_result_and_records(self):
        trace = ReportTrace(trace_id="t-1")
        set_trace(trace)
        assert timed_stage("score", lambda a, b: a + b, 2, b=3) == 5
        assert [s.name for s in trace.stages] == ["score"]

    def test_reraises_and_records_error(self):
        trace = ReportTrace(trace_id="t-1")
        set_trace(trace)

        def boom():
            raise ValueError("bad data")

        with pytest.raises(ValueError):
            timed_stage("parse", boom)
        assert trace.stages[0].error_class == "ValueError"
        assert trace.stages[0].error_message == "bad data"

    def test_works_without_trace(self):
        assert timed_stage("score", lambda: 42) == 42
