"""Tests for report generation, streaming, validation and export — mock backend, no network."""

from __future__ import annotations

import asyncio
import json
from datetime import UTC, datetime

import pytest
import pytest_asyncio

from patentrag.config import ReportSettings, RetrievalSettings, Settings
from patentrag.documents.schemas import SourceType
from patentrag.errors import (
    ExportFormatNotImplementedError,
    GenerationError,
    InvalidInputError,
)
from patentrag.llm.base import PredictRequest, PredictResponse
from patentrag.metrics.base import NoopMetrics
from patentrag.prompts.manager import PromptManager
from patentrag.prompts.schemas import AnalysisTask, OutputFormat, PromptParams
from patentrag.reports import ReportGenerator, ReportRequest
from patentrag.reports.export import export_report
from patentrag.reports.generator import decode_int_from_bytes, extract_token_usage
from patentrag.reports.schemas import ExportFormat, Report, ReportContent, VerificationStatus
from patentrag.reports.streaming import ReportStream, detect_section_hint, should_flush
from patentrag.retrieval.engine import RAGEngine
from patentrag.retrieval.schemas import RAGResult, RetrievedChunk
from patentrag.tokens import estimate_tokens
from patentrag.vectorstore.memory_store import InMemoryVectorStore

from tests.conftest import NARRATIVE_REPORT, MockEmbedder, MockModelBackend, MockReranker

QUERY = "Can we launch the crystalline form of compound A in the US?"

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


class RecordingMetrics(NoopMetrics):
    def __init__(self):
        self.inferences: list[bool] = []
        self.reports: list[tuple[str, float | None]] = []

    def record_inference(self, model: str, latency_seconds: float, success: bool) -> None:
        self.inferences.append(success)

    def record_report(self, task: str, latency_seconds: float, quality_score: float | None) -> None:
        self.reports.append((task, quality_score))


class StubEngine:
    """Stands in for RAGEngine; counts calls and optionally fails."""

    def __init__(self, chunks: list[RetrievedChunk] | None = None, fail: bool = False):
        self.chunks = chunks or []
        self.fail = fail
        self.calls = 0

    async def retrieve_and_rerank(self, query) -> RAGResult:
        self.calls += 1
        if self.fail:
            raise RuntimeError("vector store offline")
        return RAGResult(chunks=list(self.chunks), total_found=len(self.chunks), reranker_applied=True)

    async def retrieve(self, query) -> RAGResult:
        return RAGResult()


class EndlessBackend(MockModelBackend):
    """Streams paragraphs forever, slowly, and notes when it is closed."""

    def __init__(self, delay: float = 0.01):
        super().__init__()
        self.delay = delay
        self.stream_closed = False

    async def predict_stream(self, request: PredictRequest):
        self.last_request = request
        try:
            i = 0
            while True:
                yield PredictResponse(outputs={"text": f"Paragraph {i}.\n\n".encode()})
                i += 1
                await asyncio.sleep(self.delay)
        finally:
            self.stream_closed = True


def _chunk(content: str) -> RetrievedChunk:
    return RetrievedChunk(
        chunk_id="US1-chunk-0",
        document_id="US1",
        content=content,
        source_type=SourceType.PATENT,
        score=0.9,
        metadata={"patent_number": "US1"},
    )


def _generator(backend=None, **kwargs) -> ReportGenerator:
    return ReportGenerator(backend or MockModelBackend(), PromptManager(), **kwargs)


def _request(**kwargs) -> ReportRequest:
    kwargs.setdefault("task", AnalysisTask.FTO)
    kwargs.setdefault("params", PromptParams(user_query=QUERY))
    return ReportRequest(**kwargs)


# ---------------------------------------------------------------------------
# generate_report
# ---------------------------------------------------------------------------


class TestGenerateReport:
    @pytest.mark.asyncio
    async def test_generates_parsed_report(self):
        backend = MockModelBackend()
        report = await _generator(backend).generate_report(_request(request_id="req-1"))

        assert report.task == AnalysisTask.FTO
        assert len(report.report_id) == 36
        assert report.generated_at.tzinfo is not None
        assert report.latency_ms > 0
        assert report.content.title == "FTO Analysis Report"
        assert report.content.raw_output == NARRATIVE_REPORT
        assert len(report.content.recommendations) == 3

        meta = report.metadata
        assert meta.model_id == "strategy-gpt"
        assert meta.model_version == "v1.0.0"
        assert meta.request_id == "req-1"
        assert meta.language == "en"
        assert meta.template_version == "v1"
        assert meta.rag_chunks_used == 0

        sent = backend.last_request
        assert sent.model_name == "strategy-gpt"
        assert sent.metadata["task"] == "fto"
        assert sent.metadata["stream"] == "false"
        assert "Freedom to Operate" in sent.metadata["system"]
        assert sent.input_data.decode().endswith(QUERY)

    @pytest.mark.asyncio
    async def test_request_id_generated_when_missing(self):
        report = await _generator().generate_report(_request())
        assert len(report.metadata.request_id) == 36

    @pytest.mark.asyncio
    async def test_token_usage_from_backend(self):
        backend = MockModelBackend(usage={"prompt_tokens": 120, "completion_tokens": 80})
        report = await _generator(backend).generate_report(_request())
        assert report.token_usage.prompt_tokens == 120
        assert report.token_usage.completion_tokens == 80
        assert report.token_usage.total_tokens == 200

    @pytest.mark.asyncio
    async def test_token_usage_estimated(self):
        report = await _generator().generate_report(_request())
        usage = report.token_usage
        assert usage.completion_tokens == estimate_tokens(NARRATIVE_REPORT)
        assert usage.prompt_tokens > 0
        assert usage.total_tokens == usage.prompt_tokens + usage.completion_tokens

    @pytest.mark.asyncio
    async def test_output_format_override(self):
        backend = MockModelBackend(text="- Low risk overall\n- No blocking patents")
        params = PromptParams(user_query=QUERY, output_format=OutputFormat.STRUCTURED)
        report = await _generator(backend).generate_report(_request(params=params, output_format=OutputFormat.BULLET))

        assert report.metadata.output_format == OutputFormat.BULLET
        assert report.content.executive_summary == "Low risk overall"
        assert "Respond as concise bullet points" in backend.last_request.input_data.decode()
        assert params.output_format == OutputFormat.STRUCTURED

    @pytest.mark.asyncio
    async def test_validation_attached(self):
        metrics = RecordingMetrics()
        report = await _generator(metrics=metrics).generate_report(_request())

        assert report.validation is not None
        assert 0.0 < report.validation.quality_score <= 1.0
        assert report.validation.structure_score == 1.0
        assert report.validation.citation_verification.total == 2
        assert metrics.inferences == [True]
        assert metrics.reports == [("fto", report.validation.quality_score)]

    @pytest.mark.asyncio
    async def test_quality_check_disabled(self):
        report = await _generator().generate_report(_request(quality_check=False))
        assert report.validation is None

        settings = Settings(report=ReportSettings(quality_check=False))
        report = await _generator(settings=settings).generate_report(_request())
        assert report.validation is None

    # -- retrieval -----------------------------------------------------------

    @pytest.mark.asyncio
    async def test_retrieves_when_query_present(self):
        engine = StubEngine([_chunk("Form I is stable at 40 degrees C.")])
        backend = MockModelBackend()
        report = await _generator(backend, rag_engine=engine).generate_report(_request(quality_check=False))

        assert engine.calls == 1
        assert report.metadata.rag_chunks_used == 1
        assert report.metadata.reranker_applied
        assert "## Retrieved Context" in backend.last_request.input_data.decode()

    @pytest.mark.asyncio
    async def test_caller_context_skips_retrieval(self):
        engine = StubEngine([_chunk("unused")])
        params = PromptParams(user_query=QUERY, rag_context=[_chunk("supplied"), _chunk("also supplied")])
        report = await _generator(rag_engine=engine).generate_report(_request(params=params, quality_check=False))

        assert engine.calls == 0
        assert report.metadata.rag_chunks_used == 2

    @pytest.mark.asyncio
    async def test_empty_query_skips_retrieval(self):
        engine = StubEngine([_chunk("unused")])
        await _generator(rag_engine=engine).generate_report(_request(params=PromptParams(), quality_check=False))
        assert engine.calls == 0

    @pytest.mark.asyncio
    async def test_retrieval_disabled(self):
        engine = StubEngine([_chunk("unused")])
        settings = Settings(retrieval=RetrievalSettings(enabled=False))
        await _generator(rag_engine=engine, settings=settings).generate_report(_request(quality_check=False))
        assert engine.calls == 0

    @pytest.mark.asyncio
    async def test_retrieval_failure_is_not_fatal(self):
        engine = StubEngine(fail=True)
        report = await _generator(rag_engine=engine).generate_report(_request(quality_check=False))
        assert engine.calls == 1
        assert report.metadata.rag_chunks_used == 0
        assert report.content is not None

    # -- failures ------------------------------------------------------------

    def test_requires_backend_and_prompt_manager(self):
        with pytest.raises(InvalidInputError):
            ReportGenerator(None, PromptManager())
        with pytest.raises(InvalidInputError):
            ReportGenerator(MockModelBackend(), None)

    @pytest.mark.asyncio
    async def test_backend_failure(self):
        metrics = RecordingMetrics()
        with pytest.raises(GenerationError, match="model inference failed"):
            await _generator(MockModelBackend(fail=True), metrics=metrics).generate_report(_request())
        assert metrics.inferences == [False]
        assert metrics.reports == []

    @pytest.mark.asyncio
    async def test_empty_model_output_returns_degraded_report(self):
        report = await _generator(MockModelBackend(text="  \n ")).generate_report(_request())

        assert report.content is not None
        assert report.content.sections == []
        assert report.content.raw_output == "  \n "
        issue_types = {i.issue_type for i in report.validation.issues}
        assert {"missing_summary", "missing_sections"} <= issue_types
        assert not report.validation.is_valid

    @pytest.mark.asyncio
    async def test_invalid_requests(self):
        generator = _generator()
        with pytest.raises(InvalidInputError):
            await generator.generate_report(None)
        with pytest.raises(InvalidInputError):
            await generator.generate_report(_request(task="not_a_task"))

    @pytest.mark.asyncio
    async def test_string_task_accepted(self):
        report = await _generator().generate_report(_request(task="patent_landscape"))
        assert report.task == AnalysisTask.PATENT_LANDSCAPE


# ---------------------------------------------------------------------------
# Generation against a real engine
# ---------------------------------------------------------------------------


class TestWithRAGEngine:
    @pytest_asyncio.fixture
    async def engine(self, patent_document, case_law_document) -> RAGEngine:
        eng = RAGEngine(
            vector_store=InMemoryVectorStore(),
            embedder=MockEmbedder(),
            reranker=MockReranker(),
            settings=RetrievalSettings(similarity_threshold=-1.0, top_k=3, reranker_top_k=2),
        )
        await eng.index_document(patent_document)
        await eng.index_document(case_law_document)
        return eng

    @pytest.mark.asyncio
    async def test_reranked_context_used(self, engine: RAGEngine):
        backend = MockModelBackend()
        report = await _generator(backend, rag_engine=engine).generate_report(_request())

        assert report.metadata.rag_chunks_used == 2
        assert report.metadata.reranker_applied
        assert "## Retrieved Context" in backend.last_request.input_data.decode()

    @pytest.mark.asyncio
    async def test_unmatched_patent_citations_flagged(self, engine: RAGEngine):
        report = await _generator(rag_engine=engine).generate_report(_request())

        statuses = {c.source: c.verification_status for c in report.content.citations}
        assert statuses["US 10,123,456 B2"] == VerificationStatus.NOT_FOUND
        assert report.validation.citation_verification.not_found_count == 2
        assert report.validation.citation_score == 0.0
        assert "citations_not_found" in [i.issue_type for i in report.validation.issues]


# ---------------------------------------------------------------------------
# Streaming
# ---------------------------------------------------------------------------


class TestStreaming:
    @pytest.mark.asyncio
    async def test_chunks_and_final_marker(self):
        backend = MockModelBackend()
        stream = await _generator(backend).generate_report_stream(_request())
        chunks = await stream.collect()

        assert [c.chunk_index for c in chunks] == list(range(len(chunks)))
        assert [c.is_complete for c in chunks].count(True) == 1
        assert chunks[-1].is_complete
        assert "".join(c.content for c in chunks) == "".join(backend.stream_chunks)
        assert chunks[0].content == "# FTO Analysis Report\n\n"
        assert chunks[0].section_hint == "FTO Analysis Report"
        assert chunks[2].content == "Moderate risk in the US.\n\n"
        assert chunks[2].section_hint == "Executive Summary"
        assert chunks[-1].content == "## Recommendations\n- File an opposition"
        assert chunks[-1].section_hint == "Recommendations"
        assert backend.last_request.metadata["stream"] == "true"

    @pytest.mark.asyncio
    async def test_large_fragment_flushes_immediately(self):
        settings = Settings(report=ReportSettings(stream_flush_bytes=8))
        backend = MockModelBackend(stream_chunks=["short", "a fragment longer than eight bytes", "tail"])
        stream = await _generator(backend, settings=settings).generate_report_stream(_request())
        chunks = await stream.collect()

        assert chunks[0].content == "shorta fragment longer than eight bytes"
        assert chunks[-1].content == "tail"
        assert chunks[-1].is_complete

    @pytest.mark.asyncio
    async def test_empty_model_stream(self):
        stream = await _generator(MockModelBackend(stream_chunks=[])).generate_report_stream(_request())
        chunks = await stream.collect()
        assert len(chunks) == 1
        assert chunks[0].is_complete
        assert chunks[0].content == ""

    @pytest.mark.asyncio
    async def test_cancel_ends_with_final_chunk(self):
        backend = EndlessBackend()
        stream = await _generator(backend).generate_report_stream(_request())

        received = []
        async for chunk in stream:
            received.append(chunk)
            if len(received) == 2:
                stream.cancel()

        assert stream.cancelled
        assert received[-1].is_complete
        assert [c.is_complete for c in received].count(True) == 1
        assert backend.stream_closed

    @pytest.mark.asyncio
    async def test_deadline_ends_stream(self):
        backend = EndlessBackend(delay=0.02)
        stream = await _generator(backend).generate_report_stream(_request(deadline_seconds=0.1))
        chunks = await asyncio.wait_for(stream.collect(), timeout=5)

        assert chunks[-1].is_complete
        assert [c.is_complete for c in chunks].count(True) == 1
        assert backend.stream_closed

    @pytest.mark.asyncio
    async def test_aclose_drains(self):
        backend = EndlessBackend()
        stream = await _generator(backend).generate_report_stream(_request())
        await stream.__anext__()
        await stream.aclose()
        assert backend.stream_closed
        with pytest.raises(StopAsyncIteration):
            await stream.__anext__()

    @pytest.mark.asyncio
    async def test_cancel_with_full_queue_and_no_reader(self):
        backend = EndlessBackend(delay=0)
        source = backend.predict_stream(PredictRequest(model_name="m", input_data=b"q"))
        stream = ReportStream(source, queue_size=1)
        await asyncio.sleep(0.05)

        stream.cancel()
        await asyncio.wait_for(stream._task, timeout=1)

        assert backend.stream_closed
        chunks = await stream.collect()
        assert len(chunks) == 1
        assert chunks[0].is_complete
        assert chunks[0].content == "Paragraph 1.\n\n"

    @pytest.mark.asyncio
    async def test_producer_task_cancelled_with_full_queue(self):
        backend = EndlessBackend(delay=0)
        source = backend.predict_stream(PredictRequest(model_name="m", input_data=b"q"))
        stream = ReportStream(source, queue_size=2)
        await asyncio.sleep(0.05)

        stream._task.cancel()
        chunks = await asyncio.wait_for(stream.collect(), timeout=1)

        assert chunks[-1].is_complete
        assert [c.is_complete for c in chunks].count(True) == 1
        assert backend.stream_closed

    @pytest.mark.asyncio
    async def test_backend_failure_at_start(self):
        metrics = RecordingMetrics()
        with pytest.raises(GenerationError, match="failed to start"):
            await _generator(MockModelBackend(fail=True), metrics=metrics).generate_report_stream(_request())
        assert metrics.inferences == [False]

    def test_should_flush(self):
        assert not should_flush("")
        assert not should_flush("partial sentence", threshold=100)
        assert should_flush("paragraph.\n\n", threshold=100)
        assert should_flush("x" * 11, threshold=10)
        assert not should_flush("x" * 10, threshold=10)
        assert should_flush("专利" * 2, threshold=10)

    def test_detect_section_hint(self):
        assert detect_section_hint("no heading here") is None
        assert detect_section_hint("# Title\n\n## Risks\ntext") == "Risks"
        assert detect_section_hint("### 风险分析 ###\n") == "风险分析"


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


class TestValidation:
    def _report(self, content: ReportContent | None) -> Report:
        return Report(
            report_id="r-1",
            task=AnalysisTask.FTO,
            content=content,
            generated_at=datetime.now(UTC),
        )

    @pytest.mark.asyncio
    async def test_missing_content(self):
        generator = _generator()
        for report in (None, self._report(None)):
            validation = await generator.validate_report(report)
            assert not validation.is_valid
            assert validation.quality_score == 0.0
            assert [i.issue_type for i in validation.issues] == ["missing_content"]

    @pytest.mark.asyncio
    async def test_empty_content(self):
        validation = await _generator().validate_report(self._report(ReportContent()))
        assert not validation.is_valid
        assert validation.quality_score == pytest.approx(0.38)
        assert [i.issue_type for i in validation.issues] == [
            "missing_summary",
            "missing_sections",
            "missing_conclusions",
            "insufficient_length",
        ]

    @pytest.mark.asyncio
    async def test_without_engine_citations_stay_unverified(self):
        generator = _generator()
        report = await generator.generate_report(_request(quality_check=False))
        validation = await generator.validate_report(report)

        assert validation.citation_verification.unverified_count == 2
        assert validation.citation_score == 0.0
        assert validation.is_valid


# ---------------------------------------------------------------------------
# Export
# ---------------------------------------------------------------------------


class TestExport:
    @pytest_asyncio.fixture
    async def report(self) -> Report:
        return await _generator().generate_report(_request(request_id="req-7"))

    @pytest.mark.asyncio
    async def test_json_round_trip(self, report: Report):
        data = export_report(report, ExportFormat.JSON)
        restored = Report.model_validate_json(data)
        assert restored == report
        assert json.loads(data)["metadata"]["request_id"] == "req-7"

    @pytest.mark.asyncio
    async def test_markdown(self, report: Report):
        md = _generator().export_report(report, "markdown").decode()

        assert md.startswith("# FTO Analysis Report\n")
        assert "## Executive Summary" in md
        assert "## Patent Landscape" in md
        assert "- Claim 1 of US 10,123,456 B2 reads on the crystalline form _(confidence: 80%)_" in md
        assert "1. **[High]** Commission a formal non-infringement opinion" in md
        assert "   - Rationale: claim 1 is broad" in md
        assert "   - Timeline: 3 months" in md
        assert "**Overall risk:** Low (0.38)" in md
        assert "- [cite-1] US 10,123,456 B2 (patent, unverified) <https://patents.google.com/patent/US10123456B2>" in md
        assert f"_Report {report.report_id} (fto) generated" in md
        assert "by strategy-gpt v1.0.0" in md

    @pytest.mark.asyncio
    async def test_markdown_title_falls_back_to_task(self):
        report = Report(
            report_id="r-2",
            task=AnalysisTask.PATENT_LANDSCAPE,
            content=ReportContent(executive_summary="Crowded field."),
            generated_at=datetime.now(UTC),
        )
        md = export_report(report, ExportFormat.MARKDOWN).decode()
        assert md.startswith("# Patent Landscape Report\n")
        assert "Crowded field." in md

    @pytest.mark.asyncio
    @pytest.mark.parametrize("fmt", [ExportFormat.PDF, ExportFormat.DOCX, "pdf"])
    async def test_unsupported_formats(self, report: Report, fmt):
        with pytest.raises(ExportFormatNotImplementedError):
            export_report(report, fmt)

    @pytest.mark.asyncio
    async def test_unknown_format(self, report: Report):
        with pytest.raises(InvalidInputError):
            export_report(report, "xlsx")

    def test_missing_report_or_content(self):
        with pytest.raises(InvalidInputError):
            export_report(None, ExportFormat.JSON)
        empty = Report(report_id="r-3", task=AnalysisTask.FTO, generated_at=datetime.now(UTC))
        with pytest.raises(InvalidInputError):
            export_report(empty, ExportFormat.MARKDOWN)
        assert json.loads(export_report(empty, ExportFormat.JSON))["content"] is None

    def test_export_is_requested_per_report_not_per_request(self):
        with pytest.raises(TypeError):
            ReportRequest(task=AnalysisTask.FTO, export_formats=[ExportFormat.JSON])


# ---------------------------------------------------------------------------
# Token usage decoding
# ---------------------------------------------------------------------------


class TestTokenUsage:
    @pytest.mark.parametrize("raw,expected", [
        (b"42", 42),
        (b"3.0", 3),
        (b"true", 0),
        (b'"7"', 0),
        (b"not json", 0),
        (b"", 0),
        (None, 0),
    ])
    def test_decode_int(self, raw, expected):
        assert decode_int_from_bytes(raw) == expected

    def test_explicit_total_wins(self):
        response = PredictResponse(outputs={
            "prompt_tokens": b"10",
            "completion_tokens": b"5",
            "total_tokens": b"20",
        })
        assert extract_token_usage(response).total_tokens == 20

    def test_total_summed_when_missing(self):
        response = PredictResponse(outputs={"prompt_tokens": b"10", "completion_tokens": b"5"})
        usage = extract_token_usage(response)
        assert (usage.prompt_tokens, usage.completion_tokens, usage.total_tokens) == (10, 5, 15)
