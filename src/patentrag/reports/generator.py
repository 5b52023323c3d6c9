"""Report generation: retrieve → build prompt → predict → parse → validate."""

from __future__ import annotations

import dataclasses
import json
import logging
import time
import uuid
from collections.abc import AsyncIterator
from dataclasses import dataclass
from datetime import UTC, datetime

from patentrag.config import Settings
from patentrag.errors import GenerationError, InvalidInputError
from patentrag.llm.base import ModelBackend, PredictRequest, PredictResponse
from patentrag.metrics.base import MetricsSink, NoopMetrics
from patentrag.prompts.manager import PromptManager, coerce_task
from patentrag.prompts.schemas import AnalysisTask, BuiltPrompt, OutputFormat, PromptParams
from patentrag.reports import scoring
from patentrag.reports.citations import summarize_verification, verify_citations
from patentrag.reports.export import export_report
from patentrag.reports.parsing import parse_llm_output
from patentrag.reports.schemas import (
    ExportFormat,
    Report,
    ReportContent,
    ReportMetadata,
    ReportRequest,
    ReportValidation,
    TokenUsage,
    ValidationIssue,
    VerificationStatus,
)
from patentrag.reports.streaming import ReportStream, response_text
from patentrag.retrieval.engine import RAGEngine
from patentrag.retrieval.schemas import RAGQuery, RAGResult
from patentrag.tokens import estimate_tokens

logger = logging.getLogger(__name__)


def decode_int_from_bytes(raw: bytes | None) -> int:
    """Decode a JSON-encoded integer; 0 on anything else."""
    if not raw:
        return 0
    try:
        value = json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0
    return int(value)


def extract_token_usage(response: PredictResponse) -> TokenUsage:
    prompt = decode_int_from_bytes(response.outputs.get("prompt_tokens"))
    completion = decode_int_from_bytes(response.outputs.get("completion_tokens"))
    total = decode_int_from_bytes(response.outputs.get("total_tokens")) or prompt + completion
    return TokenUsage(prompt_tokens=prompt, completion_tokens=completion, total_tokens=total)


@dataclass
class _Prepared:
    task: AnalysisTask
    params: PromptParams
    prompt: BuiltPrompt
    rag: RAGResult
    request: PredictRequest


class ReportGenerator:
    """Turns a ``ReportRequest`` into a validated ``Report``.

    Retrieval and validation are best-effort: their failures are logged and
    the report is still produced. Prompt construction and model inference
    are hard failures surfaced as ``GenerationError``.
    """

    def __init__(
        self,
        backend: ModelBackend,
        prompt_manager: PromptManager,
        rag_engine: RAGEngine | None = None,
        settings: Settings | None = None,
        metrics: MetricsSink | None = None,
    ):
        if backend is None:
            raise InvalidInputError("backend is required")
        if prompt_manager is None:
            raise InvalidInputError("prompt_manager is required")

        self.backend = backend
        self.prompt_manager = prompt_manager
        self.rag_engine = rag_engine
        self.settings = settings or Settings()
        self.metrics = metrics or NoopMetrics()

    # ------------------------------------------------------------------
    # Generation
    # ------------------------------------------------------------------

    async def generate_report(self, request: ReportRequest) -> Report:
        """Generate one complete report.

        Args:
            request: Task, context params and options.

        Returns:
            The assembled ``Report``, validated when ``request.quality_check``
            and the report settings both ask for it.

        Raises:
            InvalidInputError: ``request`` is None or names an unknown task.
            GenerationError: Prompt construction or model inference failed.
        """
        start = time.perf_counter()
        prepared = await self._prepare(request, stream=False)
        model_id = self.settings.model.model_id

        infer_start = time.perf_counter()
        try:
            response = await self.backend.predict(prepared.request)
        except Exception as exc:
            self.metrics.record_inference(model_id, time.perf_counter() - infer_start, success=False)
            raise GenerationError(f"model inference failed for {prepared.task}: {exc}") from exc
        self.metrics.record_inference(model_id, time.perf_counter() - infer_start, success=True)

        raw = response_text(response)
        if raw.strip():
            content = parse_llm_output(raw, prepared.params.output_format)
        else:
            logger.warning("Model returned no text for %s, returning an empty report", prepared.task)
            content = ReportContent(raw_output=raw)

        usage = extract_token_usage(response)
        if usage.total_tokens == 0:
            prompt_tokens = prepared.prompt.estimated_tokens
            completion_tokens = estimate_tokens(raw)
            usage = TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            )

        report = Report(
            report_id=str(uuid.uuid4()),
            task=prepared.task,
            content=content,
            metadata=self._metadata(prepared),
            generated_at=datetime.now(UTC),
            token_usage=usage,
        )

        if request.quality_check and self.settings.report.quality_check:
            try:
                report.validation = await self.validate_report(report)
            except Exception as exc:  # noqa: BLE001 - validation never fails generation
                logger.warning("Report validation failed for %s: %s", report.report_id, exc)

        elapsed = time.perf_counter() - start
        report.latency_ms = elapsed * 1000
        quality = report.validation.quality_score if report.validation else None
        self.metrics.record_report(prepared.task.value, elapsed, quality)
        logger.info(
            "Generated %s report %s in %.0f ms (rag_chunks=%d, tokens=%d, quality=%s)",
            prepared.task, report.report_id, report.latency_ms,
            report.metadata.rag_chunks_used, usage.total_tokens,
            f"{quality:.2f}" if quality is not None else "n/a",
        )
        return report

    async def generate_report_stream(self, request: ReportRequest) -> ReportStream:
        """Start streaming a report.

        The model stream is opened before this returns, so a backend that
        cannot start streaming raises ``GenerationError`` here rather than
        yielding an empty stream.
        """
        prepared = await self._prepare(request, stream=True)

        try:
            source = self.backend.predict_stream(prepared.request)
            first = await anext(aiter(source), None)
        except Exception as exc:
            self.metrics.record_inference(self.settings.model.model_id, 0.0, success=False)
            raise GenerationError(f"model stream failed to start for {prepared.task}: {exc}") from exc

        logger.info("Streaming %s report (request_id=%s)", prepared.task, prepared.request.metadata["request_id"])
        return ReportStream(
            _prepend(first, source),
            flush_bytes=self.settings.report.stream_flush_bytes,
            queue_size=self.settings.report.stream_queue_size,
            deadline_seconds=request.deadline_seconds,
        )

    def parse_llm_output(self, raw: str, output_format: OutputFormat | str = OutputFormat.NARRATIVE) -> ReportContent:
        return parse_llm_output(raw, output_format)

    # ------------------------------------------------------------------
    # Validation and export
    # ------------------------------------------------------------------

    async def validate_report(self, report: Report) -> ReportValidation:
        """Score a report for structure, citations, length and actionability."""
        if report is None or report.content is None:
            return ReportValidation(
                is_valid=False,
                quality_score=0.0,
                issues=[ValidationIssue(
                    issue_type="missing_content",
                    severity="error",
                    description="Report has no content.",
                )],
            )

        content = report.content
        structure, issues = scoring.score_structure(content)

        if self.rag_engine is not None and content.citations:
            summary = await verify_citations(
                content.citations,
                self.rag_engine,
                timeout=self.settings.report.citation_verify_timeout_seconds,
                match_threshold=self.settings.report.citation_match_threshold,
            )
        else:
            summary = summarize_verification(content.citations)

        citation = scoring.score_citations(content.citations)
        length = scoring.score_length(content)
        actionability = scoring.score_actionability(content.recommendations)
        quality = scoring.composite_score(structure, citation, length, actionability)

        not_found = [c.source for c in content.citations if c.verification_status == VerificationStatus.NOT_FOUND]
        if not_found:
            issues.append(ValidationIssue(
                issue_type="citations_not_found",
                severity="warning",
                description="Citations not found in the knowledge base: " + ", ".join(not_found),
            ))
        if length <= 0.2:
            issues.append(ValidationIssue(
                issue_type="insufficient_length",
                severity="warning",
                description=f"Report is short ({scoring.content_length(content)} characters).",
            ))

        return ReportValidation(
            is_valid=not issues or quality >= scoring.VALID_SCORE_THRESHOLD,
            quality_score=quality,
            structure_score=structure,
            citation_score=citation,
            length_score=length,
            actionability_score=actionability,
            issues=issues,
            citation_verification=summary,
        )

    def export_report(self, report: Report, export_format: ExportFormat | str) -> bytes:
        return export_report(report, export_format)

    # ------------------------------------------------------------------
    # Private
    # ------------------------------------------------------------------

    async def _prepare(self, request: ReportRequest, stream: bool) -> _Prepared:
        if request is None:
            raise InvalidInputError("request is required")
        task = coerce_task(request.task)

        params = dataclasses.replace(request.params) if request.params is not None else PromptParams()
        params.task = task
        if request.output_format is not None:
            params.output_format = request.output_format

        rag = RAGResult()
        if params.rag_context:
            rag = RAGResult(chunks=list(params.rag_context), total_found=len(params.rag_context))
        elif self._should_retrieve(params):
            rag = await self._retrieve(params)
            params.rag_context = list(rag.chunks)

        try:
            prompt = self.prompt_manager.build_prompt(task, params)
        except InvalidInputError:
            raise
        except Exception as exc:
            raise GenerationError(f"prompt construction failed for {task}: {exc}") from exc

        request_id = request.request_id or str(uuid.uuid4())
        predict_request = PredictRequest(
            model_name=self.settings.model.model_id,
            input_data=prompt.user_prompt.encode("utf-8"),
            input_format="text",
            metadata={
                "system": prompt.system_prompt,
                "task": task.value,
                "request_id": request_id,
                "stream": "true" if stream else "false",
            },
        )
        return _Prepared(task=task, params=params, prompt=prompt, rag=rag, request=predict_request)

    def _should_retrieve(self, params: PromptParams) -> bool:
        return (
            self.rag_engine is not None
            and self.settings.retrieval.enabled
            and bool(params.user_query.strip())
        )

    async def _retrieve(self, params: PromptParams) -> RAGResult:
        try:
            return await self.rag_engine.retrieve_and_rerank(RAGQuery(query_text=params.user_query))
        except Exception as exc:  # noqa: BLE001 - retrieval is best-effort
            logger.warning("Retrieval failed, generating without RAG context: %s", exc)
            return RAGResult()

    def _metadata(self, prepared: _Prepared) -> ReportMetadata:
        return ReportMetadata(
            model_id=self.settings.model.model_id,
            model_version=self.settings.model.model_version,
            template_version=prepared.prompt.template_version,
            output_format=prepared.params.output_format,
            language=prepared.params.language or self.prompt_manager.settings.default_language,
            request_id=prepared.request.metadata["request_id"],
            rag_chunks_used=len(prepared.rag.chunks),
            reranker_applied=prepared.rag.reranker_applied,
            truncation_applied=prepared.prompt.truncation_applied,
        )


async def _prepend(
    first: PredictResponse | None,
    rest: AsyncIterator[PredictResponse],
) -> AsyncIterator[PredictResponse]:
    try:
        if first is not None:
            yield first
            async for response in rest:
                yield response
    finally:
        aclose = getattr(rest, "aclose", None)
        if aclose is not None:
            await aclose()
