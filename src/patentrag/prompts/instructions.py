"""Instruction snippets appended to every user prompt."""

from __future__ import annotations

from patentrag.prompts.schemas import AnalysisTask, DetailLevel, OutputFormat

TASK_INSTRUCTIONS: dict[AnalysisTask, str] = {
    AnalysisTask.FTO: (
        "Perform a freedom-to-operate analysis: identify patents whose claims may read on the "
        "target, assess their legal status and remaining term, and state an overall FTO conclusion."
    ),
    AnalysisTask.INFRINGEMENT_RISK: (
        "Assess infringement risk claim by claim, rate the likelihood and impact of each risk, "
        "and give an overall risk level."
    ),
    AnalysisTask.PATENT_LANDSCAPE: (
        "Map the patent landscape: main players, technology clusters, filing trends and white-space opportunities."
    ),
    AnalysisTask.PORTFOLIO_STRATEGY: (
        "Evaluate the portfolio and recommend concrete, prioritized portfolio actions with timelines."
    ),
    AnalysisTask.VALUATION: (
        "Estimate the value of the patents, explaining the method, key assumptions and value drivers."
    ),
    AnalysisTask.CLAIM_DRAFTING: (
        "Draft a claim set (independent and dependent claims) and explain how it avoids the prior art."
    ),
    AnalysisTask.PRIOR_ART_SEARCH: (
        "List the most relevant prior art references, ranked by relevance, with the features each discloses."
    ),
    AnalysisTask.OFFICE_ACTION_RESPONSE: (
        "Draft a response strategy for each rejection, including proposed amendments and arguments."
    ),
}

_STRUCTURED_SCHEMA = """{
  "title": "string",
  "executive_summary": "string",
  "sections": [{"title": "string", "content": "string"}],
  "conclusions": [{"statement": "string", "confidence": 0.0}],
  "recommendations": [{"action": "string", "priority": "High|Medium|Low", "rationale": "string", "timeline": "string"}],
  "risk_assessment": {"overall_risk_level": "string", "risk_factors": [{"description": "string", "likelihood": 0.0, "impact": 0.0}]}
}"""

FORMAT_INSTRUCTIONS: dict[OutputFormat, str] = {
    OutputFormat.STRUCTURED: (
        "Respond with structured JSON only, with no text outside the JSON object, "
        "matching this schema:\n" + _STRUCTURED_SCHEMA
    ),
    OutputFormat.NARRATIVE: (
        "Write a narrative report in Markdown. Start with a '# ' title, then use '## ' headings "
        "for the Executive Summary, each analysis section, Risk Assessment, Conclusions and "
        "Recommendations. Write conclusions and recommendations as bullet points."
    ),
    OutputFormat.BULLET: (
        "Respond as concise bullet points. The first bullet is a one-sentence summary; "
        "each following bullet is one key finding or recommendation."
    ),
}

LANGUAGE_INSTRUCTIONS: dict[str, str] = {
    "zh": "请用中文回答。",
    "en": "Please respond in English.",
    "ja": "日本語で回答してください。",
    "ko": "한국어로 답변해 주세요.",
    "de": "Bitte antworten Sie auf Deutsch.",
    "fr": "Veuillez répondre en français.",
}

DETAIL_INSTRUCTIONS: dict[DetailLevel, str] = {
    DetailLevel.SUMMARY: (
        "Provide a brief summary-level analysis focused on the key conclusions; keep it short."
    ),
    DetailLevel.STANDARD: (
        "Provide a standard-depth analysis covering the main issues with supporting reasoning."
    ),
    DetailLevel.DETAILED: (
        "Provide a detailed analysis addressing each relevant patent, claim and prior art reference individually."
    ),
    DetailLevel.EXPERT: (
        "Provide an expert-level analysis suitable for patent counsel, including claim construction, "
        "equivalents and validity considerations, with citations to statutes, examination guidance and case law."
    ),
}

JURISDICTION_NOTES: dict[str, str] = {
    "US": (
        "United States: apply 35 U.S.C. (§101, §102, §103, §112 and §271) and MPEP practice, "
        "including the doctrine of equivalents and prosecution history estoppel."
    ),
    "CN": (
        "China: apply the Chinese Patent Law (Articles 22, 26 and 64) and the CNIPA Guidelines for Patent Examination."
    ),
    "EP": (
        "Europe: apply the EPC (Articles 54, 56 and 69 with its Protocol on Interpretation) and EPO Boards of Appeal case law."
    ),
    "JP": "Japan: apply the Japanese Patent Act (Articles 29, 36 and 70) and JPO examination guidelines.",
    "KR": "Korea: apply the Korean Patent Act and KIPO examination guidelines.",
}

COMPARATIVE_INSTRUCTION = (
    "Provide a comparative analysis across these jurisdictions, highlighting where outcomes differ."
)


def language_instruction(language: str) -> str:
    code = (language or "").strip().lower()
    if code in LANGUAGE_INSTRUCTIONS:
        return LANGUAGE_INSTRUCTIONS[code]
    return f"Please respond in the language with ISO code '{code}'."


def jurisdiction_instruction(jurisdictions: list[str]) -> str:
    """Legal-framework notes per jurisdiction, plus a comparative instruction for several."""
    codes: list[str] = []
    for j in jurisdictions:
        code = j.strip().upper()
        if code and code not in codes:
            codes.append(code)
    if not codes:
        return ""

    notes = [
        JURISDICTION_NOTES.get(code, f"{code}: apply the patent law and examination practice of this jurisdiction.")
        for code in codes
    ]
    if len(codes) > 1:
        notes.append(COMPARATIVE_INSTRUCTION)
    return "\n".join(notes)
