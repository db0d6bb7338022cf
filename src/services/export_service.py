"""
Export service for converting a research session to a report.

Supports export to:
- JSON: Full session data (config, persona, scores, sources, guide,
  transcript, summary)
- Markdown: Human-readable research report
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict

import structlog

from src.domain.models.message import Speaker
from src.domain.models.session import ResearchSession

log = structlog.get_logger(__name__)

SUPPORTED_FORMATS = ("json", "markdown", "md")

SCORE_LABELS = {
    "demographics": "人口统计学特征",
    "psychographics": "心理特征",
    "behaviors": "行为特征",
    "needs": "需求与痛点",
}


class ExportService:
    """
    Service for exporting research sessions.

    Usage:
        service = ExportService()
        json_str = service.export_session(workflow.snapshot(), "json")
        md_str = service.export_session(workflow.snapshot(), "markdown")
    """

    def export_session(self, session: ResearchSession, format: str = "json") -> str:
        """
        Export session data to specified format.

        Args:
            session: Session snapshot to export
            format: One of "json", "markdown", "md"

        Returns:
            Exported data as string

        Raises:
            ValueError: If format is not supported
        """
        bound_log = log.bind(research_id=session.id, format=format)
        bound_log.info("export_session_started")

        if format.lower() not in SUPPORTED_FORMATS:
            raise ValueError(f"Unsupported export format: {format}")

        data = self._collect_session_data(session)

        if format.lower() == "json":
            result = self._export_json(data)
        else:
            result = self._export_markdown(data)

        bound_log.info("export_session_complete", output_length=len(result))
        return result

    def _collect_session_data(self, session: ResearchSession) -> Dict[str, Any]:
        """Flatten the session into plain data."""
        persona = session.persona
        config = session.config

        return {
            "metadata": {
                "research_id": session.id,
                "stage": session.stage.value,
                "interview_mode": session.interview_mode.value,
                "exported_at": datetime.now(timezone.utc).isoformat(),
            },
            "config": (
                config.model_dump(exclude={"reference_materials"})
                | {
                    "reference_materials": [
                        {"name": m.name, "kind": m.kind.value, "mime_type": m.mime_type}
                        for m in config.reference_materials
                    ]
                }
                if config
                else None
            ),
            "persona": (
                {
                    "name": persona.name,
                    "summary": persona.summary,
                    "markdown": persona.raw_markdown,
                    "scores": persona.scores.model_dump() if persona.scores else None,
                    "has_avatar": persona.image_base64 is not None,
                }
                if persona
                else None
            ),
            "grounding_sources": [s.model_dump() for s in session.grounding_sources],
            "discussion_guide": list(session.discussion_guide),
            "transcript": [
                {
                    "speaker": m.speaker.value,
                    "text": m.text,
                    "automated": m.automated,
                    "timestamp": m.timestamp.isoformat(),
                }
                for m in session.transcript
            ],
            "summary": session.summary.model_dump() if session.summary else None,
        }

    def _export_json(self, data: Dict[str, Any]) -> str:
        """Export to JSON format."""
        return json.dumps(data, indent=2, ensure_ascii=False, default=str)

    def _export_markdown(self, data: Dict[str, Any]) -> str:
        """Export to human-readable Markdown format."""
        lines = []
        meta = data["metadata"]
        config = data["config"] or {}
        persona = data["persona"]

        lines.append("# 消费者研究报告")
        lines.append("")
        lines.append(f"**Research ID:** `{meta['research_id']}`")
        if config:
            lines.append(f"**行业:** {config.get('industry', '')}")
            lines.append(f"**目标受众:** {config.get('target_audience', '')}")
        lines.append("")

        if persona:
            lines.append(f"## 受访者: {persona['name']}")
            lines.append("")
            scores = persona.get("scores")
            if scores:
                lines.append("### 数据完整度")
                lines.append("")
                for key, label in SCORE_LABELS.items():
                    lines.append(f"- **{label}:** {scores[key]}/5")
                lines.append("")
            lines.append(persona["markdown"])
            lines.append("")

        if data["grounding_sources"]:
            lines.append("## 参考来源")
            lines.append("")
            for source in data["grounding_sources"]:
                title = source.get("title") or source["uri"]
                lines.append(f"- [{title}]({source['uri']})")
            lines.append("")

        summary = data["summary"]
        if summary:
            lines.append("## 访谈总结")
            lines.append("")
            for heading, key in (
                ("关键洞察", "key_insights"),
                ("主要痛点", "pain_points"),
                ("核心需求", "wants_needs"),
                ("总体评价", "verdict"),
            ):
                lines.append(f"### {heading}")
                lines.append("")
                lines.append(summary[key])
                lines.append("")

        if data["discussion_guide"]:
            lines.append("## 访谈提纲")
            lines.append("")
            for i, question in enumerate(data["discussion_guide"], start=1):
                lines.append(f"{i}. {question}")
            lines.append("")

        lines.append("## 访谈记录")
        lines.append("")
        persona_name = persona["name"] if persona else "受访者"
        for message in data["transcript"]:
            if message["speaker"] == Speaker.RESPONDENT.value:
                speaker = persona_name
            elif message["automated"]:
                speaker = "AI 主持人"
            else:
                speaker = "采访者"
            lines.append(f"**{speaker}:** {message['text']}")
            lines.append("")

        lines.append("---")
        lines.append(f"*Exported on {meta['exported_at']}*")
        lines.append("")

        return "\n".join(lines)
