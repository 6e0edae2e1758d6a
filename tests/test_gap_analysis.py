"""
Tests for execution/defense_builder/gap_analysis.py

Covers: prompt assembly (statute truncation, evidence listing and content,
        explicit "no evidence"), parsing of the tool output, and the
        conservative default on every kind of failure.
"""

import pytest

from tests.conftest import ScriptedReasoningClient, SAMPLE_GAP_OUTPUT


def _inputs():
    from execution.defense_builder.models import Claim, EvidenceItem, StatuteMatch
    claims = [Claim("overtime", "120 hours unpaid")]
    statutes = [StatuteMatch("overtime", "59", "labor_law", "x" * 900, 0.9),
                StatuteMatch("overtime", None, "labor_law", "no article", 0.5)]
    evidence = [EvidenceItem("payroll.pdf", "application/pdf", "Net pay 12,000,000"),
                EvidenceItem("photo.jpg", "image/jpeg")]
    return claims, statutes, evidence


def _analyzer(response, **kwargs):
    from execution.defense_builder.gap_analysis import EvidenceGapAnalyzer
    client = ScriptedReasoningClient({"analyze_evidence_gap": response})
    return EvidenceGapAnalyzer(client, "en", **kwargs), client


class TestBuildPrompt:
    """Tests for gap-analysis prompt assembly."""

    def test_statute_content_truncated(self):
        analyzer, _ = _analyzer(SAMPLE_GAP_OUTPUT, statute_prompt_limit=500)
        claims, statutes, evidence = _inputs()
        prompt = analyzer.build_prompt(claims, statutes, evidence)
        assert "x" * 500 in prompt
        assert "x" * 501 not in prompt

    def test_unknown_article_label(self):
        analyzer, _ = _analyzer(SAMPLE_GAP_OUTPUT)
        claims, statutes, evidence = _inputs()
        assert "Article unknown (labor_law)" in analyzer.build_prompt(claims, statutes, evidence)

    def test_evidence_listed_with_content(self):
        analyzer, _ = _analyzer(SAMPLE_GAP_OUTPUT)
        claims, statutes, evidence = _inputs()
        prompt = analyzer.build_prompt(claims, statutes, evidence)
        assert "1. payroll.pdf (application/pdf)" in prompt
        assert "2. photo.jpg (image/jpeg)" in prompt
        assert "Net pay 12,000,000" in prompt
        assert "[file content]" in prompt

    def test_no_evidence_stated(self):
        analyzer, _ = _analyzer(SAMPLE_GAP_OUTPUT)
        claims, statutes, _ = _inputs()
        assert "No evidence uploaded" in analyzer.build_prompt(claims, statutes, [])


class TestAnalyze:
    """Tests for EvidenceGapAnalyzer.analyze."""

    def test_parses_output(self):
        analyzer, client = _analyzer(SAMPLE_GAP_OUTPUT)
        result = analyzer.analyze(*_inputs())
        assert result.can_proceed is False
        assert result.evidence_analysis[0].missing_evidence == ["attendance records"]
        assert result.follow_up_questions[0].related_article == "59"
        assert client.tools_called() == ["analyze_evidence_gap"]

    @pytest.mark.parametrize("response", [
        None,
        {"evidence_analysis": [], "follow_up_questions": []},
        {"evidence_analysis": "bad", "follow_up_questions": [], "can_proceed": True},
        {"evidence_analysis": [], "follow_up_questions": [], "can_proceed": "yes"},
    ])
    def test_malformed_output_uses_conservative_default(self, response):
        from execution.defense_builder.models import GapAnalysis
        analyzer, _ = _analyzer(response)
        assert analyzer.analyze(*_inputs()) == GapAnalysis.conservative_default()

    def test_malformed_entries_dropped_valid_kept(self):
        analyzer, _ = _analyzer({
            "evidence_analysis": [
                {"claim_type": "overtime", "missing_evidence": ["attendance records"]},
                {"claim_type": "severance", "provided_evidence": "contract"},
            ],
            "follow_up_questions": [
                {"reason": "no question"},
                {"question": "Were overtime hours approved?", "related_article": "59"},
            ],
            "can_proceed": False,
        })
        result = analyzer.analyze(*_inputs())
        assert [g.claim_type for g in result.evidence_analysis] == ["overtime"]
        assert [q.question for q in result.follow_up_questions] == ["Were overtime hours approved?"]

    @pytest.mark.parametrize("error_cls", ["ReasoningRateLimitedError", "ReasoningUnavailableError"])
    def test_service_failure_uses_conservative_default(self, error_cls):
        import execution.defense_builder.errors as errors
        from execution.defense_builder.models import GapAnalysis
        analyzer, _ = _analyzer(getattr(errors, error_cls)("down", "analyze_evidence_gap"))
        result = analyzer.analyze(*_inputs())
        assert result == GapAnalysis.conservative_default()
        assert result.to_dict() == {"evidenceAnalysis": [], "followUpQuestions": [], "canProceed": False}

    def test_configuration_error_propagates(self):
        from execution.defense_builder.errors import ConfigurationError
        analyzer, _ = _analyzer(ConfigurationError("no key"))
        with pytest.raises(ConfigurationError):
            analyzer.analyze(*_inputs())
