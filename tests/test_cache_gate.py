"""Unit tests for the cache gate."""
import pytest

from app.analysis.provider import normalize_analysis
from app.core.config import Settings
from app.ingest.cache_gate import ANALYSIS_UNAVAILABLE, CacheGateConfig, analysis_text, evaluate
from app.storage.content_store import ContentRecord


def _record(analysis, raw_material="x" * 600, content_type="youtube"):
    return ContentRecord(
        fingerprint="shot.png",
        content_type=content_type,
        title="Deep Work Habits",
        structured_analysis=analysis,
        raw_material=raw_material,
    )


def test_short_analysis_is_not_servable():
    decision = evaluate(_record("x" * 10))
    assert decision.servable is False
    assert decision.reason == "short_analysis"


def test_substantive_record_is_servable():
    decision = evaluate(_record("x" * 2000, raw_material="transcript " * 100))
    assert decision.servable is True
    assert decision.reason == "servable"


def test_force_is_never_servable():
    decision = evaluate(_record("x" * 2000, raw_material="transcript " * 100), force=True)
    assert decision.servable is False
    assert decision.reason == "forced"


def test_missing_record():
    assert evaluate(None).servable is False
    assert evaluate(None).reason == "missing"


def test_empty_analysis():
    assert evaluate(_record({})).reason == "empty_analysis"
    assert evaluate(_record("   ")).reason == "empty_analysis"
    assert evaluate(_record(None)).reason == "empty_analysis"


def test_error_sentinel_rejected_even_when_long():
    analysis = {"summary": ANALYSIS_UNAVAILABLE, "key_insights": ["padding " * 40]}
    decision = evaluate(_record(analysis))
    assert decision.servable is False
    assert decision.reason == "error_sentinel"


def test_short_raw_material_for_youtube():
    decision = evaluate(_record("x" * 2000, raw_material="too short"))
    assert decision.servable is False
    assert decision.reason == "short_raw_material"


def test_missing_raw_material_for_youtube():
    assert evaluate(_record("x" * 2000, raw_material=None)).reason == "short_raw_material"


def test_ocr_record_does_not_need_raw_material():
    decision = evaluate(_record("x" * 2000, raw_material=None, content_type="ocr"))
    assert decision.servable is True


def test_thresholds_come_from_config():
    config = CacheGateConfig(min_analysis_length=5, min_raw_material_length=5)
    assert evaluate(_record("x" * 10, raw_material="y" * 10), config=config).servable is True


def test_evaluate_is_idempotent():
    record = _record("x" * 2000)
    assert evaluate(record) == evaluate(record)


def test_analysis_text_measures_content_not_keys():
    assert analysis_text({"summary": "ok", "topics": [], "fallback": False}) == "ok"
    assert analysis_text({"summary": " A ", "key_insights": ["b", ""], "extra": {"note": "c"}}) == "A\nb\nc"
    assert analysis_text("  text ") == "text"
    assert analysis_text(None) == ""


def test_one_word_summary_in_stored_shape_is_not_servable():
    decision = evaluate(_record(normalize_analysis({"summary": "ok"})))
    assert decision.servable is False
    assert decision.reason == "short_analysis"


def test_substantive_stored_shape_is_servable():
    analysis = normalize_analysis({"summary": "A long talk about planning deep work blocks. " * 3, "topics": ["focus"]})
    assert evaluate(_record(analysis, raw_material="transcript " * 100)).servable is True


@pytest.mark.parametrize("flag", ["fallback_analysis", "fallback_extraction"])
def test_fallback_quality_flags_are_not_servable(flag):
    record = _record("x" * 2000, raw_material=None, content_type="ocr")
    record.quality_flags = [flag]
    decision = evaluate(record)
    assert decision.servable is False
    assert decision.reason == "degraded"


def test_other_quality_flags_do_not_block():
    record = _record("x" * 2000, raw_material=None, content_type="ocr")
    record.quality_flags = ["missing_transcript"]
    assert evaluate(record).servable is True


def test_config_from_settings():
    settings = Settings(raw_material_types=["youtube", "podcast"], extra_error_sentinels=["Quota exceeded"])
    config = CacheGateConfig.from_settings(settings)
    assert config.raw_material_types == frozenset({"youtube", "podcast"})
    assert "Quota exceeded" in config.error_sentinels
    assert ANALYSIS_UNAVAILABLE in config.error_sentinels
    decision = evaluate(_record("Quota exceeded. " * 20, raw_material=None, content_type="ocr"), config=config)
    assert decision.reason == "error_sentinel"
