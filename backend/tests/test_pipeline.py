"""Tests for the verification orchestrator."""

import asyncio
import json
from unittest.mock import MagicMock

import pytest

from label_verifier.config import Settings
from label_verifier.exceptions import (
    ImageDecodeError,
    InputError,
    RecognitionError,
    VerificationInputError,
)
from label_verifier.services import (
    ImagePreprocessor,
    OCRService,
    RawRecognition,
    VerificationLogStore,
    VerificationPipeline,
    VerificationService,
)
from conftest import LABEL_FIELDS, FakeRecognizer, LoopCheckingLogStore


def make_pipeline(settings, recognizer, log_store=None, ocr_source="composite"):
    return VerificationPipeline(
        preprocessor=ImagePreprocessor(settings),
        ocr_service=OCRService(recognizer),
        verifier=VerificationService(yield_seconds=0.0),
        log_store=log_store,
        ocr_source=ocr_source,
    )


def run(pipeline, image_bytes, fields, name="label.png", progress=None):
    return asyncio.run(pipeline.run(image_bytes, name, fields, progress))


class TestPipelineRun:
    """Test end-to-end runs with a scripted recognizer."""
    
    def test_all_fields_match(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        
        result = run(pipeline, sample_image_bytes, LABEL_FIELDS)
        
        assert len(result.results) == 6
        assert all(r.matched for r in result.results)
        assert all(r.confidence == 1.0 for r in result.results)
        assert result.all_matched
        assert result.matched_count == 6
        assert result.configuration == "Sparse Text"
        assert result.ocr_confidence == 91.0
    
    def test_case_insensitive_containment(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        
        result = run(pipeline, sample_image_bytes, {"netContents": "750 ML"})
        
        assert "750 ml" in result.ocr_text
        assert len(result.results) == 1
        assert result.results[0].matched is True
        assert result.results[0].confidence == 1.0
    
    def test_empty_fields_are_skipped(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        fields = {"brandName": "OLD TOM DISTILLERY", "productClass": "", "alcoholContent": "45%"}
        
        result = run(pipeline, sample_image_bytes, fields)
        
        assert [r.field for r in result.results] == ["brandName", "alcoholContent"]
    
    def test_wrong_values_mostly_fail(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        fields = {
            "brandName": "ZZQX VANTAGE",
            "productClass": "Peach Schnapps Liqueur",
            "alcoholContent": "12%",
            "netContents": "1 gallon",
            "manufacturerName": "Acme Brewing Ltd.",
            "manufacturerAddress": "Portland, Oregon",
        }
        
        result = run(pipeline, sample_image_bytes, fields)
        
        assert len(result.results) == 6
        assert sum(1 for r in result.results if not r.matched) >= 4
        assert not result.all_matched
    
    def test_variants_and_timing_reported(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        
        result = run(pipeline, sample_image_bytes, LABEL_FIELDS)
        
        assert len(result.variants) == 8
        assert set(result.timing_ms) == {"preprocess_ms", "ocr_ms", "verify_ms", "total_ms"}
    
    def test_fields_are_stripped(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        
        result = run(pipeline, sample_image_bytes, {"brandName": "  OLD TOM DISTILLERY  "})
        
        assert result.fields["brandName"] == "OLD TOM DISTILLERY"
        assert result.results[0].expected == "OLD TOM DISTILLERY"


class TestProgress:
    """Test overall progress reporting."""
    
    def test_progress_sequence(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        seen = []
        
        run(pipeline, sample_image_bytes, LABEL_FIELDS, progress=seen.append)
        
        assert seen[0] == 10
        assert seen[-1] == 100
        assert 40 in seen
        assert 70 in seen
        assert seen == sorted(seen)
    
    def test_ocr_stage_stays_in_band(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        seen = []
        
        run(pipeline, sample_image_bytes, LABEL_FIELDS, progress=seen.append)
        
        ocr_stage = seen[seen.index(40):seen.index(70)]
        assert all(40 <= p <= 70 for p in ocr_stage)


class TestPipelineErrors:
    """Test input and stage failures."""
    
    def test_no_image(self, settings, label_recognizer):
        pipeline = make_pipeline(settings, label_recognizer)
        
        with pytest.raises(InputError, match="select an image"):
            run(pipeline, b"", LABEL_FIELDS)
        assert label_recognizer.calls == []
    
    def test_no_expected_values(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        
        with pytest.raises(InputError, match="at least one"):
            run(pipeline, sample_image_bytes, {"brandName": "", "netContents": "   "})
    
    def test_malformed_alcohol_content(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        
        with pytest.raises(InputError, match="alcoholContent"):
            run(pipeline, sample_image_bytes, {"alcoholContent": "strong"})
    
    def test_unknown_field(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer)
        
        with pytest.raises(InputError, match="Unknown fields"):
            run(pipeline, sample_image_bytes, {"vintage": "1999"})
    
    def test_undecodable_image(self, settings, label_recognizer):
        pipeline = make_pipeline(settings, label_recognizer)
        
        with pytest.raises(ImageDecodeError):
            run(pipeline, b"definitely not a png", LABEL_FIELDS)
    
    def test_all_ocr_attempts_fail(self, settings, sample_image_bytes):
        pipeline = make_pipeline(settings, FakeRecognizer(RuntimeError("engine crashed")))
        
        with pytest.raises(RecognitionError):
            run(pipeline, sample_image_bytes, LABEL_FIELDS)
    
    def test_no_text_recognized(self, settings, sample_image_bytes):
        pipeline = make_pipeline(settings, FakeRecognizer(RawRecognition(text="", confidence=0.0)))
        
        with pytest.raises(VerificationInputError, match="No text extracted"):
            run(pipeline, sample_image_bytes, LABEL_FIELDS)
    
    def test_unknown_ocr_source(self, settings, label_recognizer):
        with pytest.raises(ValueError):
            make_pipeline(settings, label_recognizer, ocr_source="thumbnail")


class TestOCRSource:
    """Test which image the recognizer sees."""
    
    def test_composite_grid(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer, ocr_source="composite")
        
        run(pipeline, sample_image_bytes, LABEL_FIELDS)
        
        assert label_recognizer.images[0].shape == (800, 600)
    
    def test_original_image(self, settings, label_recognizer, sample_image_bytes):
        pipeline = make_pipeline(settings, label_recognizer, ocr_source="original")
        
        run(pipeline, sample_image_bytes, LABEL_FIELDS)
        
        assert label_recognizer.images[0].shape == (200, 300, 3)


class TestPipelineLogging:
    """Test log records written after a run."""
    
    def test_record_written(self, settings, label_recognizer, sample_image_bytes):
        store = VerificationLogStore(settings.log_file)
        pipeline = make_pipeline(settings, label_recognizer, log_store=store)
        
        result = run(pipeline, sample_image_bytes, LABEL_FIELDS, name="old_tom.png")
        
        logs = json.loads(settings.log_file.read_text(encoding="utf-8"))
        assert len(logs) == 1
        record = logs[0]
        assert list(record) == ["timestamp", "imageName", "fields", "ocrText", "results"]
        assert record["imageName"] == "old_tom.png"
        assert record["ocrText"] == result.ocr_text
        assert record["fields"] == LABEL_FIELDS
        assert list(record["results"][0]) == ["field", "input", "found", "confidence", "bestMatch"]
        assert record["results"][0]["confidence"] == 1
    
    def test_records_accumulate(self, settings, label_recognizer, sample_image_bytes):
        store = VerificationLogStore(settings.log_file)
        pipeline = make_pipeline(settings, label_recognizer, log_store=store)
        
        run(pipeline, sample_image_bytes, LABEL_FIELDS, name="a.png")
        run(pipeline, sample_image_bytes, LABEL_FIELDS, name="b.png")
        
        assert [r["imageName"] for r in store.read_all()] == ["a.png", "b.png"]
    
    def test_record_written_off_event_loop(self, settings, label_recognizer, sample_image_bytes):
        store = LoopCheckingLogStore(settings.log_file)
        pipeline = make_pipeline(settings, label_recognizer, log_store=store)
        
        run(pipeline, sample_image_bytes, LABEL_FIELDS)
        
        assert store.calls == [("append", False)]
        assert len(store.read_all()) == 1
    
    def test_logging_failure_does_not_fail_run(self, settings, label_recognizer, sample_image_bytes):
        store = MagicMock()
        store.append.side_effect = OSError("disk full")
        pipeline = make_pipeline(settings, label_recognizer, log_store=store)
        
        result = run(pipeline, sample_image_bytes, LABEL_FIELDS)
        
        assert result.all_matched
        store.append.assert_called_once()
    
    def test_failed_run_is_not_logged(self, settings, sample_image_bytes):
        store = VerificationLogStore(settings.log_file)
        pipeline = make_pipeline(
            settings, FakeRecognizer(RuntimeError("engine crashed")), log_store=store
        )
        
        with pytest.raises(RecognitionError):
            run(pipeline, sample_image_bytes, LABEL_FIELDS)
        assert store.read_all() == []


class TestFromSettings:
    """Test wiring from settings."""
    
    def test_wires_log_store_and_source(self, tmp_path):
        settings = Settings(log_file=tmp_path / "log.json", ocr_source="original")
        
        pipeline = VerificationPipeline.from_settings(settings)
        
        assert pipeline.ocr_source == "original"
        assert pipeline.log_store.path == tmp_path / "log.json"
        assert len(pipeline.ocr_service.configurations) == 4
