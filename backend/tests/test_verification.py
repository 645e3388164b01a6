"""Tests for fuzzy verification."""

import asyncio

import pytest

from label_verifier.exceptions import VerificationInputError
from label_verifier.services.verification import (
    MATCH_THRESHOLD,
    VerificationService,
    find_best_match,
    levenshtein_distance,
    verify_field,
)


@pytest.fixture
def service():
    """Create verification service instance."""
    return VerificationService(yield_seconds=0.0)


class TestLevenshteinDistance:
    """Test the edit distance primitive."""
    
    @pytest.mark.parametrize("a,b,expected", [
        ("kitten", "sitting", 3),
        ("flaw", "lawn", 2),
        ("abc", "abc", 0),
        ("abc", "", 3),
        ("", "", 0),
        ("whisky", "whiskey", 1),
    ])
    def test_known_distances(self, a, b, expected):
        assert levenshtein_distance(a, b) == expected
    
    @pytest.mark.parametrize("a,b", [
        ("bourbon", "b0urb0n"),
        ("750 ml", "75o mi"),
        ("", "vodka"),
        ("old tom", "tom old"),
    ])
    def test_symmetric(self, a, b):
        assert levenshtein_distance(a, b) == levenshtein_distance(b, a)
    
    def test_zero_only_for_identical(self):
        assert levenshtein_distance("Vodka", "vodka") > 0
        assert levenshtein_distance("vodka", "vodka") == 0
    
    def test_distance_to_empty_is_length(self):
        assert levenshtein_distance("distillery", "") == len("distillery")


class TestFindBestMatch:
    """Test best word/phrase search."""
    
    def test_exact_substring(self):
        match = find_best_match("750 ml", "bourbon 45% 750 ml bottle")
        assert match.distance == 0
        assert match.confidence == 1.0
        assert match.excerpt == "750 ml"
    
    def test_exact_substring_inside_word(self):
        match = find_best_match("tom", "oldtomdistillery")
        assert match.confidence == 1.0
    
    def test_single_word_near_miss(self):
        match = find_best_match("whiskey", "kentucky whisky 45%")
        assert match.excerpt == "whisky"
        assert match.distance == 1
        assert match.confidence == pytest.approx(1 - 1 / 7)
    
    def test_two_word_phrase(self):
        match = find_best_match("old tom", "the 0ld tom distillery")
        assert match.excerpt == "0ld tom"
        assert match.distance == 1
    
    def test_three_word_phrase(self):
        match = find_best_match("old tom distillery", "by old tom distilery co")
        assert match.excerpt == "old tom distilery"
        assert match.distance == 1
    
    def test_first_minimum_wins(self):
        match = find_best_match("cat", "bat hat")
        assert match.excerpt == "bat"
    
    def test_unrelated_text(self):
        match = find_best_match("abc", "totally unrelated content with no resemblance")
        assert match.excerpt == "no"
        assert match.distance == 3
        assert match.confidence == 0.0
    
    def test_no_candidates(self):
        match = find_best_match("abc", "   ")
        assert match.excerpt is None
        assert match.distance is None
        assert match.confidence == 0.0
    
    def test_confidence_monotonic_in_distance(self):
        closer = find_best_match("bourbon", "bourbn")
        farther = find_best_match("bourbon", "borbn")
        assert closer.distance < farther.distance
        assert closer.confidence > farther.confidence
    
    def test_confidence_bounds(self):
        match = find_best_match("x", "completely different words here")
        assert 0.0 <= match.confidence <= 1.0


class TestVerifyField:
    """Test single field verification."""
    
    def test_case_insensitive_exact(self):
        result = verify_field("netContents", "750 ML", "Bourbon 45% 750 ml")
        assert result.matched is True
        assert result.confidence == 1.0
        assert result.expected == "750 ML"
    
    def test_unrelated_no_match(self):
        result = verify_field("brandName", "ABC", "totally unrelated content with no resemblance")
        assert result.matched is False
        assert result.confidence < MATCH_THRESHOLD
        assert result.excerpt == "no"
    
    def test_threshold_is_exclusive(self):
        """Confidence exactly at the threshold is not a match."""
        # 3 edits over 10 characters -> 0.7
        result = verify_field("brandName", "abcdefghij", "abcdefgxyz")
        assert result.confidence == pytest.approx(0.7)
        assert result.matched is False
    
    def test_above_threshold(self):
        result = verify_field("brandName", "abcdefghij", "abcdefghxy")
        assert result.confidence == pytest.approx(0.8)
        assert result.matched is True


class TestVerifyAll:
    """Test batch verification."""
    
    def test_skips_empty_fields(self, service):
        fields = {"brandName": "OLD TOM", "productClass": "", "alcoholContent": None, "netContents": "750 ML"}
        results = asyncio.run(service.verify_all(fields, "old tom 750 ml"))
        
        assert [r.field for r in results] == ["brandName", "netContents"]
    
    def test_preserves_input_order(self, service):
        fields = {"netContents": "750 ML", "brandName": "OLD TOM", "alcoholContent": "45%"}
        results = asyncio.run(service.verify_all(fields, "old tom 45% 750 ml"))
        
        assert [r.field for r in results] == ["netContents", "brandName", "alcoholContent"]
    
    def test_all_fields_match(self, service):
        text = "old tom bourbon 45% 750 ml old tom co bardstown ky"
        fields = {
            "brandName": "Old Tom",
            "productClass": "Bourbon",
            "alcoholContent": "45%",
            "netContents": "750 ML",
            "manufacturerName": "Old Tom Co",
            "manufacturerAddress": "Bardstown KY",
        }
        results = asyncio.run(service.verify_all(fields, text))
        
        assert len(results) == 6
        assert all(r.matched for r in results)
        assert all(r.confidence == 1.0 for r in results)
    
    def test_progress_after_each_field(self, service):
        progress = []
        fields = {"brandName": "a", "productClass": "b", "alcoholContent": "c"}
        asyncio.run(service.verify_all(fields, "a b c", progress.append))
        
        assert progress == [33, 67, 100]
    
    def test_empty_text_raises(self, service):
        with pytest.raises(VerificationInputError):
            asyncio.run(service.verify_all({"brandName": "OLD TOM"}, ""))
    
    def test_no_fields(self, service):
        results = asyncio.run(service.verify_all({"brandName": ""}, "old tom"))
        assert results == []
    
    def test_yields_to_event_loop_between_fields(self, service):
        """Other tasks get to run while fields are being verified."""
        fields = {"brandName": "a", "productClass": "b", "alcoholContent": "c"}
        ticks = 0
        ticks_at_progress = []
        
        async def ticker():
            nonlocal ticks
            while True:
                ticks += 1
                await asyncio.sleep(0)
        
        async def verify():
            task = asyncio.create_task(ticker())
            try:
                await service.verify_all(fields, "a b c", lambda p: ticks_at_progress.append(ticks))
            finally:
                task.cancel()
        
        asyncio.run(verify())
        
        assert len(ticks_at_progress) == 3
        assert ticks_at_progress == sorted(set(ticks_at_progress))
        assert ticks_at_progress[-1] > ticks_at_progress[0]
