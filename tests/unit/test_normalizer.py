"""
Unit Tests for the Result Normalizer

Ranking order, top-K, catalog mapping and malformed-input handling.
"""
import pytest

from skinalyze.core.inference import RawScore, ResultNormalizer, normalize


@pytest.fixture
def uniform_pairs():
    return [{"index": i, "confidence": 1 / 7} for i in range(7)]


class TestRanking:
    """Tests for ordering and top-K selection."""

    def test_sorted_descending(self, normalizer):
        result = normalizer.normalize([
            {"index": 0, "confidence": 0.1},
            {"index": 4, "confidence": 0.7},
            {"index": 2, "confidence": 0.2},
        ])
        assert [p.class_index for p in result.all_predictions] == [4, 2, 0]
        assert result.top.class_name == "Benign Keratosis"
        assert result.top is result.all_predictions[0]

    def test_ties_broken_by_ascending_index(self, normalizer, uniform_pairs):
        result = normalizer.normalize(list(reversed(uniform_pairs)))
        assert [p.class_index for p in result.all_predictions] == list(range(7))
        assert result.top.class_index == 0

    def test_top_k(self, normalizer, uniform_pairs):
        result = normalizer.normalize(uniform_pairs)
        assert len(result.top_k) == 3
        assert result.top_k == result.all_predictions[:3]

    def test_top_k_shorter_than_k(self, normalizer):
        result = normalizer.normalize([(5, 0.9), (1, 0.1)])
        assert len(result.top_k) == 2

    def test_sum_preserved(self, normalizer, uniform_pairs):
        result = normalizer.normalize(uniform_pairs)
        assert result.total_confidence == pytest.approx(1.0, abs=1e-6)

    def test_metadata_from_catalog(self, normalizer):
        top = normalizer.normalize([RawScore(index=0, score=0.92)]).top
        assert top.risk_tier.value == "High"
        assert top.recommendation
        assert top.percentage == "92.00"


class TestScoreShapes:
    """Tests for accepted raw pair shapes and encodings."""

    def test_mixed_encodings(self, normalizer):
        result = normalizer.normalize([
            {"index": 0, "raw_score": 0.5},
            {"index": 1, "rawScore": "30"},
            (2, 20),
        ])
        assert [p.confidence for p in result.all_predictions] == pytest.approx([0.5, 0.3, 0.2])

    def test_native_output_shape(self, normalizer):
        result = normalizer.normalize([
            {"index": 3, "label": "Actinic Keratosis", "confidence": 0.81},
            {"index": 6, "label": "Vascular Lesion", "confidence": 0.19},
        ])
        assert result.top.class_name == "Actinic Keratosis"

    def test_unknown_index_dropped(self, normalizer):
        result = normalizer.normalize([(0, 0.6), (42, 0.4)])
        assert [p.class_index for p in result.all_predictions] == [0]
        assert result.error is None

    def test_duplicate_index_keeps_first(self, normalizer):
        result = normalizer.normalize([(1, 0.3), (1, 0.7)])
        assert len(result.all_predictions) == 1
        assert result.top.confidence == pytest.approx(0.3)


class TestMalformedInput:
    """Malformed input yields an empty set, never an exception."""

    @pytest.mark.parametrize("raw", [
        None,
        "not a list",
        {"index": 0, "confidence": 0.5},
        [{"confidence": 0.5}],
        [{"index": 0}],
        [(0, "high")],
        [(0, -0.2)],
        [("zero", 0.5)],
        [42],
    ])
    def test_empty_set_with_error(self, normalizer, raw):
        result = normalizer.normalize(raw)
        assert result.is_empty
        assert result.top is None
        assert result.top_k == []
        assert result.error

    def test_empty_sequence_is_not_an_error(self, normalizer):
        result = normalizer.normalize([])
        assert result.is_empty
        assert result.error is None


class TestPredictionSet:
    """Tests for PredictionSet flags and serialization."""

    def test_flags_stamped(self, normalizer):
        result = normalizer.normalize([(0, 0.9)], simulated=True, model_type="Simulated (Testing)")
        assert result.is_simulated
        assert result.model_type == "Simulated (Testing)"
        assert result.generated_at.tzinfo is not None

    def test_is_confident(self, normalizer):
        assert normalizer.normalize([(0, 0.6), (1, 0.4)]).is_confident
        assert not normalizer.normalize([(0, 0.5), (1, 0.5)]).is_confident

    def test_to_dict(self, normalizer):
        data = normalizer.normalize([(5, 0.8), (4, 0.2)]).to_dict()
        assert data["top"]["class_name"] == "Melanocytic Nevus"
        assert len(data["all_predictions"]) == 2
        assert data["error"] is None

    def test_module_level_normalize(self):
        result = normalize([(2, 1.0)])
        assert result.top.class_name == "Squamous Cell Carcinoma"

    def test_negative_top_k_rejected(self):
        with pytest.raises(ValueError):
            ResultNormalizer(top_k=-1)
