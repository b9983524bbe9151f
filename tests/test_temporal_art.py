"""
Unit tests for sequence categories over working memory and the masking field.

Includes the list-learning interference scenario of Kazerounian & Grossberg
(2014): a second list must not overwrite the category of the first.
"""

import numpy as np
import pytest
from temporalart.errors import InvalidParameterError
from temporalart.memory.temporal_art import TemporalART, sequence_code
from temporalart.memory.working_memory import WorkingMemory
from temporalart.parameters import TemporalARTParameters


def random_list(seed, length=7, dim=20):
    return list(np.random.default_rng(seed).random((length, dim)))


def one_hot(index, size=10):
    v = np.zeros(size)
    v[index] = 1.0
    return v


@pytest.fixture
def model():
    return TemporalART()


@pytest.fixture
def list1():
    return random_list(42)


@pytest.fixture
def list2():
    return random_list(123)


class TestSequenceCode:
    """Test the order-sensitive code of a stored list."""

    def test_items_in_list_order(self):
        stored = WorkingMemory().store_sequence([one_hot(i) for i in (4, 1, 7)])
        code = sequence_code(stored).reshape(3, 10)
        assert [int(np.argmax(row)) for row in code] == [4, 1, 7]

    def test_scaled_by_gated_activity(self, list1):
        stored = WorkingMemory().store_sequence(list1)
        code = sequence_code(stored)
        assert code.shape == (7 * 20,)
        assert np.all(code >= 0)
        weights = stored.retrieval_weights()
        strongest = int(np.argmax(weights))
        assert np.allclose(code.reshape(7, 20)[strongest], list1[strongest])


class TestLearning:
    """Test category creation and resonance."""

    def test_first_list_creates_category(self, model, list1):
        result = model.process_sequence(list1)
        assert result.category == 0
        assert not result.resonant
        assert result.length == 7
        assert len(model.categories) == 1
        assert model.categories[0].length == 7

    def test_same_list_resonates(self, model, list1):
        model.process_sequence(list1)
        again = model.process_sequence(list1)
        assert again.resonant
        assert again.category == 0
        assert again.match == pytest.approx(1.0)
        assert model.categories[0].uses == 2

    def test_list_interference(self, model, list1, list2):
        """Test that learning a second list leaves the first one recallable."""
        model.process_sequence(list1)
        category1 = model.predict_sequence(list1)
        assert category1 >= 0

        assert model.recognize_sequence(list2).match < model.parameters.vigilance
        model.process_sequence(list2)
        category2 = model.predict_sequence(list2)
        assert category2 >= 0
        assert category1 != category2

        assert model.predict_sequence(list1) == category1

    def test_lengths_do_not_compete(self, model, list1):
        model.process_sequence(list1)
        shorter = model.process_sequence(list1[:5])
        assert shorter.category == 1
        assert not shorter.resonant

    def test_category_limit(self, list1, list2):
        model = TemporalART(TemporalARTParameters(max_categories=1))
        model.process_sequence(list1)
        result = model.process_sequence(list2)
        assert result.category == -1
        assert len(model.categories) == 1

    def test_time_advances(self, model, list1):
        model.process_sequence(list1)
        assert model.current_time == pytest.approx(0.7)
        assert model.categories[0].created_at == 0.0


class TestPrediction:
    """Test lookup without learning."""

    def test_unknown_list(self, model, list1):
        assert model.predict_sequence(list1) == -1

    def test_prediction_does_not_learn(self, model, list1, list2):
        model.process_sequence(list1)
        chunk_categories = list(model.masking_field.categories)
        assert model.predict_sequence(list2) == -1
        assert model.predict_sequence(list1) == 0
        assert len(model.categories) == 1
        assert model.categories[0].uses == 1
        assert model.masking_field.categories == chunk_categories

    def test_learning_disabled(self, model, list1):
        model.set_learning_enabled(False)
        result = model.process_sequence(list1)
        assert result.category == -1
        assert model.categories == []
        assert model.masking_field.categories == []

    def test_learning_disabled_recognises(self, model, list1):
        model.process_sequence(list1)
        model.set_learning_enabled(False)
        result = model.process_sequence(list1)
        assert result.category == 0
        assert model.categories[0].uses == 1


class TestStatistics:
    """Test the summary of the model."""

    def test_empty(self, model):
        stats = model.statistics()
        assert stats.category_count == 0
        assert stats.item_count == 0
        assert stats.chunk_count == 0
        assert stats.compression_ratio == 1.0

    def test_after_one_list(self, model, list1):
        result = model.process_sequence(list1)
        stats = model.statistics()
        chunks = len(result.chunking.chunks)
        assert chunks >= 1
        assert stats.category_count == 1
        assert stats.item_count == 7
        assert stats.chunk_count == chunks
        assert stats.chunk_category_count == len(model.masking_field.categories)
        assert stats.compression_ratio == pytest.approx(7 / chunks)
        assert stats.average_chunk_size == result.chunking.statistics.average_chunk_size

    def test_reset(self, model, list1):
        model.process_sequence(list1)
        model.set_learning_enabled(False)
        model.reset()
        assert model.categories == []
        assert model.masking_field.categories == []
        assert model.learning_enabled
        assert model.current_time == 0.0
        assert model.statistics().item_count == 0
        assert model.process_sequence(list1).category == 0


class TestValidation:
    """Test rejected sequences."""

    def test_empty_sequence(self, model):
        with pytest.raises(InvalidParameterError):
            model.process_sequence([])

    def test_negative_items(self, model):
        with pytest.raises(InvalidParameterError):
            model.predict_sequence([np.array([1.0, -0.5])] * 3)
