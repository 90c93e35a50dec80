"""
Unit tests for the question bank loader and exact-match grader.
"""

import json

import pytest

from quizflow.cli.bank import BankLoadError, BankQuestion, grade_answer, load_bank, normalize, question_id


@pytest.fixture
def question():
    return BankQuestion(
        id="q1",
        prompt="Which layer routes packets?",
        answer="Network",
        options=("Physical", "Network", "Transport"),
    )


class TestLoadBank:
    def test_sample_bank(self, sample_bank_path):
        bank = load_bank(sample_bank_path)
        assert [q.id for q in bank.questions] == ["net-1", "net-2", "3"]
        assert bank.questions[0].options[2] == "Network"

    def test_bare_list(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text(json.dumps([{"id": "a", "prompt": "p", "answer": "x"}]))
        assert len(load_bank(path).questions) == 1

    def test_missing_file(self, tmp_path):
        with pytest.raises(BankLoadError, match="Cannot read"):
            load_bank(tmp_path / "missing.json")

    def test_invalid_json(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text("{not json")
        with pytest.raises(BankLoadError):
            load_bank(path)

    def test_duplicate_ids(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text(
            json.dumps(
                [
                    {"id": "a", "prompt": "p", "answer": "x"},
                    {"id": "a", "prompt": "q", "answer": "y"},
                ]
            )
        )
        with pytest.raises(BankLoadError, match="duplicate question id"):
            load_bank(path)

    def test_empty_bank(self, tmp_path):
        path = tmp_path / "bank.json"
        path.write_text(json.dumps({"questions": []}))
        with pytest.raises(BankLoadError):
            load_bank(path)


class TestGrading:
    @pytest.mark.parametrize("response", ["Network", "network", "  NETWORK ", "2"])
    def test_accepted_answers(self, question, response):
        result = grade_answer(question, response)
        assert result.correct is True
        assert result.payload == response

    @pytest.mark.parametrize("response", ["Transport", "3", "9", ""])
    def test_rejected_answers(self, question, response):
        assert grade_answer(question, response).correct is False

    def test_option_number_ignored_without_options(self):
        item = BankQuestion(id="n", prompt="2 + 2?", answer="4")
        assert grade_answer(item, "4").correct
        assert not grade_answer(item, "1").correct

    def test_normalize_collapses_whitespace(self):
        assert normalize("  Data   Link ") == "data link"

    def test_question_id(self, question):
        assert question_id(question) == "q1"
