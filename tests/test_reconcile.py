"""Tests for qbank/reconcile.py — optimistic list state machine and form checks."""

from __future__ import annotations

from unittest.mock import MagicMock

import pytest

import qbank.store as store
from config.settings import Settings
from qbank.cache import ReadCache
from qbank.errors import DuplicateError
from qbank.models import ActionState, Difficulty, Question, QuestionForm, QuestionPatch
from qbank.questions import QuestionService
from qbank.reconcile import (
    ListState,
    OptimisticAction,
    OptimisticQuestionList,
    parse_keywords,
    validate_question_form,
)
from qbank.topics import TopicService


def _q(qid, text, difficulty="easy", answer="Some answer"):
    return Question(id=qid, question=text, answer=answer, difficulty=Difficulty(difficulty))


@pytest.fixture
def view() -> OptimisticQuestionList:
    return OptimisticQuestionList(
        [_q("q1", "What is Big O?"), _q("q2", "Explain red-black trees", "hard")]
    )


def _form(text="What is a heap?", difficulty="moderate"):
    return QuestionForm(question=text, answer="A tree-based structure", difficulty=difficulty)


# ── Form checks ────────────────────────────────────────────────────────────────


class TestValidateQuestionForm:
    def test_valid(self):
        assert validate_question_form("What is a heap?", "A tree", "easy").success is True

    @pytest.mark.parametrize(
        "question, answer, difficulty, message",
        [
            ("", "A tree", "easy", "Question is required"),
            ("What is a heap?", " ", "easy", "Answer is required"),
            ("What is a heap?", "A tree", "", "Difficulty is required"),
            ("Heap?", "A tree", "easy", "at least 10 characters"),
            ("What is a heap?", "Tree", "easy", "at least 5 characters"),
        ],
    )
    def test_invalid(self, question, answer, difficulty, message):
        state = validate_question_form(question, answer, difficulty)
        assert state.success is False
        assert message in state.error


class TestParseKeywords:
    def test_splits_and_trims(self):
        assert parse_keywords(" graphs, dfs ,, bfs ") == ["graphs", "dfs", "bfs"]

    def test_empty(self):
        assert parse_keywords("") == []


# ── State machine ──────────────────────────────────────────────────────────────


class TestDispatch:
    def test_add_prepends_placeholder(self, view):
        view.dispatch(OptimisticAction.add(_form()))
        assert view.state is ListState.OPTIMISTIC
        assert view.displayed[0].question == "What is a heap?"
        assert view.displayed[0].id.startswith("tmp-")
        assert len(view.confirmed) == 2

    def test_update_merges_patch(self, view):
        view.dispatch(OptimisticAction.update("q1", QuestionPatch(difficulty="hard")))
        assert view.displayed[0].difficulty is Difficulty.HARD
        assert view.displayed[0].question == "What is Big O?"

    def test_delete_removes(self, view):
        view.dispatch(OptimisticAction.delete("q1"))
        assert [q.id for q in view.displayed] == ["q2"]

    def test_second_dispatch_while_pending_raises(self, view):
        view.dispatch(OptimisticAction.delete("q1"))
        with pytest.raises(RuntimeError):
            view.dispatch(OptimisticAction.delete("q2"))

    def test_confirm_without_pending_raises(self, view):
        with pytest.raises(RuntimeError):
            view.confirm([])


class TestConfirmAndReject:
    def test_confirm_add_replaces_list(self, view):
        server_list = [_q("q1", "What is Big O?"), _q("q2", "Explain red-black trees", "hard"), _q("q3", "What is a heap?")]
        view.dispatch(OptimisticAction.add(_form()))
        view.confirm(server_list)
        assert view.state is ListState.IDLE
        assert [q.id for q in view.displayed] == ["q1", "q2", "q3"]

    def test_confirm_update_installs_server_question(self, view):
        server_question = _q("q1", "What is Big Theta?")
        view.dispatch(OptimisticAction.update("q1", QuestionPatch(question="What is Big Theta?")))
        view.confirm(server_question)
        assert view.confirmed[0] == server_question

    def test_reject_restores_snapshot(self, view):
        before = list(view.displayed)
        view.dispatch(OptimisticAction.delete("q1"))
        view.reject("Question not found")
        assert view.state is ListState.IDLE
        assert view.displayed == before
        assert view.error == "Question not found"


class TestRun:
    def test_success(self, view):
        server_call = MagicMock(return_value=ActionState(success=True))
        assert view.run(OptimisticAction.delete("q1"), server_call) is True
        assert [q.id for q in view.displayed] == ["q2"]
        assert view.error is None

    def test_exception_rolls_back(self, view):
        server_call = MagicMock(side_effect=DuplicateError("A question with this text already exists"))
        assert view.run(OptimisticAction.add(_form()), server_call) is False
        assert len(view.displayed) == 2
        assert view.error == "A question with this text already exists"

    def test_failed_action_state_rolls_back(self, view):
        server_call = MagicMock(return_value=ActionState(success=False, error="Question not found"))
        assert view.run(OptimisticAction.delete("q1"), server_call) is False
        assert [q.id for q in view.displayed] == ["q1", "q2"]
        assert view.error == "Question not found"

    def test_local_duplicate_never_reaches_server(self, view):
        server_call = MagicMock()
        assert view.run(OptimisticAction.add(_form("what is big o?")), server_call) is False
        server_call.assert_not_called()
        assert view.error == "A question with this text already exists"

    @pytest.mark.parametrize(
        "difficulty, message",
        [(None, "Difficulty is required"), ("extreme", "Difficulty must be one of")],
    )
    def test_add_without_valid_difficulty_is_refused(self, view, difficulty, message):
        server_call = MagicMock()
        form = QuestionForm(question="What is a heap?", answer="A tree", difficulty=difficulty)

        assert view.run(OptimisticAction.add(form), server_call) is False

        server_call.assert_not_called()
        assert message in view.error
        assert view.state is ListState.IDLE
        assert [q.id for q in view.displayed] == ["q1", "q2"]
        # The list accepts the next action.
        view.dispatch(OptimisticAction.delete("q1"))
        assert view.state is ListState.OPTIMISTIC

    def test_update_to_unknown_difficulty_is_refused(self, view):
        server_call = MagicMock()
        action = OptimisticAction.update("q1", QuestionPatch(difficulty="extreme"))
        assert view.run(action, server_call) is False
        server_call.assert_not_called()
        assert view.displayed[0].difficulty is Difficulty.EASY

    def test_filtered_view_recomputed_after_rollback(self, view):
        view.set_filters(difficulty="hard")
        server_call = MagicMock(side_effect=RuntimeError("boom"))
        view.run(OptimisticAction.update("q1", QuestionPatch(difficulty="hard")), server_call)
        assert [q.id for q in view.visible] == ["q2"]

    def test_filtered_view_during_optimistic_update(self, view):
        view.set_filters(query="theta")
        view.dispatch(OptimisticAction.update("q1", QuestionPatch(question="What is Big Theta?")))
        assert [q.id for q in view.visible] == ["q1"]


class TestAgainstService:
    @pytest.fixture(autouse=True)
    def temp_db(self, tmp_path, monkeypatch):
        monkeypatch.setenv("DB_PATH", str(tmp_path / "test_reconcile.db"))
        store.init_db()

    def test_add_round_trip(self):
        cache = ReadCache()
        topic = TopicService(cache, Settings()).create_topic("Data structures")
        service = QuestionService(cache, Settings(), sleep=MagicMock())
        view = OptimisticQuestionList(service.get_questions(topic.id))

        ok = view.run(OptimisticAction.add(_form()), lambda: service.add_question(topic.id, _form()))

        assert ok is True
        assert [q.question for q in view.displayed] == ["What is a heap?"]
        assert not view.displayed[0].id.startswith("tmp-")
