from __future__ import annotations

from livequiz.runtime_players import PlayerRegistry
from livequiz.runtime_question_pool import QuestionPool
from livequiz.runtime_scoring import (
    REJECTED_DUPLICATE,
    REJECTED_INVALID_LETTER,
    REJECTED_MATCH_ENDED,
    REJECTED_NO_QUESTION,
    REJECTED_WINDOW_CLOSED,
    ScoringEngine,
)
from livequiz.runtime_types import AnswerWindow, MatchState, ShowSession
from support import make_question

THRESHOLDS = (1, 4, 10, 15, 21)


def make_session(question=None, *, open_window=True, thresholds=THRESHOLDS):
    question = question or make_question()
    session = ShowSession(
        session_id="test-session",
        players=PlayerRegistry(thresholds),
        pool=QuestionPool([question]),
        match=MatchState(level_thresholds=thresholds),
    )
    session.current_question = question
    session.question_number = 1
    session.window = AnswerWindow(question_number=1, waiting_to_open=not open_window, is_open=open_window)
    session.phase = "open" if open_window else "announcing"
    return session


def new_window(session):
    session.question_number += 1
    session.window = AnswerWindow(question_number=session.question_number, waiting_to_open=False, is_open=True)


def test_lowercase_answer_is_accepted_and_correct(fast_settings):
    session = make_session()
    player, _ = session.players.upsert("alice")

    outcome = ScoringEngine(fast_settings).submit_answer(session, player, " a ")

    assert outcome.accepted is True
    assert outcome.correct is True
    assert outcome.letter == "A"
    assert player.score == 1
    assert player.level == 2
    assert outcome.leveled_up is True


def test_letter_outside_the_option_count_is_rejected(fast_settings):
    session = make_session()
    player, _ = session.players.upsert("alice")

    outcome = ScoringEngine(fast_settings).submit_answer(session, player, "D")

    assert outcome.accepted is False
    assert outcome.reason == REJECTED_INVALID_LETTER
    assert player.score == 0
    assert "alice" not in session.window.answered


def test_free_chat_text_is_not_an_answer(fast_settings):
    session = make_session()
    player, _ = session.players.upsert("alice")
    engine = ScoringEngine(fast_settings)

    assert engine.submit_answer(session, player, "hello").reason == REJECTED_INVALID_LETTER
    assert engine.submit_answer(session, player, "").reason == REJECTED_INVALID_LETTER
    assert engine.submit_answer(session, player, "A").accepted is True


def test_configured_letters_limit_valid_answers(fast_settings):
    fast_settings.answer_letters = "ABC"
    question = make_question(options=("one", "two", "three"), correct="C")
    session = make_session(question)
    player, _ = session.players.upsert("alice")

    assert ScoringEngine(fast_settings).submit_answer(session, player, "c").correct is True


def test_second_answer_from_same_player_is_inert(fast_settings):
    session = make_session()
    player, _ = session.players.upsert("alice")
    engine = ScoringEngine(fast_settings)

    first = engine.submit_answer(session, player, "B")
    second = engine.submit_answer(session, player, "A")
    third = engine.submit_answer(session, player, "B")

    assert first.accepted is True
    assert second.accepted is False
    assert third.accepted is False
    assert second.reason == REJECTED_DUPLICATE
    assert player.score == 0


def test_two_correct_players_in_one_window_both_score(fast_settings):
    session = make_session()
    alice, _ = session.players.upsert("alice")
    bob, _ = session.players.upsert("bob")
    engine = ScoringEngine(fast_settings)

    first = engine.submit_answer(session, alice, "A")
    second = engine.submit_answer(session, bob, "A")

    assert first.correct and second.correct
    assert alice.score == bob.score == 1
    assert not first.won and not second.won
    assert session.match.ended is False


def test_wrong_answer_at_level_one_keeps_score_at_zero(fast_settings):
    session = make_session()
    player, _ = session.players.upsert("alice")

    outcome = ScoringEngine(fast_settings).submit_answer(session, player, "B")

    assert outcome.accepted is True
    assert outcome.correct is False
    assert player.score == 0
    assert player.level == 1


def test_wrong_answers_never_drop_below_the_level_floor(fast_settings):
    session = make_session()
    player, _ = session.players.upsert("alice")
    player.score = 6
    player.level = session.players.level_for(6)
    engine = ScoringEngine(fast_settings)

    scores = []
    for _ in range(5):
        engine.submit_answer(session, player, "C")
        scores.append(player.score)
        assert player.score >= session.players.min_score_for_level(player.level)
        new_window(session)

    assert scores == [5, 4, 4, 4, 4]
    assert player.level == 3


def test_only_one_win_per_match(fast_settings):
    session = make_session()
    alice, _ = session.players.upsert("alice")
    bob, _ = session.players.upsert("bob")
    for player in (alice, bob):
        player.score = 20
        player.level = session.players.level_for(20)
    engine = ScoringEngine(fast_settings)

    first = engine.submit_answer(session, alice, "A")
    second = engine.submit_answer(session, bob, "A")

    assert first.won is True
    assert second.won is False
    assert second.reason == REJECTED_MATCH_ENDED
    assert session.match.ended is True
    assert session.match.winner == "alice"
    assert session.match.winner_score == 21
    assert bob.score == 20


def test_grace_answers_are_scored_when_enabled(fast_settings):
    session = make_session()
    session.window.is_open = False
    session.window.in_grace = True
    player, _ = session.players.upsert("late")

    outcome = ScoringEngine(fast_settings).submit_answer(session, player, "A")

    assert outcome.accepted is True
    assert player.score == 1


def test_grace_answers_are_rejected_when_disabled(fast_settings):
    fast_settings.score_grace_answers = False
    session = make_session()
    session.window.is_open = False
    session.window.in_grace = True
    player, _ = session.players.upsert("late")

    outcome = ScoringEngine(fast_settings).submit_answer(session, player, "A")

    assert outcome.accepted is False
    assert outcome.reason == REJECTED_WINDOW_CLOSED
    assert player.score == 0


def test_answers_during_announcement_are_not_scored(fast_settings):
    session = make_session(open_window=False)
    player, _ = session.players.upsert("early")

    outcome = ScoringEngine(fast_settings).submit_answer(session, player, "A")

    assert outcome.accepted is False
    assert outcome.reason == REJECTED_WINDOW_CLOSED
    assert "early" not in session.window.answered


def test_answers_without_a_question_are_rejected(fast_settings):
    session = make_session()
    session.window = None
    session.current_question = None
    player, _ = session.players.upsert("alice")

    assert ScoringEngine(fast_settings).submit_answer(session, player, "A").reason == REJECTED_NO_QUESTION
