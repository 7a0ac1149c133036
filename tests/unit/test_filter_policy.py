import pytest

from boardthreads.models.schemas import BoardFilterConfig, TrustState
from boardthreads.services.filtering.filter_policy import FilterPolicy, split_words


def test_split_words_drops_empty_tokens_and_lowercases():
    assert split_words(" Spam;;EGGS ; ") == ["spam", "eggs"]
    assert split_words("") == []


def test_junk_blocked_unless_junk_display_enabled(make_record):
    record = make_record("m1", junk=True)
    policy = FilterPolicy(show_junk=False)
    assert policy.is_blocked(record, BoardFilterConfig()) is True

    policy.show_junk = True
    assert policy.is_blocked(record, BoardFilterConfig()) is False


def test_junk_rule_applies_even_to_friends(make_record):
    record = make_record("m1", junk=True, trust=TrustState.FRIEND)
    assert FilterPolicy().is_blocked(record, BoardFilterConfig()) is True


@pytest.mark.parametrize(
    "trust,flag",
    [
        (TrustState.NONE, "hide_unsigned"),
        (TrustState.TAMPERED, "hide_unsigned"),
        (TrustState.BAD, "hide_bad"),
        (TrustState.NEUTRAL, "hide_neutral"),
        (TrustState.GOOD, "hide_good"),
    ],
)
def test_trust_classes_hidden_by_their_flag(make_record, trust, flag):
    record = make_record("m1", trust=trust)
    policy = FilterPolicy()
    assert policy.is_blocked(record, BoardFilterConfig()) is False
    assert policy.is_blocked(record, BoardFilterConfig(**{flag: True})) is True


def test_friend_never_hidden_by_trust_flags(make_record):
    config = BoardFilterConfig(
        hide_unsigned=True, hide_bad=True, hide_neutral=True, hide_good=True
    )
    record = make_record("m1", trust=TrustState.FRIEND)
    assert FilterPolicy().is_blocked(record, config) is False


def test_low_sender_count_blocks(make_record):
    config = BoardFilterConfig(hide_message_count=5)
    policy = FilterPolicy()
    assert policy.is_blocked(make_record("m1", sender_count=4), config) is True
    assert policy.is_blocked(make_record("m2", sender_count=5), config) is False


def test_low_sender_count_ignores_own_and_unknown_senders(make_record):
    config = BoardFilterConfig(hide_message_count=5)
    policy = FilterPolicy()
    assert policy.is_blocked(make_record("m1", sender_count=0, from_me=True), config) is False
    assert policy.is_blocked(make_record("m2"), config) is False


def test_low_sender_count_private_exemption(make_record):
    record = make_record("m1", sender_count=1, recipient="bob")
    policy = FilterPolicy()
    assert policy.is_blocked(record, BoardFilterConfig(hide_message_count=5)) is True
    exempt = BoardFilterConfig(
        hide_message_count=5, hide_message_count_exclude_private=True
    )
    assert policy.is_blocked(record, exempt) is False


def test_subject_and_body_words_match_case_insensitive_substrings(make_record):
    policy = FilterPolicy()
    subject_cfg = BoardFilterConfig(
        block_subject_enabled=True, block_subject_words="viagra;casino"
    )
    body_cfg = BoardFilterConfig(block_body_enabled=True, block_body_words="BUY NOW")

    assert policy.is_blocked(make_record("m1", subject="Best CASINOs"), subject_cfg)
    assert not policy.is_blocked(make_record("m2", subject="hello"), subject_cfg)
    assert policy.is_blocked(make_record("m3", body="please buy now!"), body_cfg)


def test_disabled_word_lists_are_ignored(make_record):
    config = BoardFilterConfig(block_subject_enabled=False, block_subject_words="spam")
    assert FilterPolicy().is_blocked(make_record("m1", subject="spam"), config) is False


def test_boardname_words_match_whole_attached_names(make_record):
    config = BoardFilterConfig(
        block_boardname_enabled=True, block_boardname_words="Spam-Board"
    )
    policy = FilterPolicy()
    assert policy.is_blocked(
        make_record("m1", attached_boards=["spam-board"]), config
    )
    assert not policy.is_blocked(
        make_record("m2", attached_boards=["spam-board-discussion"]), config
    )


def test_good_and_friend_exempt_from_count_and_word_rules(make_record):
    config = BoardFilterConfig(
        hide_message_count=10,
        block_subject_enabled=True,
        block_subject_words="spam",
    )
    policy = FilterPolicy()
    for trust in (TrustState.GOOD, TrustState.FRIEND):
        record = make_record("m1", trust=trust, sender_count=0, subject="spam")
        assert policy.is_blocked(record, config) is False


def test_empty_word_list_never_blocks(make_record):
    config = BoardFilterConfig(block_subject_enabled=True, block_subject_words=";;")
    assert FilterPolicy().is_blocked(make_record("m1", subject="x"), config) is False


def test_is_blocked_is_deterministic(make_record):
    config = BoardFilterConfig(
        hide_bad=True, block_body_enabled=True, block_body_words="foo"
    )
    policy = FilterPolicy()
    records = [
        make_record("a", trust=TrustState.BAD),
        make_record("b", body="has foo"),
        make_record("c", body="clean"),
    ]
    first = [policy.is_blocked(r, config) for r in records]
    for _ in range(3):
        assert [policy.is_blocked(r, config) for r in records] == first
    assert first == [True, True, False]
