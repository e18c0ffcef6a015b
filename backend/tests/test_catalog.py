import json
import logging
import random

from duohunt.game.catalog import ChallengeCatalog, levels_for_mode, parse_definition

from conftest import DEFAULT_RECORDS, flat, nested


def test_parse_flat_definition():
    d = parse_definition(flat('Title', 'Normal', 'ans', base=120, limit=90))
    assert d.title == 'Title'
    assert d.level == 'normal'
    assert d.base_score == 120
    assert d.time_limit_sec == 90
    assert d.view_for('A') == 'Title A-side'
    assert d.view_for('B') == 'Title B-side'
    assert d.answer.kind == 'exact' and d.answer.value == 'ans'
    assert not d.nested


def test_parse_defaults():
    d = parse_definition({'answer': {'type': 'regex', 'pattern': 'x'}}, 300, 100)
    assert d.title == 'Challenge'
    assert d.time_limit_sec == 300
    assert d.base_score == 100
    assert d.view_a == '' and d.view_b == ''


def test_subquestions_win_over_flat_answer(caplog):
    raw = nested('Both', 'hard', ['a', 'b'])
    raw['answer'] = {'type': 'exact', 'value': 'ignored'}
    with caplog.at_level(logging.WARNING):
        d = parse_definition(raw)
    assert d.nested
    assert d.answer is None
    assert len(d.subquestions) == 2
    assert d.subquestions[1].view_for('B') == 'Both q1 B'
    assert 'using subquestions' in caplog.text


def test_bad_records_are_skipped():
    catalog = ChallengeCatalog.from_records([
        flat('Good', 'easy', 'x'),
        {'title': 'No answer', 'level': 'easy'},
        {'title': 'Bad type', 'level': 'easy', 'answer': {'type': 'fuzzy'}},
        'not a record',
        {'title': 'Bad limit', 'level': 'easy', 'timeLimitSec': 'soon', 'answer': {'type': 'exact', 'value': 'x'}},
    ])
    assert len(catalog) == 1
    assert [d.title for _, d in catalog.eligible({'easy'})] == ['Good']


def test_from_file(tmp_path):
    path = tmp_path / 'c.json'
    path.write_text(json.dumps(DEFAULT_RECORDS), encoding='utf-8')
    assert len(ChallengeCatalog.from_file(path)) == len(DEFAULT_RECORDS)


def test_unreadable_file_gives_empty_catalog(tmp_path, caplog):
    broken = tmp_path / 'broken.json'
    broken.write_text('{ not json', encoding='utf-8')
    with caplog.at_level(logging.ERROR):
        assert len(ChallengeCatalog.from_file(broken)) == 0
        assert len(ChallengeCatalog.from_file(tmp_path / 'missing.json')) == 0
    assert 'Failed to load challenges' in caplog.text

    not_a_list = tmp_path / 'object.json'
    not_a_list.write_text('{"title": "x"}', encoding='utf-8')
    assert len(ChallengeCatalog.from_file(not_a_list)) == 0


def test_bundled_sample_file_loads():
    from duohunt.config import Config

    catalog = ChallengeCatalog.from_file(Config.CHALLENGES_PATH)
    assert len(catalog) == 7
    assert any(d.nested for _, d in catalog.eligible({'hard'}))


def test_eligible_filters_levels_and_used():
    catalog = ChallengeCatalog.from_records(DEFAULT_RECORDS)
    assert [i for i, _ in catalog.eligible({'normal'})] == [1, 2, 3]
    assert [i for i, _ in catalog.eligible({'normal'}, exclude={2})] == [1, 3]
    assert catalog.eligible({'expert'}) == []


def test_pick_never_repeats_until_exhausted():
    catalog = ChallengeCatalog.from_records(DEFAULT_RECORDS)
    used = set()
    rng = random.Random(1)
    seen = []
    for _ in range(3):
        index, _ = catalog.pick({'normal'}, used, rng)
        assert index not in used
        used.add(index)
        seen.append(index)
    assert sorted(seen) == [1, 2, 3]

    index, _ = catalog.pick({'normal'}, used, rng)
    assert used == set()
    assert index in (1, 2, 3)


def test_pick_returns_none_when_nothing_matches():
    catalog = ChallengeCatalog.from_records(DEFAULT_RECORDS)
    used = {0}
    assert catalog.pick({'expert'}, used) is None
    assert used == {0}


def test_difficulty_tables():
    assert levels_for_mode('Easy') == {'easy'}
    assert levels_for_mode('Hard') == {'hard'}
    assert levels_for_mode(None) == {'normal'}
    assert levels_for_mode('Hard', 'tiered') == {'hard', 'expert'}
    assert levels_for_mode('Normal', 'tiered') == {'easy', 'normal'}
    assert levels_for_mode('Hard', 'unknown-table') == {'hard'}
