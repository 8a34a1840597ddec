"""
Tests for stage progress derivations (app/utils/progress.py).
"""

import math
from datetime import date

from app.utils.progress import (
    STAGE_KEYS, clamp_percent, clamp_non_neg_int, clamp_stage, clamp_priority, clamp_severity,
    default_progress, normalize_progress, build_progress_payload, overall_percent,
    detect_stage_from_text, stage_key_for_number, stage_number, is_stage_number, aggregate_usage,
    is_stage_overdue, is_project_overdue, status_label,
)


class TestClamps:
    """Numeric clamping used by every form."""

    def test_clamp_percent_bounds(self):
        assert clamp_percent(-5) == 0
        assert clamp_percent(150) == 100
        assert clamp_percent(math.nan) == 0
        assert clamp_percent(42.6) == 43

    def test_clamp_percent_rounds_half_up(self):
        assert clamp_percent(42.5) == 43
        assert clamp_percent("7.4") == 7

    def test_clamp_percent_unparseable(self):
        assert clamp_percent("abc") == 0
        assert clamp_percent(None) == 0

    def test_clamp_non_neg_int(self):
        assert clamp_non_neg_int(-3) == 0
        assert clamp_non_neg_int(4.4) == 4
        assert clamp_non_neg_int(math.inf, fallback=7) == 7
        assert clamp_non_neg_int("x", fallback=2) == 2

    def test_clamp_stage(self):
        assert clamp_stage(0) == 1
        assert clamp_stage(9) == 6
        assert clamp_stage(3) == 3
        assert clamp_stage(math.nan) == 1

    def test_clamp_priority_and_severity(self):
        assert clamp_priority(0) == 1
        assert clamp_priority(5) == 3
        assert clamp_priority(None) == 2
        assert clamp_severity(3) == 3
        assert clamp_severity(2.4) == 2
        assert clamp_severity("bad") == 2


class TestProgressStructure:
    """Normalisation and the overall percentage."""

    def test_default_progress_is_all_todo(self):
        progress = default_progress()
        for key in STAGE_KEYS:
            assert progress[key] == {'status': 'todo', 'percent': 0, 'note': '', 'plan_days': 0}
        assert progress['_meta'] == {'project_plan_days': 0}

    def test_normalize_fills_missing_and_malformed(self):
        progress = normalize_progress({
            'hardware_install': {'status': 'weird', 'percent': 180, 'plan_days': -2},
            'ai_training': 'not a dict',
        })
        assert progress['hardware_install']['status'] == 'todo'
        assert progress['hardware_install']['percent'] == 100
        assert progress['hardware_install']['plan_days'] == 0
        assert progress['ai_training']['percent'] == 0
        assert progress['training']['status'] == 'todo'

    def test_normalize_none(self):
        assert normalize_progress(None) == default_progress()

    def test_overall_percent_scenarios(self):
        assert overall_percent(default_progress()) == 0

        one_half = build_progress_payload({'hardware_install': {'percent': 50}})
        assert overall_percent(one_half) == 8

        all_done = build_progress_payload({key: {'percent': 100, 'status': 'done'} for key in STAGE_KEYS})
        assert overall_percent(all_done) == 100

    def test_build_payload_keeps_untouched_stages(self):
        base = build_progress_payload({'training': {'percent': 30, 'note': 'day 1'}}, project_plan_days=12)
        merged = build_progress_payload({'hardware_install': {'percent': 90}}, base=base)
        assert merged['training']['percent'] == 30
        assert merged['training']['note'] == 'day 1'
        assert merged['hardware_install']['percent'] == 90
        assert merged['_meta']['project_plan_days'] == 12

    def test_status_label(self):
        assert status_label('todo') == '未開始'
        assert status_label('doing') == '進行中'
        assert status_label('done') == '已完成'


class TestStageDetection:
    """Stage attribution of schedule entries."""

    def test_detect_stage_by_keyword(self):
        assert detect_stage_from_text('今天 跑料驗證 第二批') == 'run_validation'
        assert detect_stage_from_text('HARDWARE_INSTALL at site') == 'hardware_install'

    def test_detect_stage_first_match_wins(self):
        assert detect_stage_from_text('硬體安裝定位 + 教育訓練') == 'hardware_install'

    def test_detect_stage_no_match(self):
        assert detect_stage_from_text('客戶會議') is None
        assert detect_stage_from_text(None) is None

    def test_stage_numbers(self):
        assert stage_key_for_number(1) == 'hardware_install'
        assert stage_key_for_number(99) == 'training'
        assert stage_number('ai_training') == 4
        assert stage_number('unknown') is None

    def test_is_stage_number(self):
        assert is_stage_number(3) and is_stage_number('9')
        assert not is_stage_number('abc')
        assert not is_stage_number(True)
        assert not is_stage_number(['1'])


class TestUsageAndOverdue:
    """Used days and overdue flags."""

    def test_distinct_dates_counted_once(self):
        d = date(2026, 3, 2)
        rows = [
            {'project_id': 1, 'work_date': d, 'title': '跑料驗證', 'details': None, 'item_type': 'work'},
            {'project_id': 1, 'work_date': d, 'title': '跑料驗證 下午', 'details': None, 'item_type': 'work'},
            {'project_id': 1, 'work_date': date(2026, 3, 3), 'title': 'misc', 'details': None,
             'item_type': 'work'},
        ]
        usage = aggregate_usage(rows, [1, 2])
        assert usage[1]['total_days'] == 2
        assert usage[1]['stage_days']['run_validation'] == 1
        assert usage[2]['total_days'] == 0

    def test_explicit_stage_key_beats_text(self):
        rows = [{'project_id': 1, 'work_date': date(2026, 3, 2), 'title': '教育訓練',
                 'details': None, 'item_type': 'work', 'stage_key': 'ai_training'}]
        usage = aggregate_usage(rows, [1])
        assert usage[1]['stage_days']['ai_training'] == 1
        assert usage[1]['stage_days']['training'] == 0

    def test_non_work_items_ignored(self):
        rows = [{'project_id': 1, 'work_date': date(2026, 3, 2), 'title': '教育訓練',
                 'details': None, 'item_type': 'leave'}]
        assert aggregate_usage(rows, [1])[1]['total_days'] == 0

    def test_stage_overdue(self):
        assert is_stage_overdue(0, 100, 'todo') is False
        assert is_stage_overdue(5, 6, 'todo') is True
        assert is_stage_overdue(5, 6, 'done') is False
        assert is_stage_overdue(5, 5, 'doing') is False

    def test_project_overdue(self):
        assert is_project_overdue(0, 50, 10) is False
        assert is_project_overdue(10, 11, 80) is True
        assert is_project_overdue(10, 11, 100) is False
