# app/utils/progress.py
"""
六阶段进度的纯函数：数值钳制、进度结构归一化、整体进度、
行程文字推测阶段、使用天数统计与逾期判断。

这里不访问数据库，方便在视图和测试中直接调用。
"""
import math

# 阶段定义：顺序固定，编号从 1 开始
STAGES = [
    {'key': 'hardware_install', 'label': '硬體安裝定位', 'keywords': ['硬體安裝定位', 'hardware_install']},
    {'key': 'hardware_stability', 'label': '硬體穩定性調整', 'keywords': ['硬體穩定性調整', 'hardware_stability']},
    {'key': 'software_params', 'label': '軟體參數設定', 'keywords': ['軟體參數設定', 'software_params']},
    {'key': 'ai_training', 'label': 'AI參數訓練', 'keywords': ['AI參數訓練', 'ai_training']},
    {'key': 'run_validation', 'label': '跑料驗證', 'keywords': ['跑料驗證', 'run_validation']},
    {'key': 'training', 'label': '教育訓練', 'keywords': ['教育訓練', 'training']},
]
STAGE_KEYS = [s['key'] for s in STAGES]
STAGE_LABELS = {s['key']: s['label'] for s in STAGES}

STAGE_STATUSES = ('todo', 'doing', 'done')
META_KEY = '_meta'


def _to_number(value, none_value=0.0):
    """把任意输入转换为 float，无法解析时返回 NaN"""
    if value is None:
        return none_value
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        try:
            return float(text)
        except ValueError:
            return math.nan
    return math.nan


def _round_half_up(x):
    return int(math.floor(x + 0.5))


def clamp_percent(n):
    x = _to_number(n)
    if math.isnan(x):
        return 0
    if x < 0:
        return 0
    if x > 100:
        return 100
    return _round_half_up(x)


def clamp_non_neg_int(n, fallback=0):
    x = _to_number(n)
    if not math.isfinite(x):
        return fallback
    if x < 0:
        return 0
    return _round_half_up(x)


def _clamp_range(n, low, high, fallback):
    x = _to_number(n, none_value=math.nan)
    if not math.isfinite(x):
        return fallback
    if x <= low:
        return low
    if x >= high:
        return high
    return _round_half_up(x)


def clamp_stage(n):
    """阶段编号 1..6"""
    return _clamp_range(n, 1, len(STAGES), 1)


def clamp_priority(n):
    """行程优先度 1..3"""
    return _clamp_range(n, 1, 3, 2)


def clamp_severity(n):
    """异常严重度 1..3，中间值一律视为 2"""
    x = _to_number(n, none_value=math.nan)
    if not math.isfinite(x):
        return 2
    if x <= 1:
        return 1
    if x >= 3:
        return 3
    return 2


def is_stage_number(n):
    """能解析成有限数字的阶段编号；超出 1..6 的由 clamp_stage 钳制"""
    if isinstance(n, bool):
        return False
    return math.isfinite(_to_number(n, none_value=math.nan))


def stage_key_for_number(n):
    return STAGE_KEYS[clamp_stage(n) - 1]


def stage_number(key):
    if key not in STAGE_KEYS:
        return None
    return STAGE_KEYS.index(key) + 1


def status_label(status):
    if status == 'todo':
        return '未開始'
    if status == 'doing':
        return '進行中'
    return '已完成'


# --- 进度结构 ---

def default_stage_value():
    return {'status': 'todo', 'percent': 0, 'note': '', 'plan_days': 0}


def default_meta():
    return {'project_plan_days': 0}


def default_progress():
    progress = {META_KEY: default_meta()}
    for key in STAGE_KEYS:
        progress[key] = default_stage_value()
    return progress


def normalize_stage_value(value):
    if not isinstance(value, dict):
        return default_stage_value()
    status = value.get('status') if value.get('status') in ('doing', 'done') else 'todo'
    note = value.get('note') if isinstance(value.get('note'), str) else ''
    return {
        'status': status,
        'percent': clamp_percent(value.get('percent', 0)),
        'note': note.rstrip(),
        'plan_days': clamp_non_neg_int(value.get('plan_days', 0), 0),
    }


def normalize_meta(progress):
    meta = progress.get(META_KEY) if isinstance(progress, dict) else None
    if not isinstance(meta, dict):
        return default_meta()
    return {'project_plan_days': clamp_non_neg_int(meta.get('project_plan_days', 0), 0)}


def normalize_progress(progress):
    """缺失或格式错误的阶段一律补成 todo / 0%"""
    result = {META_KEY: normalize_meta(progress)}
    source = progress if isinstance(progress, dict) else {}
    for key in STAGE_KEYS:
        result[key] = normalize_stage_value(source.get(key))
    return result


def build_progress_payload(stages, project_plan_days=None, base=None):
    """
    把表单提交的阶段数据合并到已有进度上，返回可直接存储的结构。
    stages 中未出现的阶段保留 base 里的值。
    """
    merged = normalize_progress(base)
    if isinstance(stages, dict):
        for key in STAGE_KEYS:
            if key in stages and isinstance(stages[key], dict):
                current = dict(merged[key])
                current.update(stages[key])
                merged[key] = normalize_stage_value(current)
    if project_plan_days is not None:
        merged[META_KEY] = {'project_plan_days': clamp_non_neg_int(project_plan_days, 0)}
    return merged


def overall_percent(progress):
    """六个阶段百分比的算术平均，四舍五入并钳制在 [0, 100]"""
    normalized = normalize_progress(progress)
    total = sum(normalized[key]['percent'] for key in STAGE_KEYS)
    return clamp_percent(total / len(STAGE_KEYS))


# --- 行程 -> 阶段 ---

def detect_stage_from_text(text):
    """按阶段顺序做不区分大小写的子串匹配，第一个命中的阶段胜出"""
    lowered = (text or '').lower()
    for stage in STAGES:
        for keyword in stage['keywords']:
            if keyword.lower() in lowered:
                return stage['key']
    return None


def _row_get(row, name):
    if isinstance(row, dict):
        return row.get(name)
    return getattr(row, name, None)


def _row_value(row, name):
    value = _row_get(row, name)
    return getattr(value, 'value', value)


def resolve_stage_key(row):
    """优先使用明确记录的 stage_key；旧数据没有时才退回文字推测"""
    stage_key = _row_get(row, 'stage_key')
    if stage_key in STAGE_KEYS:
        return stage_key
    text = f"{_row_get(row, 'title') or ''}\n{_row_get(row, 'details') or ''}"
    return detect_stage_from_text(text)


def empty_stage_days():
    return {key: 0 for key in STAGE_KEYS}


def aggregate_usage(rows, project_ids):
    """
    统计每个项目的使用天数。同一天多笔行程只算一天。

    返回 {project_id: {'total_days': int, 'stage_days': {stage_key: int}}}
    """
    dates_by_project = {}
    dates_by_stage = {}

    for row in rows:
        project_id = _row_get(row, 'project_id')
        if project_id is None:
            continue
        if _row_value(row, 'item_type') not in (None, 'work'):
            continue
        work_date = _row_get(row, 'work_date')
        dates_by_project.setdefault(project_id, set()).add(work_date)

        stage_key = resolve_stage_key(row)
        if stage_key:
            dates_by_stage.setdefault(project_id, {}).setdefault(stage_key, set()).add(work_date)

    usage = {}
    for project_id in project_ids:
        stage_days = empty_stage_days()
        for key, dates in dates_by_stage.get(project_id, {}).items():
            stage_days[key] = len(dates)
        usage[project_id] = {
            'total_days': len(dates_by_project.get(project_id, ())),
            'stage_days': stage_days,
        }
    return usage


# --- 逾期判断 ---

def is_stage_overdue(plan_days, used_days, status):
    plan = clamp_non_neg_int(plan_days, 0)
    if plan <= 0:
        return False
    return status != 'done' and used_days > plan


def is_project_overdue(project_plan_days, used_days, overall):
    plan = clamp_non_neg_int(project_plan_days, 0)
    if plan <= 0:
        return False
    return overall < 100 and used_days > plan
