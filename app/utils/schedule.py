# app/utils/schedule.py
"""行程表（工程师 x 日期）的日期工具与表格组装"""
from datetime import date, datetime, timedelta

WEEKDAY_LABELS = ['一', '二', '三', '四', '五', '六', '日']

CELL_PLAIN = '#fff'
CELL_HIGHLIGHT = '#ffe766'  # 有休假或移动的格子

TYPE_LABELS = {'work': '工作', 'leave': '休假', 'move': '移動'}


def to_iso_date(d):
    return d.strftime('%Y-%m-%d')


def parse_iso_date(value):
    """解析 YYYY-MM-DD，格式错误时抛出 ValueError"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()


def start_of_week_mon(d):
    if isinstance(d, datetime):
        d = d.date()
    return d - timedelta(days=d.weekday())


def add_days(d, days):
    return d + timedelta(days=days)


def weekday_label(i):
    if 0 <= i < len(WEEKDAY_LABELS):
        return WEEKDAY_LABELS[i]
    return ''


def _value(v):
    return getattr(v, 'value', v)


def _get(item, name):
    if isinstance(item, dict):
        return item.get(name)
    return getattr(item, name, None)


def cell_key(engineer_id, day):
    if not isinstance(day, str):
        day = to_iso_date(day)
    return engineer_id, day


def build_grid(items):
    """按 (engineer_id, ISO 日期) 分组；没有行程的格子不会出现在结果中"""
    grid = {}
    for item in items:
        key = cell_key(_get(item, 'engineer_id'), _get(item, 'work_date'))
        grid.setdefault(key, []).append(item)
    return grid


def cell_items(grid, engineer_id, day):
    return grid.get(cell_key(engineer_id, day), [])


def cell_background(items):
    if not items:
        return CELL_PLAIN
    if any(_value(_get(it, 'item_type')) in ('leave', 'move') for it in items):
        return CELL_HIGHLIGHT
    return CELL_PLAIN


def next_sort_order(items):
    if not items:
        return 0
    return max((_get(it, 'sort_order') or 0) for it in items) + 1


def day_label(d):
    return f"{d.month}月{d.day}日"


def week_title(week_start, index):
    week_end = add_days(week_start, 6)
    return f"{day_label(week_start)} - {day_label(week_end)}（第{index + 1}週）"


def build_week_blocks(view_start, weeks, engineers, grid, item_to_json):
    """
    组装多周行程表的渲染数据：每周一个区块，每个工程师一行，每天一格。
    engineers 为 (id, name) 可迭代对象；item_to_json 负责单笔行程的序列化。
    """
    blocks = []
    for w in range(weeks):
        week_start = add_days(view_start, w * 7)
        days = [add_days(week_start, i) for i in range(7)]
        rows = []
        for engineer_id, engineer_name in engineers:
            cells = []
            for d in days:
                items = cell_items(grid, engineer_id, d)
                cells.append({
                    'date': to_iso_date(d),
                    'background': cell_background(items),
                    'items': [item_to_json(it) for it in items],
                })
            rows.append({'engineer_id': engineer_id, 'engineer_name': engineer_name, 'cells': cells})
        blocks.append({
            'title': week_title(week_start, w),
            'week_start': to_iso_date(week_start),
            'days': [{
                'date': to_iso_date(d),
                'label': day_label(d),
                'weekday': weekday_label(i),
                'is_weekend': i >= 5,
            } for i, d in enumerate(days)],
            'rows': rows,
        })
    return blocks


def type_label(item_type):
    return TYPE_LABELS.get(_value(item_type), TYPE_LABELS['work'])


def item_line(item, engineer_name, project_name):
    """只读面板上的一行：日期 · 工程师 · 项目（非工作类型显示类型）"""
    work_date = _get(item, 'work_date')
    if not isinstance(work_date, str):
        work_date = to_iso_date(work_date)
    item_type = _value(_get(item, 'item_type'))
    middle = project_name if item_type == 'work' else type_label(item_type)
    return f"{work_date} · {engineer_name} · {middle}"
