from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import List, Tuple

try:
    from app.db.models import SubTaskCategory, SubTaskItem, TaskCreate
except ModuleNotFoundError:
    from backend.app.db.models import SubTaskCategory, SubTaskItem, TaskCreate

OPEN_DAY_TASK_NAME = "OPEN日"
WELL_TASK_NAME = "井戸工事"


@dataclass(frozen=True)
class TemplateTask:
    """Declarative template entry, positioned relative to the opening day."""
    key: str
    name: str
    category: str
    duration_days: int
    offset_days: int
    sub_tasks: Tuple[Tuple[str, Tuple[str, ...]], ...] = field(default_factory=tuple)
    is_hidden: bool = False
    well_water_only: bool = False


SCHEDULE_TEMPLATE: Tuple[TemplateTask, ...] = (
    # Wash facility development
    TemplateTask("site-survey", "用地調査", "wash-facility-development", 10, -180,
                 sub_tasks=(("現地調査", ("周辺交通量調査", "競合店調査", "用途地域確認")),)),
    TemplateTask("basic-design", "基本設計", "wash-facility-development", 20, -165),
    TemplateTask("permits", "行政協議・各種申請", "wash-facility-development", 30, -150,
                 sub_tasks=(("申請", ("建築確認申請", "排水協議", "道路占用許可")),)),
    TemplateTask("contract", "工事請負/洗車機販売契約", "wash-facility-development", 10, -120,
                 sub_tasks=(("契約", ("見積取得", "契約書締結", "手付金支払")),)),
    TemplateTask("machine-order", "洗車機発注", "wash-facility-development", 5, -110),
    TemplateTask("well", WELL_TASK_NAME, "wash-facility-development", 15, -100,
                 sub_tasks=(("井戸", ("水質検査", "揚水試験")),),
                 well_water_only=True),
    TemplateTask("groundwork", "造成・基礎工事", "wash-facility-development", 30, -90),
    TemplateTask("building", "建屋・設備工事", "wash-facility-development", 35, -60,
                 sub_tasks=(("建屋", ("鉄骨建方", "屋根・外壁")), ("設備", ("給排水設備", "電気設備"))),),
    TemplateTask("utilities", "電気・給排水工事", "wash-facility-development", 20, -45),
    TemplateTask("machine-install", "洗車機搬入・据付", "wash-facility-development", 7, -25),
    TemplateTask("exterior", "外構・サイン工事", "wash-facility-development", 14, -20),
    TemplateTask("commissioning", "試運転・調整", "wash-facility-development", 7, -18),
    TemplateTask("handover", "竣工検査・引渡し", "wash-facility-development", 3, -10),
    TemplateTask("pre-opening", "プレオープン", "wash-facility-development", 2, -3),
    # Back office
    TemplateTask("business-plan", "事業計画策定", "back-office", 20, -210,
                 sub_tasks=(("事業計画", ("市場調査", "収支計画作成", "出店判断")),)),
    TemplateTask("financing", "融資申請", "back-office", 30, -180,
                 sub_tasks=(("融資", ("金融機関相談", "必要書類準備", "融資実行")),)),
    TemplateTask("recruitment", "求人・採用", "back-office", 30, -75),
    TemplateTask("pos-system", "POS・決済システム導入", "back-office", 14, -40),
    TemplateTask("opening-paperwork", "開業届・各種保険加入", "back-office", 10, -30),
    TemplateTask("promotion", "オープン告知・販促", "back-office", 30, -30),
    TemplateTask("staff-training", "スタッフ研修", "back-office", 10, -14,
                 sub_tasks=(("研修", ("洗車機操作研修", "接客研修", "安全講習")),)),
    # Internal anchor, hidden from partner-facing views
    TemplateTask("open-day", OPEN_DAY_TASK_NAME, "milestone", 1, 0, is_hidden=True),
)


def _anchor(open_date) -> datetime:
    if isinstance(open_date, datetime):
        open_date = open_date.date()
    return datetime.combine(open_date, time.min)


def _build_sub_tasks(entry: TemplateTask) -> List[SubTaskCategory]:
    # Ids only need to be unique inside the owning task, so derive them from the template key
    categories = []
    for ci, (category_name, item_names) in enumerate(entry.sub_tasks, start=1):
        category_id = f"{entry.key}-c{ci}"
        items = [
            SubTaskItem(id=f"{category_id}-i{ii}", name=item_name, completed=False)
            for ii, item_name in enumerate(item_names, start=1)
        ]
        categories.append(SubTaskCategory(id=category_id, name=category_name, items=items))
    return categories


def template_entries(use_well_water: bool) -> List[TemplateTask]:
    """Template entries that apply to a project; the well task only with well water."""
    return [e for e in SCHEDULE_TEMPLATE if use_well_water or not e.well_water_only]


def generate_schedule(open_date: date, use_well_water: bool) -> List[TaskCreate]:
    """Materialise the template against an opening day.

    start = open_date + offset_days, end = start + duration_days - 1, both at
    midnight. Deterministic for a given (open_date, use_well_water).
    """
    anchor = _anchor(open_date)
    generated: List[TaskCreate] = []
    for entry in template_entries(use_well_water):
        start = anchor + timedelta(days=entry.offset_days)
        end = start + timedelta(days=entry.duration_days - 1)
        generated.append(TaskCreate(
            name=entry.name,
            start_date=start,
            end_date=end,
            category=entry.category,
            duration=entry.duration_days,
            is_hidden=entry.is_hidden,
            sub_tasks=_build_sub_tasks(entry),
        ))
    return generated
