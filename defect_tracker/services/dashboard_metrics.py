"""
Dashboard Metrics: project health indicators over active defects.

Every metric is recomputed from current rows on each request; nothing is
stored or cached. Empty projects yield zero-valued metrics, never errors.

Pure helpers (no DB):
    severity_weight, compute_dsi, dsi_interpretation, remark_ratio,
    remark_category, defect_density, project_card_color

Query-backed (raise NotFoundError for a missing project):
    get_dsi, get_severity_summary, get_remark_ratio, get_defect_density,
    get_reopen_count, get_project_card_color, get_defect_types,
    get_defects_by_module
"""

import logging

from sqlalchemy import func

from defect_tracker.models import db
from defect_tracker.models.defect import Comment, Defect, DefectStatus, DefectType, Severity
from defect_tracker.models.project import Module
from defect_tracker.services.authorization import get_active_project

logger = logging.getLogger(__name__)


# ═════════════════════════════════════════════════════════════════════════════
# CONSTANT TABLES
# ═════════════════════════════════════════════════════════════════════════════

# Keyed by Severity.code (falls back to the lower-cased name).
SEVERITY_WEIGHTS = {"high": 3, "medium": 2, "low": 1}
DEFAULT_SEVERITY_WEIGHT = 1
MAX_SEVERITY_WEIGHT = max(SEVERITY_WEIGHTS.values())

SUMMARY_SEVERITIES = ("high", "medium", "low")

# (lower bound inclusive, label), highest band first
DSI_RISK_BANDS = (
    (67, "High Risk"),
    (34, "Medium Risk"),
    (0, "Low Risk"),
)

# (lower bound inclusive, category, color). "High" maps to blue on purpose.
REMARK_RATIO_CATEGORIES = (
    (60, "High", "blue"),
    (30, "Medium", "yellow"),
    (0, "Low", "green"),
)

PROJECT_CARD_COLORS = (
    (67, "bg-gradient-to-r from-red-600 to-red-800"),
    (34, "bg-gradient-to-r from-amber-500 to-amber-700"),
    (0, "bg-gradient-to-r from-emerald-600 to-emerald-800"),
)

REOPEN_PATTERN = "%reopen%"


# ═════════════════════════════════════════════════════════════════════════════
# PURE HELPERS
# ═════════════════════════════════════════════════════════════════════════════

def _band(value, table):
    """First row of ``table`` whose lower bound ``value`` reaches."""
    for row in table:
        if value >= row[0]:
            return row
    return table[-1]


def _format_pct(value) -> str:
    text = f"{value:.2f}".rstrip("0").rstrip(".")
    return f"{text}%"


def severity_weight(key: str | None) -> int:
    """Weight for a severity key; unknown keys weigh the same as low."""
    return SEVERITY_WEIGHTS.get((key or "").strip().lower(), DEFAULT_SEVERITY_WEIGHT)


def compute_dsi(counts: dict[str, int]) -> dict:
    """Defect Severity Index from ``{severity_key: defect_count}``.

    ``dsiPercentage = round(weighted / (total * 3) * 100, 2)``, 0 when empty.
    """
    total = 0
    weighted = 0
    for key, count in counts.items():
        count = int(count or 0)
        total += count
        weighted += count * severity_weight(key)
    max_score = total * MAX_SEVERITY_WEIGHT
    pct = round(weighted / max_score * 100, 2) if max_score > 0 else 0
    return {
        "dsiPercentage": pct,
        "interpretation": dsi_interpretation(pct),
        "totalDefects": total,
        "weightedScore": weighted,
        "maxScore": max_score,
    }


def dsi_interpretation(pct) -> str:
    return _band(pct, DSI_RISK_BANDS)[1]


def remark_ratio(total_comments: int, total_defects: int):
    return round(total_comments / total_defects * 100, 2) if total_defects > 0 else 0


def remark_category(ratio) -> tuple[str, str]:
    """(category, color) for a remark ratio percentage."""
    _, category, color = _band(ratio, REMARK_RATIO_CATEGORIES)
    return category, color


def defect_density(total_defects: int, total_modules: int):
    """Defects per active module, or the raw defect count with no modules."""
    if total_modules > 0:
        return round(total_defects / total_modules, 2)
    return total_defects


def project_card_color(dsi_pct) -> str:
    return _band(dsi_pct, PROJECT_CARD_COLORS)[1]


# ═════════════════════════════════════════════════════════════════════════════
# QUERIES
# ═════════════════════════════════════════════════════════════════════════════

def _active_defects(project_id: int):
    return db.session.query(Defect).filter(
        Defect.project_id == project_id,
        Defect.is_active.is_(True),
    )


def _count_by_severity(project_id: int) -> dict[str, int]:
    rows = (
        db.session.query(Severity.code, Severity.name, func.count(Defect.id))
        .join(Defect, Defect.severity_id == Severity.id)
        .filter(Defect.project_id == project_id, Defect.is_active.is_(True))
        .group_by(Severity.id, Severity.code, Severity.name)
        .all()
    )
    counts: dict[str, int] = {}
    for code, name, count in rows:
        key = (code or name or "").strip().lower()
        counts[key] = counts.get(key, 0) + count
    return counts


def get_dsi(project_id: int) -> dict:
    get_active_project(project_id)
    return compute_dsi(_count_by_severity(project_id))


def get_severity_summary(project_id: int) -> dict:
    """Per-severity totals with a status breakdown; always high/medium/low."""
    get_active_project(project_id)
    rows = (
        db.session.query(
            Severity.code, Severity.name, DefectStatus.name, func.count(Defect.id),
        )
        .join(Severity, Defect.severity_id == Severity.id)
        .join(DefectStatus, Defect.defect_status_id == DefectStatus.id)
        .filter(Defect.project_id == project_id, Defect.is_active.is_(True))
        .group_by(Severity.id, Severity.code, Severity.name, DefectStatus.id, DefectStatus.name)
        .all()
    )

    by_severity: dict[str, dict] = {}
    total = 0
    for code, sev_name, status_name, count in rows:
        key = (code or sev_name or "").strip().lower()
        bucket = by_severity.setdefault(key, {"totalDefects": 0, "statuses": {}})
        bucket["totalDefects"] += count
        status_name = status_name or "Unknown"
        bucket["statuses"][status_name] = bucket["statuses"].get(status_name, 0) + count
        total += count

    summary = [
        {
            "severity": key,
            "totalDefects": by_severity.get(key, {}).get("totalDefects", 0),
            "statuses": by_severity.get(key, {}).get("statuses", {}),
        }
        for key in SUMMARY_SEVERITIES
    ]
    return {"projectId": project_id, "totalDefects": total, "defectSummary": summary}


def get_remark_ratio(project_id: int) -> dict:
    get_active_project(project_id)
    total_defects = _active_defects(project_id).count()
    total_comments = (
        db.session.query(func.count(Comment.id))
        .join(Defect, Comment.defect_id == Defect.id)
        .filter(
            Defect.project_id == project_id,
            Defect.is_active.is_(True),
            Comment.is_active.is_(True),
        )
        .scalar()
    ) or 0
    ratio = remark_ratio(total_comments, total_defects)
    category, color = remark_category(ratio)
    return {
        "ratio": _format_pct(ratio),
        "ratioValue": ratio,
        "category": category,
        "color": color,
        "totals": {"defects": total_defects, "remarks": total_comments},
    }


def get_defect_density(project_id: int) -> dict:
    get_active_project(project_id)
    total_defects = _active_defects(project_id).count()
    total_modules = Module.query.filter(
        Module.project_id == project_id, Module.is_active.is_(True),
    ).count()
    return {
        "defectDensity": defect_density(total_defects, total_modules),
        "totals": {"defects": total_defects, "modules": total_modules},
    }


def get_reopen_count(project_id: int) -> dict:
    get_active_project(project_id)
    count = (
        _active_defects(project_id)
        .join(DefectStatus, Defect.defect_status_id == DefectStatus.id)
        .filter(func.lower(DefectStatus.name).like(REOPEN_PATTERN))
        .count()
    )
    return {"reopenCount": count}


def get_project_card_color(project_id: int) -> dict:
    pct = get_dsi(project_id)["dsiPercentage"]
    return {"projectCardColor": project_card_color(pct), "basis": {"dsiPercentage": pct}}


def get_defect_types(project_id: int) -> dict:
    get_active_project(project_id)
    rows = (
        db.session.query(DefectType.id, DefectType.name, func.count(Defect.id))
        .join(Defect, Defect.type_id == DefectType.id)
        .filter(Defect.project_id == project_id, Defect.is_active.is_(True))
        .group_by(DefectType.id, DefectType.name)
        .order_by(DefectType.name)
        .all()
    )
    return {"defectTypes": [{"id": tid, "name": name, "count": count} for tid, name, count in rows]}


def get_defects_by_module(project_id: int) -> dict:
    get_active_project(project_id)
    rows = (
        db.session.query(Defect.module_id, Module.name, func.count(Defect.id))
        .outerjoin(Module, Defect.module_id == Module.id)
        .filter(Defect.project_id == project_id, Defect.is_active.is_(True))
        .group_by(Defect.module_id, Module.name)
        .order_by(Module.name)
        .all()
    )
    return {
        "modules": [
            {"id": mid, "module": name or "Unassigned", "defects": count}
            for mid, name, count in rows
        ]
    }
