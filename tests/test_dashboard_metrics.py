"""
Dashboard metric tests: pure band/ratio helpers and the query-backed
metrics over seeded projects.
"""

import pytest

from defect_tracker.core.exceptions import NotFoundError
from defect_tracker.models import db
from defect_tracker.models.defect import Comment, DefectStatus
from defect_tracker.models.project import Module
from defect_tracker.services import dashboard_metrics as dm


# ═══════════════════════════════════════════════════════════════
# Pure helpers
# ═══════════════════════════════════════════════════════════════

class TestBands:
    @pytest.mark.parametrize("pct, expected", [
        (0, "Low Risk"),
        (33.99, "Low Risk"),
        (34, "Medium Risk"),
        (66.99, "Medium Risk"),
        (67, "High Risk"),
        (100, "High Risk"),
    ])
    def test_dsi_interpretation(self, pct, expected):
        assert dm.dsi_interpretation(pct) == expected

    @pytest.mark.parametrize("ratio, category, color", [
        (0, "Low", "green"),
        (29.99, "Low", "green"),
        (30, "Medium", "yellow"),
        (59.99, "Medium", "yellow"),
        (60, "High", "blue"),
        (250, "High", "blue"),
    ])
    def test_remark_category(self, ratio, category, color):
        assert dm.remark_category(ratio) == (category, color)

    def test_card_color_follows_dsi_bands(self):
        assert "emerald" in dm.project_card_color(0)
        assert "emerald" in dm.project_card_color(33.99)
        assert "amber" in dm.project_card_color(34)
        assert "red" in dm.project_card_color(67)


class TestComputeDsi:
    def test_empty_is_zero(self):
        result = dm.compute_dsi({})
        assert result["dsiPercentage"] == 0
        assert result["interpretation"] == "Low Risk"
        assert result["totalDefects"] == 0
        assert result["maxScore"] == 0

    def test_two_high_one_low(self):
        result = dm.compute_dsi({"high": 2, "low": 1})
        assert result["dsiPercentage"] == 77.78
        assert result["interpretation"] == "High Risk"
        assert result["weightedScore"] == 7
        assert result["maxScore"] == 9

    def test_all_low_is_floor(self):
        assert dm.compute_dsi({"low": 5})["dsiPercentage"] == 33.33

    def test_unknown_severity_weighs_as_low(self):
        assert dm.severity_weight("Critical") == 1
        assert dm.severity_weight(None) == 1
        assert dm.severity_weight(" HIGH ") == 3

    def test_adding_high_never_lowers_dsi(self):
        counts = {"medium": 3, "low": 2}
        before = dm.compute_dsi(counts)["dsiPercentage"]
        counts["high"] = 1
        assert dm.compute_dsi(counts)["dsiPercentage"] >= before


class TestRatiosAndDensity:
    def test_remark_ratio_without_defects(self):
        assert dm.remark_ratio(4, 0) == 0

    def test_remark_ratio_rounding(self):
        assert dm.remark_ratio(1, 3) == 33.33

    def test_density_with_modules(self):
        assert dm.defect_density(7, 2) == 3.5

    def test_density_without_modules_is_defect_count(self):
        assert dm.defect_density(7, 0) == 7


# ═══════════════════════════════════════════════════════════════
# Query-backed metrics
# ═══════════════════════════════════════════════════════════════

@pytest.fixture()
def project(make_user, make_project):
    return make_project(make_user("Olga", "Owner"))


class TestProjectMetrics:
    def test_empty_project_yields_zeroes(self, seeded, project):
        assert dm.get_dsi(project.id)["dsiPercentage"] == 0
        assert dm.get_reopen_count(project.id) == {"reopenCount": 0}
        ratio = dm.get_remark_ratio(project.id)
        assert ratio["ratio"] == "0%"
        assert ratio["ratioValue"] == 0
        assert ratio["category"] == "Low"

    def test_missing_project_raises(self, seeded):
        with pytest.raises(NotFoundError):
            dm.get_dsi(4242)

    def test_dsi_ignores_soft_deleted(self, seeded, project, make_defect):
        make_defect(project, severity="High")
        make_defect(project, severity="High")
        make_defect(project, severity="Low")
        make_defect(project, severity="Low", is_active=False)

        result = dm.get_dsi(project.id)
        assert result["dsiPercentage"] == 77.78
        assert result["totalDefects"] == 3

    def test_severity_summary_is_zero_filled(self, seeded, project, make_defect):
        make_defect(project, severity="High", status="New")
        make_defect(project, severity="High", status="Closed")

        result = dm.get_severity_summary(project.id)
        assert result["totalDefects"] == 2
        assert [row["severity"] for row in result["defectSummary"]] == ["high", "medium", "low"]
        high, medium, low = result["defectSummary"]
        assert high["totalDefects"] == 2
        assert high["statuses"] == {"New": 1, "Closed": 1}
        assert medium == {"severity": "medium", "totalDefects": 0, "statuses": {}}
        assert low["totalDefects"] == 0

    def test_remark_ratio_counts_active_comments(self, seeded, project, make_defect):
        first = make_defect(project)
        make_defect(project)
        author = project.user_id
        db.session.add_all([
            Comment(defect_id=first.id, user_id=author, comment="Repro on staging"),
            Comment(defect_id=first.id, user_id=author, comment="Hidden", is_active=False),
        ])
        db.session.commit()

        result = dm.get_remark_ratio(project.id)
        assert result["ratio"] == "50%"
        assert result["ratioValue"] == 50
        assert result["category"] == "Medium"
        assert result["color"] == "yellow"
        assert result["totals"] == {"defects": 2, "remarks": 1}

    def test_remark_ratio_strips_trailing_zeros(self, seeded, project, make_defect):
        defects = [make_defect(project) for _ in range(3)]
        db.session.add(Comment(defect_id=defects[0].id, user_id=project.user_id, comment="seen"))
        db.session.commit()

        assert dm.get_remark_ratio(project.id)["ratio"] == "33.33%"

    def test_density_with_and_without_modules(self, seeded, project, make_defect):
        for _ in range(3):
            make_defect(project)
        assert dm.get_defect_density(project.id)["defectDensity"] == 3

        db.session.add_all([
            Module(name="Cart", project_id=project.id),
            Module(name="Payments", project_id=project.id),
            Module(name="Legacy", project_id=project.id, is_active=False),
        ])
        db.session.commit()

        result = dm.get_defect_density(project.id)
        assert result["defectDensity"] == 1.5
        assert result["totals"] == {"defects": 3, "modules": 2}

    def test_reopen_count_matches_case_insensitive_substring(self, seeded, project, make_defect):
        db.session.add(DefectStatus(name="REOPEN-L2", order_sequence=7))
        db.session.commit()
        for status in ("Reopened", "REOPEN-L2", "Open", "Closed"):
            make_defect(project, status=status)

        assert dm.get_reopen_count(project.id) == {"reopenCount": 2}

    def test_card_color_tracks_dsi(self, seeded, project, make_defect):
        make_defect(project, severity="High")
        result = dm.get_project_card_color(project.id)
        assert result["basis"] == {"dsiPercentage": 100.0}
        assert "red" in result["projectCardColor"]

    def test_defect_types_and_modules(self, seeded, project, make_defect):
        cart = Module(name="Cart", project_id=project.id)
        db.session.add(cart)
        db.session.commit()
        make_defect(project, module_id=cart.id)
        make_defect(project, type_id=seeded.defect_type("UI").id)

        types = dm.get_defect_types(project.id)["defectTypes"]
        assert {t["name"]: t["count"] for t in types} == {"Functional": 1, "UI": 1}

        modules = dm.get_defects_by_module(project.id)["modules"]
        assert {m["module"]: m["defects"] for m in modules} == {"Cart": 1, "Unassigned": 1}
