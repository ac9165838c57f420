from datetime import date, datetime, timezone
from types import SimpleNamespace

from src.schemas.dashboard import ActivityStats, AssessmentStats, DashboardSummary, UserStats
from src.services.assessments import calculate_score
from src.services.dashboard import build_trend, classify_system_status, week_start
from src.services.jobs import previous_week
from src.services.report_generator import activity_volume_label, average_ocean_scores, build_executive_summary


def _at(day: int, month: int = 1) -> datetime:
    return datetime(2024, month, day, 12, tzinfo=timezone.utc)


def _summary(engagement: float, completion: float, activities: int = 12) -> DashboardSummary:
    return DashboardSummary(
        organization_id="00000000-0000-0000-0000-000000000001",
        period_start=_at(1),
        period_end=_at(8),
        user_stats=UserStats(total_users=10, active_users=5, engagement_rate=engagement),
        assessment_stats=AssessmentStats(
            total_assessments=10, completed_assessments=5, recent_assessments=2, completion_rate=completion
        ),
        activity_stats=ActivityStats(total_activities=activities, active_users_period=4, avg_session_duration=30.0),
    )


class TestTrend:
    def test_week_start_is_monday(self):
        # 2024-01-10 is a Wednesday
        assert week_start(_at(10)) == date(2024, 1, 8)
        assert week_start(date(2024, 1, 8)) == date(2024, 1, 8)

    def test_single_week_is_insufficient(self):
        points, overall = build_trend([(_at(8), 10.0), (_at(9), 20.0)])
        assert overall == "insufficient_data"
        assert len(points) == 1
        assert points[0].value == 15.0
        assert points[0].data_points == 2
        assert points[0].change_percentage == 0.0

    def test_positive_trend(self):
        points, overall = build_trend([(_at(1), 10.0), (_at(8), 12.0), (_at(15), 15.0)])
        assert [p.week_start for p in points] == [date(2024, 1, 1), date(2024, 1, 8), date(2024, 1, 15)]
        assert points[1].previous_value == 10.0
        assert points[1].change_percentage == 20.0
        assert points[2].change_percentage == 25.0
        assert overall == "positive"

    def test_negative_trend(self):
        _, overall = build_trend([(_at(1), 100.0), (_at(8), 80.0)])
        assert overall == "negative"

    def test_stable_trend(self):
        _, overall = build_trend([(_at(1), 100.0), (_at(8), 103.0), (_at(15), 101.0)])
        assert overall == "stable"

    def test_first_week_counts_in_the_average_change(self):
        points, overall = build_trend([(_at(1), 100.0), (_at(8), 108.0)])
        assert [p.change_percentage for p in points] == [0.0, 8.0]
        assert overall == "stable"

    def test_keeps_latest_periods(self):
        points, _ = build_trend([(_at(1), 1.0), (_at(8), 2.0), (_at(15), 3.0)], periods=2)
        assert [p.week_start for p in points] == [date(2024, 1, 8), date(2024, 1, 15)]
        assert points[0].previous_value is None

    def test_samples_out_of_order_are_grouped(self):
        points, _ = build_trend([(_at(15), 4.0), (_at(1), 2.0), (_at(16), 6.0)])
        assert [p.value for p in points] == [2.0, 5.0]


class TestSystemStatus:
    def test_healthy(self):
        assert classify_system_status(120, 0.0) == "healthy"

    def test_warning_thresholds(self):
        assert classify_system_status(501, 0.0) == "warning"
        assert classify_system_status(100, 0.02) == "warning"

    def test_degraded_thresholds(self):
        assert classify_system_status(1001, 0.0) == "degraded"
        assert classify_system_status(100, 0.06) == "degraded"

    def test_boundaries_are_exclusive(self):
        assert classify_system_status(500, 0.01) == "healthy"
        assert classify_system_status(1000, 0.05) == "warning"


class TestScore:
    questions = [
        {"id": "q1", "text": "A", "correct_answer": "a"},
        {"id": "q2", "text": "B", "correct_answer": 2},
        {"id": "q3", "text": "C", "correct_answer": True},
        {"id": "q4", "text": "Open question"},
    ]

    def test_percentage_of_correct_answers(self):
        responses = [
            {"question_id": "q1", "value": "a"},
            {"question_id": "q2", "value": 3},
            {"question_id": "q3", "value": True},
        ]
        assert calculate_score(responses, self.questions) == 50.0

    def test_no_questions_scores_zero(self):
        assert calculate_score([{"question_id": "q1", "value": "a"}], []) == 0.0

    def test_unanswered_questions_count_as_wrong(self):
        assert calculate_score([], self.questions) == 0.0


class TestExecutiveSummary:
    def test_excellent_and_outstanding(self):
        text = build_executive_summary(_summary(75.0, 85.0, 30), date(2024, 1, 1), date(2024, 1, 7), "positive")
        assert text.startswith("This weekly report covers the period from 2024-01-01 to 2024-01-07.")
        assert "Excellent user engagement with 75.0% of users active" in text
        assert "Outstanding assessment completion rate of 85.0%." in text
        assert "A total of 30 user activities were recorded" in text
        assert text.endswith("User engagement shows a positive trend.")

    def test_good_and_solid(self):
        text = build_executive_summary(_summary(50.0, 65.0), date(2024, 1, 1), date(2024, 1, 7))
        assert "Good user engagement with 50.0%" in text
        assert "Solid assessment completion rate of 65.0%." in text
        assert "trend" not in text

    def test_needs_attention(self):
        text = build_executive_summary(_summary(40.0, 60.0), date(2024, 1, 1), date(2024, 1, 7), "negative")
        assert "User engagement needs attention with only 40.0%" in text
        assert "Assessment completion rate of 60.0% indicates room for improvement." in text
        assert "declining trend that requires attention" in text


class TestOceanAverages:
    def test_mean_per_trait_ignores_missing_values(self):
        rows = [
            SimpleNamespace(ocean_scores={"openness": 70, "conscientiousness": 60}),
            SimpleNamespace(ocean_scores={"openness": 80}),
            SimpleNamespace(ocean_scores={}),
        ]
        assert average_ocean_scores(rows) == {"openness": 75.0, "conscientiousness": 60.0}

    def test_empty(self):
        assert average_ocean_scores([]) == {}


def test_activity_volume_label():
    assert activity_volume_label(51) == "high"
    assert activity_volume_label(50) == "moderate"
    assert activity_volume_label(21) == "moderate"
    assert activity_volume_label(20) == "low"


def test_previous_week_is_monday_to_sunday():
    # Wednesday 2024-01-17 -> week of 2024-01-08
    assert previous_week(date(2024, 1, 17)) == (date(2024, 1, 8), date(2024, 1, 14))
    assert previous_week(date(2024, 1, 15)) == (date(2024, 1, 8), date(2024, 1, 14))
