"""DuplicateScorer 单元测试

测试内容：
1. 各分量计算规则
2. 同一外部记录零分
3. 对称性与取值范围
4. 置信度分档与配置覆盖
"""

from datetime import UTC, datetime, timedelta

import pytest
from syntask.core.models import Confidence, TaskPriority, TaskSourceType
from syntask.dedup import DuplicateDetectionConfig, DuplicateScorer, calculate_duplicate_score
from syntask.dedup.scorer import (
    assignee_match,
    classify_confidence,
    description_similarity,
    extract_assignee,
    priority_match,
    temporal_proximity,
    title_similarity,
)

T0 = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)

LONG_A = (
    "The nightly billing export fails when the upstream ledger service times out "
    "and the retry queue fills up before the export window closes."
)
LONG_B = (
    "Nightly billing export is failing because the ledger service times out; "
    "the retry queue fills up before the export window closes each night."
)


class TestTitleSimilarity:
    def test_normalized_exact_match(self):
        assert title_similarity("Fix bug!", "  fix   BUG ") == 1.0

    def test_empty_title_zero(self):
        assert title_similarity("", "Fix bug") == 0.0

    def test_takes_max_of_measures(self):
        score = title_similarity("Update firewall rules", "Update firewal rule")
        assert 0.8 < score < 1.0


class TestDescriptionSimilarity:
    def test_both_empty_identical(self):
        assert description_similarity(None, "") == 1.0

    def test_one_empty(self):
        assert description_similarity("something", None) == 0.0

    def test_short_descriptions_use_edit_distance(self):
        assert description_similarity("Call vendor.", "call vendor") == 1.0

    def test_long_descriptions_use_cosine(self):
        assert len(LONG_A) >= 100
        score = description_similarity(LONG_A, LONG_B)
        assert 0.5 < score <= 1.0


class TestTemporalProximity:
    def test_created_only(self, make_task):
        """缺少截止时间时只有创建时间分量"""
        t1 = make_task(created_at=T0)
        t2 = make_task(created_at=T0 + timedelta(days=3.5))
        assert temporal_proximity(t1, t2, 7) == pytest.approx(0.35)

    def test_with_due_dates(self, make_task):
        t1 = make_task(created_at=T0, due_date=T0 + timedelta(days=5))
        t2 = make_task(created_at=T0, due_date=T0 + timedelta(days=5))
        assert temporal_proximity(t1, t2, 7) == pytest.approx(1.0)

    def test_far_apart_is_zero(self, make_task):
        t1 = make_task(created_at=T0)
        t2 = make_task(created_at=T0 + timedelta(days=30))
        assert temporal_proximity(t1, t2, 7) == 0.0

    def test_naive_datetime_treated_as_utc(self, make_task):
        t1 = make_task(created_at=datetime(2024, 1, 1, 9, 0))
        t2 = make_task(created_at=T0)
        assert temporal_proximity(t1, t2, 7) == pytest.approx(0.7)


class TestAssigneeAndPriority:
    def test_connectwise_prefers_assigned_to(self, make_task):
        task = make_task(
            source=TaskSourceType.CONNECTWISE,
            connectwise_owner="owner",
            connectwise_assigned_to="assignee",
        )
        assert extract_assignee(task) == "assignee"

    def test_connectwise_falls_back_to_owner(self, make_task):
        task = make_task(source=TaskSourceType.CONNECTWISE, connectwise_owner="owner")
        assert extract_assignee(task) == "owner"

    def test_microsoft_has_no_assignee(self, make_task):
        task = make_task(source=TaskSourceType.MICROSOFT, processplan_assigned_to="ignored")
        assert extract_assignee(task) is None

    def test_cross_source_case_insensitive(self, make_task):
        t1 = make_task(source=TaskSourceType.CONNECTWISE, connectwise_assigned_to="Alice")
        t2 = make_task(source=TaskSourceType.PROCESSPLAN, processplan_assigned_to="alice")
        assert assignee_match(t1, t2) == 1.0

    def test_missing_assignee_zero(self, make_task):
        t1 = make_task(source=TaskSourceType.CONNECTWISE, connectwise_assigned_to="Alice")
        t2 = make_task(source=TaskSourceType.MICROSOFT)
        assert assignee_match(t1, t2) == 0.0

    @pytest.mark.parametrize(
        "p1, p2, expected",
        [
            (None, None, 1.0),
            (TaskPriority.HIGH, None, 0.0),
            (TaskPriority.HIGH, TaskPriority.HIGH, 1.0),
            (TaskPriority.HIGH, TaskPriority.LOW, 0.0),
        ],
    )
    def test_priority_match(self, p1, p2, expected):
        assert priority_match(p1, p2) == expected


class TestDuplicateScore:
    def test_identical_cross_source_is_high(self, make_task):
        t1 = make_task(title="Renew SSL certificate", source=TaskSourceType.MICROSOFT)
        t2 = make_task(title="Renew SSL certificate", source=TaskSourceType.CONNECTWISE)

        score = calculate_duplicate_score(t1, t2)

        # 0.4 * 1 + 0.25 * 1 + 0.15 * 0.7 + 0.1 * 0 + 0.1 * 1
        assert score.overall_score == pytest.approx(0.855)
        assert score.confidence == Confidence.HIGH

    def test_same_external_record_zero(self, make_task):
        """同一 (source, external_id) 不构成重复对"""
        t1 = make_task(external_id="X-1", title="Same")
        t2 = make_task(external_id="X-1", title="Same")
        score = calculate_duplicate_score(t1, t2)
        assert score.overall_score == 0.0
        assert score.confidence == Confidence.LOW

    def test_symmetric(self, make_task):
        t1 = make_task(
            title="Replace laptop battery",
            description="Battery swollen",
            priority=TaskPriority.HIGH,
            source=TaskSourceType.CONNECTWISE,
            connectwise_owner="bob",
        )
        t2 = make_task(
            title="Laptop battery replacement",
            description="swollen battery on laptop",
            created_at=T0 + timedelta(days=2),
            source=TaskSourceType.PROCESSPLAN,
            processplan_assigned_to="Bobby",
        )
        forward = calculate_duplicate_score(t1, t2)
        backward = calculate_duplicate_score(t2, t1)
        assert forward.overall_score == pytest.approx(backward.overall_score)
        assert forward.confidence == backward.confidence

    def test_score_within_bounds(self, make_task):
        t1 = make_task(title="A", due_date=T0, priority=TaskPriority.LOW)
        t2 = make_task(title="A", due_date=T0, priority=TaskPriority.LOW)
        score = calculate_duplicate_score(t1, t2)
        assert 0.0 <= score.overall_score <= 1.0 + 1e-9

    def test_unrelated_is_low(self, make_task):
        t1 = make_task(
            title="Quarterly budget review", description="finance", priority=TaskPriority.HIGH
        )
        t2 = make_task(
            title="Printer jam on floor three",
            created_at=T0 + timedelta(days=30),
            priority=TaskPriority.LOW,
        )
        score = calculate_duplicate_score(t1, t2)
        assert score.confidence == Confidence.LOW

    def test_config_override_per_call(self, make_task):
        """单次调用可传入覆盖后的权重"""
        scorer = DuplicateScorer()
        config = DuplicateDetectionConfig(
            title_weight=1.0,
            description_weight=0.0,
            temporal_weight=0.0,
            assignee_weight=0.0,
            priority_weight=0.0,
        )
        t1 = make_task(title="Onboard new hire")
        t2 = make_task(title="Onboard new hire", created_at=T0 + timedelta(days=60))

        score = scorer.calculate_duplicate_score(t1, t2, config)
        assert score.overall_score == pytest.approx(1.0)
        assert scorer.config.title_weight == 0.40


class TestConfidence:
    @pytest.mark.parametrize(
        "overall, expected",
        [
            (0.75, Confidence.HIGH),
            (0.9, Confidence.HIGH),
            (0.6, Confidence.MEDIUM),
            (0.7499, Confidence.MEDIUM),
            (0.5999, Confidence.LOW),
        ],
    )
    def test_thresholds(self, overall, expected):
        assert classify_confidence(overall, DuplicateDetectionConfig()) == expected
