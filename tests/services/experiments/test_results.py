import pytest

from bucketlab.core.exceptions import InvalidEventCounts, NoControlDefined
from bucketlab.services.experiments.assignment import VariationConfig
from bucketlab.services.experiments.results import (
    ExperimentConfig,
    VariationCounts,
    aggregate_results,
    find_best_challenger,
)


def make_experiment(*variations):
    return ExperimentConfig(
        id="exp1",
        name="Checkout button",
        status="running",
        traffic_allocation=100,
        variations=tuple(variations),
    )


CONTROL = VariationConfig(id="ctl", name="control", weight=1, is_control=True)
GREEN = VariationConfig(id="green", name="green", weight=1)
BLUE = VariationConfig(id="blue", name="blue", weight=1)


class TestAggregateResults:
    def test_challenger_wins(self):
        results = aggregate_results(
            make_experiment(CONTROL, GREEN),
            {
                "ctl": VariationCounts(total_users=1000, conversions=100),
                "green": VariationCounts(total_users=1000, conversions=130),
            },
        )

        assert results.winner == "green"
        assert results.sample_size == 2000
        assert results.statistical_significance.is_significant
        assert results.statistical_significance.p_value < 0.05
        assert results.relative_lift == pytest.approx(30.0)
        assert results.sufficient_sample is True

    def test_small_samples_never_significant(self):
        results = aggregate_results(
            make_experiment(CONTROL, GREEN),
            {
                "ctl": VariationCounts(total_users=50, conversions=5),
                "green": VariationCounts(total_users=50, conversions=8),
            },
        )

        assert results.statistical_significance.is_significant is False
        assert results.statistical_significance.p_value == 1.0
        assert results.winner is None
        assert results.sample_size == 100
        assert results.sufficient_sample is False

    def test_no_winner_when_control_is_better(self):
        results = aggregate_results(
            make_experiment(CONTROL, GREEN),
            {
                "ctl": VariationCounts(total_users=1000, conversions=130),
                "green": VariationCounts(total_users=1000, conversions=100),
            },
        )

        assert results.statistical_significance.is_significant
        assert results.winner is None

    def test_confidence_level_applies_to_test_and_intervals(self):
        counts = {
            "ctl": VariationCounts(total_users=1000, conversions=100),
            "green": VariationCounts(total_users=1000, conversions=130),
        }
        at_95 = aggregate_results(make_experiment(CONTROL, GREEN), counts)
        at_99 = aggregate_results(make_experiment(CONTROL, GREEN), counts, confidence_level=0.99)

        assert at_99.winner is None
        assert at_99.statistical_significance.confidence_level == 0.99
        ci_95 = at_95.variations[0].confidence_interval
        ci_99 = at_99.variations[0].confidence_interval
        assert ci_99.upper - ci_99.lower > ci_95.upper - ci_95.lower

    def test_metrics_in_definition_order(self):
        results = aggregate_results(
            make_experiment(CONTROL, GREEN, BLUE),
            {
                "ctl": VariationCounts(total_users=200, conversions=20),
                "green": VariationCounts(total_users=200, conversions=30),
                "blue": VariationCounts(total_users=200, conversions=40),
            },
        )

        assert [m.variation_id for m in results.variations] == ["ctl", "green", "blue"]
        control = results.variations[0]
        assert control.is_control
        assert control.conversion_rate == pytest.approx(0.10)
        assert control.confidence_interval.lower < 0.10 < control.confidence_interval.upper

    def test_best_challenger_is_compared(self):
        results = aggregate_results(
            make_experiment(CONTROL, GREEN, BLUE),
            {
                "ctl": VariationCounts(total_users=1000, conversions=100),
                "green": VariationCounts(total_users=1000, conversions=105),
                "blue": VariationCounts(total_users=1000, conversions=140),
            },
        )

        assert results.winner == "blue"
        assert results.relative_lift == pytest.approx(40.0)

    def test_missing_counts_are_zero(self):
        results = aggregate_results(
            make_experiment(CONTROL, GREEN),
            {"ctl": VariationCounts(total_users=10, conversions=1)},
        )

        green = results.variations[1]
        assert green.total_users == 0
        assert green.conversion_rate == 0.0
        assert (green.confidence_interval.lower, green.confidence_interval.upper) == (0.0, 0.0)
        assert results.sample_size == 10

    def test_only_control_has_no_significance(self):
        results = aggregate_results(
            make_experiment(CONTROL),
            {"ctl": VariationCounts(total_users=500, conversions=50)},
        )

        assert results.statistical_significance is None
        assert results.winner is None
        assert results.relative_lift is None

    def test_report_carries_experiment_identity(self):
        results = aggregate_results(make_experiment(CONTROL, GREEN), {})
        assert results.experiment_id == "exp1"
        assert results.experiment_name == "Checkout button"
        assert results.status == "running"


class TestControlValidation:
    def test_no_control(self):
        with pytest.raises(NoControlDefined):
            aggregate_results(make_experiment(GREEN, BLUE), {})

    def test_two_controls(self):
        other_control = VariationConfig(id="ctl2", name="control 2", weight=1, is_control=True)
        with pytest.raises(NoControlDefined) as exc_info:
            aggregate_results(make_experiment(CONTROL, other_control), {})
        assert exc_info.value.control_count == 2


class TestCountValidation:
    def test_more_converters_than_users(self):
        with pytest.raises(InvalidEventCounts):
            aggregate_results(
                make_experiment(CONTROL, GREEN),
                {"ctl": VariationCounts(total_users=10, conversions=11)},
            )

    def test_negative_counts(self):
        with pytest.raises(InvalidEventCounts):
            aggregate_results(
                make_experiment(CONTROL, GREEN),
                {"green": VariationCounts(total_users=-1, conversions=0)},
            )


class TestBestChallenger:
    def test_ties_go_to_first_defined(self):
        results = aggregate_results(
            make_experiment(CONTROL, GREEN, BLUE),
            {
                "ctl": VariationCounts(total_users=100, conversions=10),
                "green": VariationCounts(total_users=100, conversions=20),
                "blue": VariationCounts(total_users=200, conversions=40),
            },
        )
        assert find_best_challenger(results.variations).variation_id == "green"


class TestSufficientSample:
    def test_every_variation_needs_recommended_users(self):
        results = aggregate_results(
            make_experiment(CONTROL, GREEN, BLUE),
            {
                "ctl": VariationCounts(total_users=5000, conversions=500),
                "green": VariationCounts(total_users=5000, conversions=700),
                "blue": VariationCounts(total_users=99, conversions=10),
            },
        )

        assert results.sufficient_sample is False
        # Advisory only, the significant challenger still wins
        assert results.winner == "green"

    def test_boundary_is_inclusive(self):
        results = aggregate_results(
            make_experiment(CONTROL, GREEN),
            {
                "ctl": VariationCounts(total_users=100, conversions=10),
                "green": VariationCounts(total_users=100, conversions=12),
            },
        )
        assert results.sufficient_sample is True
