import numpy as np
import pandas as pd
import pytest
from scipy import stats

from netbooks.data_processing import normalize_counts
from netbooks.differential import (
    DifferentialScorePipeline,
    RESULT_COLUMNS,
    adjust_pvalues,
    compare_groups,
    run_differential,
    top_table,
)
from netbooks.exceptions import DesignError, SampleAlignmentError


@pytest.fixture
def log_data(count_data):
    counts, metadata = count_data
    return normalize_counts(counts, method="log2cpm"), metadata


def test_output_has_one_row_per_feature(log_data):
    matrix, metadata = log_data
    table = run_differential(matrix, metadata, "group")
    assert list(table.columns) == RESULT_COLUMNS
    assert len(table) == matrix.shape[0]
    assert set(table["feature"]) == set(matrix.index)
    assert table["rank"].tolist() == list(range(1, len(table) + 1))


def test_ranked_by_absolute_effect_size(log_data):
    matrix, metadata = log_data
    table = run_differential(matrix, metadata, "group")
    assert table["effect_size"].abs().is_monotonic_decreasing
    # the five up-regulated genes lead the table
    assert set(table["feature"].head(5)) == {f"G{i}" for i in range(5)}
    assert (table["effect_size"].head(5) > 1.0).all()
    assert (table["adj_p_value"].head(5) < 0.05).all()


def test_adjusted_pvalues_follow_raw_pvalue_order(log_data):
    matrix, metadata = log_data
    table = run_differential(matrix, metadata, "group", covariates=["age"])
    by_p = table.sort_values("p_value")
    assert by_p["adj_p_value"].is_monotonic_increasing
    assert (table["adj_p_value"] >= table["p_value"]).all()


def test_unmoderated_matches_student_t_test(log_data):
    matrix, metadata = log_data
    table = run_differential(matrix, metadata, "group", moderated=False).set_index("feature")
    tumor = matrix.loc[:, metadata["group"] == "tumor"]
    normal = matrix.loc[:, metadata["group"] == "normal"]
    t_stat, p_values = stats.ttest_ind(tumor, normal, axis=1)
    assert table.loc[matrix.index, "t_statistic"].to_numpy() == pytest.approx(t_stat)
    assert table.loc[matrix.index, "p_value"].to_numpy() == pytest.approx(p_values)
    assert table["df"].iloc[0] == 10


def test_moderated_statistics_share_effects_with_plain_fit(log_data):
    matrix, metadata = log_data
    moderated = run_differential(matrix, metadata, "group").set_index("feature")
    plain = run_differential(matrix, metadata, "group", moderated=False).set_index("feature")
    assert moderated.loc[matrix.index, "effect_size"].to_numpy() == pytest.approx(
        plain.loc[matrix.index, "effect_size"].to_numpy()
    )
    # prior degrees of freedom are added to the residual ones, capped at the pooled total
    assert (moderated["df"] >= 10).all()
    assert (moderated["df"] <= 10 * len(matrix)).all()
    expected_t = moderated["effect_size"] / moderated["std_error"]
    assert moderated["t_statistic"].to_numpy() == pytest.approx(expected_t.to_numpy())


def test_reference_level_flips_sign(log_data):
    matrix, metadata = log_data
    default = run_differential(matrix, metadata, "group").set_index("feature")
    flipped = run_differential(matrix, metadata, "group", reference="tumor").set_index("feature")
    assert flipped.loc["G0", "effect_size"] == pytest.approx(-default.loc["G0", "effect_size"])
    assert flipped.loc["G0", "p_value"] == pytest.approx(default.loc["G0", "p_value"])


@pytest.fixture
def three_levels():
    rng = np.random.default_rng(5)
    samples = [f"S{i}" for i in range(15)]
    levels = ["a"] * 5 + ["b"] * 5 + ["c"] * 5
    means = {"a": 0.0, "b": 1.0, "c": 3.0}
    matrix = pd.DataFrame(
        [[means[lv] + rng.normal(0, 0.1) for lv in levels] for _ in range(8)],
        index=[f"F{i}" for i in range(8)],
        columns=samples,
    )
    metadata = pd.DataFrame({"subtype": levels}, index=samples)
    return matrix, metadata


def test_contrast_between_non_reference_levels(three_levels):
    matrix, metadata = three_levels
    table = run_differential(matrix, metadata, "subtype", contrast=("c", "b"))
    assert table["effect_size"].to_numpy() == pytest.approx(np.full(8, 2.0), abs=0.2)

    pipeline = DifferentialScorePipeline("subtype").fit(matrix, metadata)
    by_level = pipeline.test("c")
    assert by_level["effect_size"].mean() == pytest.approx(3.0, abs=0.2)
    with pytest.raises(ValueError):
        pipeline.test(("c", "z"))
    with pytest.raises(ValueError):
        pipeline.test("not_a_coefficient")


def test_moderated_contrast_equals_releveled_model(three_levels):
    matrix, metadata = three_levels
    by_contrast = run_differential(matrix, metadata, "subtype", contrast=("c", "b")).set_index("feature")
    releveled = run_differential(matrix, metadata, "subtype", reference="b", contrast="c").set_index("feature")
    for column in ["effect_size", "std_error", "t_statistic", "p_value"]:
        assert by_contrast.loc[matrix.index, column].to_numpy() == pytest.approx(
            releveled.loc[matrix.index, column].to_numpy()
        )


def test_numeric_group_estimates_slope():
    samples = [f"S{i}" for i in range(10)]
    age = np.linspace(30, 75, 10)
    rng = np.random.default_rng(7)
    matrix = pd.DataFrame(
        [0.1 * age + rng.normal(0, 0.05, 10), rng.normal(0, 1, 10)],
        index=["slope", "noise"],
        columns=samples,
    )
    metadata = pd.DataFrame({"age": age}, index=samples)
    table = run_differential(matrix, metadata, "age", moderated=False).set_index("feature")
    assert table.loc["slope", "effect_size"] == pytest.approx(0.1, abs=0.01)
    assert table.loc["slope", "p_value"] < 1e-6


def test_categorical_covariate_and_missing_design_values(log_data):
    matrix, metadata = log_data
    metadata = metadata.copy()
    metadata.loc["S00", "sex"] = np.nan
    pipeline = DifferentialScorePipeline("group", covariates=["sex"])
    pipeline.fit(matrix, metadata)
    assert "S00" not in pipeline.design.index
    assert list(pipeline.design.columns) == ["Intercept", "group[tumor]", "sex[male]"]
    table = pipeline.test()
    assert len(table) == matrix.shape[0]


def test_design_errors(log_data):
    matrix, metadata = log_data
    single = metadata.assign(group="tumor")
    with pytest.raises(DesignError):
        run_differential(matrix, single, "group")
    with pytest.raises(DesignError):
        run_differential(matrix, metadata, "group", reference="missing")
    with pytest.raises(DesignError):
        run_differential(matrix, metadata, "not_a_column")
    # covariate identical to the group makes the design rank deficient
    confounded = metadata.assign(batch=metadata["group"].map({"normal": "b1", "tumor": "b2"}))
    with pytest.raises(DesignError):
        run_differential(matrix, confounded, "group", covariates=["batch"])


def test_group_repeated_as_covariate_is_rejected(log_data):
    matrix, metadata = log_data
    with pytest.raises(DesignError):
        run_differential(matrix, metadata, "group", covariates=["group"])
    with pytest.raises(DesignError):
        run_differential(matrix, metadata, "group", covariates=["sex", "sex"])


def test_numeric_group_rejects_reference_level(log_data):
    matrix, metadata = log_data
    with pytest.raises(DesignError):
        run_differential(matrix, metadata, "age", reference="40")


def test_fit_requires_aligned_samples(log_data):
    matrix, metadata = log_data
    with pytest.raises(SampleAlignmentError):
        DifferentialScorePipeline("group").fit(matrix, metadata.iloc[::-1])
    with pytest.raises(SampleAlignmentError):
        run_differential(matrix, metadata.iloc[1:], "group")
    table = run_differential(matrix, metadata.iloc[1:], "group", how="intersect")
    assert len(table) == matrix.shape[0]


def test_missing_values_in_matrix_raise(log_data):
    matrix, metadata = log_data
    matrix = matrix.copy()
    matrix.iloc[0, 0] = np.nan
    with pytest.raises(ValueError):
        run_differential(matrix, metadata, "group")


def test_top_table_filters(log_data):
    matrix, metadata = log_data
    table = run_differential(matrix, metadata, "group")
    top = top_table(table, n=3)
    assert len(top) == 3
    significant = top_table(table, adj_p_threshold=0.05)
    assert (significant["adj_p_value"] < 0.05).all()


def test_adjust_pvalues_keeps_missing():
    adjusted = adjust_pvalues([0.01, np.nan, 0.04, 0.03])
    assert np.isnan(adjusted[1])
    assert adjusted[[0, 2, 3]] == pytest.approx([0.03, 0.04, 0.04])


def test_compare_groups(log_data):
    matrix, metadata = log_data
    table = compare_groups(matrix, metadata["group"])
    assert len(table) == matrix.shape[0]
    assert set(table["feature"].head(5)) == {f"G{i}" for i in range(5)}
    mw = compare_groups(matrix, metadata["group"], test="mann-whitney")
    assert mw.set_index("feature").loc["G0", "p_value"] < 0.01
    with pytest.raises(ValueError):
        compare_groups(matrix, metadata["sex"].where(metadata["sex"] == "male"), test="t-test")
    with pytest.raises(ValueError):
        compare_groups(matrix, metadata["group"], test="anova")
