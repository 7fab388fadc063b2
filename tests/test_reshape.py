import numpy as np
import pandas as pd
import pytest

from chrnb2_analysis.data.reshape import to_long, to_wide


def test_single_gene_round_trip():
    wide = pd.DataFrame({"gene": ["GeneA"], "cell_1": [1], "cell_2": [2]})

    long = to_long(wide, ["gene"], "cell", "umi")
    assert long.to_dict("list") == {"gene": ["GeneA", "GeneA"], "cell": ["cell_1", "cell_2"], "umi": [1, 2]}

    back = to_wide(long, ["gene"], "cell", "umi")
    pd.testing.assert_frame_equal(back, wide)


def test_long_order_is_row_major():
    wide = pd.DataFrame({"gene": ["GeneB", "GeneA"], "c2": [5, 6], "c1": [7, 8]})
    long = to_long(wide, ["gene"], "cell", "umi")

    assert long["gene"].tolist() == ["GeneB", "GeneB", "GeneA", "GeneA"]
    assert long["cell"].tolist() == ["c2", "c1", "c2", "c1"]
    assert long["umi"].tolist() == [5, 7, 6, 8]


def test_round_trip_keeps_unsorted_rows_and_columns():
    wide = pd.DataFrame(
        {
            "gene": ["Zfp1", "Chrnb2", "Actb"],
            "cell_9": [0.0, 1.5, np.nan],
            "cell_1": [2.0, 0.0, 4.0],
            "cell_5": [1.0, 3.0, 0.5],
        }
    )
    back = to_wide(to_long(wide, ["gene"], "cell", "value"), ["gene"], "cell", "value")
    pd.testing.assert_frame_equal(back, wide)


def test_round_trip_with_two_id_columns():
    wide = pd.DataFrame(
        {
            "assay": ["nest", "swim", "nest"],
            "sex": ["M", "M", "F"],
            "WT": [0.6, 110.0, 0.7],
            "KO": [0.3, 140.0, 0.4],
        }
    )
    back = to_wide(to_long(wide, ["assay", "sex"], "genotype", "mean"), ["assay", "sex"], "genotype", "mean")
    pd.testing.assert_frame_equal(back, wide)


def test_to_wide_rejects_duplicate_pairs():
    long = pd.DataFrame({"gene": ["GeneA", "GeneA"], "cell": ["cell_1", "cell_1"], "umi": [1, 2]})
    with pytest.raises(ValueError, match="Duplicate"):
        to_wide(long, ["gene"], "cell", "umi")


def test_to_long_requires_value_columns():
    with pytest.raises(ValueError, match="Nothing to reshape"):
        to_long(pd.DataFrame({"gene": ["GeneA"]}), ["gene"], "cell", "umi")


def test_empty_table_keeps_listed_columns():
    wide = pd.DataFrame(
        {
            "gene": pd.Series([], dtype=object),
            "cell_1": pd.Series([], dtype="int64"),
            "cell_2": pd.Series([], dtype="int64"),
        }
    )
    long = to_long(wide, ["gene"], "cell", "umi")
    assert long.empty

    back = to_wide(long, ["gene"], "cell", "umi", columns=["cell_1", "cell_2"])
    assert back.columns.tolist() == ["gene", "cell_1", "cell_2"]
    assert back.empty


def test_categorical_variable_supplies_columns():
    long = pd.DataFrame(
        {
            "assay": ["nest", "nest"],
            "genotype": pd.Categorical(["KO", "WT"], categories=["WT", "KO", "Het"]),
            "mean": [0.3, 0.6],
        }
    )
    wide = to_wide(long, ["assay"], "genotype", "mean")

    assert wide.columns.tolist() == ["assay", "WT", "KO", "Het"]
    assert wide.loc[0, "WT"] == 0.6
    assert np.isnan(wide.loc[0, "Het"])

    empty = to_wide(long.iloc[:0], ["assay"], "genotype", "mean")
    assert empty.columns.tolist() == ["assay", "WT", "KO", "Het"]


def test_columns_must_cover_every_variable():
    long = to_long(pd.DataFrame({"gene": ["GeneA"], "cell_1": [1], "cell_2": [2]}), ["gene"], "cell", "umi")
    with pytest.raises(ValueError, match="not listed in columns"):
        to_wide(long, ["gene"], "cell", "umi", columns=["cell_1"])
