import numpy as np
import pandas as pd
import pytest
from scanpy import logging


@pytest.fixture
def shared_rep():
    """Shared repertoire with two samples. Every sequence is found in a single sample."""
    return pd.DataFrame(
        {
            "CDR3.amino.acid.sequence": ["CASSL", "CASSF", "CASRR"],
            "V.segments": ["TRBV1", "TRBV2", np.nan],
            "People": [1, 1, 1],
            "A": [5, 0, 2],
            "B": [0, 3, 0],
        }
    )


@pytest.fixture
def shared_rep_4():
    """Shared repertoire with four samples, some of them with missing counts."""
    return pd.DataFrame(
        [
            ["CASSLAPGATNEKLFF", 4, 10, 2, 1, 7],
            ["CASSLGQGAYEQYF", 2, np.nan, 3, np.nan, 1],
            ["CASSLAPGATNEKLFY", 1, 1, np.nan, np.nan, np.nan],
            ["CASRRGQGAYEQYF", 1, np.nan, np.nan, 5, np.nan],
        ],
        columns=["CDR3.amino.acid.sequence", "People", "Subj.A", "Subj.B", "Subj.C", "Subj.D"],
    )


@pytest.fixture
def repertoires():
    return {
        "S1": pd.DataFrame(
            {
                "CDR3.amino.acid.sequence": ["CASSL", "CASSF", "CASSL"],
                "V.segments": ["TRBV1", "TRBV2", "TRBV3"],
                "Read.count": [10, 5, 2],
            }
        ),
        "S2": pd.DataFrame(
            {
                "CDR3.amino.acid.sequence": ["CASSL", "CAR"],
                "V.segments": ["TRBV1", "TRBV4"],
                "Read.count": [1, 7],
            }
        ),
    }


@pytest.fixture
def logged_warnings(monkeypatch):
    """Messages passed to `scanpy.logging.warning` during the test"""
    messages = []
    monkeypatch.setattr(logging, "warning", lambda msg, *args, **kwargs: messages.append(msg))
    return messages
