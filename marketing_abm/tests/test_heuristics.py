"""Brand-choice heuristics and per-segment decision making."""

from __future__ import annotations

import sys
from pathlib import Path

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
PARENT = ROOT.parent
if str(PARENT) not in sys.path:
    sys.path.insert(0, str(PARENT))

from marketing_abm.decision_making import NO_AWARENESS, DecisionMaking
from marketing_abm.errors import ConfigurationError, NoAwarenessError
from marketing_abm.heuristics import (
    HEURISTICS,
    EliminationByAspects,
    HeuristicKind,
    Satisficing,
    _draw_cutoffs,
    absolute_value_perceptions,
    heuristic_labels,
)
from marketing_abm.randomizer import Randomizer

DRIVERS = np.array([0.5, 0.3, 0.2])
PERCEPTIONS = np.array(
    [
        [8.0, 6.0, 7.0],
        [3.0, 4.0, 2.0],
        [6.0, 9.0, 5.0],
    ]
)


@pytest.mark.parametrize("kind", list(HeuristicKind))
def test_single_known_brand_consumes_no_randomness(kind) -> None:
    random = Randomizer(11)
    reference = Randomizer(11)
    awareness = np.array([False, True, False])
    assert HEURISTICS[kind].select_brand(awareness, PERCEPTIONS, DRIVERS, random) == 1
    assert random.next_double() == reference.next_double()


@pytest.mark.parametrize("kind", list(HeuristicKind))
@pytest.mark.parametrize("talk", [False, True])
def test_selected_brand_is_always_known(kind, talk) -> None:
    random = Randomizer(3)
    awareness = np.array([True, False, True])
    for _ in range(200):
        brand = HEURISTICS[kind].select_brand(awareness, PERCEPTIONS, DRIVERS, random, talk=talk)
        assert awareness[brand]


def test_no_awareness_is_rejected() -> None:
    with pytest.raises(NoAwarenessError):
        HEURISTICS[HeuristicKind.UTILITY_MAXIMIZATION].select_brand(
            np.zeros(3, dtype=bool), PERCEPTIONS, DRIVERS, Randomizer(1)
        )


def test_talk_mode_reflects_extremes() -> None:
    reflected = absolute_value_perceptions(np.array([[0.0, 5.0, 10.0, 2.5]]))
    np.testing.assert_allclose(reflected, [[10.0, 0.0, 10.0, 5.0]])


def test_talk_cutoffs_stay_on_perception_scale() -> None:
    random = Randomizer(5)
    for _ in range(500):
        cutoffs = _draw_cutoffs(3, random, talk=True)
        assert np.all(cutoffs >= 0.0) and np.all(cutoffs <= 10.0)


def test_cutoff_heuristics_terminate_when_nothing_passes() -> None:
    # Every brand fails every random cutoff at first; cutoffs must relax
    low = np.zeros((3, 3))
    awareness = np.array([True, True, False])
    random = Randomizer(9)
    for heuristic in (EliminationByAspects(), Satisficing()):
        for _ in range(50):
            assert heuristic.select_brand(awareness, low, DRIVERS, random) in (0, 1)


def test_utility_maximization_prefers_higher_utility() -> None:
    random = Randomizer(21)
    awareness = np.array([True, True, False])
    picks = [
        HEURISTICS[HeuristicKind.UTILITY_MAXIMIZATION].select_brand(awareness, PERCEPTIONS, DRIVERS, random)
        for _ in range(500)
    ]
    assert picks.count(0) > picks.count(1)


def test_heuristic_labels() -> None:
    assert heuristic_labels() == ["UMAX", "MRULE", "EBA", "SAT"]


def test_decision_making_probabilities_and_choices() -> None:
    dm = DecisionMaking(Randomizer(4), [DRIVERS, DRIVERS], involved=[1.0, 0.0], emotional=[0.0, 1.0])
    np.testing.assert_allclose(dm.heuristic_probabilities[0], [1.0, 0.0, 0.0, 0.0])
    np.testing.assert_allclose(dm.heuristic_probabilities[1], [0.0, 0.0, 0.0, 1.0])
    assert dm.select_heuristic(0) is HeuristicKind.UTILITY_MAXIMIZATION
    assert dm.select_heuristic(1) is HeuristicKind.SATISFICING

    decision = dm.buy_one_brand(np.array([True, True, False]), PERCEPTIONS, 0)
    assert decision.ok and decision.heuristic is HeuristicKind.UTILITY_MAXIMIZATION

    none = dm.buy_one_brand(np.zeros(3, dtype=bool), PERCEPTIONS, 0)
    assert not none.ok and none.reason == NO_AWARENESS
    with pytest.raises(NoAwarenessError):
        dm.select_brand_strict(np.zeros(3, dtype=bool), PERCEPTIONS, 0)
    assert dm.buy_random(np.zeros(3, dtype=bool)) == -1


def test_decision_making_rejects_bad_drivers() -> None:
    with pytest.raises(ConfigurationError):
        DecisionMaking(Randomizer(1), [[0.6, 0.6, 0.2]])
