import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from srs_engine.adaptive import AdaptationPolicy, failure_rate, tune
from srs_engine.config import EngineConfig


def test_short_history_is_ignored():
    assert tune([1] * 9, EngineConfig()) is None


def test_struggling_learner_gets_gentler_coefficients():
    config = EngineConfig()

    adaptation = tune([1, 1, 1, 2, 2, 2, 3, 3, 1, 1], config)

    new = adaptation.new_config
    assert adaptation.average_quality == pytest.approx(1.7)
    assert new.ease_bonus == pytest.approx(config.ease_bonus * 1.2)
    assert new.ease_penalty == pytest.approx(config.ease_penalty * 0.8)
    assert new.hard_penalty == pytest.approx(config.hard_penalty * 0.8)
    assert new.again_multiplier == pytest.approx(0.4)
    assert new.max_interval == config.max_interval


def test_excelling_learner_gets_longer_intervals():
    config = EngineConfig(max_interval=365)

    adaptation = tune([5] * 12, config)

    new = adaptation.new_config
    assert new.ease_bonus == pytest.approx(config.ease_bonus * 0.8)
    assert new.max_interval == 438
    assert new.again_multiplier == pytest.approx(0.6)
    assert new.ease_penalty == config.ease_penalty


def test_interval_ceiling_is_respected():
    adaptation = tune([5] * 10, EngineConfig())

    assert adaptation.new_config.max_interval == 36500


def test_moderate_history_keeps_again_multiplier():
    # Failure rate of 0.2 sits between the thresholds.
    history = [0, 0, 3, 3, 3, 3, 3, 3, 3, 3]
    config = EngineConfig(again_multiplier=0.45)

    adaptation = tune(history, config)

    assert failure_rate(history) == pytest.approx(0.2)
    assert adaptation.new_config.again_multiplier == 0.45


def test_old_config_is_left_untouched():
    config = EngineConfig()

    adaptation = tune([1] * 10, config)

    assert adaptation.old_config is config
    assert config.ease_bonus == 0.15
    assert adaptation.to_dict()["old_config"]["ease_bonus"] == 0.15


def test_custom_policy_threshold():
    assert tune([4] * 5, EngineConfig(), AdaptationPolicy(min_history=5)) is not None
