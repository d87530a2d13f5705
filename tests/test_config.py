"""Tests for engine configuration validation."""

import pytest
from pydantic import ValidationError

from npcmind.config import (
    DEFAULT_CONFIG,
    Config,
    DecisionSettings,
    EngineConfig,
    NeedThresholds,
    RoutineSettings,
    SchedulerSettings,
)
from npcmind.schemas import ActionType, Need, Trait


def test_defaults_match_documented_values():
    assert DEFAULT_CONFIG.needs.critical == 2
    assert DEFAULT_CONFIG.needs.low == 4
    assert DEFAULT_CONFIG.decision.frequency_ms == 2000
    assert DEFAULT_CONFIG.social.conversation_distance == 3
    assert DEFAULT_CONFIG.scheduler.max_attempts == 3
    assert DEFAULT_CONFIG.scheduler.cache_timeout_ms == 30000
    assert DEFAULT_CONFIG.working_hours.start == 9
    assert DEFAULT_CONFIG.working_hours.end == 17


def test_thresholds_must_increase():
    with pytest.raises(ValidationError, match="strictly increasing"):
        EngineConfig(needs=NeedThresholds(critical=5, low=4, moderate=6, satisfied=8))


def test_decision_frequency_floor():
    with pytest.raises(ValueError, match="frequency_ms"):
        EngineConfig(decision=DecisionSettings(frequency_ms=500))


def test_trait_weights_bounded():
    with pytest.raises(ValidationError, match="outside"):
        EngineConfig(trait_weights={Trait.AMBITIOUS: {"work": 4.0}})


def test_max_attempts_at_least_one():
    with pytest.raises(ValidationError, match="max_attempts"):
        EngineConfig(scheduler=SchedulerSettings(max_attempts=0))


def test_routine_history_limit_at_least_one():
    with pytest.raises(ValidationError, match="history_limit"):
        EngineConfig(routines=RoutineSettings(history_limit=0))


def test_config_is_immutable():
    with pytest.raises(ValidationError):
        DEFAULT_CONFIG.needs.critical = 1  # type: ignore[misc]


def test_satisfaction_for_returns_copy():
    deltas = DEFAULT_CONFIG.satisfaction_for(ActionType.DRINK_COFFEE)
    deltas[Need.ENERGY] = 100
    assert DEFAULT_CONFIG.satisfaction_for(ActionType.DRINK_COFFEE)[Need.ENERGY] == 3


def test_display_lists_provider():
    text = Config.display()
    assert "npcmind Configuration" in text
    assert "LLM Provider" in text


def test_from_env_uses_frequency_override(monkeypatch):
    monkeypatch.setattr(Config, "DECISION_FREQUENCY_MS", 4000)
    assert EngineConfig.from_env().decision.frequency_ms == 4000
