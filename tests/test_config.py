from __future__ import annotations

import json

import pytest

from curse_game_engine.core.config import EngineConfig, load_engine_config
from curse_game_engine.core.errors import ConfigError, InvalidWeightTableError
from curse_game_engine.core.types import EffectKind


def test_defaults_are_consistent():
    config = EngineConfig()
    assert config.tier_table("gabriel").name == "tiers.default"
    assert config.immunity_for("lucyfer", "gabriel").redirect_tiers.name == "tiers.redirect"
    assert config.immunity_for("gabriel", "lucyfer") is None
    assert config.reflects("lucyfer") and not config.reflects("gabriel")
    assert "unknown" not in config.limits
    assert len(config.kind_table) == 10


def test_from_dict_overrides_sections():
    config = EngineConfig.from_dict(
        {
            "resources": {"max_balance": 50, "initial_balance": 20},
            "limits": {"curse": {"cooldown_ms": 5000, "daily_limit": 2}},
            "costs": {"member": {"curse": {"mode": "escalating", "base": 3, "increment": 2}}},
            "tier_tables": {"default": [{"weight": 100, "name": "only", "duration_ms": 1000}]},
            "kind_table": [{"weight": 60, "kind": "slow_mode"}, {"weight": 40, "kind": "forced_caps"}],
            "reflection": {"classes": ["member"], "step_percent": 5},
            "timezone": "Europe/Warsaw",
            "advice": ["Back up your soul."],
        }
    )
    assert config.resources.max_balance == 50
    assert config.limits["curse"].daily_limit == 2
    assert config.cost_rule("member", "curse").increment == 2
    assert config.tier_table("member").branches()[0].name == "only"
    assert config.kind_table.branches() == [EffectKind.SLOW_MODE, EffectKind.FORCED_CAPS]
    assert config.reflects("member")
    assert config.timezone == "Europe/Warsaw"
    assert config.advice == ("Back up your soul.",)


def test_from_dict_rejects_bad_documents():
    with pytest.raises(InvalidWeightTableError):
        EngineConfig.from_dict({"tier_tables": {"default": [{"weight": 90, "name": "x", "duration_ms": 1}]}})
    with pytest.raises(ConfigError):
        EngineConfig.from_dict({"costs": {"member": {"curse": {"mode": "random"}}}})
    with pytest.raises(ConfigError):
        EngineConfig.from_dict({"tier_tables": {"gabriel": [{"weight": 100, "name": "x", "duration_ms": 1}]}})
    with pytest.raises(ConfigError):
        EngineConfig.from_dict({"failure_chance": {"gabriel": 150}})


def test_load_engine_config_from_file(tmp_path, caplog):
    path = tmp_path / "engine.json"
    path.write_text(json.dumps({"shield_duration_ms": 1234}), encoding="utf-8")
    assert load_engine_config(path).shield_duration_ms == 1234

    assert load_engine_config(tmp_path / "absent.json").shield_duration_ms == EngineConfig().shield_duration_ms
    assert "not found" in caplog.text

    path.write_text("[1, 2]", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_engine_config(path)
    path.write_text("{broken", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_engine_config(path)
