"""Tests for YAML scenario loading and offline replay."""

from __future__ import annotations

from pathlib import Path

import pytest

from interaction.speech_hal import LoggingSpeechEngine
from navigation.engine import GuidanceEngine
from navigation.guidance import PATH_CLEAR_TEXT
from navigation.replay import SpokenLine, format_spoken, load_scenario, parse_scenario, replay


def _write(tmp_path: Path, text: str) -> Path:
    path = tmp_path / "scenario.yaml"
    path.write_text(text, encoding="utf-8")
    return path


def _replay(scenario) -> list[SpokenLine]:
    speech = LoggingSpeechEngine()
    engine = GuidanceEngine(speech_engine=speech)
    return replay(scenario, engine, speech)


def test_load_scenario_expands_repeats(tmp_path: Path) -> None:
    path = _write(
        tmp_path,
        "\n".join(
            [
                "interval_ms: 50",
                "depth_shape: [24, 32]",
                "cycles:",
                "  - depth: 2.0",
                "    repeat: 3",
                "  - detections:",
                "      - {box: [0.4, 0.4, 0.6, 0.6], label: chair-center, confidence: 0.8}",
            ]
        ),
    )
    scenario = load_scenario(path)

    assert scenario.interval_ms == 50
    assert scenario.depth_shape == (24, 32)
    assert len(scenario.cycles) == 4
    assert scenario.cycles[0].depth == 2.0
    assert scenario.cycles[3].keeps_depth
    assert scenario.cycles[3].detections[0].class_name == "chair-center"


def test_replay_announces_clear_path(tmp_path: Path) -> None:
    scenario = load_scenario(_write(tmp_path, "cycles:\n  - depth: 2.0\n    repeat: 3\n"))
    assert _replay(scenario) == [SpokenLine(200, PATH_CLEAR_TEXT)]


def test_replay_speaks_object_guidance() -> None:
    scenario = parse_scenario(
        {
            "cycles": [
                {
                    "depth": 1.8,
                    "detections": [{"box": [0.4, 0.4, 0.6, 0.6], "label": "chair-center"}],
                    "repeat": 2,
                }
            ]
        }
    )
    spoken = _replay(scenario)
    assert [line.text for line in spoken] == ["chair center 1.8 meters ahead, move left or right"]
    assert format_spoken(spoken) == "     100 ms  chair center 1.8 meters ahead, move left or right"


def test_replay_null_depth_marks_absent() -> None:
    scenario = parse_scenario(
        {"cycles": [{"depth": None, "detections": [{"box": [0.4, 0.4, 0.6, 0.6], "label": "chair-center"}]}]}
    )
    assert [line.text for line in _replay(scenario)] == ["chair center ahead, move left or right"]


@pytest.mark.parametrize(
    "data",
    [
        [],
        {"cycles": []},
        {"cycles": [{"repeat": 0}]},
        {"cycles": [{"depth": -1.0}]},
        {"cycles": [{"detections": [{"box": [0.1, 0.2], "label": "chair-left"}]}]},
        {"cycles": [{"detections": [{"box": [0.1, 0.2, 0.3, 0.4]}]}]},
        {"interval_ms": 0, "cycles": [{}]},
        {"depth_shape": [48], "cycles": [{}]},
    ],
)
def test_malformed_scenarios_are_rejected(data) -> None:
    with pytest.raises(ValueError):
        parse_scenario(data)


def test_invalid_yaml_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ValueError):
        load_scenario(_write(tmp_path, "cycles: [\n"))
