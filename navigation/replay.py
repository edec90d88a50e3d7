"""Offline scenario replay through the guidance engine.

A scenario is a YAML document::

    interval_ms: 100          # time between cycles
    depth_shape: [48, 64]     # grid used for uniform depth values
    cycles:
      - depth: 1.8            # meters everywhere; a nested list is a grid; null is absent
        brightness: 120       # optional mean frame brightness (0-255)
        detections:
          - {box: [0.4, 0.3, 0.6, 0.7], label: chair-center, confidence: 0.9}
        repeat: 3             # optional, replays the cycle several times

Cycles without a ``depth`` key keep the previous depth map.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import logging
from pathlib import Path
from typing import Any, Iterable, Mapping

import numpy as np
import yaml

from interaction.speech_hal import LoggingSpeechEngine
from navigation.engine import GuidanceEngine
from vision.depth import DepthMap
from vision.detections import DetectionBox


LOGGER = logging.getLogger(__name__)

_KEEP = object()


@dataclass(frozen=True)
class ScenarioCycle:
    """One replayed detection cycle."""

    detections: tuple[DetectionBox, ...] = ()
    depth: Any = _KEEP
    brightness: float | None = None

    @property
    def keeps_depth(self) -> bool:
        return self.depth is _KEEP


@dataclass(frozen=True)
class Scenario:
    interval_ms: int = 100
    depth_shape: tuple[int, int] = (48, 64)
    cycles: tuple[ScenarioCycle, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class SpokenLine:
    timestamp_ms: int
    text: str


def _parse_box(raw: Any, where: str) -> DetectionBox:
    if not isinstance(raw, Mapping):
        raise ValueError(f"{where}: detection must be a mapping")
    box = raw.get("box")
    label = raw.get("label")
    if not isinstance(box, (list, tuple)) or len(box) != 4:
        raise ValueError(f"{where}: 'box' must be a list of four numbers")
    if not isinstance(label, str) or not label:
        raise ValueError(f"{where}: 'label' must be a non-empty string")
    try:
        return DetectionBox.clamped(*(float(value) for value in box), label, float(raw.get("confidence", 1.0)))
    except (TypeError, ValueError) as exc:
        raise ValueError(f"{where}: invalid detection ({exc})") from exc


def _parse_depth(raw: Any, where: str) -> Any:
    if raw is None:
        return None
    if isinstance(raw, (int, float)):
        if raw <= 0:
            raise ValueError(f"{where}: uniform depth must be positive")
        return float(raw)
    grid = np.asarray(raw, dtype=np.float64)
    if grid.ndim != 2 or grid.size == 0:
        raise ValueError(f"{where}: depth grid must be a non-empty 2-D list")
    return grid


def _parse_cycle(raw: Any, index: int) -> list[ScenarioCycle]:
    where = f"cycle {index}"
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ValueError(f"{where}: must be a mapping")

    detections = raw.get("detections") or []
    if not isinstance(detections, list):
        raise ValueError(f"{where}: 'detections' must be a list")
    boxes = tuple(_parse_box(item, f"{where}, detection {n}") for n, item in enumerate(detections))

    depth = _parse_depth(raw["depth"], where) if "depth" in raw else _KEEP

    brightness = raw.get("brightness")
    if brightness is not None:
        try:
            brightness = float(brightness)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"{where}: brightness must be a number") from exc

    repeat = raw.get("repeat", 1)
    if not isinstance(repeat, int) or repeat < 1:
        raise ValueError(f"{where}: 'repeat' must be a positive integer")

    cycle = ScenarioCycle(detections=boxes, depth=depth, brightness=brightness)
    return [cycle] * repeat


def parse_scenario(data: Any) -> Scenario:
    if not isinstance(data, Mapping):
        raise ValueError("Scenario must be a mapping")
    cycles_raw = data.get("cycles")
    if not isinstance(cycles_raw, list) or not cycles_raw:
        raise ValueError("Scenario needs a non-empty 'cycles' list")

    interval_ms = data.get("interval_ms", 100)
    if not isinstance(interval_ms, int) or interval_ms <= 0:
        raise ValueError("'interval_ms' must be a positive integer")

    shape = data.get("depth_shape", [48, 64])
    if not isinstance(shape, (list, tuple)) or len(shape) != 2 or not all(isinstance(v, int) and v > 0 for v in shape):
        raise ValueError("'depth_shape' must be two positive integers")

    cycles: list[ScenarioCycle] = []
    for index, raw in enumerate(cycles_raw):
        cycles.extend(_parse_cycle(raw, index))
    return Scenario(interval_ms=interval_ms, depth_shape=(shape[0], shape[1]), cycles=tuple(cycles))


def load_scenario(path: Path) -> Scenario:
    """Read and validate a scenario file."""

    try:
        with Path(path).open("r", encoding="utf-8") as handle:
            data = yaml.safe_load(handle)
    except yaml.YAMLError as exc:
        raise ValueError(f"Scenario {path} is not valid YAML: {exc}") from exc
    return parse_scenario(data)


def _depth_map(cycle: ScenarioCycle, scenario: Scenario, engine: GuidanceEngine, now_ms: int) -> DepthMap | None:
    if cycle.depth is None:
        return None
    meters = cycle.depth
    if isinstance(meters, float):
        meters = np.full(scenario.depth_shape, meters)
    return DepthMap.from_meters(
        meters,
        scale_factor=engine.sampler.config.scale_factor,
        timestamp_ms=now_ms,
    )


def replay(
    scenario: Scenario,
    engine: GuidanceEngine | None = None,
    speech: LoggingSpeechEngine | None = None,
) -> list[SpokenLine]:
    """Feed every cycle through ``engine`` and return what was spoken, in order."""

    if speech is None:
        speech = LoggingSpeechEngine()
    if engine is None:
        engine = GuidanceEngine.from_config(speech_engine=speech)

    spoken: list[SpokenLine] = []
    seen = len(speech.history)

    def collect(now_ms: int) -> None:
        nonlocal seen
        for text in speech.history[seen:]:
            spoken.append(SpokenLine(now_ms, text))
        seen = len(speech.history)

    now_ms = 0
    for index, cycle in enumerate(scenario.cycles):
        now_ms = (index + 1) * scenario.interval_ms
        if not cycle.keeps_depth:
            engine.on_depth(_depth_map(cycle, scenario, engine, now_ms), now_ms)
        if cycle.brightness is not None:
            engine.on_brightness(cycle.brightness, now_ms)
        engine.on_detections(cycle.detections, index, now_ms)
        engine.tick(now_ms)
        collect(now_ms)

    LOGGER.info("[REPLAY] %d cycles replayed, %d utterances", len(scenario.cycles), len(spoken))
    return spoken


def format_spoken(lines: Iterable[SpokenLine]) -> str:
    return "\n".join(f"{line.timestamp_ms:>8} ms  {line.text}" for line in lines)
