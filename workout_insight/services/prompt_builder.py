"""Deterministic prompt construction for workout analysis.

Turns an activity summary, its sampled time-series and the athlete profile into
the text sent to the generation backend. Nothing here performs I/O once a
:class:`PromptTemplate` has been loaded, so identical inputs always produce a
byte-identical prompt.
"""
from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Any, Iterable, Sequence

import yaml

from workout_insight.models.schemas import ActivitySummary, UserProfile, WorkoutSample


logger = logging.getLogger(__name__)

MPS_TO_KMH = 3.6


@dataclass(frozen=True)
class ActivityTerms:
    """Wording used for one activity type (e.g. runner / running)."""

    activity: str
    athlete: str
    action: str


@dataclass(frozen=True)
class PromptTemplate:
    """One versioned prompt variant loaded from the prompt config."""

    version: str
    language: str
    body: str
    decoupling_body: str
    unavailable_marker: str
    insufficient_marker: str
    complete_label: str
    no_gear_label: str
    activity_terms: dict[str, ActivityTerms]
    min_samples: int
    fatigue_speed_drop_pct: float
    cardiac_drift_pct: float

    def terms_for(self, activity_type: str | None) -> ActivityTerms:
        if activity_type and activity_type in self.activity_terms:
            return self.activity_terms[activity_type]
        return self.activity_terms["default"]


@dataclass(frozen=True)
class DecouplingAnalysis:
    """Two-half comparison of speed and heart rate."""

    sample_count: int
    enough_samples: bool
    speed_first_half: float | None = None
    speed_second_half: float | None = None
    hr_first_half: float | None = None
    hr_second_half: float | None = None
    speed_change_pct: float | None = None
    hr_drift_pct: float | None = None

    @property
    def is_complete(self) -> bool:
        return self.speed_change_pct is not None and self.hr_drift_pct is not None


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def estimate_max_heart_rate(age: int) -> int:
    """
    Estimate maximum heart rate with the Tanaka formula (208 - 0.7 x age).

    Example:
        >>> estimate_max_heart_rate(30)
        187
    """
    return round_half_up(208 - 0.7 * age)


def heart_rate_reserve(max_heart_rate: int, resting_heart_rate: int) -> int:
    """Heart-rate reserve (Karvonen): max HR minus resting HR."""
    return max_heart_rate - resting_heart_rate


def mean_positive(values: Iterable[float | None]) -> float | None:
    """Arithmetic mean of the defined, finite, strictly positive values (None if there are none)."""
    valid = [v for v in values if v is not None and math.isfinite(v) and v > 0]
    if not valid:
        return None
    return sum(valid) / len(valid)


def aggregate_metric(
    summary_value: float | None,
    samples: Sequence[WorkoutSample],
    channel: str,
) -> float | None:
    """Prefer the platform's summary average, otherwise average the sample channel."""
    if summary_value is not None and math.isfinite(summary_value) and summary_value > 0:
        return float(summary_value)
    return mean_positive(getattr(sample, channel) for sample in samples)


def analyze_decoupling(samples: Sequence[WorkoutSample], min_samples: int = 60) -> DecouplingAnalysis:
    """
    Compare the first and second half of the series (split at floor(n / 2)).

    Percentages are only computed when the first-half baseline is positive and
    the series holds at least ``min_samples`` points.
    """
    count = len(samples)
    if count < min_samples:
        return DecouplingAnalysis(sample_count=count, enough_samples=False)

    midpoint = count // 2
    first, second = samples[:midpoint], samples[midpoint:]

    speed_1 = mean_positive(s.speed for s in first)
    speed_2 = mean_positive(s.speed for s in second)
    hr_1 = mean_positive(s.heartrate for s in first)
    hr_2 = mean_positive(s.heartrate for s in second)

    speed_change = None
    if speed_1 is not None and speed_2 is not None:
        speed_change = (speed_2 - speed_1) / speed_1 * 100

    hr_drift = None
    if hr_1 is not None and hr_2 is not None:
        hr_drift = (hr_2 - hr_1) / hr_1 * 100

    return DecouplingAnalysis(
        sample_count=count,
        enough_samples=True,
        speed_first_half=speed_1,
        speed_second_half=speed_2,
        hr_first_half=hr_1,
        hr_second_half=hr_2,
        speed_change_pct=speed_change,
        hr_drift_pct=hr_drift,
    )


class PromptBuilder:
    """Renders the analysis prompt from a loaded template."""

    def __init__(self, template: PromptTemplate) -> None:
        self.template = template

    @property
    def version(self) -> str:
        return self.template.version

    def _fmt(self, value: float | None, unit: str, decimals: int = 0) -> str:
        """Format ``value`` with its unit, or the unavailable marker."""
        if value is None or not math.isfinite(value):
            return self.template.unavailable_marker
        return f"{value:.{decimals}f} {unit}"

    def _fmt_pct(self, value: float | None, marker: str) -> str:
        if value is None:
            return marker
        return f"{value:+.1f}%"

    def _fmt_minutes(self, seconds: int | None) -> str:
        if seconds is None:
            return self.template.unavailable_marker
        return f"{seconds // 60} min"

    def _fmt_speed(self, mps: float | None, marker: str | None = None) -> str:
        if mps is None:
            return marker or self.template.unavailable_marker
        return f"{mps * MPS_TO_KMH:.1f} km/h"

    def _text(self, value: str | None) -> str:
        if value is None or not value.strip():
            return self.template.unavailable_marker
        return value.strip()

    def _render_decoupling(self, analysis: DecouplingAnalysis) -> str:
        tpl = self.template
        if not analysis.enough_samples:
            return (
                f"- Decoupling status: {tpl.insufficient_marker} "
                f"({analysis.sample_count} samples, minimum {tpl.min_samples})"
            )

        insufficient = tpl.insufficient_marker
        return tpl.decoupling_body.format(
            speed_first_half=self._fmt_speed(analysis.speed_first_half, insufficient),
            speed_second_half=self._fmt_speed(analysis.speed_second_half, insufficient),
            hr_first_half=(
                self._fmt(analysis.hr_first_half, "bpm") if analysis.hr_first_half is not None else insufficient
            ),
            hr_second_half=(
                self._fmt(analysis.hr_second_half, "bpm") if analysis.hr_second_half is not None else insufficient
            ),
            speed_change=self._fmt_pct(analysis.speed_change_pct, insufficient),
            hr_drift=self._fmt_pct(analysis.hr_drift_pct, insufficient),
            decoupling_status=tpl.complete_label if analysis.is_complete else insufficient,
        )

    def build(
        self,
        activity: ActivitySummary,
        samples: Sequence[WorkoutSample],
        profile: UserProfile,
    ) -> str:
        """Build the prompt for one activity."""

        tpl = self.template
        na = tpl.unavailable_marker

        max_hr = estimate_max_heart_rate(profile.age)
        hrr = heart_rate_reserve(max_hr, profile.resting_heart_rate)

        avg_hr = aggregate_metric(activity.average_heartrate, samples, "heartrate")
        avg_speed = aggregate_metric(activity.average_speed, samples, "speed")
        avg_watts = aggregate_metric(activity.average_watts, samples, "watts")
        avg_cadence = aggregate_metric(activity.average_cadence, samples, "cadence")

        avg_hr_reserve_pct = na
        if avg_hr is not None and hrr > 0:
            avg_hr_reserve_pct = f"{(avg_hr - profile.resting_heart_rate) / hrr * 100:.0f}% HRR"

        power_to_weight = na
        if avg_watts is not None and math.isfinite(avg_watts) and math.isfinite(profile.weight):
            power_to_weight = f"{avg_watts / profile.weight:.2f} W/kg"

        elevation_range = None
        if activity.elev_high is not None and activity.elev_low is not None:
            elevation_range = activity.elev_high - activity.elev_low

        distance_km = activity.distance / 1000 if activity.distance is not None else None
        gear = activity.gear_name.strip() if activity.gear_name and activity.gear_name.strip() else tpl.no_gear_label
        terms = tpl.terms_for(activity.activity_type)

        decoupling = analyze_decoupling(samples, tpl.min_samples)

        logger.debug(
            "Building prompt %s | type=%s samples=%d decoupling_complete=%s",
            tpl.version,
            activity.activity_type,
            len(samples),
            decoupling.is_complete,
        )

        return tpl.body.format(
            # Profile
            age=f"{profile.age} years",
            weight=self._fmt(profile.weight, "kg", 1),
            height=self._fmt(profile.height, "cm"),
            resting_hr=f"{profile.resting_heart_rate} bpm",
            max_hr_estimate=f"{max_hr} bpm",
            hrr=f"{hrr} bpm",
            # Session
            activity_type=self._text(activity.activity_type),
            sport_type=self._text(activity.sport_type),
            activity_name=self._text(activity.name),
            moving_time=self._fmt_minutes(activity.moving_time),
            elapsed_time=self._fmt_minutes(activity.elapsed_time),
            distance=self._fmt(distance_km, "km", 2),
            elevation_gain=self._fmt(activity.total_elevation_gain, "m"),
            elevation_range=self._fmt(elevation_range, "m"),
            gear=gear,
            session_max_hr=self._fmt(activity.max_heartrate, "bpm"),
            max_speed=self._fmt_speed(activity.max_speed),
            max_power=self._fmt(activity.max_watts, "W"),
            calories=self._fmt(activity.calories, "kcal"),
            suffer_score=self._fmt(activity.suffer_score, "points"),
            # Averages
            sample_count=f"{len(samples)} samples",
            avg_hr=self._fmt(avg_hr, "bpm"),
            avg_hr_reserve_pct=avg_hr_reserve_pct,
            avg_speed=self._fmt_speed(avg_speed),
            avg_power=self._fmt(avg_watts, "W"),
            power_to_weight=power_to_weight,
            avg_cadence=self._fmt(avg_cadence, "rpm"),
            # Decoupling
            decoupling_block=self._render_decoupling(decoupling),
            # Directives
            activity_label=terms.activity,
            athlete_noun=terms.athlete,
            activity_action=terms.action,
            fatigue_speed_drop_pct=f"{tpl.fatigue_speed_drop_pct:g}",
            cardiac_drift_pct=f"{tpl.cardiac_drift_pct:g}",
            unavailable_marker=na,
            insufficient_marker=tpl.insufficient_marker,
        )


def _load_prompt_config(path: Path) -> dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return yaml.safe_load(fh)


def _load_template_text(path: Path) -> str:
    with path.open("r", encoding="utf-8") as fh:
        return fh.read()


@lru_cache(maxsize=8)
def load_prompt_template(config_path: Path, version: str | None = None) -> PromptTemplate:
    """
    Load a prompt variant from the YAML registry.

    Args:
        config_path: Path to prompts.yaml
        version: Version key; defaults to ``active_version``

    Raises:
        ValueError: If the requested version is not defined
    """
    config = _load_prompt_config(config_path)
    base_dir = config_path.parent
    selected = version or config["active_version"]

    versions = config.get("versions", {})
    if selected not in versions:
        raise ValueError(
            f"Unknown prompt version '{selected}'. Available: {', '.join(sorted(versions))}"
        )

    entry = versions[selected]
    thresholds = config.get("thresholds", {})
    terms = {
        key: ActivityTerms(activity=value["activity"], athlete=value["athlete"], action=value["action"])
        for key, value in entry["activity_terms"].items()
    }
    if "default" not in terms:
        raise ValueError(f"Prompt version '{selected}' must define default activity terms")

    logger.info("Loaded prompt template %s (%s)", selected, entry.get("language", "en"))
    return PromptTemplate(
        version=selected,
        language=str(entry.get("language", "en")),
        body=_load_template_text(base_dir / entry["template_path"]),
        decoupling_body=_load_template_text(base_dir / entry["decoupling_path"]).rstrip("\n"),
        unavailable_marker=str(entry.get("unavailable_marker", "N/A")),
        insufficient_marker=str(entry.get("insufficient_marker", "insufficient data")),
        complete_label=str(entry.get("complete_label", "complete")),
        no_gear_label=str(entry.get("no_gear_label", "no specific gear")),
        activity_terms=terms,
        min_samples=int(config.get("decoupling", {}).get("min_samples", 60)),
        fatigue_speed_drop_pct=float(thresholds.get("fatigue_speed_drop_pct", 10)),
        cardiac_drift_pct=float(thresholds.get("cardiac_drift_pct", 5)),
    )
