"""Helpers turning platform streams into ordered workout samples."""
from __future__ import annotations

import logging
import math
from typing import Sequence

from workout_insight.models.schemas import StreamSet, WorkoutSample


logger = logging.getLogger(__name__)


def _value_at(series: Sequence[float | None] | None, index: int) -> float | None:
    if series is None or index >= len(series):
        return None
    return series[index]


def samples_from_streams(streams: StreamSet) -> list[WorkoutSample]:
    """
    Zip key-by-type streams into samples, one per entry of the ``time`` stream.

    Channels shorter than ``time`` are treated as missing for the trailing
    samples; a missing distance becomes 0.

    Example:
        >>> streams = StreamSet(time=[0, 1], heartrate=[120, 122], velocity_smooth=[2.5, 2.6])
        >>> [s.heartrate for s in samples_from_streams(streams)]
        [120.0, 122.0]
    """
    samples: list[WorkoutSample] = []
    for index, time_value in enumerate(streams.time):
        samples.append(
            WorkoutSample(
                time=time_value,
                distance=_value_at(streams.distance, index) or 0.0,
                heartrate=_value_at(streams.heartrate, index),
                speed=_value_at(streams.velocity_smooth, index),
                altitude=_value_at(streams.altitude, index),
                cadence=_value_at(streams.cadence, index),
                watts=_value_at(streams.watts, index),
            )
        )
    return samples


def downsample(samples: Sequence[WorkoutSample], max_points: int = 200) -> list[WorkoutSample]:
    """
    Keep every ``step``-th sample where ``step = ceil(n / max_points)``.

    The stride is fixed so repeated calls on the same series return the same
    points in the same (temporal) order.
    """
    if max_points <= 0:
        raise ValueError("max_points must be positive")

    count = len(samples)
    if count <= max_points:
        return list(samples)

    step = math.ceil(count / max_points)
    reduced = [sample for index, sample in enumerate(samples) if index % step == 0]
    logger.debug("Downsampled %d samples to %d (step=%d)", count, len(reduced), step)
    return reduced


def prepare_samples(
    samples: Sequence[WorkoutSample] | None,
    streams: StreamSet | None,
    max_points: int = 200,
) -> list[WorkoutSample]:
    """Pick whichever series the caller sent (samples or raw streams) and downsample it."""
    if samples is not None:
        series = list(samples)
    elif streams is not None:
        series = samples_from_streams(streams)
    else:
        series = []
    return downsample(series, max_points)
