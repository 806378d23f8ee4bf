from __future__ import annotations


def decide(current_value: float, threshold_value: float, hysteresis: float, previous_output: bool) -> bool:
    """Return the output state for one reading.

    A low output goes high only when the reading is strictly above the
    threshold. A high output goes low only when the reading is strictly
    below ``threshold - hysteresis``, so the band between the two holds the
    previous state. With zero hysteresis this is a plain comparator.
    """
    if not previous_output:
        return current_value > threshold_value
    lower_bound = threshold_value - hysteresis
    return not current_value < lower_bound
