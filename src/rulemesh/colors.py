"""Vectorised RGB/HSV conversion and color-shift application.

RGB and the S/V channels are in [0, 1]; hue is in degrees in [0, 360).
"""

from __future__ import annotations

import numpy as np

from rulemesh.transforms import ColorDelta


def rgb_to_hsv(rgb: np.ndarray) -> np.ndarray:
    """Convert an (N, 3) RGB array to HSV."""
    rgb = np.asarray(rgb, dtype=np.float64)
    r, g, b = rgb[:, 0], rgb[:, 1], rgb[:, 2]
    maxc = rgb.max(axis=1)
    minc = rgb.min(axis=1)
    delta = maxc - minc

    safe_max = np.where(maxc > 0.0, maxc, 1.0)
    s = np.where(maxc > 0.0, delta / safe_max, 0.0)

    safe_delta = np.where(delta > 0.0, delta, 1.0)
    rc = (maxc - r) / safe_delta
    gc = (maxc - g) / safe_delta
    bc = (maxc - b) / safe_delta

    h = np.where(r == maxc, bc - gc, np.where(g == maxc, 2.0 + rc - bc, 4.0 + gc - rc))
    h = np.where(delta > 0.0, (h / 6.0) % 1.0, 0.0)

    return np.stack([h * 360.0, s, maxc], axis=1)


def hsv_to_rgb(hsv: np.ndarray) -> np.ndarray:
    """Convert an (N, 3) HSV array to RGB."""
    hsv = np.asarray(hsv, dtype=np.float64)
    h = (hsv[:, 0] % 360.0) / 60.0
    s = hsv[:, 1]
    v = hsv[:, 2]

    sector = np.floor(h).astype(np.int64) % 6
    f = h - np.floor(h)
    p = v * (1.0 - s)
    q = v * (1.0 - s * f)
    t = v * (1.0 - s * (1.0 - f))

    choices_r = [v, q, p, p, t, v]
    choices_g = [t, v, v, q, p, p]
    choices_b = [p, p, t, v, v, q]
    conditions = [sector == i for i in range(6)]

    return np.stack(
        [
            np.select(conditions, choices_r),
            np.select(conditions, choices_g),
            np.select(conditions, choices_b),
        ],
        axis=1,
    )


def apply_color_delta(rgb: np.ndarray, delta: ColorDelta) -> np.ndarray:
    """Shift (N, 3) RGB colors by ``delta``, or replace them by its override.

    The result stays within [0, 1].
    """
    rgb = np.asarray(rgb, dtype=np.float64)
    if delta.is_identity:
        return rgb.copy()
    if delta.override is not None:
        hsv = np.tile(np.asarray(delta.override, dtype=np.float64), (len(rgb), 1))
        return np.clip(hsv_to_rgb(hsv), 0.0, 1.0)
    hsv = rgb_to_hsv(rgb)
    hsv[:, 0] = (hsv[:, 0] + delta.hue) % 360.0
    hsv[:, 1] = np.clip(hsv[:, 1] + delta.saturation, 0.0, 1.0)
    hsv[:, 2] = np.clip(hsv[:, 2] + delta.value, 0.0, 1.0)
    return np.clip(hsv_to_rgb(hsv), 0.0, 1.0)
