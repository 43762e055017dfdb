"""Backend options with environment-variable overrides."""

import os
from dataclasses import dataclass

DEFAULT_WORKGROUP_SIZE = 256

POWER_PREFERENCES = ("high-performance", "low-power")


def _env_flag(name):
    return os.environ.get(name, "").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class BackendOptions:
    """Options used when requesting the adapter/device pair.

    Args:
        power_preference: "high-performance" or "low-power"
        enable_f16: request the "shader-f16" feature when the adapter has it
        workgroup_size: lanes per workgroup (clamped to the device limit)
        label: device label shown in wgpu diagnostics
    """

    power_preference: str = "high-performance"
    enable_f16: bool = True
    workgroup_size: int = DEFAULT_WORKGROUP_SIZE
    label: str = "wgpu_array"

    def __post_init__(self):
        if self.power_preference not in POWER_PREFERENCES:
            raise ValueError(f"Unknown power_preference: {self.power_preference!r}")
        self.workgroup_size = int(self.workgroup_size)
        if self.workgroup_size <= 0:
            raise ValueError(f"workgroup_size must be positive: {self.workgroup_size}")

    @classmethod
    def from_env(cls, **overrides):
        """Build options from WGPU_ARRAY_* environment variables.

        Keyword arguments take precedence over the environment.
        """
        kwargs = {}
        power = os.environ.get("WGPU_ARRAY_POWER_PREFERENCE")
        if power:
            kwargs["power_preference"] = power
        if _env_flag("WGPU_ARRAY_DISABLE_F16"):
            kwargs["enable_f16"] = False
        size = os.environ.get("WGPU_ARRAY_WORKGROUP_SIZE")
        if size:
            kwargs["workgroup_size"] = int(size)
        kwargs.update(overrides)
        return cls(**kwargs)
