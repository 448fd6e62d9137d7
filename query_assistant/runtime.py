"""Runtime environment checks and compute-device selection."""

from __future__ import annotations

import enum
import functools
import platform

import torch

from query_assistant.engine.errors import ConfigurationError


class DeviceKind(str, enum.Enum):
    CPU = "cpu"
    CUDA = "cuda"
    MPS = "mps"


@functools.lru_cache(maxsize=1)
def is_cuda_available() -> bool:
    """Check if CUDA is available."""
    return torch.cuda.is_available()


@functools.lru_cache(maxsize=1)
def is_mps_available() -> bool:
    """Check if the Metal (MPS) backend is available."""
    backend = getattr(torch.backends, "mps", None)
    return bool(backend is not None and backend.is_available())


def is_macos() -> bool:
    return platform.system() == "Darwin"


def resolve_device_kind(preference: str = "auto") -> DeviceKind:
    """Pick the compute target once, at session construction.

    "auto" prefers Metal on macOS, then CUDA, then CPU. An explicit
    preference that the host cannot honour is a configuration error.
    """
    pref = (preference or "auto").strip().lower()
    if pref == "auto":
        if is_macos() and is_mps_available():
            return DeviceKind.MPS
        if is_cuda_available():
            return DeviceKind.CUDA
        return DeviceKind.CPU

    try:
        kind = DeviceKind(pref.split(":", 1)[0])
    except ValueError as exc:
        choices = ", ".join(["auto"] + [k.value for k in DeviceKind])
        raise ConfigurationError(f"Unknown device: {preference!r}. Expected one of: {choices}") from exc

    if kind is DeviceKind.CUDA and not is_cuda_available():
        raise ConfigurationError("device 'cuda' requested but CUDA is not available")
    if kind is DeviceKind.MPS and not is_mps_available():
        raise ConfigurationError("device 'mps' requested but the MPS backend is not available")
    return kind


def resolve_device(preference: str = "auto") -> torch.device:
    kind = resolve_device_kind(preference)
    pref = (preference or "").strip().lower()
    # Keep an explicit index such as "cuda:1".
    if pref.startswith(kind.value + ":"):
        return torch.device(pref)
    return torch.device(kind.value)


def dtype_from_string(dtype: str) -> torch.dtype:
    dt = dtype.strip().lower()
    if dt in {"fp16", "float16", "half"}:
        return torch.float16
    if dt in {"bf16", "bfloat16"}:
        return torch.bfloat16
    if dt in {"fp32", "float32"}:
        return torch.float32
    raise ConfigurationError(f"Unknown dtype: {dtype!r}")
