import pytest


torch = pytest.importorskip("torch", reason="torch not installed")


from query_assistant import runtime
from query_assistant.engine.errors import ConfigurationError
from query_assistant.runtime import DeviceKind, dtype_from_string, resolve_device, resolve_device_kind


def _host(monkeypatch, *, macos=False, mps=False, cuda=False):
    monkeypatch.setattr(runtime, "is_macos", lambda: macos)
    monkeypatch.setattr(runtime, "is_mps_available", lambda: mps)
    monkeypatch.setattr(runtime, "is_cuda_available", lambda: cuda)


def test_auto_prefers_metal_on_macos(monkeypatch):
    _host(monkeypatch, macos=True, mps=True, cuda=True)
    assert resolve_device_kind("auto") is DeviceKind.MPS


def test_auto_uses_cuda_then_cpu(monkeypatch):
    _host(monkeypatch, cuda=True)
    assert resolve_device_kind() is DeviceKind.CUDA
    _host(monkeypatch)
    assert resolve_device_kind() is DeviceKind.CPU


def test_auto_ignores_mps_off_macos(monkeypatch):
    _host(monkeypatch, macos=False, mps=True)
    assert resolve_device_kind("auto") is DeviceKind.CPU


def test_explicit_device_must_be_available(monkeypatch):
    _host(monkeypatch)
    assert resolve_device_kind("CPU") is DeviceKind.CPU
    with pytest.raises(ConfigurationError):
        resolve_device_kind("cuda")
    with pytest.raises(ConfigurationError):
        resolve_device_kind("mps")
    with pytest.raises(ConfigurationError):
        resolve_device_kind("tpu")


def test_resolve_device_keeps_index(monkeypatch):
    _host(monkeypatch, cuda=True)
    assert resolve_device("cuda:1") == torch.device("cuda:1")
    assert resolve_device("cpu") == torch.device("cpu")


def test_dtype_from_string():
    assert dtype_from_string("float32") is torch.float32
    assert dtype_from_string("BF16") is torch.bfloat16
    assert dtype_from_string("half") is torch.float16
    with pytest.raises(ConfigurationError):
        dtype_from_string("int4")
